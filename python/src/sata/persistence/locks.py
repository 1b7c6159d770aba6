"""
Per-tenant write serialization.

Tenant deletion and every write scoped to a tenant (invitation issue,
seeding) take the same ``asyncio.Lock``. A writer that was queued behind a
deletion re-checks the tenant after acquiring the lock and fails with
NOT_FOUND: deletion wins.

Locks exist only while someone holds or waits on them, so deleted tenants
leave nothing behind in the registry.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class TenantLockRegistry:
    """One ``asyncio.Lock`` per tenant id, created on first use."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per tenant
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, tenant_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        self._users[tenant_id] = self._users.get(tenant_id, 0) + 1
        try:
            if lock.locked():
                logger.debug(f"Waiting for tenant lock {tenant_id}")
            async with lock:
                yield
        finally:
            self._release(tenant_id)

    def _release(self, tenant_id: str) -> None:
        remaining = self._users[tenant_id] - 1
        if remaining:
            self._users[tenant_id] = remaining
            return
        del self._users[tenant_id]
        del self._locks[tenant_id]

    def is_locked(self, tenant_id: str) -> bool:
        lock = self._locks.get(tenant_id)
        return lock is not None and lock.locked()
