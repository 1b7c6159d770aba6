"""
Account administration for platform admins.

Failures carry the underlying reason verbatim; callers are already
privileged.
"""

import logging
from typing import List, Optional

from ...core.exceptions import IllegalTransition, NotFound, Unauthorized
from ...core.results import AccountView, DeletionReport, returns_failure
from ...models import AccountStatus, User
from ...persistence import Collection, PersistenceBackend
from .status_machine import AccountStatusMachine, StatusTrigger

logger = logging.getLogger(__name__)

ACCOUNT_NOT_FOUND = "Usuario no encontrado"


class AccountAdminService:
    """Block/unblock, list and remove accounts."""

    # Compare-and-set retries when the status changes underneath us
    MAX_STATUS_RETRIES = 3

    def __init__(self, backend: PersistenceBackend):
        self.backend = backend

    @returns_failure
    async def set_blocked(self, account_id: str, blocked: bool) -> AccountView:
        """
        Block or unblock an account.

        Idempotent when the account is already in the target state.
        """
        trigger = StatusTrigger.BLOCK if blocked else StatusTrigger.UNBLOCK

        for _ in range(self.MAX_STATUS_RETRIES):
            user = await self.backend.get(Collection.USERS, account_id)
            if user is None:
                raise NotFound(ACCOUNT_NOT_FOUND)

            current = AccountStatus(user.status)
            target = AccountStatusMachine.next_status(current, trigger)
            if target == current:
                return AccountView.from_user(user)

            updated = await self.backend.update(
                Collection.USERS,
                account_id,
                {"status": target},
                expected={"status": current},
            )
            if updated is not None:
                logger.warning(
                    f"Account {account_id} status changed: {current.value} -> {target.value}"
                )
                return AccountView.from_user(updated)

        raise IllegalTransition(
            f"El estado de la cuenta {account_id} cambió durante la operación; intente de nuevo."
        )

    @returns_failure
    async def list_accounts(self, tenant_id: Optional[str] = None) -> List[AccountView]:
        users = await self.backend.list(Collection.USERS, tenant_id=tenant_id)
        return [AccountView.from_user(user) for user in users]

    @returns_failure
    async def delete_account(self, account_id: str) -> DeletionReport:
        return await self.remove_account(account_id)

    async def remove_account(self, account_id: str) -> DeletionReport:
        """
        Delete one non-owner account.

        Owners are removed only together with their company (see
        ``TenantLifecycleManager.delete_tenant_forced``).

        Raises:
            NotFound: If the account does not exist
            Unauthorized: If the account owns a company
        """
        user: Optional[User] = await self.backend.get(Collection.USERS, account_id)
        if user is None:
            raise NotFound(ACCOUNT_NOT_FOUND)
        if user.is_owner and user.farm_id:
            raise Unauthorized(
                "La cuenta del propietario solo puede eliminarse junto con su empresa."
            )

        if not await self.backend.delete(Collection.USERS, account_id):
            raise NotFound(ACCOUNT_NOT_FOUND)

        logger.warning(f"Account deleted: {account_id} ({user.email})")
        return DeletionReport(
            tenant_id=user.farm_id,
            account_id=account_id,
            tenant_deleted=False,
            deleted={Collection.USERS.value: 1},
        )
