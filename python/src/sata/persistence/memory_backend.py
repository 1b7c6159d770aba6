"""
Process-local fallback backend.

Used when the remote database is not configured or unreachable at startup.
All data lives in this process and is lost on restart.

Every operation runs synchronously inside one critical section, so each
call is atomic with respect to concurrent callers, including the
compare-and-set in ``update`` and the multi-collection ``purge_tenant``.
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlmodel import SQLModel

from ..core.exceptions import ConstraintViolation
from ..models import Farm, TenantRole, User, normalize_email
from .base import (
    FOREIGN_KEYS,
    PURGE_ORDER,
    Collection,
    PersistenceBackend,
    check_fields,
    clone,
    prepare_row,
)

logger = logging.getLogger(__name__)


class MemoryBackend(PersistenceBackend):
    """In-process dict store guarded by a lock."""

    name = "fallback"

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[Collection, Dict[str, SQLModel]] = {
            collection: {} for collection in Collection
        }
        logger.info("Fallback (process-local) backend initialized")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: Collection, entity_id: str) -> Optional[SQLModel]:
        with self._lock:
            row = self._tables[collection].get(entity_id)
            return clone(row) if row is not None else None

    async def list(
        self,
        collection: Collection,
        tenant_id: Optional[str] = None,
        **equals: Any,
    ) -> List[SQLModel]:
        check_fields(collection, equals)
        if tenant_id is not None:
            equals[collection.tenant_field] = tenant_id

        with self._lock:
            rows = [
                clone(row)
                for row in self._tables[collection].values()
                if all(getattr(row, field) == value for field, value in equals.items())
            ]
        return sorted(rows, key=lambda row: row.id)

    async def find_user_by_email(self, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        with self._lock:
            for row in self._tables[Collection.USERS].values():
                if row.email == normalized:
                    return clone(row)
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, collection: Collection, entity: SQLModel) -> SQLModel:
        with self._lock:
            row = prepare_row(collection, entity)
            self._check_constraints(collection, row, pending=[])
            self._tables[collection][row.id] = row
            return clone(row)

    async def insert_many(
        self, collection: Collection, entities: List[SQLModel]
    ) -> List[SQLModel]:
        with self._lock:
            rows: List[SQLModel] = []
            for entity in entities:
                row = prepare_row(collection, entity)
                self._check_constraints(collection, row, pending=rows)
                rows.append(row)
            for row in rows:
                self._tables[collection][row.id] = row
            return [clone(row) for row in rows]

    async def update(
        self,
        collection: Collection,
        entity_id: str,
        changes: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[SQLModel]:
        check_fields(collection, changes)
        if expected:
            check_fields(collection, expected)

        with self._lock:
            current = self._tables[collection].get(entity_id)
            if current is None:
                return None
            if expected and any(
                getattr(current, field) != value for field, value in expected.items()
            ):
                return None

            data = current.model_dump()
            data.update(changes)
            data["id"] = entity_id
            row = prepare_row(collection, collection.model(**data))
            self._check_constraints(collection, row, pending=[], replacing=True)
            self._tables[collection][entity_id] = row
            return clone(row)

    async def delete(self, collection: Collection, entity_id: str) -> bool:
        with self._lock:
            if entity_id not in self._tables[collection]:
                return False
            self._check_not_referenced(collection, entity_id)
            del self._tables[collection][entity_id]
            return True

    async def create_tenant_with_owner(self, farm: Farm, owner: User) -> Tuple[Farm, User]:
        with self._lock:
            farm_row = prepare_row(Collection.FARMS, farm)
            self._check_constraints(Collection.FARMS, farm_row, pending=[])
            owner_row = prepare_row(Collection.USERS, owner)
            owner_row.farm_id = farm_row.id

            # The owner's farm only exists once both rows are written
            self._tables[Collection.FARMS][farm_row.id] = farm_row
            try:
                self._check_constraints(Collection.USERS, owner_row, pending=[])
            except ConstraintViolation:
                del self._tables[Collection.FARMS][farm_row.id]
                raise
            self._tables[Collection.USERS][owner_row.id] = owner_row
            return clone(farm_row), clone(owner_row)

    async def purge_tenant(self, tenant_id: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for collection in PURGE_ORDER:
                table = self._tables[collection]
                doomed = [
                    row_id
                    for row_id, row in table.items()
                    if getattr(row, collection.tenant_field) == tenant_id
                ]
                for row_id in doomed:
                    del table[row_id]
                counts[collection.value] = len(doomed)
        return counts

    async def ping(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Constraint checks (caller holds the lock)
    # ------------------------------------------------------------------

    def _check_constraints(
        self,
        collection: Collection,
        row: SQLModel,
        pending: List[SQLModel],
        replacing: bool = False,
    ) -> None:
        duplicate = any(other.id == row.id for other in pending)
        if not replacing and row.id in self._tables[collection]:
            duplicate = True
        if duplicate:
            raise ConstraintViolation(f"Duplicate id in {collection.value}: {row.id}")

        for field, referenced in FOREIGN_KEYS.get(collection, []):
            value = getattr(row, field)
            if value is not None and value not in self._tables[referenced]:
                raise ConstraintViolation(
                    f"{collection.value}.{field} references missing {referenced.value} {value}"
                )

        if collection is Collection.USERS:
            self._check_user_uniqueness(row, pending)

    def _check_user_uniqueness(self, row: User, pending: List[SQLModel]) -> None:
        others = [
            other
            for other in list(self._tables[Collection.USERS].values()) + pending
            if other.id != row.id
        ]
        if any(other.email == row.email for other in others):
            raise ConstraintViolation(f"Email already registered: {row.email}")

        if row.company_role == TenantRole.OWNER and row.farm_id is not None:
            if any(
                other.farm_id == row.farm_id and other.company_role == TenantRole.OWNER
                for other in others
            ):
                raise ConstraintViolation(f"Farm {row.farm_id} already has an owner")

    def _check_not_referenced(self, collection: Collection, entity_id: str) -> None:
        for child, references in FOREIGN_KEYS.items():
            for field, referenced in references:
                if referenced is not collection:
                    continue
                if any(getattr(row, field) == entity_id for row in self._tables[child].values()):
                    raise ConstraintViolation(
                        f"{collection.value} {entity_id} is still referenced by {child.value}"
                    )
