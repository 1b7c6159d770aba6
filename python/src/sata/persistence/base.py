"""
PersistenceBackend interface.

Two implementations exist: ``SqlBackend`` (remote relational database) and
``MemoryBackend`` (process-local fallback). They must be behaviorally
interchangeable; ``tests/integration/test_backend_equivalence.py`` runs the
same scenarios against both.

Rules shared by every implementation:
- Returned entities are detached copies. Mutating them never changes the store.
- ``list`` results are ordered by id.
- User emails are stored normalized (trimmed, lower-cased) and are unique.
- A farm has at most one user with ``company_role == "owner"``.
- Rows referencing a missing farm or asset are rejected.
- Constraint failures raise ``ConstraintViolation``; connectivity failures
  raise ``BackendUnavailable``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, get_args

from sqlmodel import SQLModel

from ..models import (
    AlertLog,
    AlertRule,
    Asset,
    Contact,
    Farm,
    User,
    as_utc,
    new_id,
    normalize_email,
)


class Collection(str, Enum):
    FARMS = "farms"
    USERS = "users"
    CONTACTS = "contacts"
    ASSETS = "assets"
    ALERT_RULES = "alert_rules"
    ALERT_LOGS = "alert_logs"

    @property
    def model(self) -> Type[SQLModel]:
        return COLLECTION_MODELS[self]

    @property
    def tenant_field(self) -> str:
        """Field that scopes a row to its farm."""
        return "id" if self is Collection.FARMS else "farm_id"


COLLECTION_MODELS: Dict[Collection, Type[SQLModel]] = {
    Collection.FARMS: Farm,
    Collection.USERS: User,
    Collection.CONTACTS: Contact,
    Collection.ASSETS: Asset,
    Collection.ALERT_RULES: AlertRule,
    Collection.ALERT_LOGS: AlertLog,
}

# Deletion order for a tenant purge: children before the rows they reference
PURGE_ORDER: Tuple[Collection, ...] = (
    Collection.ALERT_LOGS,
    Collection.ALERT_RULES,
    Collection.CONTACTS,
    Collection.USERS,
    Collection.ASSETS,
    Collection.FARMS,
)

# child collection -> [(foreign key field, referenced collection)]
FOREIGN_KEYS: Dict[Collection, List[Tuple[str, Collection]]] = {
    Collection.USERS: [("farm_id", Collection.FARMS)],
    Collection.CONTACTS: [("farm_id", Collection.FARMS)],
    Collection.ASSETS: [("farm_id", Collection.FARMS)],
    Collection.ALERT_RULES: [
        ("farm_id", Collection.FARMS),
        ("asset_id", Collection.ASSETS),
    ],
    Collection.ALERT_LOGS: [
        ("farm_id", Collection.FARMS),
        ("asset_id", Collection.ASSETS),
    ],
}


def check_fields(collection: Collection, fields) -> None:
    """Raise ValueError for field names the collection's model does not have."""
    known = collection.model.model_fields
    unknown = [name for name in fields if name not in known]
    if unknown:
        raise ValueError(
            f"Unknown field(s) for {collection.value}: {', '.join(sorted(unknown))}"
        )


def _enum_type(annotation) -> Optional[Type[Enum]]:
    candidates = (annotation,) + get_args(annotation)
    for candidate in candidates:
        if isinstance(candidate, type) and issubclass(candidate, Enum):
            return candidate
    return None


def coerce_enums(entity: SQLModel) -> SQLModel:
    """Replace raw literals (``"Activo"``) with enum members, in place."""
    for name, field in type(entity).model_fields.items():
        enum_cls = _enum_type(field.annotation)
        value = getattr(entity, name)
        if enum_cls is not None and value is not None and not isinstance(value, enum_cls):
            setattr(entity, name, enum_cls(value))
    return entity


def clone(entity: SQLModel) -> SQLModel:
    """Detached copy of a table model instance."""
    return type(entity)(**entity.model_dump())


def prepare_row(collection: Collection, entity: SQLModel) -> SQLModel:
    """Copy of ``entity`` ready to be stored: id assigned, literals coerced, email normalized."""
    row = coerce_enums(clone(entity))
    for name in type(row).model_fields:
        value = getattr(row, name)
        if isinstance(value, datetime):
            setattr(row, name, as_utc(value))
    if not row.id:
        row.id = new_id()
    if collection is Collection.USERS:
        row.email = normalize_email(row.email)
    return row


class PersistenceBackend(ABC):
    """
    Uniform async CRUD over the tenant-scoped collections.

    The backend is selected once per process (see ``persistence.factory``)
    and passed explicitly to every service.
    """

    name: str = "abstract"

    @abstractmethod
    async def get(self, collection: Collection, entity_id: str) -> Optional[SQLModel]:
        """Return the entity with ``entity_id`` or None."""

    @abstractmethod
    async def list(
        self,
        collection: Collection,
        tenant_id: Optional[str] = None,
        **equals: Any,
    ) -> List[SQLModel]:
        """
        Return entities, optionally scoped to ``tenant_id`` and filtered by
        exact field values (``None`` matches missing values).
        """

    @abstractmethod
    async def insert(self, collection: Collection, entity: SQLModel) -> SQLModel:
        """Insert one entity, assigning an id when missing."""

    @abstractmethod
    async def insert_many(
        self, collection: Collection, entities: List[SQLModel]
    ) -> List[SQLModel]:
        """Insert several entities; all of them or none."""

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        entity_id: str,
        changes: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Optional[SQLModel]:
        """
        Apply ``changes`` to one entity.

        When ``expected`` is given, the update is applied only if every
        expected field still holds the given value, atomically with the
        write (compare-and-set).

        Returns:
            The updated entity, or None if it does not exist or an
            expectation did not hold
        """

    @abstractmethod
    async def delete(self, collection: Collection, entity_id: str) -> bool:
        """Delete one entity. Returns False when it did not exist."""

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup of a user by email."""

    @abstractmethod
    async def create_tenant_with_owner(self, farm: Farm, owner: User) -> Tuple[Farm, User]:
        """Insert a farm and its owner in one unit of work: both or neither."""

    @abstractmethod
    async def purge_tenant(self, tenant_id: str) -> Dict[str, int]:
        """
        Delete a farm and every row scoped to it in one unit of work.

        Returns:
            Deleted row count per collection name
        """

    @abstractmethod
    async def ping(self) -> None:
        """Raise ``BackendUnavailable`` if the backend cannot serve requests."""

    async def close(self) -> None:
        """Release resources held by the backend."""
