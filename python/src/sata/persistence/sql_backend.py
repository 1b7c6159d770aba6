"""
Remote relational backend.

SQLAlchemy async engine over the SQLModel tables. Each operation runs in
its own transaction (one round trip from the caller's point of view), so
``create_tenant_with_owner`` and ``purge_tenant`` are all-or-nothing.

Error mapping:
- IntegrityError → ConstraintViolation
- any other driver / connection failure → BackendUnavailable
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete as sa_delete
from sqlalchemy import select, text
from sqlalchemy import update as sa_update
from sqlalchemy.exc import DBAPIError, IntegrityError, StatementError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlmodel import SQLModel

from ..core.exceptions import BackendUnavailable, ConstraintViolation
from ..database import close_engine, create_session_maker
from ..models import Farm, User, normalize_email
from .base import (
    PURGE_ORDER,
    Collection,
    PersistenceBackend,
    check_fields,
    prepare_row,
)

logger = logging.getLogger(__name__)


class SqlBackend(PersistenceBackend):
    """PersistenceBackend on an async SQLAlchemy engine."""

    name = "remote"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_maker = create_session_maker(engine)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside a transaction, with driver errors translated."""
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            logger.info(f"Constraint violation: {e.orig}")
            raise ConstraintViolation(str(e.orig)) from e
        except (DBAPIError, PoolTimeoutError, OSError) as e:
            logger.error(f"Remote backend failure: {e}")
            raise BackendUnavailable() from e
        except StatementError as e:
            # Raised before the driver sees the statement (bind processing)
            logger.error(f"Remote backend rejected statement: {e}")
            raise BackendUnavailable() from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: Collection, entity_id: str) -> Optional[SQLModel]:
        async with self._transaction() as session:
            return await session.get(collection.model, entity_id)

    async def list(
        self,
        collection: Collection,
        tenant_id: Optional[str] = None,
        **equals: Any,
    ) -> List[SQLModel]:
        check_fields(collection, equals)
        if tenant_id is not None:
            equals[collection.tenant_field] = tenant_id

        model = collection.model
        statement = select(model).order_by(model.id)
        for field, value in equals.items():
            column = getattr(model, field)
            statement = statement.where(column.is_(None) if value is None else column == value)

        async with self._transaction() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def find_user_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(User.email == normalize_email(email))
        async with self._transaction() as session:
            result = await session.execute(statement)
            return result.scalars().first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, collection: Collection, entity: SQLModel) -> SQLModel:
        row = prepare_row(collection, entity)
        async with self._transaction() as session:
            session.add(row)
        return row

    async def insert_many(
        self, collection: Collection, entities: List[SQLModel]
    ) -> List[SQLModel]:
        rows = [prepare_row(collection, entity) for entity in entities]
        async with self._transaction() as session:
            session.add_all(rows)
        return rows

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

        values = dict(changes)
        values.pop("id", None)
        if collection is Collection.USERS and "email" in values:
            values["email"] = normalize_email(values["email"])

        model = collection.model
        statement = sa_update(model).where(model.id == entity_id)
        for field, value in (expected or {}).items():
            column = getattr(model, field)
            statement = statement.where(column.is_(None) if value is None else column == value)
        statement = statement.values(**values).execution_options(synchronize_session=False)

        async with self._transaction() as session:
            result = await session.execute(statement)
            if result.rowcount == 0:
                return None
            return await session.get(model, entity_id, populate_existing=True)

    async def delete(self, collection: Collection, entity_id: str) -> bool:
        model = collection.model
        async with self._transaction() as session:
            result = await session.execute(sa_delete(model).where(model.id == entity_id))
            return result.rowcount > 0

    async def create_tenant_with_owner(self, farm: Farm, owner: User) -> Tuple[Farm, User]:
        farm_row = prepare_row(Collection.FARMS, farm)
        owner_row = prepare_row(Collection.USERS, owner)
        owner_row.farm_id = farm_row.id

        async with self._transaction() as session:
            session.add(farm_row)
            await session.flush()
            session.add(owner_row)

        return farm_row, owner_row

    async def purge_tenant(self, tenant_id: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        async with self._transaction() as session:
            for collection in PURGE_ORDER:
                model = collection.model
                column = getattr(model, collection.tenant_field)
                result = await session.execute(sa_delete(model).where(column == tenant_id))
                counts[collection.value] = result.rowcount
        return counts

    async def ping(self) -> None:
        async with self._transaction() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        await close_engine(self.engine)
