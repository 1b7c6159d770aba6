"""
Database engine and session management for the remote backend.

Engines are created on demand from a URL instead of at import time, so a
process without remote configuration never opens a connection.
"""

import logging
from typing import Union

from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from . import models  # noqa: F401  registers tables on SQLModel.metadata

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(
    url: Union[str, URL],
    echo: bool = False,
    connect_timeout: float = 5.0,
) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite engines get foreign key enforcement so that both SQLite and
    PostgreSQL reject orphaned rows.
    """
    is_sqlite = str(url).startswith("sqlite")

    if is_sqlite:
        engine = create_async_engine(url, echo=echo, future=True)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_async_engine(
            url,
            echo=echo,
            future=True,
            pool_pre_ping=True,      # Verify connections before using
            pool_size=10,
            max_overflow=5,
            pool_recycle=3600,       # Recycle after 1 hour
            pool_timeout=30,
            connect_args={"timeout": connect_timeout},
        )

    return engine


def create_session_maker(engine: AsyncEngine) -> sessionmaker:
    """Async session factory bound to ``engine``."""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """
    Create all tables that do not exist yet.

    Idempotent; existing tables are left untouched.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    logger.info("Database schema ensured")


async def close_engine(engine: AsyncEngine) -> None:
    """Close database connections on shutdown."""
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed successfully")
