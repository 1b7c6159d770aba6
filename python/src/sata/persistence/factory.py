"""
Backend selection.

Decided once per process at startup:

    REMOTE_DATABASE_URL + REMOTE_DATABASE_KEY valid, ping OK → SqlBackend
    anything else                                             → MemoryBackend

The choice is never revisited. A remote backend that fails later raises
``BackendUnavailable`` to its callers instead of switching stores, which
would split state between two backends.
"""

import asyncio
import logging

from sqlalchemy.exc import ArgumentError, DBAPIError

from ..core.config import Settings
from ..core.exceptions import BackendUnavailable
from ..database import create_engine, init_schema
from .base import PersistenceBackend
from .memory_backend import MemoryBackend
from .sql_backend import SqlBackend

logger = logging.getLogger(__name__)


async def create_backend(settings: Settings) -> PersistenceBackend:
    """Select and initialize the persistence backend for this process."""
    url = settings.remote_database_url()
    if url is None:
        if settings.REMOTE_DATABASE_URL or settings.REMOTE_DATABASE_KEY:
            logger.warning(
                "Remote backend partially or incorrectly configured; "
                "using process-local fallback store"
            )
        else:
            logger.info("Remote backend not configured; using process-local fallback store")
        return MemoryBackend()

    try:
        engine = create_engine(
            url,
            echo=settings.ENVIRONMENT == "development" and settings.LOG_LEVEL == "DEBUG",
            connect_timeout=settings.REMOTE_CONNECT_TIMEOUT,
        )
    except ArgumentError as e:
        logger.error(f"Remote backend URL rejected ({e}); using process-local fallback store")
        return MemoryBackend()

    backend = SqlBackend(engine)
    try:
        await asyncio.wait_for(backend.ping(), timeout=settings.REMOTE_CONNECT_TIMEOUT)
        await init_schema(engine)
    except (BackendUnavailable, DBAPIError, OSError, asyncio.TimeoutError) as e:
        logger.error(
            f"Remote backend at {url.host} failed to initialize ({e!r}); "
            f"using process-local fallback store for this process"
        )
        await backend.close()
        return MemoryBackend()

    logger.info(f"Remote backend selected: {url.drivername}://{url.host}/{url.database}")
    return backend
