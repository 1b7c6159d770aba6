"""
Persistence backends.
"""

from .base import Collection, PersistenceBackend
from .factory import create_backend
from .locks import TenantLockRegistry
from .memory_backend import MemoryBackend
from .sql_backend import SqlBackend

__all__ = [
    "Collection",
    "PersistenceBackend",
    "create_backend",
    "TenantLockRegistry",
    "MemoryBackend",
    "SqlBackend",
]
