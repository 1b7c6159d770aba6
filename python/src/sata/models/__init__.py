"""
SQLModel database models.

These table models double as the schema of the remote backend and as the
entity type of the fallback store.
"""

from .enums import (
    AccountStatus,
    AlertType,
    AssetLocation,
    AssetType,
    GlobalRole,
    TenantRole,
)
from .tenant import (
    AlertLog,
    AlertRule,
    Asset,
    Contact,
    Farm,
    UTCDateTime,
    as_utc,
    from_epoch_ms,
    new_id,
    to_epoch_ms,
    utcnow,
)
from .user import User, normalize_email

__all__ = [
    "AccountStatus",
    "AlertType",
    "AssetLocation",
    "AssetType",
    "GlobalRole",
    "TenantRole",
    "AlertLog",
    "AlertRule",
    "Asset",
    "Contact",
    "Farm",
    "User",
    "UTCDateTime",
    "as_utc",
    "from_epoch_ms",
    "new_id",
    "normalize_email",
    "to_epoch_ms",
    "utcnow",
]
