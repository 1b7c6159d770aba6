"""
Farm (tenant) and tenant-scoped entity models.

Every row except ``Farm`` carries ``farm_id``; a farm owns all rows that
reference it and they are removed together with it.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .enums import AlertType, AssetLocation, AssetType, enum_column


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp, or convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the epoch."""
    delta = as_utc(value) - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


class UTCDateTime(sa.TypeDecorator):
    """
    ``DateTime(timezone=True)`` that always hands back aware UTC values.

    SQLite drops the offset on storage; values read back are re-tagged as UTC.
    """

    impl = sa.DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return as_utc(value) if value is not None else None


class Farm(SQLModel, table=True):
    """Tenant: an isolated customer organization."""

    __tablename__ = "farms"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    name: str = Field(max_length=255)
    timezone: str = Field(default="UTC", max_length=64)


class Contact(SQLModel, table=True):
    __tablename__ = "contacts"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    farm_id: str = Field(foreign_key="farms.id", index=True, max_length=36)
    name: str = Field(max_length=255)
    phone: str = Field(default="", max_length=50)
    email: str = Field(default="", max_length=255)


class Asset(SQLModel, table=True):
    """Monitored asset (greenhouse, silo, warehouse)."""

    __tablename__ = "assets"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    farm_id: str = Field(foreign_key="farms.id", index=True, max_length=36)
    name: str = Field(max_length=255)
    asset_type: AssetType = Field(sa_column=enum_column(AssetType))
    custom_type: Optional[str] = Field(default=None, max_length=100)
    dev_eui: str = Field(max_length=64)
    location: AssetLocation = Field(sa_column=enum_column(AssetLocation))


class AlertRule(SQLModel, table=True):
    __tablename__ = "alert_rules"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    farm_id: str = Field(foreign_key="farms.id", index=True, max_length=36)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=36)
    alert_type: AlertType = Field(sa_column=enum_column(AlertType))
    threshold: float
    contact_ids: list[str] = Field(
        default_factory=list, sa_column=sa.Column(sa.JSON, nullable=False)
    )


class AlertLog(SQLModel, table=True):
    """Historical alert, written by seeding only."""

    __tablename__ = "alert_logs"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    farm_id: str = Field(foreign_key="farms.id", index=True, max_length=36)
    asset_id: str = Field(foreign_key="assets.id", index=True, max_length=36)
    alert_type: AlertType = Field(sa_column=enum_column(AlertType))
    value: float
    notified_contacts: list[str] = Field(
        default_factory=list, sa_column=sa.Column(sa.JSON, nullable=False)
    )
    timestamp: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
