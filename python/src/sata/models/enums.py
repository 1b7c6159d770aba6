"""
Persisted literal values.

Stored exactly as written here; external systems read these strings.
"""

from enum import Enum

import sqlalchemy as sa


class AccountStatus(str, Enum):
    ACTIVE = "Activo"
    PENDING = "Pendiente"
    BLOCKED = "Bloqueado"
    INACTIVE = "Inactivo"


class GlobalRole(str, Enum):
    """Global role, which is also the portal an account signs in through."""
    TENANT_USER = "farm_user"
    PLATFORM_ADMIN = "sata_admin"
    PLATFORM_TECH = "sata_tech"

    @property
    def is_privileged(self) -> bool:
        return self in (GlobalRole.PLATFORM_ADMIN, GlobalRole.PLATFORM_TECH)


class TenantRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class AssetType(str, Enum):
    GREENHOUSE = "Invernadero"
    SILO = "Silo"
    OTHER = "Otro"


class AssetLocation(str, Enum):
    NORTH = "Norte"
    CENTER = "Centro"
    SOUTH = "Sur"


class AlertType(str, Enum):
    TEMP_MIN = "Temperatura Mínima"
    TEMP_MAX = "Temperatura Máxima"
    HUMIDITY_MAX = "Humedad Máxima"


def enum_column(enum_cls, nullable: bool = False, **kwargs) -> sa.Column:
    """Column storing an enum by its value (``"Activo"``), not its name."""
    return sa.Column(
        sa.Enum(
            enum_cls,
            values_callable=lambda members: [member.value for member in members],
            native_enum=False,
            length=32,
        ),
        nullable=nullable,
        **kwargs,
    )
