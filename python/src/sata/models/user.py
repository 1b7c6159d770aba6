"""
User (account) model.

Email is stored trimmed and lower-cased and is unique, which makes lookups
case-insensitive by construction. At most one ``owner`` per farm is
enforced by a partial unique index.
"""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .enums import AccountStatus, GlobalRole, TenantRole, enum_column
from .tenant import UTCDateTime, new_id, utcnow

OWNER_ONLY = sa.text("company_role = 'owner'")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class User(SQLModel, table=True):
    """
    Account of a platform staff member or a tenant user.

    ``company_role`` applies to ``farm_user`` accounts only.
    """

    __tablename__ = "users"
    __table_args__ = (
        sa.Index(
            "uq_users_single_owner_per_farm",
            "farm_id",
            unique=True,
            sqlite_where=OWNER_ONLY,
            postgresql_where=OWNER_ONLY,
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    name: str = Field(max_length=255)
    email: str = Field(index=True, unique=True, max_length=255)
    password_hash: str = Field(max_length=255)
    status: AccountStatus = Field(sa_column=enum_column(AccountStatus))
    role: GlobalRole = Field(sa_column=enum_column(GlobalRole))
    farm_id: Optional[str] = Field(
        default=None, foreign_key="farms.id", index=True, max_length=36
    )
    company_role: Optional[TenantRole] = Field(
        default=None, sa_column=enum_column(TenantRole, nullable=True)
    )
    invited_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    # Issue instant of the newest password-reset link; cleared once used
    password_reset_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def is_owner(self) -> bool:
        return self.company_role == TenantRole.OWNER
