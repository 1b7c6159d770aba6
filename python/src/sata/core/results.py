"""
Typed results returned across the service boundary.

Every public service operation returns either its success value or a
``Failure``. ``StepUpRequired`` is a protocol state of authentication,
not an error.
"""

import functools
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from .exceptions import ErrorCode, IdentityError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _literal(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class Failure(BaseModel):
    """Typed error result."""

    code: ErrorCode
    message: str
    retryable: bool = False

    @classmethod
    def from_error(cls, error: IdentityError) -> "Failure":
        return cls(code=error.code, message=error.message, retryable=error.retryable)

    def __bool__(self) -> bool:
        return False


class AccountView(BaseModel):
    """Account snapshot without credentials."""

    id: str
    name: str
    email: str
    role: str
    status: str
    farm_id: Optional[str] = None
    company_role: Optional[str] = None
    invited_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "AccountView":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=_literal(user.role),
            status=_literal(user.status),
            farm_id=user.farm_id,
            company_role=_literal(user.company_role),
            invited_at=user.invited_at,
        )


class Session(BaseModel):
    """Fully authenticated session."""

    account: AccountView
    access_token: str
    expires_at: datetime


class StepUpRequired(BaseModel):
    """Password accepted; a second factor is needed before a session is issued."""

    challenge_id: str
    account_id: str
    expires_at: datetime
    message: str = "Se requiere verificación adicional para este rol."


class DeliveryResult(BaseModel):
    success: bool
    message: str


class InvitationClaims(BaseModel):
    """Decoded, verified invitation token payload."""

    email: str
    issued_at_ms: int
    tenant_role: Optional[str] = None
    tenant_name: Optional[str] = None
    purpose: str = "invite"


class InvitationTicket(BaseModel):
    """Outcome of issuing (or re-issuing) an invitation."""

    account: AccountView
    token: str
    link: str
    account_created: bool
    reissued: bool
    delivered: bool
    delivery_message: str


class PasswordResetRequested(BaseModel):
    """Acknowledgement of a reset request; identical whether or not the email is known."""

    message: str = (
        "Si el correo está registrado, recibirás un enlace para restablecer tu contraseña."
    )


class DeletionReport(BaseModel):
    """What a tenant or account deletion removed."""

    tenant_id: Optional[str] = None
    account_id: Optional[str] = None
    tenant_deleted: bool = False
    deleted: dict[str, int] = Field(default_factory=dict)


class SeedReport(BaseModel):
    tenant_id: str
    seeded: bool
    created: dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None


class TenantCreated(BaseModel):
    """A new farm and its owner."""

    tenant_id: str
    tenant_name: str
    timezone: str
    owner: AccountView
    seed: Optional[SeedReport] = None


class BootstrapReport(BaseModel):
    created_accounts: list[str] = Field(default_factory=list)
    demo_tenant_id: Optional[str] = None


def returns_failure(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Any]]:
    """
    Convert ``IdentityError`` raised by an async service method into a
    ``Failure`` result.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except IdentityError as e:
            logger.info(f"{func.__qualname__} failed: {e.code.value}: {e.message}")
            return Failure.from_error(e)

    return wrapper
