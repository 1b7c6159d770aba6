"""
Exception hierarchy for the identity and tenant lifecycle subsystem.

Services raise these internally. Public service operations convert them
into ``Failure`` values (see ``sata.core.results``) so no exception from
this module crosses the service boundary.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes exposed to callers."""
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    PORTAL_MISMATCH = "portal_mismatch"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_THROTTLED = "verification_throttled"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    ALREADY_REGISTERED = "already_registered"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    ILLEGAL_TRANSITION = "illegal_transition"
    WEAK_PASSWORD = "weak_password"
    CONSTRAINT_VIOLATION = "constraint_violation"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    CASCADE_INCOMPLETE = "cascade_incomplete"


class IdentityError(Exception):
    """Base exception for all identity subsystem errors."""

    code: ErrorCode = ErrorCode.UNAUTHORIZED
    retryable: bool = False
    default_message: str = "Operation not permitted"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(IdentityError):
    """
    Unknown email, wrong password, or pending account.

    The message is identical for every cause.
    """
    code = ErrorCode.INVALID_CREDENTIALS
    retryable = True
    default_message = "Credenciales inválidas o cuenta inexistente."

    def __init__(self):
        super().__init__(self.default_message)


class AccountDisabled(IdentityError):
    """Account is blocked or inactive. Not retryable until unblocked."""
    code = ErrorCode.ACCOUNT_DISABLED
    default_message = "Cuenta inactiva o bloqueada. Contacte al soporte SATA."


class PortalMismatch(IdentityError):
    """
    Credentials are valid but belong to a different portal.

    Only the attempted portal is named.
    """
    code = ErrorCode.PORTAL_MISMATCH
    retryable = True

    PORTAL_NAMES = {
        "farm_user": "Empresas",
        "sata_admin": "Administrativos",
        "sata_tech": "Técnicos",
    }

    def __init__(self, attempted_portal: str):
        self.attempted_portal = attempted_portal
        portal_name = self.PORTAL_NAMES.get(attempted_portal, attempted_portal)
        super().__init__(
            f"Credenciales inválidas para el portal de {portal_name}. Verifique su rol."
        )


class VerificationFailed(IdentityError):
    """Step-up code rejected, or challenge unknown/expired."""
    code = ErrorCode.VERIFICATION_FAILED
    retryable = True
    default_message = "Código de verificación incorrecto."


class VerificationThrottled(IdentityError):
    """Too many failed step-up attempts for this account."""
    code = ErrorCode.VERIFICATION_THROTTLED
    retryable = True

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Demasiados intentos fallidos. Intente de nuevo en {retry_after_seconds}s."
        )


class InvalidOrExpiredToken(IdentityError):
    """Invitation token is malformed, forged, expired or already used."""
    code = ErrorCode.INVALID_OR_EXPIRED_TOKEN
    default_message = "El enlace de invitación es inválido o ha expirado (24h)."


class AlreadyRegistered(IdentityError):
    code = ErrorCode.ALREADY_REGISTERED
    default_message = "El usuario ya está registrado y activo."


class NotFound(IdentityError):
    """Stale reference to an account or tenant."""
    code = ErrorCode.NOT_FOUND
    default_message = "Recurso no encontrado."


class Unauthorized(IdentityError):
    code = ErrorCode.UNAUTHORIZED


class IllegalTransition(IdentityError):
    """Account status change not allowed from the current state."""
    code = ErrorCode.ILLEGAL_TRANSITION


class WeakPassword(IdentityError):
    code = ErrorCode.WEAK_PASSWORD
    retryable = True
    default_message = "La contraseña debe tener al menos 6 caracteres."


class CascadeIncomplete(IdentityError):
    """
    Tenant purge could not be completed after retries.

    Requires operator intervention.
    """
    code = ErrorCode.CASCADE_INCOMPLETE


class PersistenceError(IdentityError):
    """Base exception for persistence backend failures."""
    code = ErrorCode.BACKEND_UNAVAILABLE


class BackendUnavailable(PersistenceError):
    """
    The backend could not be reached or failed mid-operation.

    The process never switches backends after startup; callers must
    stop dependent steps.
    """
    code = ErrorCode.BACKEND_UNAVAILABLE
    retryable = True
    default_message = "El almacenamiento no está disponible."


class ConstraintViolation(PersistenceError):
    """Unique, single-owner, or referential constraint rejected a write."""
    code = ErrorCode.CONSTRAINT_VIOLATION
    default_message = "La operación viola una restricción de datos."
