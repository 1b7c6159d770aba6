"""
FastAPI dependencies shared by the v1 routes.
"""

import logging
from typing import Any, Callable, Dict

from fastapi import Depends, HTTPException, Request, status

from ..core.exceptions import ErrorCode
from ..core.results import Failure
from ..models import AccountStatus, GlobalRole, User
from ..persistence import Collection
from ..services.container import ServiceContainer

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    ErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.ACCOUNT_DISABLED: status.HTTP_403_FORBIDDEN,
    ErrorCode.PORTAL_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorCode.VERIFICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.VERIFICATION_THROTTLED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.INVALID_OR_EXPIRED_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONSTRAINT_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorCode.BACKEND_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CASCADE_INCOMPLETE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def failure_to_http(failure: Failure) -> HTTPException:
    return HTTPException(
        status_code=FAILURE_STATUS.get(failure.code, status.HTTP_400_BAD_REQUEST),
        detail=failure.model_dump(mode="json"),
    )


def unwrap(result: Any) -> Any:
    """Return a service result, raising the mapped HTTPException for a Failure."""
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return result


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_session_claims(request: Request) -> Dict[str, Any]:
    """
    Verified session claims attached by ``SessionAuthMiddleware``.

    Raises:
        HTTPException: If the request is not authenticated
    """
    claims = getattr(request.state, "session_claims", None)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
        )
    return claims


async def get_current_account(
    claims: Dict[str, Any] = Depends(get_session_claims),
    container: ServiceContainer = Depends(get_container),
) -> User:
    """
    The authenticated account, re-read from storage.

    A token outlives a block or deletion; this check does not.
    """
    account = await container.backend.get(Collection.USERS, claims["sub"])
    if account is None or AccountStatus(account.status) != AccountStatus.ACTIVE:
        logger.warning(f"Session of unavailable account {claims['sub']} rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is no longer active",
        )
    return account


def require_roles(*roles: GlobalRole) -> Callable:
    """
    Dependency factory: the current account must hold one of ``roles``.

    Usage:
        @router.get("/admin/x")
        async def x(account: User = Depends(require_roles(GlobalRole.PLATFORM_ADMIN))):
            ...
    """

    async def dependency(account: User = Depends(get_current_account)) -> User:
        if GlobalRole(account.role) not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient privileges",
            )
        return account

    return dependency
