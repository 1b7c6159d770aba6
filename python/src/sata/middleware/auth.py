"""
Session authentication middleware.

Verifies the ``Authorization: Bearer <session token>`` header on every
non-public request and attaches the verified claims to ``request.state``.
Requests without a valid token never reach the routes.
"""

import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.session_tokens import SessionTokenError

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": {"code": "unauthorized", "message": detail, "retryable": False}},
        headers={"WWW-Authenticate": "Bearer"},
    )


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Features:
    - Extracts the session token from the Authorization header
    - Verifies signature and expiry with ``SessionTokenService``
    - Attaches ``account_id``, ``role``, ``tenant_id`` and the full claims to request.state
    - Lets public endpoints (login, registration, invitation redemption, health) through
    """

    PUBLIC_PATHS = {
        "/",
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    }

    PUBLIC_API_PATHS = {
        "/auth/login",
        "/auth/step-up",
        "/auth/register",
        "/auth/password-reset",
        "/auth/password-reset/confirm",
        "/invitations/validate",
        "/invitations/redeem",
    }

    def __init__(self, app, api_prefix: str = "/api/v1"):
        super().__init__(app)
        self.public_paths = self.PUBLIC_PATHS | {
            f"{api_prefix}{path}" for path in self.PUBLIC_API_PATHS | {"/health"}
        }

    def is_public(self, path: str) -> bool:
        return path in self.public_paths or path == "/metrics" or path.startswith("/metrics/")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self.is_public(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return _unauthorized("Missing authentication token")

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return _unauthorized("Invalid Authorization header format. Use 'Bearer <token>'")

        tokens = request.app.state.container.session_tokens
        try:
            claims = tokens.verify(token.strip())
        except SessionTokenError as e:
            logger.warning(f"Session token rejected on {request.url.path}: {e}")
            return _unauthorized(f"Invalid authentication token: {e}")

        request.state.account_id = claims["sub"]
        request.state.role = claims["role"]
        request.state.tenant_id = claims.get("tenant_id")
        request.state.session_claims = claims

        return await call_next(request)
