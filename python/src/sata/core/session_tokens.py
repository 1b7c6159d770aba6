"""
Session token issuing and verification.

Sessions are HS256 JWTs signed with ``SESSION_SECRET``. Claims:
``sub, email, role, tenant_id, tenant_role, iat, exp``.

Attack Prevention:
- Signature verified with the server secret
- Expiration checked
- Required claims enforced
- ``alg: none`` and foreign algorithms rejected
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from jose import JWTError, jwt

from .config import Settings

logger = logging.getLogger(__name__)


class SessionTokenError(Exception):
    """Raised when a session token cannot be verified."""
    pass


class SessionTokenService:
    """Issues and verifies session JWTs."""

    REQUIRED_CLAIMS = ("sub", "email", "role", "iat", "exp")

    def __init__(self, settings: Settings):
        self.secret = settings.SESSION_SECRET
        self.algorithm = "HS256"
        self.ttl = timedelta(minutes=settings.SESSION_TTL_MINUTES)

        if not self.secret or len(self.secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters")

    def issue(
        self,
        account_id: str,
        email: str,
        role: str,
        tenant_id: Optional[str] = None,
        tenant_role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[str, datetime]:
        """
        Sign a session token for an authenticated account.

        Returns:
            Tuple of (token, expires_at)
        """
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self.ttl
        payload = {
            "sub": account_id,
            "email": email,
            "role": role,
            "tenant_id": tenant_id,
            "tenant_role": tenant_role,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return token, expires_at

    def verify(self, token: str) -> Dict:
        """
        Verify signature and claims and return the payload.

        Raises:
            SessionTokenError: If verification fails
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_aud": False,
                },
            )
        except jwt.ExpiredSignatureError:
            logger.info("Session token expired")
            raise SessionTokenError("Token has expired")
        except jwt.JWTClaimsError as e:
            logger.warning(f"Session token claims error: {e}")
            raise SessionTokenError(f"Invalid token claims: {e}")
        except JWTError as e:
            logger.warning(f"Session token verification failed: {e}")
            raise SessionTokenError(f"Invalid token signature: {e}")

        missing_claims = [claim for claim in self.REQUIRED_CLAIMS if claim not in payload]
        if missing_claims:
            raise SessionTokenError(
                f"Missing required claims: {', '.join(missing_claims)}"
            )

        if time.time() >= payload["exp"]:
            raise SessionTokenError("Token has expired")

        return payload
