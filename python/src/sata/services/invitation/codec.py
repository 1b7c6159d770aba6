"""
Invitation token codec.

Token layout::

    base64url(json({"e": email, "t": issued_at_ms, "r": role?, "n": name?, "p": purpose?})) "." base64url(hmac_sha256)

``p`` is absent on invitation tokens and ``"reset"`` on password-reset
tokens, so one kind can never be accepted where the other is expected.

Structured JSON avoids delimiter collisions with characters that are legal
in emails and company names. The HMAC tag is computed over the encoded
payload segment with ``INVITATION_SECRET``; tokens whose tag does not
verify are rejected, so a token cannot be forged without the secret.

``decode`` never raises. Every failure (malformed, forged, wrong field
types, issued in the future, expired) yields None.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from typing import Callable, Optional

from ...core.results import InvitationClaims

logger = logging.getLogger(__name__)

MAX_CLOCK_SKEW_MS = 60 * 1000

PURPOSE_INVITE = "invite"
PURPOSE_RESET = "reset"


def now_ms() -> int:
    return int(time.time() * 1000)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(segment: str) -> bytes:
    padding = "=" * ((4 - len(segment) % 4) % 4)
    return base64.urlsafe_b64decode((segment + padding).encode("ascii"))


class InvitationCodec:
    """Encodes and verifies time-boxed, HMAC-protected invitation tokens."""

    def __init__(
        self,
        secret: str,
        ttl_hours: int = 24,
        clock: Callable[[], int] = now_ms,
    ):
        if not secret or len(secret) < 32:
            raise ValueError("INVITATION_SECRET must be at least 32 characters")
        self._key = secret.encode("utf-8")
        self.ttl_ms = ttl_hours * 60 * 60 * 1000
        self._clock = clock

    def now(self) -> int:
        """Current time in epoch milliseconds, from the codec's clock."""
        return self._clock()

    def _tag(self, payload_segment: str) -> str:
        digest = hmac.new(self._key, payload_segment.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def encode(
        self,
        email: str,
        issued_at_ms: Optional[int] = None,
        tenant_role: Optional[str] = None,
        tenant_name: Optional[str] = None,
        purpose: str = PURPOSE_INVITE,
    ) -> str:
        payload = {
            "e": email,
            "t": self._clock() if issued_at_ms is None else int(issued_at_ms),
        }
        if tenant_role is not None:
            payload["r"] = tenant_role
        if tenant_name is not None:
            payload["n"] = tenant_name
        if purpose != PURPOSE_INVITE:
            payload["p"] = purpose

        segment = _b64encode(
            json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        )
        return f"{segment}.{self._tag(segment)}"

    def decode(self, token: str, now: Optional[int] = None) -> Optional[InvitationClaims]:
        """
        Verify and decode ``token``.

        Valid up to and including exactly ``ttl`` after issuance; one
        millisecond later it is expired.

        Returns:
            InvitationClaims, or None when the token is invalid or expired
        """
        if not isinstance(token, str) or token.count(".") != 1:
            return None

        segment, tag = token.split(".")
        try:
            expected_tag = self._tag(segment)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(expected_tag.encode("ascii"), tag.encode("utf-8")):
            logger.info("Invitation token rejected: bad signature")
            return None

        try:
            payload = json.loads(_b64decode(segment).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return None

        if not isinstance(payload, dict):
            return None

        email = payload.get("e")
        issued_at = payload.get("t")
        role = payload.get("r")
        name = payload.get("n")
        purpose = payload.get("p", PURPOSE_INVITE)

        if not isinstance(email, str) or not email:
            return None
        if not isinstance(issued_at, int) or isinstance(issued_at, bool):
            return None
        if role is not None and not isinstance(role, str):
            return None
        if name is not None and not isinstance(name, str):
            return None
        if not isinstance(purpose, str):
            return None

        current = self._clock() if now is None else now
        if issued_at - current > MAX_CLOCK_SKEW_MS:
            return None
        if current - issued_at > self.ttl_ms:
            logger.info(f"Invitation token expired for {email}")
            return None

        return InvitationClaims(
            email=email,
            issued_at_ms=issued_at,
            tenant_role=role,
            tenant_name=name,
            purpose=purpose,
        )
