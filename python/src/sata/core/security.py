"""
Password hashing with Argon2id.

All credential checks go through ``PasswordManager`` so that lookups of
unknown accounts can burn the same verification cost as a real mismatch.
"""

import logging
import secrets
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from starlette.concurrency import run_in_threadpool

from .exceptions import WeakPassword

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def validate_password_strength(password: str) -> str:
    """Raise ``WeakPassword`` unless the password meets the minimum policy."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPassword()
    return password


class PasswordManager:
    """
    Argon2id hashing, verification and rehash detection.

    Hashing and verification are CPU-bound for tens of milliseconds, so the
    async methods run them in the threadpool and keep the event loop free.
    """

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self._hasher = hasher or PasswordHasher(type=Type.ID)
        # Verified against when the account does not exist
        self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(16))

    async def hash(self, password: str) -> str:
        return await run_in_threadpool(self._hasher.hash, password)

    async def verify(self, password_hash: Optional[str], password: str) -> bool:
        """Return True when ``password`` matches ``password_hash``."""
        if not password_hash:
            await self.dummy_verify(password)
            return False
        return await run_in_threadpool(self._verify_sync, password_hash, password)

    async def dummy_verify(self, password: str) -> None:
        """Spend one verification against a throwaway hash."""
        await run_in_threadpool(self._verify_sync, self._dummy_hash, password)

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHash:
            return True

    async def unusable_hash(self) -> str:
        """Hash of a random secret nobody knows, for accounts awaiting an invitation."""
        return await self.hash(secrets.token_urlsafe(32))

    def _verify_sync(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError):
            logger.warning("Stored password hash could not be verified")
            return False
