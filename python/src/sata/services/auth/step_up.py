"""
Step-up (second factor) verification for privileged roles.

Password authentication of a ``sata_admin`` or ``sata_tech`` account
produces a challenge instead of a session. The session is issued only after
``verify`` accepts a code for that challenge.

- Challenges expire after ``STEP_UP_TTL_SECONDS`` and are single use.
- Code checking is pluggable (``CodeChecker``); the default accepts the
  configured demo code.
- ``STEP_UP_MAX_ATTEMPTS`` consecutive failures lock step-up for the
  account for ``STEP_UP_LOCKOUT_SECONDS``.
- The account is re-read at verification time, so an account blocked or
  deleted after password authentication cannot complete step-up.
"""

import hmac
import logging
import math
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol, Tuple

from ...core.exceptions import VerificationFailed, VerificationThrottled
from ...core.results import Session, StepUpRequired, returns_failure
from ...models import AccountStatus, GlobalRole, User
from ...monitoring.metrics import step_up_verifications_total
from ...persistence import Collection, PersistenceBackend
from .sessions import SessionIssuer

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Verificación inválida o expirada. Inicie sesión nuevamente."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CodeChecker(Protocol):
    """Decides whether ``code`` is a valid second factor for ``account``."""

    async def check(self, account: User, code: str) -> bool:
        ...


class DemoCodeChecker:
    """Accepts one fixed code for every account."""

    def __init__(self, code: str):
        self._code = code

    async def check(self, account: User, code: str) -> bool:
        return hmac.compare_digest(str(code).encode("utf-8"), self._code.encode("utf-8"))


@dataclass
class Challenge:
    challenge_id: str
    account_id: str
    expires_at: datetime


class StepUpVerifier:
    """Issues and verifies step-up challenges, with per-account throttling."""

    def __init__(
        self,
        backend: PersistenceBackend,
        sessions: SessionIssuer,
        checker: CodeChecker,
        ttl_seconds: int = 300,
        max_attempts: int = 5,
        lockout_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.sessions = sessions
        self.checker = checker
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts
        self.lockout = timedelta(seconds=lockout_seconds)
        self._clock = clock

        self._state_lock = threading.Lock()
        self._challenges: Dict[str, Challenge] = {}
        self._attempts: Dict[str, Tuple[int, datetime]] = {}  # account_id -> (count, window_start)
        self._lockouts: Dict[str, datetime] = {}  # account_id -> locked_until

    def begin(self, account: User) -> StepUpRequired:
        """Open a challenge for an account whose password was just verified."""
        now = self._clock()
        challenge = Challenge(
            challenge_id=secrets.token_urlsafe(24),
            account_id=account.id,
            expires_at=now + self.ttl,
        )
        with self._state_lock:
            self._purge_expired(now)
            self._challenges[challenge.challenge_id] = challenge

        logger.info(f"Step-up challenge issued for account {account.id}")
        return StepUpRequired(
            challenge_id=challenge.challenge_id,
            account_id=account.id,
            expires_at=challenge.expires_at,
        )

    @returns_failure
    async def verify(self, challenge_id: str, code: str) -> Session:
        """Complete step-up for a challenge and issue the session."""
        now = self._clock()

        with self._state_lock:
            self._purge_expired(now)
            challenge = self._challenges.get(challenge_id)
            retry_after = self._locked_for(challenge.account_id, now) if challenge else None

        if challenge is None:
            step_up_verifications_total.labels(outcome="failed").inc()
            raise VerificationFailed(EXPIRED_MESSAGE)
        if retry_after is not None:
            step_up_verifications_total.labels(outcome="throttled").inc()
            raise VerificationThrottled(retry_after)

        account = await self.backend.get(Collection.USERS, challenge.account_id)
        if not self._may_complete(account):
            with self._state_lock:
                self._challenges.pop(challenge_id, None)
            logger.warning(f"Step-up aborted: account {challenge.account_id} no longer eligible")
            step_up_verifications_total.labels(outcome="failed").inc()
            raise VerificationFailed(EXPIRED_MESSAGE)

        if not await self.checker.check(account, code):
            retry_after = self._record_failure(account.id, now)
            if retry_after is not None:
                step_up_verifications_total.labels(outcome="throttled").inc()
                raise VerificationThrottled(retry_after)
            step_up_verifications_total.labels(outcome="failed").inc()
            raise VerificationFailed()

        with self._state_lock:
            consumed = self._challenges.pop(challenge_id, None)
            self._attempts.pop(account.id, None)

        # Another request completed the same challenge first
        if consumed is None:
            step_up_verifications_total.labels(outcome="failed").inc()
            raise VerificationFailed(EXPIRED_MESSAGE)

        step_up_verifications_total.labels(outcome="verified").inc()
        logger.info(f"Step-up verified for account {account.id}")
        return self.sessions.issue(account)

    # ------------------------------------------------------------------
    # Throttling state (caller holds _state_lock unless noted)
    # ------------------------------------------------------------------

    def _may_complete(self, account: Optional[User]) -> bool:
        return (
            account is not None
            and AccountStatus(account.status) == AccountStatus.ACTIVE
            and GlobalRole(account.role).is_privileged
        )

    def _locked_for(self, account_id: str, now: datetime) -> Optional[int]:
        """Seconds until the lockout ends, or None when not locked."""
        locked_until = self._lockouts.get(account_id)
        if locked_until is None:
            return None
        if locked_until <= now:
            self._lockouts.pop(account_id, None)
            return None
        return max(1, math.ceil((locked_until - now).total_seconds()))

    def _record_failure(self, account_id: str, now: datetime) -> Optional[int]:
        """
        Count a failed code. Acquires the lock itself.

        Returns:
            Lockout duration in seconds if this failure triggered it, else None
        """
        with self._state_lock:
            count, window_start = self._attempts.get(account_id, (0, now))
            if now - window_start >= self.lockout:
                count, window_start = 0, now
            count += 1

            if count < self.max_attempts:
                self._attempts[account_id] = (count, window_start)
                return None

            self._attempts.pop(account_id, None)
            self._lockouts[account_id] = now + self.lockout
            for pending_id in [
                cid for cid, c in self._challenges.items() if c.account_id == account_id
            ]:
                del self._challenges[pending_id]

        logger.warning(
            f"Step-up locked for account {account_id} after {count} failed attempts"
        )
        return int(self.lockout.total_seconds())

    def _purge_expired(self, now: datetime) -> None:
        expired = [cid for cid, c in self._challenges.items() if c.expires_at <= now]
        for challenge_id in expired:
            del self._challenges[challenge_id]
