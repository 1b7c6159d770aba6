"""
Password authentication into one of the three portals.

Unknown email, wrong password and pending accounts all produce the same
``INVALID_CREDENTIALS`` failure, and an unknown email still costs one
Argon2 verification.
"""

import logging
from typing import Union

from ...core.exceptions import AccountDisabled, InvalidCredentials, PortalMismatch
from ...core.results import Failure, Session, StepUpRequired, returns_failure
from ...core.security import PasswordManager
from ...models import AccountStatus, GlobalRole, User
from ...monitoring.metrics import login_attempts_total
from ...persistence import Collection, PersistenceBackend
from .sessions import SessionIssuer
from .step_up import StepUpVerifier

logger = logging.getLogger(__name__)

DISABLED_STATUSES = (AccountStatus.BLOCKED, AccountStatus.INACTIVE)


class AuthenticationService:
    def __init__(
        self,
        backend: PersistenceBackend,
        passwords: PasswordManager,
        step_up: StepUpVerifier,
        sessions: SessionIssuer,
    ):
        self.backend = backend
        self.passwords = passwords
        self.step_up = step_up
        self.sessions = sessions

    async def authenticate(
        self, email: str, password: str, claimed_portal: str
    ) -> Union[Session, StepUpRequired, Failure]:
        """
        Authenticate ``email``/``password`` for ``claimed_portal``.

        Returns:
            Session for tenant users, StepUpRequired for platform staff,
            or Failure
        """
        claimed_portal = getattr(claimed_portal, "value", claimed_portal)
        result = await self._authenticate(email, password, claimed_portal)

        if isinstance(result, Failure):
            outcome = result.code.value
        elif isinstance(result, StepUpRequired):
            outcome = "step_up"
        else:
            outcome = "session"
        login_attempts_total.labels(portal=claimed_portal, outcome=outcome).inc()
        return result

    @returns_failure
    async def _authenticate(self, email: str, password: str, claimed_portal: str):
        user = await self.backend.find_user_by_email(email)
        if user is None:
            await self.passwords.dummy_verify(password or "")
            logger.info("Login rejected: unknown account")
            raise InvalidCredentials()

        if not await self.passwords.verify(user.password_hash, password or ""):
            logger.info(f"Login rejected: bad password for account {user.id}")
            raise InvalidCredentials()

        status = AccountStatus(user.status)
        if status in DISABLED_STATUSES:
            logger.warning(f"Login rejected: account {user.id} is {status.value}")
            raise AccountDisabled()
        if status == AccountStatus.PENDING:
            logger.info(f"Login rejected: account {user.id} has not redeemed its invitation")
            raise InvalidCredentials()

        role = GlobalRole(user.role)
        if claimed_portal != role.value:
            logger.info(f"Login rejected: account {user.id} tried portal {claimed_portal}")
            raise PortalMismatch(claimed_portal)

        user = await self._upgrade_hash(user, password)

        if role.is_privileged:
            return self.step_up.begin(user)

        logger.info(f"Login succeeded for account {user.id}")
        return self.sessions.issue(user)

    async def _upgrade_hash(self, user: User, password: str) -> User:
        if not self.passwords.needs_rehash(user.password_hash):
            return user
        updated = await self.backend.update(
            Collection.USERS,
            user.id,
            {"password_hash": await self.passwords.hash(password)},
            expected={"password_hash": user.password_hash},
        )
        return updated or user
