"""
Composition root.

Builds every service once per process around the selected persistence
backend. Services receive their collaborators through their constructors.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..core.config import Settings
from ..core.results import Failure
from ..core.security import PasswordManager
from ..core.session_tokens import SessionTokenService
from ..monitoring.metrics import backend_info
from ..persistence import PersistenceBackend, TenantLockRegistry, create_backend
from .accounts import AccountAdminService
from .auth import AuthenticationService, DemoCodeChecker, SessionIssuer, StepUpVerifier
from .email import InvitationMailer
from .invitation import InvitationCodec, InvitationService
from .tenant import TenantLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    backend: PersistenceBackend
    passwords: PasswordManager
    session_tokens: SessionTokenService
    locks: TenantLockRegistry
    accounts: AccountAdminService
    step_up: StepUpVerifier
    auth: AuthenticationService
    invitations: InvitationService
    tenants: TenantLifecycleManager

    @classmethod
    async def build(
        cls,
        settings: Settings,
        backend: Optional[PersistenceBackend] = None,
        passwords: Optional[PasswordManager] = None,
        mail_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ServiceContainer":
        """
        Wire the services.

        Args:
            settings: Application settings
            backend: Use this backend instead of selecting one from settings
            passwords: Password manager override (tests use cheaper Argon2 parameters)
            mail_transport: httpx transport for the Resend client
        """
        backend = backend or await create_backend(settings)
        backend_info.info({"backend": backend.name})

        passwords = passwords or PasswordManager()
        session_tokens = SessionTokenService(settings)
        sessions = SessionIssuer(session_tokens)
        locks = TenantLockRegistry()
        accounts = AccountAdminService(backend)

        step_up = StepUpVerifier(
            backend,
            sessions,
            DemoCodeChecker(settings.STEP_UP_DEMO_CODE),
            ttl_seconds=settings.STEP_UP_TTL_SECONDS,
            max_attempts=settings.STEP_UP_MAX_ATTEMPTS,
            lockout_seconds=settings.STEP_UP_LOCKOUT_SECONDS,
        )
        invitations = InvitationService(
            backend,
            InvitationCodec(settings.INVITATION_SECRET, settings.INVITATION_TTL_HOURS),
            InvitationMailer(settings, transport=mail_transport),
            passwords,
            locks,
            settings.APP_BASE_URL,
        )

        container = cls(
            settings=settings,
            backend=backend,
            passwords=passwords,
            session_tokens=session_tokens,
            locks=locks,
            accounts=accounts,
            step_up=step_up,
            auth=AuthenticationService(backend, passwords, step_up, sessions),
            invitations=invitations,
            tenants=TenantLifecycleManager(backend, passwords, locks, accounts),
        )

        if settings.BOOTSTRAP_PLATFORM:
            report = await container.tenants.bootstrap_platform()
            if isinstance(report, Failure):
                logger.error(f"Platform bootstrap failed: {report.message}")

        logger.info(f"Service container ready (backend={backend.name})")
        return container

    async def close(self) -> None:
        await self.backend.close()
