"""
Invitation issue, validation and redemption, plus password reset.

An invitation is a ``Pendiente`` account plus a signed token. The account
row carries ``invited_at``; a token is honored only if it was issued at or
after that instant, so re-issuing an invitation invalidates earlier links.
Redemption flips the account to ``Activo`` with compare-and-set, which makes
it exactly-once even under concurrent requests.

Password reset reuses the signed token with a ``reset`` purpose. The
account row carries ``password_reset_at``, the issue instant of the newest
reset link, which is cleared when the link is used.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional, Tuple

from pydantic import BaseModel

from ...core.exceptions import (
    AlreadyRegistered,
    ConstraintViolation,
    InvalidOrExpiredToken,
    NotFound,
    Unauthorized,
)
from ...core.results import (
    AccountView,
    InvitationClaims,
    InvitationTicket,
    PasswordResetRequested,
    returns_failure,
)
from ...core.security import PasswordManager, validate_password_strength
from ...models import (
    AccountStatus,
    GlobalRole,
    TenantRole,
    User,
    from_epoch_ms,
    normalize_email,
    to_epoch_ms,
)
from ...monitoring.metrics import (
    invitations_issued_total,
    invitations_redeemed_total,
    password_resets_total,
)
from ...persistence import Collection, PersistenceBackend, TenantLockRegistry
from ..accounts.status_machine import AccountStatusMachine, StatusTrigger
from ..email.resend_client import InvitationMailer
from .codec import PURPOSE_INVITE, PURPOSE_RESET, InvitationCodec
from .links import RESET_TOKEN_PARAM, build_invitation_link

logger = logging.getLogger(__name__)

TENANT_NOT_FOUND = "Empresa no encontrada."
ACCOUNT_NOT_FOUND = "Usuario no encontrado."

# Tenant roles a tenant owner or admin may hand out
DELEGABLE_TENANT_ROLES = (TenantRole.ADMIN, TenantRole.MEMBER)

RESET_TTL_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class InviterContext:
    """Who is inviting, as established by their session."""

    account_id: str
    role: GlobalRole
    tenant_id: Optional[str] = None
    tenant_role: Optional[TenantRole] = None

    @classmethod
    def from_user(cls, user: User) -> "InviterContext":
        return cls(
            account_id=user.id,
            role=GlobalRole(user.role),
            tenant_id=user.farm_id,
            tenant_role=TenantRole(user.company_role) if user.company_role else None,
        )

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "InviterContext":
        """Build from verified session token claims."""
        tenant_role = claims.get("tenant_role")
        return cls(
            account_id=claims["sub"],
            role=GlobalRole(claims["role"]),
            tenant_id=claims.get("tenant_id"),
            tenant_role=TenantRole(tenant_role) if tenant_role else None,
        )


class Recipient(BaseModel):
    name: str
    email: str
    role: GlobalRole = GlobalRole.TENANT_USER
    tenant_role: Optional[TenantRole] = None
    tenant_id: Optional[str] = None


class InvitationService:
    """Issues, validates and redeems invitations."""

    def __init__(
        self,
        backend: PersistenceBackend,
        codec: InvitationCodec,
        mailer: InvitationMailer,
        passwords: PasswordManager,
        locks: TenantLockRegistry,
        base_url: str,
    ):
        self.backend = backend
        self.codec = codec
        self.mailer = mailer
        self.passwords = passwords
        self.locks = locks
        self.base_url = base_url

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    @returns_failure
    async def issue(self, inviter: InviterContext, recipient: Recipient) -> InvitationTicket:
        """
        Invite ``recipient``, or re-issue a pending invitation for them.

        An undelivered email is not a failure; the ticket carries the link
        and the delivery message.
        """
        return await self._issue(inviter, recipient)

    @returns_failure
    async def resend(self, inviter: InviterContext, account_id: str) -> InvitationTicket:
        """Re-issue the invitation of an existing pending account."""
        user = await self.backend.get(Collection.USERS, account_id)
        if user is None:
            raise NotFound(ACCOUNT_NOT_FOUND)
        if AccountStatus(user.status) != AccountStatus.PENDING:
            raise AlreadyRegistered()

        recipient = Recipient(
            name=user.name,
            email=user.email,
            role=user.role,
            tenant_role=user.company_role,
            tenant_id=user.farm_id,
        )
        return await self._issue(inviter, recipient)

    async def _issue(self, inviter: InviterContext, recipient: Recipient) -> InvitationTicket:
        tenant_id, tenant_role = self._authorize(inviter, recipient)
        email = normalize_email(recipient.email)

        async with self._tenant_scope(tenant_id):
            tenant_name = None
            if tenant_id is not None:
                farm = await self.backend.get(Collection.FARMS, tenant_id)
                if farm is None:
                    raise NotFound(TENANT_NOT_FOUND)
                tenant_name = farm.name

            issued_at_ms = self.codec.now()
            user, created = await self._pending_account(
                recipient, email, tenant_id, tenant_role, from_epoch_ms(issued_at_ms)
            )

        role_value = GlobalRole(user.role).value
        tenant_role_value = tenant_role.value if tenant_role else None
        token = self.codec.encode(
            email,
            issued_at_ms=issued_at_ms,
            tenant_role=tenant_role_value,
            tenant_name=tenant_name,
        )
        link = build_invitation_link(self.base_url, token)

        delivery = await self.mailer.send_invitation(
            user.name, email, role_value, link, tenant_role_value, tenant_name
        )

        kind = "created" if created else "reissued"
        invitations_issued_total.labels(kind=kind, delivered=str(delivery.success).lower()).inc()
        logger.info(
            f"Invitation {kind} for account {user.id} by {inviter.account_id} "
            f"(delivered={delivery.success})"
        )

        return InvitationTicket(
            account=AccountView.from_user(user),
            token=token,
            link=link,
            account_created=created,
            reissued=not created,
            delivered=delivery.success,
            delivery_message=delivery.message,
        )

    def _authorize(
        self, inviter: InviterContext, recipient: Recipient
    ) -> Tuple[Optional[str], Optional[TenantRole]]:
        """
        Decide the tenant scope of the invitation.

        Returns:
            Tuple of (tenant_id, tenant_role); both None for platform staff

        Raises:
            Unauthorized: If the inviter may not issue this invitation
        """
        recipient_role = GlobalRole(recipient.role)
        tenant_role = TenantRole(recipient.tenant_role or TenantRole.MEMBER)

        if inviter.role == GlobalRole.PLATFORM_ADMIN:
            if recipient_role.is_privileged:
                return None, None
            tenant_id = recipient.tenant_id or inviter.tenant_id
            if tenant_id is None:
                raise NotFound(TENANT_NOT_FOUND)
            return tenant_id, tenant_role

        if inviter.role != GlobalRole.TENANT_USER or inviter.tenant_id is None:
            raise Unauthorized("No tiene permisos para invitar usuarios.")
        if inviter.tenant_role not in (TenantRole.OWNER, TenantRole.ADMIN):
            raise Unauthorized("Solo el propietario o un administrador pueden invitar usuarios.")
        if recipient_role != GlobalRole.TENANT_USER:
            raise Unauthorized("Solo puede invitar usuarios de su empresa.")
        if recipient.tenant_id is not None and recipient.tenant_id != inviter.tenant_id:
            raise Unauthorized("Solo puede invitar usuarios a su propia empresa.")
        if tenant_role not in DELEGABLE_TENANT_ROLES:
            raise Unauthorized("No puede asignar el rol de propietario.")
        return inviter.tenant_id, tenant_role

    @asynccontextmanager
    async def _tenant_scope(self, tenant_id: Optional[str]) -> AsyncIterator[None]:
        if tenant_id is None:
            yield
            return
        async with self.locks.hold(tenant_id):
            yield

    async def _pending_account(
        self,
        recipient: Recipient,
        email: str,
        tenant_id: Optional[str],
        tenant_role: Optional[TenantRole],
        invited_at,
    ) -> Tuple[User, bool]:
        """
        Create the pending account, or refresh the existing pending one.

        Returns:
            Tuple of (user, created)
        """
        existing = await self.backend.find_user_by_email(email)
        if existing is not None:
            return (
                await self._refresh_pending(existing, recipient, tenant_id, tenant_role, invited_at),
                False,
            )

        user = User(
            name=recipient.name.strip(),
            email=email,
            password_hash=await self.passwords.unusable_hash(),
            status=AccountStatus.PENDING,
            role=GlobalRole(recipient.role),
            farm_id=tenant_id,
            company_role=tenant_role,
            invited_at=invited_at,
        )
        try:
            return await self.backend.insert(Collection.USERS, user), True
        except ConstraintViolation:
            # Lost a race against another invitation or registration for this email
            if await self.backend.find_user_by_email(email) is not None:
                raise AlreadyRegistered()
            raise

    async def _refresh_pending(
        self,
        existing: User,
        recipient: Recipient,
        tenant_id: Optional[str],
        tenant_role: Optional[TenantRole],
        invited_at,
    ) -> User:
        """
        Re-issue onto an existing pending row.

        Name, global role and tenant role are rewritten together with
        ``invited_at`` so the stored account always matches the newest token.
        """
        if AccountStatus(existing.status) != AccountStatus.PENDING:
            raise AlreadyRegistered()
        if existing.farm_id != tenant_id:
            # Pending in another tenant (or staff vs tenant): not ours to re-issue
            raise AlreadyRegistered("El correo ya tiene una invitación pendiente en otra cuenta.")
        if tenant_role is not None and existing.company_role is not None:
            current = TenantRole(existing.company_role)
            if current not in DELEGABLE_TENANT_ROLES and current != tenant_role:
                raise Unauthorized("No puede cambiar el rol del propietario.")

        updated = await self.backend.update(
            Collection.USERS,
            existing.id,
            {
                "invited_at": invited_at,
                "name": recipient.name.strip() or existing.name,
                "role": GlobalRole(recipient.role),
                "company_role": tenant_role,
            },
            expected={"status": AccountStatus.PENDING, "farm_id": tenant_id},
        )
        if updated is None:
            raise AlreadyRegistered()
        return updated

    # ------------------------------------------------------------------
    # Validate / redeem
    # ------------------------------------------------------------------

    @returns_failure
    async def validate(self, token: str) -> InvitationClaims:
        claims = self.codec.decode(token)
        if claims is None or claims.purpose != PURPOSE_INVITE:
            raise InvalidOrExpiredToken()
        return claims

    @returns_failure
    async def redeem(self, token: str, new_password: str) -> AccountView:
        """
        Activate the invited account with ``new_password``.

        Raises (as Failure):
            InvalidOrExpiredToken: Bad token, unknown or non-pending account,
                superseded token, or a concurrent redemption won
            WeakPassword: Password shorter than the minimum
        """
        claims = self.codec.decode(token)
        if claims is None or claims.purpose != PURPOSE_INVITE:
            invitations_redeemed_total.labels(outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        validate_password_strength(new_password)

        user = await self.backend.find_user_by_email(claims.email)
        if user is None or AccountStatus(user.status) != AccountStatus.PENDING:
            invitations_redeemed_total.labels(outcome="invalid").inc()
            raise InvalidOrExpiredToken()
        if user.invited_at is not None and claims.issued_at_ms < to_epoch_ms(user.invited_at):
            logger.info(f"Superseded invitation token presented for account {user.id}")
            invitations_redeemed_total.labels(outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        target = AccountStatusMachine.next_status(AccountStatus.PENDING, StatusTrigger.REDEEM)
        updated = await self.backend.update(
            Collection.USERS,
            user.id,
            {"status": target, "password_hash": await self.passwords.hash(new_password)},
            expected={"status": AccountStatus.PENDING, "invited_at": user.invited_at},
        )
        if updated is None:
            invitations_redeemed_total.labels(outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        invitations_redeemed_total.labels(outcome="redeemed").inc()
        logger.info(f"Invitation redeemed for account {user.id}")
        return AccountView.from_user(updated)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    @returns_failure
    async def request_password_reset(self, email: str) -> PasswordResetRequested:
        """
        Email a password-reset link to an ``Activo`` account.

        The acknowledgement is the same for unknown, pending, blocked and
        active emails, and for undelivered mail, so the response never
        reveals whether an account exists.
        """
        normalized = normalize_email(email)
        user = await self.backend.find_user_by_email(normalized) if normalized else None
        if user is None or AccountStatus(user.status) != AccountStatus.ACTIVE:
            password_resets_total.labels(stage="requested", outcome="ignored").inc()
            logger.info("Password reset requested for an unknown or inactive email")
            return PasswordResetRequested()

        issued_at_ms = self.codec.now()
        updated = await self.backend.update(
            Collection.USERS,
            user.id,
            {"password_reset_at": from_epoch_ms(issued_at_ms)},
            expected={"status": AccountStatus.ACTIVE},
        )
        if updated is None:
            password_resets_total.labels(stage="requested", outcome="ignored").inc()
            return PasswordResetRequested()

        token = self.codec.encode(user.email, issued_at_ms=issued_at_ms, purpose=PURPOSE_RESET)
        link = build_invitation_link(self.base_url, token, param=RESET_TOKEN_PARAM)
        delivery = await self.mailer.send_password_reset(user.email, link)

        outcome = "sent" if delivery.success else "undelivered"
        password_resets_total.labels(stage="requested", outcome=outcome).inc()
        logger.info(
            f"Password reset link issued for account {user.id} (delivered={delivery.success})"
        )
        return PasswordResetRequested()

    @returns_failure
    async def reset_password(self, token: str, new_password: str) -> AccountView:
        """
        Set a new password from a reset link.

        Only the newest link works, and only once. The account must still
        be ``Activo``; its status is left unchanged.

        Raises (as Failure):
            InvalidOrExpiredToken: Bad, expired, superseded or used token
            WeakPassword: Password shorter than the minimum
        """
        claims = self.codec.decode(token)
        if (
            claims is None
            or claims.purpose != PURPOSE_RESET
            or self.codec.now() - claims.issued_at_ms > RESET_TTL_MS
        ):
            password_resets_total.labels(stage="completed", outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        validate_password_strength(new_password)

        user = await self.backend.find_user_by_email(claims.email)
        if (
            user is None
            or AccountStatus(user.status) != AccountStatus.ACTIVE
            or user.password_reset_at is None
            or to_epoch_ms(user.password_reset_at) != claims.issued_at_ms
        ):
            password_resets_total.labels(stage="completed", outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        updated = await self.backend.update(
            Collection.USERS,
            user.id,
            {"password_hash": await self.passwords.hash(new_password), "password_reset_at": None},
            expected={"status": AccountStatus.ACTIVE, "password_reset_at": user.password_reset_at},
        )
        if updated is None:
            password_resets_total.labels(stage="completed", outcome="invalid").inc()
            raise InvalidOrExpiredToken()

        password_resets_total.labels(stage="completed", outcome="reset").inc()
        logger.info(f"Password reset completed for account {user.id}")
        return AccountView.from_user(updated)
