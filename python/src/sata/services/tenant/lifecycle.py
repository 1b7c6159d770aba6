"""
Tenant (farm) lifecycle: registration, demo seeding, cascading deletion and
the platform bootstrap.

Deletion removes the farm and every row it owns in one backend transaction.
Transient backend failures are retried; if the purge still cannot complete
the failure is CASCADE_INCOMPLETE and needs an operator. Deletion holds the
tenant lock, so writers queued behind it find the tenant gone.
"""

import logging
from typing import Dict, Optional

from pydantic import BaseModel
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.exceptions import (
    AlreadyRegistered,
    BackendUnavailable,
    CascadeIncomplete,
    ConstraintViolation,
    IdentityError,
    NotFound,
    Unauthorized,
)
from ...core.results import (
    AccountView,
    BootstrapReport,
    DeletionReport,
    SeedReport,
    TenantCreated,
    returns_failure,
)
from ...core.security import PasswordManager, validate_password_strength
from ...models import AccountStatus, Farm, GlobalRole, TenantRole, User, normalize_email
from ...monitoring.metrics import tenant_deletions_total, tenants_created_total
from ...persistence import Collection, PersistenceBackend, TenantLockRegistry
from ..accounts.admin import AccountAdminService
from .seed import (
    DEMO_OWNER,
    DEMO_PASSWORD,
    DEMO_TENANT_NAME,
    DEMO_TENANT_TIMEZONE,
    PLATFORM_ADMIN,
    PLATFORM_TECH,
    build_seed,
)

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "Usuario no encontrado."
TENANT_NOT_FOUND = "Empresa no encontrada."
OWNER_ONLY = "Solo el propietario puede eliminar la empresa."
WRONG_PASSWORD = "Contraseña incorrecta."
EMAIL_TAKEN = "El correo electrónico ya está registrado."


class OwnerRegistration(BaseModel):
    """Self-service registration of a company owner."""

    name: str
    email: str
    password: str


class TenantLifecycleManager:
    """Creates, seeds and deletes tenants."""

    def __init__(
        self,
        backend: PersistenceBackend,
        passwords: PasswordManager,
        locks: TenantLockRegistry,
        accounts: AccountAdminService,
        purge_attempts: int = 3,
        purge_wait: float = 0.5,
    ):
        self.backend = backend
        self.passwords = passwords
        self.locks = locks
        self.accounts = accounts
        self.purge_attempts = purge_attempts
        self.purge_wait = purge_wait

    # ------------------------------------------------------------------
    # Creation and seeding
    # ------------------------------------------------------------------

    @returns_failure
    async def create_tenant(
        self,
        owner_info: OwnerRegistration,
        tenant_name: str,
        seed: bool = True,
        timezone: str = "UTC",
    ) -> TenantCreated:
        """
        Register a new company and its owner.

        The farm and the owner are written together or not at all. Seeding
        runs afterwards; a seeding failure does not undo the registration
        and is reported in ``TenantCreated.seed``.
        """
        validate_password_strength(owner_info.password)
        email = normalize_email(owner_info.email)

        if await self.backend.find_user_by_email(email) is not None:
            raise AlreadyRegistered(EMAIL_TAKEN)

        farm = Farm(name=tenant_name.strip(), timezone=timezone)
        owner = User(
            name=owner_info.name.strip(),
            email=email,
            password_hash=await self.passwords.hash(owner_info.password),
            status=AccountStatus.ACTIVE,
            role=GlobalRole.TENANT_USER,
            company_role=TenantRole.OWNER,
        )
        try:
            farm, owner = await self.backend.create_tenant_with_owner(farm, owner)
        except ConstraintViolation:
            if await self.backend.find_user_by_email(email) is not None:
                raise AlreadyRegistered(EMAIL_TAKEN)
            raise

        tenants_created_total.inc()
        logger.info(f"Tenant created: {farm.id} ({farm.name}) owner={owner.id}")

        seed_report = None
        if seed:
            try:
                seed_report = await self._seed(farm.id, force=False)
            except IdentityError as e:
                logger.error(f"Seeding failed for new tenant {farm.id}: {e.message}")
                seed_report = SeedReport(tenant_id=farm.id, seeded=False, error=e.message)

        return TenantCreated(
            tenant_id=farm.id,
            tenant_name=farm.name,
            timezone=farm.timezone,
            owner=AccountView.from_user(owner),
            seed=seed_report,
        )

    @returns_failure
    async def seed_tenant(self, tenant_id: str, force: bool = False) -> SeedReport:
        """
        Insert demo data for a tenant.

        Skipped when the tenant already has assets, unless ``force``.
        """
        return await self._seed(tenant_id, force)

    async def _seed(self, tenant_id: str, force: bool) -> SeedReport:
        async with self.locks.hold(tenant_id):
            if await self.backend.get(Collection.FARMS, tenant_id) is None:
                raise NotFound(TENANT_NOT_FOUND)

            if not force and await self.backend.list(Collection.ASSETS, tenant_id=tenant_id):
                logger.info(f"Tenant {tenant_id} already has assets; seeding skipped")
                return SeedReport(tenant_id=tenant_id, seeded=False)

            bundle = build_seed(tenant_id, await self.passwords.hash(DEMO_PASSWORD))
            await self.backend.insert_many(Collection.ASSETS, bundle.assets)
            await self.backend.insert_many(Collection.CONTACTS, bundle.contacts)
            await self.backend.insert_many(Collection.USERS, bundle.users)
            await self.backend.insert_many(Collection.ALERT_RULES, bundle.rules)
            await self.backend.insert_many(Collection.ALERT_LOGS, bundle.logs)

        logger.info(f"Seeded tenant {tenant_id}: {bundle.counts()}")
        return SeedReport(tenant_id=tenant_id, seeded=True, created=bundle.counts())

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    @returns_failure
    async def delete_tenant_self_service(
        self, owner_id: str, password_attempt: str, tenant_id: str
    ) -> DeletionReport:
        """
        Delete a company on behalf of its owner.

        Nothing is changed unless the caller exists, owns ``tenant_id`` and
        the password verifies.
        """
        user = await self.backend.get(Collection.USERS, owner_id)
        if user is None:
            raise NotFound(USER_NOT_FOUND)
        if not user.is_owner or user.farm_id != tenant_id:
            logger.warning(f"Account {owner_id} attempted to delete tenant {tenant_id}")
            raise Unauthorized(OWNER_ONLY)
        if not await self.passwords.verify(user.password_hash, password_attempt or ""):
            logger.warning(f"Tenant deletion rejected for {owner_id}: wrong password")
            raise Unauthorized(WRONG_PASSWORD)

        return await self._purge(tenant_id, mode="self_service", account_id=owner_id)

    @returns_failure
    async def delete_tenant_forced(self, target_user_id: str) -> DeletionReport:
        """
        Administrative deletion keyed by account.

        An owner takes the whole company with them; any other account is
        removed alone. Callers must already hold platform-admin privilege.
        """
        user = await self.backend.get(Collection.USERS, target_user_id)
        if user is None:
            raise NotFound(USER_NOT_FOUND)

        if user.is_owner and user.farm_id:
            return await self._purge(user.farm_id, mode="forced", account_id=target_user_id)

        report = await self.accounts.remove_account(target_user_id)
        tenant_deletions_total.labels(mode="forced", outcome="account").inc()
        return report

    async def _purge(self, tenant_id: str, mode: str, account_id: Optional[str]) -> DeletionReport:
        logger.warning(f"Deleting tenant {tenant_id} ({mode}) requested by {account_id}")

        async with self.locks.hold(tenant_id):
            if await self.backend.get(Collection.FARMS, tenant_id) is None:
                tenant_deletions_total.labels(mode=mode, outcome="not_found").inc()
                raise NotFound(TENANT_NOT_FOUND)

            try:
                counts = await self._purge_with_retry(tenant_id)
            except RetryError as e:
                tenant_deletions_total.labels(mode=mode, outcome="incomplete").inc()
                logger.error(
                    f"Purge of tenant {tenant_id} failed after {self.purge_attempts} attempts: "
                    f"{e.last_attempt.exception()}"
                )
                raise CascadeIncomplete(
                    f"No se pudo completar la eliminación de la empresa {tenant_id}. "
                    "Se requiere intervención de un operador."
                ) from e

        tenant_deletions_total.labels(mode=mode, outcome="deleted").inc()
        logger.warning(f"Tenant {tenant_id} deleted: {counts}")
        return DeletionReport(
            tenant_id=tenant_id,
            account_id=account_id,
            tenant_deleted=True,
            deleted=counts,
        )

    async def _purge_with_retry(self, tenant_id: str) -> Dict[str, int]:
        @retry(
            stop=stop_after_attempt(self.purge_attempts),
            wait=wait_exponential(multiplier=self.purge_wait, max=self.purge_wait * 8),
            retry=retry_if_exception_type(BackendUnavailable),
        )
        async def purge():
            return await self.backend.purge_tenant(tenant_id)

        return await purge()

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    @returns_failure
    async def bootstrap_platform(self) -> BootstrapReport:
        """
        Create the platform staff accounts and the demo company.

        Idempotent: accounts that already exist are left untouched.
        """
        report = BootstrapReport()
        password_hash = await self.passwords.hash(DEMO_PASSWORD)

        for staff in (PLATFORM_ADMIN, PLATFORM_TECH):
            if await self.backend.find_user_by_email(staff["email"]) is not None:
                continue
            await self.backend.insert(
                Collection.USERS,
                User(
                    name=staff["name"],
                    email=staff["email"],
                    password_hash=password_hash,
                    status=AccountStatus.ACTIVE,
                    role=staff["role"],
                ),
            )
            report.created_accounts.append(staff["email"])

        demo_owner = await self.backend.find_user_by_email(DEMO_OWNER["email"])
        if demo_owner is not None:
            report.demo_tenant_id = demo_owner.farm_id
        else:
            farm, owner = await self.backend.create_tenant_with_owner(
                Farm(name=DEMO_TENANT_NAME, timezone=DEMO_TENANT_TIMEZONE),
                User(
                    name=DEMO_OWNER["name"],
                    email=DEMO_OWNER["email"],
                    password_hash=password_hash,
                    status=AccountStatus.ACTIVE,
                    role=GlobalRole.TENANT_USER,
                    company_role=TenantRole.OWNER,
                ),
            )
            tenants_created_total.inc()
            report.created_accounts.append(owner.email)
            report.demo_tenant_id = farm.id
            await self._seed(farm.id, force=False)

        if report.created_accounts:
            logger.info(f"Platform bootstrap created: {', '.join(report.created_accounts)}")
        else:
            logger.info("Platform already initialized")
        return report
