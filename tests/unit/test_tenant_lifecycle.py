"""
Tenant lifecycle tests: registration, seeding, deletion and bootstrap.
"""

import pytest

from conftest import TEST_PASSWORD, add_tenant, add_user
from sata.core.exceptions import BackendUnavailable, ErrorCode
from sata.core.results import DeletionReport, Failure, Session, TenantCreated
from sata.models import GlobalRole, TenantRole
from sata.persistence import Collection, MemoryBackend, TenantLockRegistry
from sata.services.accounts import AccountAdminService
from sata.services.tenant import OwnerRegistration, TenantLifecycleManager

SEEDED = {"assets": 3, "contacts": 3, "users": 2, "alert_rules": 3, "alert_logs": 4}


def registration(email: str = "duena@finca.com", password: str = TEST_PASSWORD):
    return OwnerRegistration(name="Dueña", email=email, password=password)


async def tenant_rows(backend, tenant_id: str) -> dict:
    counts = {}
    for collection in Collection:
        if collection is Collection.FARMS:
            counts[collection.value] = int(await backend.get(collection, tenant_id) is not None)
        else:
            counts[collection.value] = len(await backend.list(collection, tenant_id=tenant_id))
    return counts


class TestCreateTenant:

    async def test_creates_farm_owner_and_seed(self, container, backend):
        result = await container.tenants.create_tenant(registration(), "Finca Sol")

        assert isinstance(result, TenantCreated)
        assert result.tenant_name == "Finca Sol"
        assert result.timezone == "UTC"
        assert result.owner.company_role == "owner"
        assert result.owner.status == "Activo"
        assert result.seed.seeded is True
        assert result.seed.created == SEEDED

        rows = await tenant_rows(backend, result.tenant_id)
        assert rows == {
            "farms": 1, "users": 3, "contacts": 3, "assets": 3,
            "alert_rules": 3, "alert_logs": 4,
        }

    async def test_owner_can_log_in(self, container):
        await container.tenants.create_tenant(registration(), "Finca Sol", seed=False)

        session = await container.auth.authenticate("duena@finca.com", TEST_PASSWORD, "farm_user")

        assert isinstance(session, Session)

    async def test_existing_email_rejected(self, container, backend):
        await container.tenants.create_tenant(registration(), "Finca Sol", seed=False)

        result = await container.tenants.create_tenant(
            registration(email="DUENA@finca.com"), "Otra Finca", seed=False
        )

        assert isinstance(result, Failure)
        assert result.code == ErrorCode.ALREADY_REGISTERED
        assert len(await backend.list(Collection.FARMS)) == 1

    async def test_weak_password(self, container, backend):
        result = await container.tenants.create_tenant(
            registration(password="123"), "Finca Sol"
        )

        assert result.code == ErrorCode.WEAK_PASSWORD
        assert await backend.list(Collection.FARMS) == []

    async def test_seed_failure_is_reported_not_rolled_back(self, passwords):
        class FailingSeedBackend(MemoryBackend):
            async def insert_many(self, collection, entities):
                raise BackendUnavailable()

        backend = FailingSeedBackend()
        manager = TenantLifecycleManager(
            backend, passwords, TenantLockRegistry(), AccountAdminService(backend)
        )

        result = await manager.create_tenant(registration(), "Finca Sol")

        assert isinstance(result, TenantCreated)
        assert result.seed.seeded is False
        assert result.seed.error
        assert await backend.get(Collection.FARMS, result.tenant_id) is not None


class TestSeedTenant:

    @pytest.fixture
    async def tenant_id(self, container):
        created = await container.tenants.create_tenant(registration(), "Finca Sol", seed=False)
        return created.tenant_id

    async def test_seed(self, container, tenant_id):
        report = await container.tenants.seed_tenant(tenant_id)

        assert report.seeded is True
        assert report.created == SEEDED

    async def test_seed_skipped_when_assets_exist(self, container, backend, tenant_id):
        await container.tenants.seed_tenant(tenant_id)

        report = await container.tenants.seed_tenant(tenant_id)

        assert report.seeded is False
        assert len(await backend.list(Collection.ASSETS, tenant_id=tenant_id)) == 3

    async def test_force_seeds_again(self, container, backend, tenant_id):
        await container.tenants.seed_tenant(tenant_id)

        report = await container.tenants.seed_tenant(tenant_id, force=True)

        assert report.seeded is True
        assert len(await backend.list(Collection.ASSETS, tenant_id=tenant_id)) == 6

    async def test_seeded_team_users(self, container, backend, tenant_id):
        await container.tenants.seed_tenant(tenant_id)

        users = await backend.list(Collection.USERS, tenant_id=tenant_id)
        roles = sorted(user.company_role.value for user in users)

        assert roles == ["admin", "member", "owner"]

    async def test_seeded_rules_reference_tenant_rows(self, container, backend, tenant_id):
        await container.tenants.seed_tenant(tenant_id)

        asset_ids = {a.id for a in await backend.list(Collection.ASSETS, tenant_id=tenant_id)}
        contact_ids = {c.id for c in await backend.list(Collection.CONTACTS, tenant_id=tenant_id)}
        for rule in await backend.list(Collection.ALERT_RULES, tenant_id=tenant_id):
            assert rule.asset_id in asset_ids
            assert set(rule.contact_ids) <= contact_ids

    async def test_missing_tenant(self, container):
        result = await container.tenants.seed_tenant("no-such-farm")
        assert result.code == ErrorCode.NOT_FOUND


class TestSelfServiceDeletion:

    @pytest.fixture
    async def created(self, container):
        return await container.tenants.create_tenant(registration(), "Finca Sol")

    async def test_owner_deletes_tenant(self, container, backend, created):
        report = await container.tenants.delete_tenant_self_service(
            created.owner.id, TEST_PASSWORD, created.tenant_id
        )

        assert isinstance(report, DeletionReport)
        assert report.tenant_deleted is True
        assert report.deleted["users"] == 3
        assert report.deleted["farms"] == 1
        assert all(count == 0 for count in (await tenant_rows(backend, created.tenant_id)).values())

    async def test_other_tenants_untouched(self, container, backend, passwords, created):
        other_farm, _ = await add_tenant(backend, passwords, owner_email="otro@finca.com")
        await container.tenants.seed_tenant(other_farm.id)
        before = await tenant_rows(backend, other_farm.id)

        await container.tenants.delete_tenant_self_service(
            created.owner.id, TEST_PASSWORD, created.tenant_id
        )

        assert await tenant_rows(backend, other_farm.id) == before

    async def test_wrong_password(self, container, backend, created):
        result = await container.tenants.delete_tenant_self_service(
            created.owner.id, "incorrecta", created.tenant_id
        )

        assert result.code == ErrorCode.UNAUTHORIZED
        assert result.message == "Contraseña incorrecta."
        assert (await tenant_rows(backend, created.tenant_id))["farms"] == 1

    async def test_non_owner_rejected(self, container, backend, passwords, created):
        admin = await add_user(
            backend, passwords, "jefe@finca.com",
            farm_id=created.tenant_id, company_role=TenantRole.ADMIN,
        )

        result = await container.tenants.delete_tenant_self_service(
            admin.id, TEST_PASSWORD, created.tenant_id
        )

        assert result.code == ErrorCode.UNAUTHORIZED
        assert result.message == "Solo el propietario puede eliminar la empresa."

    async def test_owner_of_another_tenant_rejected(self, container, backend, passwords, created):
        _, other_owner = await add_tenant(backend, passwords, owner_email="otro@finca.com")

        result = await container.tenants.delete_tenant_self_service(
            other_owner.id, TEST_PASSWORD, created.tenant_id
        )

        assert result.code == ErrorCode.UNAUTHORIZED
        assert (await tenant_rows(backend, created.tenant_id))["farms"] == 1

    async def test_missing_caller(self, container, created):
        result = await container.tenants.delete_tenant_self_service(
            "ghost", TEST_PASSWORD, created.tenant_id
        )
        assert result.code == ErrorCode.NOT_FOUND


class TestForcedDeletion:

    @pytest.fixture
    async def created(self, container):
        return await container.tenants.create_tenant(registration(), "Finca Sol")

    async def test_owner_takes_tenant_with_them(self, container, backend, created):
        report = await container.tenants.delete_tenant_forced(created.owner.id)

        assert report.tenant_deleted is True
        assert report.tenant_id == created.tenant_id
        assert await backend.get(Collection.FARMS, created.tenant_id) is None

    async def test_non_owner_removed_alone(self, container, backend, created):
        members = [
            u for u in await backend.list(Collection.USERS, tenant_id=created.tenant_id)
            if not u.is_owner
        ]
        target = members[0]

        report = await container.tenants.delete_tenant_forced(target.id)

        assert report.tenant_deleted is False
        assert report.deleted == {"users": 1}
        assert await backend.get(Collection.USERS, target.id) is None
        assert await backend.get(Collection.FARMS, created.tenant_id) is not None
        assert len(await backend.list(Collection.USERS, tenant_id=created.tenant_id)) == 2

    async def test_staff_account_removed(self, container, backend, passwords):
        tech = await add_user(backend, passwords, "tech@sata.com", role=GlobalRole.PLATFORM_TECH)

        report = await container.tenants.delete_tenant_forced(tech.id)

        assert report.account_id == tech.id
        assert await backend.get(Collection.USERS, tech.id) is None

    async def test_missing_account(self, container):
        result = await container.tenants.delete_tenant_forced("ghost")
        assert result.code == ErrorCode.NOT_FOUND


class TestPurgeRetry:

    class FlakyBackend(MemoryBackend):
        def __init__(self, failures: int):
            super().__init__()
            self.failures = failures
            self.purge_calls = 0

        async def purge_tenant(self, tenant_id):
            self.purge_calls += 1
            if self.purge_calls <= self.failures:
                raise BackendUnavailable()
            return await super().purge_tenant(tenant_id)

    def manager(self, backend, passwords) -> TenantLifecycleManager:
        return TenantLifecycleManager(
            backend, passwords, TenantLockRegistry(), AccountAdminService(backend),
            purge_attempts=3, purge_wait=0,
        )

    async def test_transient_failures_retried(self, passwords):
        backend = self.FlakyBackend(failures=2)
        farm, owner = await add_tenant(backend, passwords)

        report = await self.manager(backend, passwords).delete_tenant_forced(owner.id)

        assert report.tenant_deleted is True
        assert backend.purge_calls == 3
        assert await backend.get(Collection.FARMS, farm.id) is None

    async def test_exhausted_retries_are_cascade_incomplete(self, passwords):
        backend = self.FlakyBackend(failures=10)
        farm, owner = await add_tenant(backend, passwords)

        result = await self.manager(backend, passwords).delete_tenant_forced(owner.id)

        assert result.code == ErrorCode.CASCADE_INCOMPLETE
        assert backend.purge_calls == 3
        # The purge is transactional: nothing was partially removed
        assert await backend.get(Collection.FARMS, farm.id) is not None
        assert await backend.get(Collection.USERS, owner.id) is not None


class TestBootstrapPlatform:

    async def test_creates_staff_and_demo_tenant(self, container, backend):
        report = await container.tenants.bootstrap_platform()

        assert report.created_accounts == ["admin@sata.com", "tech@sata.com", "gerente@empresa.com"]
        farm = await backend.get(Collection.FARMS, report.demo_tenant_id)
        assert farm.name == "AgroIndustrias Demo"
        assert farm.timezone == "America/Bogota"
        assert len(await backend.list(Collection.ASSETS, tenant_id=farm.id)) == 3

        admin = await backend.find_user_by_email("admin@sata.com")
        assert admin.role == GlobalRole.PLATFORM_ADMIN
        assert admin.farm_id is None

    async def test_idempotent(self, container, backend):
        first = await container.tenants.bootstrap_platform()
        second = await container.tenants.bootstrap_platform()

        assert second.created_accounts == []
        assert second.demo_tenant_id == first.demo_tenant_id
        assert len(await backend.list(Collection.FARMS)) == 1

    async def test_demo_owner_can_log_in(self, container):
        await container.tenants.bootstrap_platform()

        session = await container.auth.authenticate("gerente@empresa.com", "password", "farm_user")

        assert isinstance(session, Session)
