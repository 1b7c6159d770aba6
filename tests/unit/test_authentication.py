"""
Portal authentication tests, run against both backends.
"""

import pytest

from conftest import TEST_PASSWORD, add_tenant, add_user
from sata.core.exceptions import ErrorCode
from sata.core.results import Failure, Session, StepUpRequired
from sata.models import AccountStatus, GlobalRole, TenantRole

INVALID_MESSAGE = "Credenciales inválidas o cuenta inexistente."


class TestAuthenticate:

    @pytest.fixture
    async def tenant(self, backend, passwords):
        return await add_tenant(backend, passwords, owner_email="owner@finca.com")

    async def test_tenant_user_gets_session(self, container, tenant):
        farm, owner = tenant

        result = await container.auth.authenticate("owner@finca.com", TEST_PASSWORD, "farm_user")

        assert isinstance(result, Session)
        assert result.account.id == owner.id
        assert result.account.farm_id == farm.id
        assert result.account.company_role == "owner"

        claims = container.session_tokens.verify(result.access_token)
        assert claims["sub"] == owner.id
        assert claims["tenant_id"] == farm.id
        assert claims["tenant_role"] == "owner"

    async def test_email_lookup_is_case_insensitive(self, container, tenant):
        result = await container.auth.authenticate("  OWNER@Finca.COM ", TEST_PASSWORD, "farm_user")
        assert isinstance(result, Session)

    async def test_session_omits_password_hash(self, container, tenant):
        result = await container.auth.authenticate("owner@finca.com", TEST_PASSWORD, "farm_user")
        assert "password_hash" not in result.account.model_dump()

    @pytest.mark.parametrize("role", [GlobalRole.PLATFORM_ADMIN, GlobalRole.PLATFORM_TECH])
    async def test_staff_requires_step_up(self, container, backend, passwords, role):
        staff = await add_user(backend, passwords, "staff@sata.com", role=role)

        result = await container.auth.authenticate("staff@sata.com", TEST_PASSWORD, role.value)

        assert isinstance(result, StepUpRequired)
        assert result.account_id == staff.id
        assert result.challenge_id

    async def test_unknown_email(self, container):
        result = await container.auth.authenticate("nobody@finca.com", TEST_PASSWORD, "farm_user")

        assert isinstance(result, Failure)
        assert result.code == ErrorCode.INVALID_CREDENTIALS
        assert result.message == INVALID_MESSAGE

    async def test_wrong_password(self, container, tenant):
        result = await container.auth.authenticate("owner@finca.com", "wrong-pass", "farm_user")

        assert result.code == ErrorCode.INVALID_CREDENTIALS
        assert result.message == INVALID_MESSAGE

    @pytest.mark.parametrize("status", [AccountStatus.BLOCKED, AccountStatus.INACTIVE])
    async def test_disabled_account(self, container, backend, passwords, tenant, status):
        farm, _ = tenant
        await add_user(
            backend, passwords, "member@finca.com", status=status,
            farm_id=farm.id, company_role=TenantRole.MEMBER,
        )

        result = await container.auth.authenticate("member@finca.com", TEST_PASSWORD, "farm_user")

        assert result.code == ErrorCode.ACCOUNT_DISABLED
        assert result.retryable is False

    async def test_disabled_account_with_wrong_password_is_invalid(
        self, container, backend, passwords
    ):
        """Account state is not revealed without the right password."""
        await add_user(backend, passwords, "blocked@finca.com", status=AccountStatus.BLOCKED)

        result = await container.auth.authenticate("blocked@finca.com", "nope-nope", "farm_user")

        assert result.code == ErrorCode.INVALID_CREDENTIALS

    async def test_pending_account_is_invalid_credentials(self, container, backend, passwords):
        await add_user(backend, passwords, "pending@finca.com", status=AccountStatus.PENDING)

        result = await container.auth.authenticate("pending@finca.com", TEST_PASSWORD, "farm_user")

        assert result.code == ErrorCode.INVALID_CREDENTIALS
        assert result.message == INVALID_MESSAGE

    async def test_portal_mismatch_names_attempted_portal_only(self, container, tenant):
        result = await container.auth.authenticate("owner@finca.com", TEST_PASSWORD, "sata_admin")

        assert result.code == ErrorCode.PORTAL_MISMATCH
        assert "Administrativos" in result.message
        assert "Empresas" not in result.message

    async def test_staff_on_tenant_portal(self, container, backend, passwords):
        await add_user(backend, passwords, "tech@sata.com", role=GlobalRole.PLATFORM_TECH)

        result = await container.auth.authenticate("tech@sata.com", TEST_PASSWORD, "farm_user")

        assert result.code == ErrorCode.PORTAL_MISMATCH
        assert "Empresas" in result.message

    async def test_accepts_enum_portal(self, container, tenant):
        result = await container.auth.authenticate(
            "owner@finca.com", TEST_PASSWORD, GlobalRole.TENANT_USER
        )
        assert isinstance(result, Session)
