"""
Pytest configuration and fixtures.

Provides shared fixtures for all tests including:
- Settings isolated from the environment
- A cheap Argon2 password manager
- Both persistence backends (parametrized)
- A wired service container
"""

from typing import AsyncGenerator, Optional

import pytest
from argon2 import PasswordHasher, Type

from sata.core.config import Settings
from sata.core.security import PasswordManager
from sata.database import create_engine, init_schema
from sata.models import AccountStatus, Farm, GlobalRole, TenantRole, User
from sata.persistence import Collection, MemoryBackend, PersistenceBackend, SqlBackend
from sata.services.container import ServiceContainer

TEST_INVITATION_SECRET = "test-invitation-secret-0123456789abcdef"
TEST_SESSION_SECRET = "test-session-secret-0123456789abcdefgh"
TEST_PASSWORD = "password123"


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        ENVIRONMENT="test",
        REMOTE_DATABASE_URL="",
        REMOTE_DATABASE_KEY="",
        RESEND_API_KEY="",
        BOOTSTRAP_PLATFORM=False,
        INVITATION_SECRET=TEST_INVITATION_SECRET,
        SESSION_SECRET=TEST_SESSION_SECRET,
        APP_BASE_URL="https://sata.example.com/",
        SENTRY_DSN="",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    """Settings that ignore the process environment and .env."""
    return make_settings()


@pytest.fixture(scope="session")
def passwords() -> PasswordManager:
    """Argon2id with minimal cost so tests stay fast."""
    return PasswordManager(
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1, type=Type.ID)
    )


@pytest.fixture
async def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
async def sql_backend(tmp_path) -> AsyncGenerator[SqlBackend, None]:
    """Relational backend on a throwaway SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'sata.db'}")
    await init_schema(engine)
    backend = SqlBackend(engine)
    yield backend
    await backend.close()


@pytest.fixture(params=["memory", "sql"])
async def backend(request, tmp_path) -> AsyncGenerator[PersistenceBackend, None]:
    """Each test using this fixture runs once per backend."""
    if request.param == "memory":
        yield MemoryBackend()
        return

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'sata.db'}")
    await init_schema(engine)
    sql = SqlBackend(engine)
    yield sql
    await sql.close()


@pytest.fixture
async def container(settings, backend, passwords) -> ServiceContainer:
    return await ServiceContainer.build(settings, backend=backend, passwords=passwords)


# ============================================================================
# Data helpers
# ============================================================================


async def add_farm(backend: PersistenceBackend, name: str = "Finca Test") -> Farm:
    return await backend.insert(Collection.FARMS, Farm(name=name))


async def add_user(
    backend: PersistenceBackend,
    passwords: PasswordManager,
    email: str,
    password: str = TEST_PASSWORD,
    role: GlobalRole = GlobalRole.TENANT_USER,
    status: AccountStatus = AccountStatus.ACTIVE,
    farm_id: Optional[str] = None,
    company_role: Optional[TenantRole] = None,
    name: str = "Usuario Test",
    **fields,
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=await passwords.hash(password),
        status=status,
        role=role,
        farm_id=farm_id,
        company_role=company_role,
        **fields,
    )
    return await backend.insert(Collection.USERS, user)


async def add_tenant(
    backend: PersistenceBackend,
    passwords: PasswordManager,
    owner_email: str = "owner@finca.com",
    name: str = "Finca Test",
):
    """Farm plus Activo owner, returned as (farm, owner)."""
    return await backend.create_tenant_with_owner(
        Farm(name=name),
        User(
            name="Propietario",
            email=owner_email,
            password_hash=await passwords.hash(TEST_PASSWORD),
            status=AccountStatus.ACTIVE,
            role=GlobalRole.TENANT_USER,
            company_role=TenantRole.OWNER,
        ),
    )
