"""
Backend equivalence tests.

Every test here runs against the relational backend (SQLite through
aiosqlite) and the process-local fallback store, and expects identical
observable behavior from both.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import add_farm, add_tenant, add_user
from sata.core.exceptions import BackendUnavailable, ConstraintViolation
from sata.models import (
    AccountStatus,
    AlertLog,
    AlertRule,
    AlertType,
    Asset,
    AssetLocation,
    AssetType,
    Contact,
    Farm,
    TenantRole,
    User,
    from_epoch_ms,
    to_epoch_ms,
)
from sata.persistence import Collection, MemoryBackend, SqlBackend


def asset(farm_id: str, **fields) -> Asset:
    values = dict(
        farm_id=farm_id,
        name="Invernadero",
        asset_type=AssetType.GREENHOUSE,
        location=AssetLocation.NORTH,
        dev_eui="AA1100",
    )
    values.update(fields)
    return Asset(**values)


class TestReadsAndWrites:

    async def test_insert_assigns_id(self, backend):
        farm = await backend.insert(Collection.FARMS, Farm(id=None, name="Finca"))
        assert farm.id
        assert (await backend.get(Collection.FARMS, farm.id)).name == "Finca"

    async def test_get_missing(self, backend):
        assert await backend.get(Collection.FARMS, "missing") is None

    async def test_returned_entities_are_detached(self, backend):
        farm = await add_farm(backend, "Original")

        farm.name = "Mutated"
        fetched = await backend.get(Collection.FARMS, farm.id)
        fetched.name = "Mutated again"

        assert (await backend.get(Collection.FARMS, farm.id)).name == "Original"

    async def test_list_ordered_by_id_and_filtered(self, backend):
        farm = await add_farm(backend)
        other = await add_farm(backend, "Otra")
        for suffix in ("c", "a", "b"):
            await backend.insert(Collection.CONTACTS, Contact(id=f"contact-{suffix}", farm_id=farm.id, name=suffix))
        await backend.insert(Collection.CONTACTS, Contact(id="contact-x", farm_id=other.id, name="x"))

        contacts = await backend.list(Collection.CONTACTS, tenant_id=farm.id)
        named_b = await backend.list(Collection.CONTACTS, name="b")

        assert [c.id for c in contacts] == ["contact-a", "contact-b", "contact-c"]
        assert [c.id for c in named_b] == ["contact-b"]

    async def test_list_filters_on_null(self, backend, passwords):
        farm, owner = await add_tenant(backend, passwords)
        staff = await add_user(backend, passwords, "staff@sata.com")

        unscoped = await backend.list(Collection.USERS, farm_id=None)

        assert [u.id for u in unscoped] == [staff.id]

    async def test_list_rejects_unknown_fields(self, backend):
        with pytest.raises(ValueError):
            await backend.list(Collection.USERS, colour="green")

    async def test_enums_and_json_round_trip(self, backend):
        farm = await add_farm(backend)
        stored_asset = await backend.insert(Collection.ASSETS, asset(farm.id))
        rule = await backend.insert(
            Collection.ALERT_RULES,
            AlertRule(
                farm_id=farm.id, asset_id=stored_asset.id, alert_type="Humedad Máxima",
                threshold=85, contact_ids=["c1", "c2"],
            ),
        )

        fetched = await backend.get(Collection.ALERT_RULES, rule.id)

        assert fetched.alert_type == AlertType.HUMIDITY_MAX
        assert fetched.alert_type == "Humedad Máxima"
        assert fetched.contact_ids == ["c1", "c2"]

    async def test_email_normalized_and_case_insensitive(self, backend, passwords):
        user = await add_user(backend, passwords, "  Ana@Finca.COM ")

        assert user.email == "ana@finca.com"
        assert (await backend.find_user_by_email("ANA@finca.com")).id == user.id
        assert await backend.find_user_by_email("otra@finca.com") is None


class TestConstraints:

    async def test_duplicate_email(self, backend, passwords):
        await add_user(backend, passwords, "ana@finca.com")
        with pytest.raises(ConstraintViolation):
            await add_user(backend, passwords, "ANA@finca.com")

    async def test_single_owner_per_farm_on_insert(self, backend, passwords):
        farm, _ = await add_tenant(backend, passwords)

        with pytest.raises(ConstraintViolation):
            await add_user(
                backend, passwords, "otro@finca.com",
                farm_id=farm.id, company_role=TenantRole.OWNER,
            )

    async def test_single_owner_per_farm_on_update(self, backend, passwords):
        farm, _ = await add_tenant(backend, passwords)
        admin = await add_user(
            backend, passwords, "jefe@finca.com", farm_id=farm.id, company_role=TenantRole.ADMIN
        )

        with pytest.raises(ConstraintViolation):
            await backend.update(Collection.USERS, admin.id, {"company_role": TenantRole.OWNER})

        assert (await backend.get(Collection.USERS, admin.id)).company_role == TenantRole.ADMIN

    async def test_owners_of_different_farms(self, backend, passwords):
        await add_tenant(backend, passwords, owner_email="uno@finca.com")
        await add_tenant(backend, passwords, owner_email="dos@finca.com")

        owners = await backend.list(Collection.USERS, company_role=TenantRole.OWNER)

        assert len(owners) == 2

    async def test_user_referencing_missing_farm(self, backend, passwords):
        with pytest.raises(ConstraintViolation):
            await add_user(backend, passwords, "ana@finca.com", farm_id="no-such-farm")

    async def test_rule_referencing_missing_asset(self, backend):
        farm = await add_farm(backend)
        with pytest.raises(ConstraintViolation):
            await backend.insert(
                Collection.ALERT_RULES,
                AlertRule(farm_id=farm.id, asset_id="missing", alert_type=AlertType.TEMP_MAX, threshold=1),
            )

    async def test_delete_referenced_farm_rejected(self, backend, passwords):
        farm, _ = await add_tenant(backend, passwords)

        with pytest.raises(ConstraintViolation):
            await backend.delete(Collection.FARMS, farm.id)

        assert await backend.get(Collection.FARMS, farm.id) is not None

    async def test_insert_many_is_all_or_nothing(self, backend, passwords):
        users = [
            User(name=n, email=e, password_hash="x", status=AccountStatus.ACTIVE, role="farm_user")
            for n, e in (("A", "a@finca.com"), ("B", "b@finca.com"), ("C", "A@finca.com"))
        ]

        with pytest.raises(ConstraintViolation):
            await backend.insert_many(Collection.USERS, users)

        assert await backend.list(Collection.USERS) == []

    async def test_create_tenant_with_owner_is_atomic(self, backend, passwords):
        await add_user(backend, passwords, "taken@finca.com")

        with pytest.raises(ConstraintViolation):
            await add_tenant(backend, passwords, owner_email="taken@finca.com")

        assert await backend.list(Collection.FARMS) == []


class TestCompareAndSet:

    async def test_update_when_expected_matches(self, backend, passwords):
        user = await add_user(backend, passwords, "p@finca.com", status=AccountStatus.PENDING)

        updated = await backend.update(
            Collection.USERS, user.id,
            {"status": AccountStatus.ACTIVE},
            expected={"status": AccountStatus.PENDING},
        )

        assert updated.status == AccountStatus.ACTIVE

    async def test_no_update_when_expected_differs(self, backend, passwords):
        user = await add_user(backend, passwords, "a@finca.com", status=AccountStatus.ACTIVE)

        result = await backend.update(
            Collection.USERS, user.id,
            {"status": AccountStatus.BLOCKED},
            expected={"status": AccountStatus.PENDING},
        )

        assert result is None
        assert (await backend.get(Collection.USERS, user.id)).status == AccountStatus.ACTIVE

    async def test_expected_null(self, backend, passwords):
        user = await add_user(backend, passwords, "a@finca.com")

        updated = await backend.update(
            Collection.USERS, user.id, {"name": "Nueva"}, expected={"invited_at": None}
        )

        assert updated.name == "Nueva"

    async def test_update_missing_row(self, backend):
        assert await backend.update(Collection.FARMS, "missing", {"name": "x"}) is None

    async def test_update_rejects_unknown_fields(self, backend):
        farm = await add_farm(backend)
        with pytest.raises(ValueError):
            await backend.update(Collection.FARMS, farm.id, {"colour": "green"})

    async def test_delete(self, backend):
        farm = await add_farm(backend)

        assert await backend.delete(Collection.FARMS, farm.id) is True
        assert await backend.delete(Collection.FARMS, farm.id) is False


class TestPurge:

    async def test_purge_removes_tenant_and_children_only(self, backend, passwords):
        farm, _ = await add_tenant(backend, passwords)
        other, other_owner = await add_tenant(backend, passwords, owner_email="otro@finca.com")
        stored = await backend.insert(Collection.ASSETS, asset(farm.id))
        await backend.insert(
            Collection.ALERT_RULES,
            AlertRule(farm_id=farm.id, asset_id=stored.id, alert_type=AlertType.TEMP_MAX, threshold=30),
        )
        await backend.insert(Collection.CONTACTS, Contact(farm_id=farm.id, name="c"))

        counts = await backend.purge_tenant(farm.id)

        assert counts == {
            "alert_logs": 0, "alert_rules": 1, "contacts": 1,
            "users": 1, "assets": 1, "farms": 1,
        }
        assert await backend.get(Collection.FARMS, farm.id) is None
        assert await backend.get(Collection.USERS, other_owner.id) is not None
        assert await backend.get(Collection.FARMS, other.id) is not None

    async def test_purge_missing_tenant(self, backend):
        counts = await backend.purge_tenant("missing")
        assert set(counts.values()) == {0}


class TestSideBySide:
    """The same scenario on both stores yields the same observable state."""

    @staticmethod
    async def scenario(backend, passwords):
        farm = await backend.insert(Collection.FARMS, Farm(id="farm-1", name="Finca"))
        await backend.insert(
            Collection.USERS,
            User(
                id="user-1", name="Dueña", email=" Duena@Finca.com", password_hash="h",
                status="Activo", role="farm_user", farm_id=farm.id, company_role="owner",
            ),
        )
        await backend.insert(
            Collection.USERS,
            User(
                id="user-2", name="Miembro", email="m@finca.com", password_hash="h",
                status="Pendiente", role="farm_user", farm_id=farm.id, company_role="member",
            ),
        )
        errors = []
        try:
            await backend.insert(
                Collection.USERS,
                User(
                    id="user-3", name="Intruso", email="i@finca.com", password_hash="h",
                    status="Activo", role="farm_user", farm_id=farm.id, company_role="owner",
                ),
            )
        except ConstraintViolation:
            errors.append("second_owner")
        lost = await backend.update(
            Collection.USERS, "user-2", {"status": "Activo"}, expected={"status": "Bloqueado"}
        )
        won = await backend.update(
            Collection.USERS, "user-2", {"status": "Activo"}, expected={"status": "Pendiente"}
        )
        users = await backend.list(Collection.USERS, tenant_id=farm.id)
        snapshot = [
            (u.id, u.email, u.status.value, u.company_role.value) for u in users
        ]
        purged = await backend.purge_tenant(farm.id)
        return errors, lost, won.status.value, snapshot, purged

    async def test_identical_results(self, memory_backend, sql_backend, passwords):
        assert isinstance(memory_backend, MemoryBackend)
        assert isinstance(sql_backend, SqlBackend)

        from_memory = await self.scenario(memory_backend, passwords)
        from_sql = await self.scenario(sql_backend, passwords)

        assert from_memory == from_sql
        assert from_memory[0] == ["second_owner"]
        assert from_memory[3] == [
            ("user-1", "duena@finca.com", "Activo", "owner"),
            ("user-2", "m@finca.com", "Activo", "member"),
        ]


class TestTimestamps:

    async def test_stored_as_aware_utc(self, backend, passwords):
        invited_at = from_epoch_ms(1_700_000_000_123)
        user = await add_user(
            backend, passwords, "p@finca.com", status=AccountStatus.PENDING, invited_at=invited_at
        )

        fetched = await backend.get(Collection.USERS, user.id)

        assert fetched.invited_at == invited_at
        assert to_epoch_ms(fetched.invited_at) == 1_700_000_000_123
        assert fetched.created_at.utcoffset() == timedelta(0)

    async def test_naive_value_is_taken_as_utc(self, backend, passwords):
        user = await add_user(
            backend, passwords, "p@finca.com", invited_at=datetime(2026, 1, 1, 12, 0)
        )

        fetched = await backend.get(Collection.USERS, user.id)

        assert fetched.invited_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    async def test_other_offsets_normalized(self, backend, passwords):
        bogota = timezone(timedelta(hours=-5))
        user = await add_user(
            backend, passwords, "p@finca.com", invited_at=datetime(2026, 1, 1, 7, 0, tzinfo=bogota)
        )

        fetched = await backend.get(Collection.USERS, user.id)

        assert fetched.invited_at.tzinfo == timezone.utc
        assert fetched.invited_at.hour == 12

    async def test_compare_and_set_on_timestamp(self, backend, passwords):
        invited_at = from_epoch_ms(1_700_000_000_000)
        user = await add_user(
            backend, passwords, "p@finca.com", status=AccountStatus.PENDING, invited_at=invited_at
        )
        stored = await backend.get(Collection.USERS, user.id)

        stale = await backend.update(
            Collection.USERS, user.id, {"status": AccountStatus.ACTIVE},
            expected={"invited_at": invited_at + timedelta(milliseconds=1)},
        )
        updated = await backend.update(
            Collection.USERS, user.id, {"status": AccountStatus.ACTIVE},
            expected={"status": AccountStatus.PENDING, "invited_at": stored.invited_at},
        )

        assert stale is None
        assert updated.status == AccountStatus.ACTIVE

    async def test_alert_log_timestamp(self, backend):
        farm = await add_farm(backend)
        stored_asset = await backend.insert(Collection.ASSETS, asset(farm.id))
        log = await backend.insert(
            Collection.ALERT_LOGS,
            AlertLog(
                farm_id=farm.id, asset_id=stored_asset.id,
                alert_type=AlertType.TEMP_MAX, value=31.5,
            ),
        )

        fetched = await backend.get(Collection.ALERT_LOGS, log.id)

        assert fetched.timestamp.tzinfo is not None
        assert fetched.timestamp == log.timestamp


class TestStatementErrors:

    async def test_unbindable_value_reported_as_backend_failure(self, sql_backend, passwords):
        user = await add_user(sql_backend, passwords, "p@finca.com")

        with pytest.raises(BackendUnavailable):
            await sql_backend.update(Collection.USERS, user.id, {"invited_at": "not-a-date"})
