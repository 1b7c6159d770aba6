"""
Demo data for new tenants and the platform bootstrap accounts.

Every new company gets three assets, three contacts, an operating admin and
a read-only member, three alert rules and a short alert history, so the
dashboards have something to show on first login.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ...models import (
    AccountStatus,
    AlertLog,
    AlertRule,
    AlertType,
    Asset,
    AssetLocation,
    AssetType,
    Contact,
    GlobalRole,
    TenantRole,
    User,
    new_id,
    utcnow,
)

DEMO_PASSWORD = "password"

PLATFORM_ADMIN = {
    "name": "Admin SATA",
    "email": "admin@sata.com",
    "role": GlobalRole.PLATFORM_ADMIN,
}
PLATFORM_TECH = {
    "name": "Técnico Monitoreo",
    "email": "tech@sata.com",
    "role": GlobalRole.PLATFORM_TECH,
}
DEMO_TENANT_NAME = "AgroIndustrias Demo"
DEMO_TENANT_TIMEZONE = "America/Bogota"
DEMO_OWNER = {"name": "Gerente Demo", "email": "gerente@empresa.com"}


@dataclass
class SeedBundle:
    """Rows to insert for one tenant, already linked to each other."""

    assets: List[Asset] = field(default_factory=list)
    contacts: List[Contact] = field(default_factory=list)
    users: List[User] = field(default_factory=list)
    rules: List[AlertRule] = field(default_factory=list)
    logs: List[AlertLog] = field(default_factory=list)

    def counts(self) -> dict:
        return {
            "assets": len(self.assets),
            "contacts": len(self.contacts),
            "users": len(self.users),
            "alert_rules": len(self.rules),
            "alert_logs": len(self.logs),
        }


def build_seed(farm_id: str, password_hash: str, now: Optional[datetime] = None) -> SeedBundle:
    """
    Build the demo rows for ``farm_id``.

    Generated emails carry a suffix derived from the farm id plus a random
    part, so seeding a tenant again never collides with earlier rows.
    """
    now = now or utcnow()
    suffix = f"{farm_id[:4]}_{new_id()[:8]}"
    eui = f"AA11{suffix[:4]}"

    assets = [
        Asset(
            id=new_id(),
            farm_id=farm_id,
            name="Invernadero Norte - Cultivo Principal",
            asset_type=AssetType.GREENHOUSE,
            location=AssetLocation.NORTH,
            dev_eui=f"{eui}01",
        ),
        Asset(
            id=new_id(),
            farm_id=farm_id,
            name="Silo Central - Maíz",
            asset_type=AssetType.SILO,
            location=AssetLocation.CENTER,
            dev_eui=f"{eui}02",
        ),
        Asset(
            id=new_id(),
            farm_id=farm_id,
            name="Bodega Sur - Secado",
            asset_type=AssetType.OTHER,
            custom_type="Bodega",
            location=AssetLocation.SOUTH,
            dev_eui=f"{eui}03",
        ),
    ]

    contacts = [
        Contact(
            id=new_id(),
            farm_id=farm_id,
            name="Ing. Agrónomo Jefe",
            phone="+573001234567",
            email=f"agronomo.{suffix}@demo.com",
        ),
        Contact(
            id=new_id(),
            farm_id=farm_id,
            name="Gerente de Planta",
            phone="+573007654321",
            email=f"gerente.{suffix}@demo.com",
        ),
        Contact(
            id=new_id(),
            farm_id=farm_id,
            name="Supervisor de Turno",
            phone="+573001112233",
            email=f"supervisor.{suffix}@demo.com",
        ),
    ]

    users = [
        User(
            name="Admin Operativo",
            email=f"admin.{suffix}@empresa.com",
            password_hash=password_hash,
            status=AccountStatus.ACTIVE,
            role=GlobalRole.TENANT_USER,
            farm_id=farm_id,
            company_role=TenantRole.ADMIN,
        ),
        User(
            name="Miembro Visualizador",
            email=f"miembro.{suffix}@empresa.com",
            password_hash=password_hash,
            status=AccountStatus.ACTIVE,
            role=GlobalRole.TENANT_USER,
            farm_id=farm_id,
            company_role=TenantRole.MEMBER,
        ),
    ]

    greenhouse, silo, storage = assets
    agronomist, manager, supervisor = contacts

    rules = [
        AlertRule(
            farm_id=farm_id,
            asset_id=greenhouse.id,
            alert_type=AlertType.TEMP_MAX,
            threshold=30,
            contact_ids=[agronomist.id, manager.id],
        ),
        AlertRule(
            farm_id=farm_id,
            asset_id=greenhouse.id,
            alert_type=AlertType.TEMP_MIN,
            threshold=10,
            contact_ids=[agronomist.id],
        ),
        AlertRule(
            farm_id=farm_id,
            asset_id=silo.id,
            alert_type=AlertType.HUMIDITY_MAX,
            threshold=85,
            contact_ids=[agronomist.id, supervisor.id],
        ),
    ]

    logs = [
        AlertLog(
            farm_id=farm_id,
            asset_id=greenhouse.id,
            alert_type=AlertType.TEMP_MAX,
            value=32.5,
            notified_contacts=[agronomist.name],
            timestamp=now - timedelta(hours=2),
        ),
        AlertLog(
            farm_id=farm_id,
            asset_id=silo.id,
            alert_type=AlertType.HUMIDITY_MAX,
            value=88,
            notified_contacts=[supervisor.name],
            timestamp=now - timedelta(hours=12),
        ),
        AlertLog(
            farm_id=farm_id,
            asset_id=greenhouse.id,
            alert_type=AlertType.TEMP_MIN,
            value=8.5,
            notified_contacts=[agronomist.name],
            timestamp=now - timedelta(hours=24),
        ),
        AlertLog(
            farm_id=farm_id,
            asset_id=storage.id,
            alert_type=AlertType.TEMP_MAX,
            value=29.0,
            notified_contacts=[manager.name],
            timestamp=now - timedelta(hours=48),
        ),
    ]

    return SeedBundle(assets=assets, contacts=contacts, users=users, rules=rules, logs=logs)
