"""
Tenant (company) endpoints.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ...core.results import DeletionReport, SeedReport
from ...models import GlobalRole, User
from ...services.container import ServiceContainer
from ..deps import get_container, get_current_account, require_roles, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])

DELETE_TENANT_PHRASE = "Eliminar empresa"


class DeleteTenantRequest(BaseModel):
    password: str
    confirmation: str


@router.delete("/{tenant_id}", response_model=DeletionReport)
async def delete_tenant(
    tenant_id: str,
    body: DeleteTenantRequest,
    account: User = Depends(get_current_account),
    container: ServiceContainer = Depends(get_container),
) -> DeletionReport:
    """Owner deletes their own company. Requires the password and the confirmation phrase."""
    if body.confirmation != DELETE_TENANT_PHRASE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Escriba '{DELETE_TENANT_PHRASE}' para confirmar.",
        )
    return unwrap(
        await container.tenants.delete_tenant_self_service(account.id, body.password, tenant_id)
    )


@router.post("/{tenant_id}/seed", response_model=SeedReport)
async def seed_tenant(
    tenant_id: str,
    force: bool = False,
    account: User = Depends(require_roles(GlobalRole.PLATFORM_ADMIN)),
    container: ServiceContainer = Depends(get_container),
) -> SeedReport:
    logger.info(f"Seeding of tenant {tenant_id} requested by {account.id} (force={force})")
    return unwrap(await container.tenants.seed_tenant(tenant_id, force=force))
