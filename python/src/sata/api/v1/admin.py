"""
Platform administration of accounts (``sata_admin`` only).

Failures carry the underlying reason verbatim.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ...core.results import AccountView, DeletionReport
from ...models import GlobalRole, User
from ...services.container import ServiceContainer
from ..deps import get_container, require_roles, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/accounts", tags=["admin"])

require_platform_admin = require_roles(GlobalRole.PLATFORM_ADMIN)

DELETE_ACCOUNT_PHRASE = "eliminar cuenta"


class DeleteAccountRequest(BaseModel):
    confirmation: str


@router.get("", response_model=List[AccountView])
async def list_accounts(
    tenant_id: Optional[str] = None,
    admin: User = Depends(require_platform_admin),
    container: ServiceContainer = Depends(get_container),
) -> List[AccountView]:
    return unwrap(await container.accounts.list_accounts(tenant_id))


@router.post("/{account_id}/block", response_model=AccountView)
async def block_account(
    account_id: str,
    admin: User = Depends(require_platform_admin),
    container: ServiceContainer = Depends(get_container),
) -> AccountView:
    logger.warning(f"Admin {admin.id} blocking account {account_id}")
    return unwrap(await container.accounts.set_blocked(account_id, True))


@router.post("/{account_id}/unblock", response_model=AccountView)
async def unblock_account(
    account_id: str,
    admin: User = Depends(require_platform_admin),
    container: ServiceContainer = Depends(get_container),
) -> AccountView:
    logger.warning(f"Admin {admin.id} unblocking account {account_id}")
    return unwrap(await container.accounts.set_blocked(account_id, False))


@router.delete("/{account_id}", response_model=DeletionReport)
async def delete_account(
    account_id: str,
    body: DeleteAccountRequest,
    admin: User = Depends(require_platform_admin),
    container: ServiceContainer = Depends(get_container),
) -> DeletionReport:
    """
    Forced deletion. Deleting a company owner deletes the whole company.
    """
    if body.confirmation != DELETE_ACCOUNT_PHRASE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Escriba '{DELETE_ACCOUNT_PHRASE}' para confirmar.",
        )
    logger.warning(f"Admin {admin.id} force-deleting account {account_id}")
    return unwrap(await container.tenants.delete_tenant_forced(account_id))
