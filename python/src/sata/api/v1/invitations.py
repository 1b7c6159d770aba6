"""
Invitation endpoints.

Validation and redemption are public (the token is the credential);
issuing and resending require an authenticated owner, tenant admin or
platform admin.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr

from ...core.results import AccountView, InvitationClaims, InvitationTicket
from ...models import GlobalRole, TenantRole, User
from ...services.container import ServiceContainer
from ...services.invitation import InviterContext, Recipient, extract_invitation_token
from ..deps import get_container, get_current_account, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])


class InviteRequest(BaseModel):
    name: str
    email: EmailStr
    role: GlobalRole = GlobalRole.TENANT_USER
    tenant_role: Optional[TenantRole] = None
    tenant_id: Optional[str] = None


class RedeemRequest(BaseModel):
    token: str
    password: str


@router.get("/validate", response_model=InvitationClaims)
async def validate_invitation(
    token: Optional[str] = Query(None),
    url: Optional[str] = Query(None, description="Full invitation link, as pasted by the user"),
    container: ServiceContainer = Depends(get_container),
) -> InvitationClaims:
    if token is None and url is not None:
        token = extract_invitation_token(url) or ""
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Se requiere el token o el enlace de invitación.",
        )
    return unwrap(await container.invitations.validate(token))


@router.post("/redeem", response_model=AccountView)
async def redeem_invitation(
    body: RedeemRequest,
    container: ServiceContainer = Depends(get_container),
) -> AccountView:
    return unwrap(await container.invitations.redeem(body.token, body.password))


@router.post("", response_model=InvitationTicket, status_code=status.HTTP_201_CREATED)
async def issue_invitation(
    body: InviteRequest,
    account: User = Depends(get_current_account),
    container: ServiceContainer = Depends(get_container),
) -> InvitationTicket:
    recipient = Recipient(**body.model_dump())
    return unwrap(
        await container.invitations.issue(InviterContext.from_user(account), recipient)
    )


@router.post("/{account_id}/resend", response_model=InvitationTicket)
async def resend_invitation(
    account_id: str,
    account: User = Depends(get_current_account),
    container: ServiceContainer = Depends(get_container),
) -> InvitationTicket:
    return unwrap(
        await container.invitations.resend(InviterContext.from_user(account), account_id)
    )
