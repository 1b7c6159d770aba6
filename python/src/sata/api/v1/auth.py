"""
Authentication endpoints: portal login, step-up verification,
self-service company registration and password reset.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from ...core.results import (
    AccountView,
    PasswordResetRequested,
    Session,
    StepUpRequired,
    TenantCreated,
)
from ...models import GlobalRole
from ...services.container import ServiceContainer
from ...services.tenant import OwnerRegistration
from ..deps import get_container, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


class LoginRequest(BaseModel):
    email: str
    password: str
    portal: GlobalRole = Field(description="Portal the user is signing in through")


class StepUpRequest(BaseModel):
    challenge_id: str
    code: str


class RegisterRequest(BaseModel):
    """Company owner self-registration."""

    name: str = Field(min_length=1)
    email: EmailStr
    password: str
    company_name: str = Field(min_length=1)


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    password: str


@router.post(
    "/login",
    response_model=Session,
    responses={202: {"model": StepUpRequired}},
    summary="Sign in through a portal",
)
async def login(
    body: LoginRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Returns 200 with a session, or 202 with a step-up challenge for
    platform staff.
    """
    result = unwrap(await container.auth.authenticate(body.email, body.password, body.portal))
    if isinstance(result, StepUpRequired):
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=result.model_dump(mode="json"),
        )
    return result


@router.post("/step-up", response_model=Session, summary="Complete step-up verification")
async def step_up(
    body: StepUpRequest,
    container: ServiceContainer = Depends(get_container),
) -> Session:
    return unwrap(await container.step_up.verify(body.challenge_id, body.code))


@router.post(
    "/register",
    response_model=TenantCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Register a company and its owner",
)
async def register(
    body: RegisterRequest,
    container: ServiceContainer = Depends(get_container),
) -> TenantCreated:
    owner = OwnerRegistration(name=body.name, email=body.email, password=body.password)
    return unwrap(await container.tenants.create_tenant(owner, body.company_name))


@router.post(
    "/password-reset",
    response_model=PasswordResetRequested,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a password-reset email",
)
async def request_password_reset(
    body: PasswordResetRequest,
    container: ServiceContainer = Depends(get_container),
) -> PasswordResetRequested:
    """Always 202 with the same body, whether or not the email is registered."""
    return unwrap(await container.invitations.request_password_reset(body.email))


@router.post(
    "/password-reset/confirm",
    response_model=AccountView,
    summary="Set a new password from a reset link",
)
async def confirm_password_reset(
    body: PasswordResetConfirm,
    container: ServiceContainer = Depends(get_container),
) -> AccountView:
    return unwrap(await container.invitations.reset_password(body.token, body.password))
