"""
API v1 Routes
"""

from fastapi import APIRouter

from . import admin, auth, health, invitations, tenants

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(invitations.router)
router.include_router(tenants.router)
router.include_router(admin.router)
