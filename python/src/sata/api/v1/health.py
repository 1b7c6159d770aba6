"""
Health check endpoint.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core.exceptions import BackendUnavailable
from ...services.container import ServiceContainer
from ..deps import get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)):
    """
    Reports the persistence backend chosen at startup and whether it answers.

    Returns 503 when the backend does not respond.
    """
    try:
        await container.backend.ping()
    except BackendUnavailable as e:
        logger.error(f"Health check: backend unavailable: {e.message}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "backend": container.backend.name},
        )

    return {
        "status": "healthy",
        "environment": container.settings.ENVIRONMENT,
        "backend": container.backend.name,
    }
