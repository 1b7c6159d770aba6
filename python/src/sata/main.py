"""
FastAPI application entry point.

Provides:
- Portal login, step-up verification and company registration
- Invitation issue, validation and redemption
- Tenant deletion and account administration
- Health check and Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from sentry_sdk.integrations.fastapi import FastApiIntegration

from . import __version__
from .api.v1 import health
from .api.v1 import router as api_v1_router
from .core.config import Settings, settings as default_settings
from .middleware.auth import SessionAuthMiddleware
from .services.container import ServiceContainer

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def init_sentry(settings: Settings) -> None:
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, skipping initialization")
        return
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


def create_app(settings: Optional[Settings] = None, **container_overrides: Any) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment-loaded ones)
        **container_overrides: Passed to ``ServiceContainer.build`` (backend,
            passwords, mail_transport)
    """
    settings = settings or default_settings
    configure_logging(settings)
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info("Starting SATA identity API...")
        app.state.container = await ServiceContainer.build(settings, **container_overrides)
        logger.info("API started successfully")

        yield

        logger.info("Shutting down SATA identity API...")
        await app.state.container.close()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="SATA Identity API",
        description="Identity, authorization and tenant lifecycle for SATA",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS is added last so it is outermost
    app.add_middleware(SessionAuthMiddleware, api_prefix=settings.API_V1_PREFIX)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.mount("/metrics", make_asgi_app())

    app.include_router(health.router)
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sata.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=default_settings.LOG_LEVEL.lower(),
    )
