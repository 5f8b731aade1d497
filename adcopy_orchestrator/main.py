"""
Ad Copy Orchestrator - Main Application Entry Point

FastAPI application hosting the resilience layer: the lifespan builds the
component container, starts the sweep scheduler, and tears everything
down on shutdown. Only operator endpoints are exposed here; business
routes live in the consuming services.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI

from adcopy_orchestrator import __version__
from adcopy_orchestrator.api.routes.health import router as health_router
from adcopy_orchestrator.container import Container, build_container
from adcopy_orchestrator.core.config import Settings, get_settings
from adcopy_orchestrator.observability.logging import configure_logging, get_logger

APP_NAME = "Ad Copy Orchestrator"
APP_DESCRIPTION = "Resilient orchestration of AI ad copy generation"

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; read from the environment by default.
        container: Pre-built container (tests); built in the lifespan otherwise.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(level=settings.log_level)
        app.state.container = container or build_container(settings)
        app.state.container.scheduler.start()
        logger.info(
            "service_started",
            service=settings.service_name,
            environment=settings.environment,
            providers=app.state.container.registry.names(),
        )

        try:
            yield
        finally:
            await app.state.container.aclose()
            app.state.container = None
            logger.info("service_stopped", service=settings.service_name)

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=__version__,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.include_router(health_router)

    @app.get("/", tags=["Info"])
    async def root() -> dict[str, Any]:
        """Basic service information."""
        return {"service": APP_NAME, "version": __version__}

    return app


app = create_app()
