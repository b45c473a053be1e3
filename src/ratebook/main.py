"""Ratebook - Main Application Module."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from beartype import beartype
from fastapi import FastAPI

from . import __version__
from .api.dependencies import ServiceContainer
from .api.errors import register_error_handlers
from .api.v1 import router as v1_router
from .core.config import get_settings
from .core.logging_utils import configure_logging, get_logger
from .schemas.common import APIInfo

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    settings = get_settings()
    logger.info("Starting %s %s in %s mode", settings.app_name, __version__, settings.api_env)
    yield
    logger.info("Shutting down %s", settings.app_name)


@beartype
def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built services; a fresh in-memory container otherwise

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Versioned product configuration, change sets and rating",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.services = services or ServiceContainer.build(settings)

    register_error_handlers(app)

    # Include API routers
    app.include_router(v1_router)

    # Root endpoint
    @app.get("/")
    async def root() -> APIInfo:
        """Root endpoint returning API information."""
        return APIInfo(
            name=settings.app_name,
            version=__version__,
            status="operational",
            environment=settings.api_env,
        )

    return app


# Create the application instance
app = create_app()


@beartype
def main() -> None:
    """Run the main application entry point."""
    settings = get_settings()
    configure_logging(level=settings.log_level)
    uvicorn.run(
        "ratebook.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="info" if not settings.is_production else "error",
    )


if __name__ == "__main__":
    main()
