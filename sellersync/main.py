"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from sellersync.core.config import get_settings
from sellersync.core.database import dispose_engine
from sellersync.core.exceptions import register_exception_handlers
from sellersync.core.health import router as health_router
from sellersync.core.logging import configure_logging, get_logger
from sellersync.core.middleware import RequestIdMiddleware
from sellersync.features.sync.routes import router as sync_router
from sellersync.features.sync.scheduler import start_scheduler, stop_scheduler
from sellersync.features.teardown.routes import router as teardown_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown.

    Starts the daily sync scheduler when ``scheduler_enabled`` is set and
    keeps it on ``app.state.scheduler`` for the readiness probe.

    Args:
        app: FastAPI application instance.

    Yields:
        None after startup, cleans up on shutdown.
    """
    settings = get_settings()

    # Startup
    configure_logging()
    logger.info(
        "app.startup_started",
        app_name=settings.app_name,
        app_env=settings.app_env,
        debug=settings.debug,
        scheduler_enabled=settings.scheduler_enabled,
    )
    app.state.scheduler = start_scheduler() if settings.scheduler_enabled else None

    yield

    # Shutdown
    if app.state.scheduler is not None:
        await stop_scheduler(app.state.scheduler)
    await dispose_engine()
    logger.info("app.shutdown_completed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Multi-cabinet marketplace data synchronisation service",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Middleware
    app.add_middleware(RequestIdMiddleware)

    # Exception handlers
    register_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(teardown_router)

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "sellersync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
