"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. When ``embedded_worker`` is enabled the
build scheduler runs on the application's event loop.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sitedeploy import __version__
from sitedeploy.config import Settings, get_settings
from sitedeploy.db import create_all_tables, get_engine, get_session_factory
from sitedeploy.logconfig import configure_logging
from sitedeploy.worker.scheduler import Scheduler
from web.routers import apps, config, deploy, deployments, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Initializes database tables on startup and runs the embedded scheduler
    for the lifetime of the application.
    """
    settings: Settings | None = getattr(app.state, "settings", None)
    if settings is None:
        settings = get_settings()
        app.state.settings = settings
    configure_logging(settings.log_level)

    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)

    scheduler: Scheduler | None = None
    if settings.embedded_worker:
        scheduler = Scheduler.from_settings(settings, app.state.session_factory)
        scheduler.start()
    app.state.scheduler = scheduler

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()
            await scheduler.wait_closed()
        engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment at startup
            if not provided.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="sitedeploy",
        description="Build submitted web source trees and serve the results",
        version=__version__,
        lifespan=lifespan,
    )
    if settings is not None:
        application.state.settings = settings

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(deploy.router, prefix="/api", tags=["deploy"])
    application.include_router(apps.router, prefix="/api/apps", tags=["apps"])
    application.include_router(deployments.router, tags=["deployments"])

    return application


# Create the default application instance
app = create_app()
