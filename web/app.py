"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Routes are thin proxies to the core
pipeline service.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ci_release import __version__
from ci_release.config import get_settings
from ci_release.db import open_database
from web.routers import config, events, health, runs


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Initializes database tables on startup.
    """
    engine, app.state.session_factory = open_database(get_settings().db_url)
    yield
    engine.dispose()


def include_routers(application: FastAPI) -> FastAPI:
    """Attach every router to an application."""
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(runs.router, prefix="/runs", tags=["runs"])
    application.include_router(events.router, prefix="/events", tags=["events"])
    return application


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="CI Release API",
        description="HTTP API for triggering pipeline runs and inspecting run history",
        version=__version__,
        lifespan=lifespan,
    )
    return include_routers(application)


# Create the default application instance
app = create_app()
