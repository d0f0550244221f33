"""Router modules for FastAPI web API."""

from web.routers import config, events, health, runs

__all__ = ["config", "events", "health", "runs"]
