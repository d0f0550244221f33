"""FastAPI web application for ci_release.

This module provides the HTTP API that mirrors the core services:
run history queries and an event endpoint that starts pipeline runs.

All business logic is delegated to core modules in ci_release/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
