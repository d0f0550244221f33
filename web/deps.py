"""Request dependencies for the web API.

Route handlers receive the run history session factory from app state
and the settings through get_app_settings, which tests override.
"""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from ci_release.config import Settings, get_settings
from ci_release.db import get_session


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Return the session factory the lifespan stored on app state."""
    factory: sessionmaker[Session] = request.app.state.session_factory
    return factory


def get_app_settings() -> Settings:
    return get_settings()


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Yield a session that commits when the request succeeds."""
    with get_session(session_factory) as session:
        yield session
