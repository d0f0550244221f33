"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from ci_release import __version__
from ci_release.db import database_reachable
from web.deps import get_session_factory

router = APIRouter()


@router.get("/health")
def health(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Report service status and whether run history is reachable."""
    database = "ok" if database_reachable(session_factory) else "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": __version__,
        "database": database,
    }


@router.get("/")
def root() -> dict[str, str]:
    return {"name": "CI Release API", "version": __version__}
