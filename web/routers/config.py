"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from ci_release.config import Settings
from web.deps import get_app_settings

router = APIRouter()


@router.get("")
def get_config(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Get effective configuration.

    The release token is never part of the settings; only the name of
    the variable it is read from is shown.

    Returns:
        Current configuration as JSON.
    """
    return {
        "workspace_dir": str(settings.workspace_dir),
        "workflow_file": str(settings.resolve_workflow_file()),
        "cache_dir": str(settings.cache_dir),
        "artifacts_dir": str(settings.artifacts_dir),
        "logs_dir": str(settings.logs_dir),
        "work_dir": str(settings.work_dir),
        "db_url": settings.db_url,
        "log_level": settings.log_level,
        "max_parallel_jobs": settings.max_parallel_jobs,
        "provision_timeout": settings.provision_timeout,
        "test_timeout": settings.test_timeout,
        "build_timeout": settings.build_timeout,
        "http_timeout": settings.http_timeout,
        "release_api_url": settings.release_api_url,
        "repository": settings.repository,
        "token_env": settings.token_env,
    }
