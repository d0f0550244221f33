"""Configuration settings for ci_release.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

The release token is deliberately not a setting: only the name of the
environment variable holding it is configurable.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_state_dir() -> Path:
    """Return the default state directory."""
    return Path.home() / ".local" / "share" / "ci-release"


def _default_cache_dir() -> Path:
    """Return the default dependency cache directory."""
    return Path.home() / ".cache" / "ci-release" / "deps"


def _default_artifacts_dir() -> Path:
    """Return the default artifact storage directory."""
    return _default_state_dir() / "artifacts"


def _default_logs_dir() -> Path:
    """Return the default stage log directory."""
    return _default_state_dir() / "logs"


def _default_work_dir() -> Path:
    """Return the default root for per-job working directories."""
    return _default_state_dir() / "work"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = _default_state_dir() / "runs.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the CI_RELEASE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="CI_RELEASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    workspace_dir: Path = Field(
        default_factory=Path.cwd,
        description="Checked-out source tree the pipeline builds",
    )
    workflow_file: Path = Field(
        default=Path("pipeline.yaml"),
        description="Workflow definition (relative to workspace_dir if not absolute)",
    )
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for dependency cache entries",
    )
    artifacts_dir: Path = Field(
        default_factory=_default_artifacts_dir,
        description="Root directory for published artifact bundles",
    )
    logs_dir: Path = Field(
        default_factory=_default_logs_dir,
        description="Root directory for per-stage logs",
    )
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for per-job source copies and homes",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for run history",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Concurrency
    max_parallel_jobs: int | None = Field(
        default=None,
        ge=1,
        description="Maximum jobs run at once (unset = one worker per job)",
    )

    # Timeouts (in seconds)
    provision_timeout: int = Field(
        default=1800,
        ge=60,
        description="Timeout for each toolchain provisioning command",
    )
    test_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for the test stage",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for the release build stage",
    )
    http_timeout: int = Field(
        default=120,
        ge=1,
        description="Timeout for release API requests",
    )

    # Release hosting
    release_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the release hosting API",
    )
    repository: str | None = Field(
        default=None,
        description="Repository in owner/name form that receives releases",
    )
    token_env: str = Field(
        default="GITHUB_TOKEN",
        description="Name of the environment variable holding the release token",
    )

    def resolve_workflow_file(self) -> Path:
        """Return the workflow file path anchored at the workspace."""
        if self.workflow_file.is_absolute():
            return self.workflow_file
        return self.workspace_dir / self.workflow_file


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
