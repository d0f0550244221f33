"""Error taxonomy for the pipeline.

Every error carries a stable ``code`` for programmatic handling, the
stage it was raised in and, once known, the dimensions of the job it
belongs to. Errors are raised by the stage modules and converted into
failed job records by the pipeline service; they never cross job
boundaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ci_release.types import Stage

if TYPE_CHECKING:
    from ci_release.types import JobSpec

CONFIGURATION_ERROR = "configuration_error"
TRIGGER_ERROR = "unsupported_event"
PROVISIONING_ERROR = "provisioning_failed"
TEST_FAILED = "test_failed"
BUILD_FAILED = "build_failed"
BUILD_TIMEOUT = "build_timeout"
ARTIFACT_MISSING = "artifact_missing"
RELEASE_AUTH_ERROR = "release_auth"
RELEASE_ERROR = "release_failed"
CACHE_ERROR = "cache_error"


class PipelineError(Exception):
    """Base error for pipeline operations."""

    default_code = "pipeline_error"
    default_stage: Stage | None = None

    def __init__(
        self,
        message: str,
        code: str | None = None,
        stage: Stage | None = None,
        job: JobSpec | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.stage = stage or self.default_stage
        self.job = job

    def describe(self) -> str:
        """Return a one-line report naming the stage and job dimensions."""
        parts = [f"[{self.code}]"]
        if self.stage is not None:
            parts.append(f"stage={self.stage.value}")
        if self.job is not None:
            dims = ", ".join(f"{k}={v!r}" for k, v in self.job.dimensions().items())
            parts.append(f"job=({dims})")
        parts.append(str(self))
        return " ".join(parts)


class ConfigurationError(PipelineError):
    """Raised for a malformed workflow or matrix, before any job starts."""

    default_code = CONFIGURATION_ERROR


class TriggerError(ConfigurationError):
    """Raised when an event type is not one the pipeline recognizes."""

    default_code = TRIGGER_ERROR


class ProvisioningError(PipelineError):
    """Raised when toolchain or system package installation fails."""

    default_code = PROVISIONING_ERROR
    default_stage = Stage.PROVISION

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
        code: str | None = None,
        job: JobSpec | None = None,
    ) -> None:
        super().__init__(message, code=code, job=job)
        self.command = command
        self.exit_code = exit_code


class BuildError(PipelineError):
    """Raised when the test or build stage exits non-zero or times out."""

    default_code = BUILD_FAILED
    default_stage = Stage.BUILD

    def __init__(
        self,
        message: str,
        stage: Stage,
        exit_code: int | None = None,
        log_path: str | None = None,
        code: str | None = None,
        job: JobSpec | None = None,
    ) -> None:
        super().__init__(message, code=code, stage=stage, job=job)
        self.exit_code = exit_code
        self.log_path = log_path


class ArtifactMissingError(PipelineError):
    """Raised when a declared artifact bundle resolves to zero files."""

    default_code = ARTIFACT_MISSING
    default_stage = Stage.ARTIFACTS

    def __init__(
        self,
        bundle_name: str,
        root_path: str,
        job: JobSpec | None = None,
    ) -> None:
        super().__init__(
            f"No files were found with the provided path: {root_path} "
            f"(bundle '{bundle_name}')",
            job=job,
        )
        self.bundle_name = bundle_name
        self.root_path = root_path


class ReleaseAuthError(PipelineError):
    """Raised when the release token is missing or rejected."""

    default_code = RELEASE_AUTH_ERROR
    default_stage = Stage.RELEASE


class ReleasePublishError(PipelineError):
    """Raised when the release backend fails for reasons other than auth."""

    default_code = RELEASE_ERROR
    default_stage = Stage.RELEASE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        job: JobSpec | None = None,
    ) -> None:
        super().__init__(message, code=code, job=job)
        self.status_code = status_code


class CacheError(PipelineError):
    """Raised when a cache entry cannot be read or written."""

    default_code = CACHE_ERROR


__all__ = [
    "ARTIFACT_MISSING",
    "BUILD_FAILED",
    "BUILD_TIMEOUT",
    "CACHE_ERROR",
    "CONFIGURATION_ERROR",
    "PROVISIONING_ERROR",
    "RELEASE_AUTH_ERROR",
    "RELEASE_ERROR",
    "TEST_FAILED",
    "TRIGGER_ERROR",
    "ArtifactMissingError",
    "BuildError",
    "CacheError",
    "ConfigurationError",
    "PipelineError",
    "ProvisioningError",
    "ReleaseAuthError",
    "ReleasePublishError",
    "TriggerError",
]
