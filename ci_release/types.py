"""Shared type definitions for ci_release.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Status of a single matrix job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Stage(str, Enum):
    """Stages of a job, in execution order."""

    CACHE_RESTORE = "cache_restore"
    PROVISION = "provision"
    TEST = "test"
    BUILD = "build"
    ARTIFACTS = "artifacts"
    RELEASE = "release"


class CacheStatus(str, Enum):
    """Outcome of a cache lookup."""

    HIT = "hit"
    MISS = "miss"


class ReleaseOutcome(str, Enum):
    """Outcome of a release publication."""

    CREATED = "created"
    UPDATED = "updated"


class TriggerEvent(str, Enum):
    """Source-control events that can start a pipeline."""

    PUSH = "push"
    PULL_REQUEST = "pull_request"
    WORKFLOW_DISPATCH = "workflow_dispatch"


@dataclass(frozen=True)
class JobSpec:
    """One resolved matrix row.

    Attributes:
        os: Runner operating-system identifier (e.g. 'ubuntu-latest').
        toolchain: Compiler target triple (e.g. 'x86_64-unknown-linux-musl').
        platform: Platform tag used in bundle names (e.g. 'linux').
        ext: Binary filename suffix (e.g. '.exe' or '').
    """

    os: str
    toolchain: str
    platform: str
    ext: str = ""

    @property
    def job_id(self) -> str:
        """Return a stable identifier for this job within a run."""
        return f"{self.platform}-{self.toolchain}"

    def dimensions(self) -> dict[str, str]:
        """Return the matrix dimensions as a plain dict."""
        return {
            "os": self.os,
            "toolchain": self.toolchain,
            "platform": self.platform,
            "ext": self.ext,
        }


@dataclass
class EventContext:
    """The source-control event a run was triggered by."""

    event: TriggerEvent
    ref: str | None = None
    sha: str | None = None

    @property
    def branch(self) -> str | None:
        """Return the branch name for branch refs."""
        if self.ref is None:
            return None
        prefix = "refs/heads/"
        return self.ref[len(prefix) :] if self.ref.startswith(prefix) else self.ref


@dataclass
class FileInfo:
    """Information about one published file."""

    filename: str
    relative_path: str
    size_bytes: int
    sha256: str


@dataclass
class JobOutcome:
    """Result of running one job."""

    job: JobSpec
    status: JobStatus
    cache_key: str | None = None
    cache_status: CacheStatus | None = None
    failed_stage: Stage | None = None
    error_code: str | None = None
    error_message: str | None = None
    release_outcome: ReleaseOutcome | None = None
    published_bundles: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        """Check if the job succeeded."""
        return self.status == JobStatus.SUCCEEDED


__all__ = [
    "CacheStatus",
    "EventContext",
    "FileInfo",
    "JobOutcome",
    "JobSpec",
    "JobStatus",
    "ReleaseOutcome",
    "RunStatus",
    "Stage",
    "TriggerEvent",
]
