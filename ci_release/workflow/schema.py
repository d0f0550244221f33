"""Pydantic models for workflow definition validation.

This module defines the Pydantic models for validating workflow data
loaded from YAML/JSON files. Matrix rows are kept as raw mappings here
and validated row by row by the matrix resolver, so that a malformed
row is reported with its index.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Tags must be usable as git refs
TAG_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-/]*$")

DEFAULT_CACHE_PATHS = [
    "~/.cargo/bin/",
    "~/.cargo/registry/index/",
    "~/.cargo/registry/cache/",
    "~/.cargo/git/db/",
    "target/",
]


class PushTriggerSchema(BaseModel):
    """Schema for the push trigger.

    Attributes:
        branches: Branch names (or glob patterns) that start a run.
    """

    model_config = ConfigDict(extra="forbid")

    branches: list[str] = Field(default_factory=list)


class TriggersSchema(BaseModel):
    """Schema for the events that start a run.

    A key that is present with an empty value (``pull_request:``) enables
    the event, matching how CI definitions are usually written.
    """

    model_config = ConfigDict(extra="forbid")

    push: PushTriggerSchema | None = None
    pull_request: bool = False
    workflow_dispatch: bool = False

    @field_validator("push", mode="before")
    @classmethod
    def empty_push(cls, v: Any) -> Any:
        """Treat a bare ``push:`` key as push on any branch."""
        if v is None:
            return {"branches": ["**"]}
        return v

    @field_validator("pull_request", "workflow_dispatch", mode="before")
    @classmethod
    def empty_means_enabled(cls, v: Any) -> Any:
        """Treat a bare key (or a mapping of options) as enabled."""
        if v is None or isinstance(v, dict):
            return True
        return v


class MatrixEntrySchema(BaseModel):
    """Schema for one matrix row.

    Attributes:
        os: Runner operating-system identifier.
        toolchain: Compiler target triple.
        platform: Platform tag.
        ext: Binary filename suffix (empty for none).
    """

    model_config = ConfigDict(extra="forbid")

    os: str = Field(min_length=1)
    toolchain: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    ext: str = ""

    @field_validator("ext", mode="before")
    @classmethod
    def empty_ext(cls, v: Any) -> Any:
        """A bare ``ext:`` key means no suffix."""
        return "" if v is None else v


class MatrixSchema(BaseModel):
    """Schema for the build matrix (a flat list of rows)."""

    model_config = ConfigDict(extra="forbid")

    include: list[dict[str, Any]] = Field(default_factory=list)


class CacheSchema(BaseModel):
    """Schema for dependency caching.

    Attributes:
        enabled: Whether to restore/save the cache at all.
        paths: Paths packed into the cache entry ('~' is expanded).
        lockfile: Glob for the lockfile(s) whose digest keys the cache.
        tool: Tool name embedded in the cache key.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    paths: list[str] = Field(default_factory=lambda: list(DEFAULT_CACHE_PATHS))
    lockfile: str = "**/Cargo.lock"
    tool: str = "cargo"


class ReleaseSchema(BaseModel):
    """Schema for draft release publication.

    Attributes:
        enabled: Whether jobs publish a release at all.
        tag: Fixed release tag; repeated runs update the same release.
        name: Release display name.
        draft: Publish as draft.
        prerelease: Mark as prerelease.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    tag: str = "v1"
    name: str = "[Linux] crunchy-cli v1"
    draft: bool = True
    prerelease: bool = False

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, v: str) -> str:
        """Validate the tag is usable as a git ref."""
        if not TAG_PATTERN.match(v):
            raise ValueError(f"tag must be a valid git ref name, got '{v}'")
        return v


class WorkflowSchema(BaseModel):
    """Complete workflow definition.

    Attributes:
        name: Workflow name.
        triggers: Events that start a run.
        matrix: Build matrix rows.
        binary: Name of the primary binary produced by the build.
        toolchain_channel: Toolchain release channel to install.
        system_packages: System packages to install per platform tag.
        cache: Dependency cache settings.
        release: Draft release settings.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = "ci"
    triggers: TriggersSchema = Field(default_factory=TriggersSchema)
    matrix: MatrixSchema = Field(default_factory=MatrixSchema)
    binary: str = Field(default="crunchy-cli", min_length=1)
    toolchain_channel: str = "stable"
    system_packages: dict[str, list[str]] = Field(
        default_factory=lambda: {"linux": ["musl-tools"]}
    )
    cache: CacheSchema = Field(default_factory=CacheSchema)
    release: ReleaseSchema = Field(default_factory=ReleaseSchema)

    @field_validator("binary")
    @classmethod
    def validate_binary(cls, v: str) -> str:
        """Binary must be a bare file name."""
        if "/" in v or "\\" in v:
            raise ValueError(f"binary must be a file name, got '{v}'")
        return v


__all__ = [
    "DEFAULT_CACHE_PATHS",
    "CacheSchema",
    "MatrixEntrySchema",
    "MatrixSchema",
    "PushTriggerSchema",
    "ReleaseSchema",
    "TriggersSchema",
    "WorkflowSchema",
]
