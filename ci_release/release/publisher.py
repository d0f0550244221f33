"""Release publication.

This module handles:
- The release descriptor (tag, name, draft, prerelease, files)
- Reading the release token from the environment
- Creating the release for a tag, or updating it in place if it exists

Jobs of one run publish to the same tag concurrently; a per-tag lock makes
the lookup and the create/update one step, so a tag gets one release.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import httpx

from ci_release.config import Settings
from ci_release.errors import ReleaseAuthError, ReleasePublishError
from ci_release.release.github import GitHubReleaseClient
from ci_release.types import ReleaseOutcome
from ci_release.workflow.schema import ReleaseSchema

logger = logging.getLogger(__name__)

_tag_locks: dict[tuple[str, str], threading.Lock] = {}
_tag_locks_guard = threading.Lock()


def tag_lock(repository: str, tag: str) -> threading.Lock:
    """Return the process-wide lock for a repository tag."""
    with _tag_locks_guard:
        return _tag_locks.setdefault((repository, tag), threading.Lock())


@dataclass
class ReleaseDescriptor:
    """What to publish. Identity is the tag."""

    tag: str
    name: str
    draft: bool = True
    prerelease: bool = False
    files: list[Path] = field(default_factory=list)

    @classmethod
    def from_schema(cls, schema: ReleaseSchema, files: list[Path]) -> ReleaseDescriptor:
        """Build a descriptor from the workflow's release section."""
        return cls(
            tag=schema.tag,
            name=schema.name,
            draft=schema.draft,
            prerelease=schema.prerelease,
            files=files,
        )

    def payload(self) -> dict[str, object]:
        """Return the API payload for create/update."""
        return {
            "tag_name": self.tag,
            "name": self.name,
            "draft": self.draft,
            "prerelease": self.prerelease,
        }


class ReleaseBackend(Protocol):
    """Destination for releases."""

    def create_or_update_draft(self, descriptor: ReleaseDescriptor) -> ReleaseOutcome:
        """Publish a release, updating it in place if its tag exists."""
        ...


def read_token(settings: Settings, environ: Mapping[str, str] | None = None) -> str:
    """Read the release token from the environment.

    Args:
        settings: Settings naming the token variable.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The token.

    Raises:
        ReleaseAuthError: If the variable is unset or empty.
    """
    env = os.environ if environ is None else environ
    token = env.get(settings.token_env, "").strip()
    if not token:
        raise ReleaseAuthError(
            f"Release token missing: environment variable {settings.token_env} is not set"
        )
    return token


def publish_release(
    client: GitHubReleaseClient,
    descriptor: ReleaseDescriptor,
) -> ReleaseOutcome:
    """Create or update the release for a tag and attach its files.

    Args:
        client: Release API client.
        descriptor: Release to publish.

    Returns:
        ReleaseOutcome.CREATED or ReleaseOutcome.UPDATED.

    Raises:
        ReleaseAuthError: If the token is rejected.
        ReleasePublishError: On any other backend failure.
    """
    existing = client.find_release(descriptor.tag)
    if existing is None:
        release = client.create_release(descriptor.payload())
        outcome = ReleaseOutcome.CREATED
    else:
        release = client.update_release(existing["id"], descriptor.payload())
        outcome = ReleaseOutcome.UPDATED

    for path in descriptor.files:
        client.upload_asset(release, path)

    logger.info(
        "Release %s %s with %d file(s)", descriptor.tag, outcome.value, len(descriptor.files)
    )
    return outcome


class GitHubReleaseBackend:
    """Release backend that talks to the hosting API.

    The token is read when a release is published, so a missing token
    fails the release stage only.
    """

    def __init__(self, settings: Settings, environ: Mapping[str, str] | None = None) -> None:
        self.settings = settings
        self.environ = environ

    def create_or_update_draft(self, descriptor: ReleaseDescriptor) -> ReleaseOutcome:
        token = read_token(self.settings, self.environ)
        if not self.settings.repository:
            raise ReleasePublishError(
                "No repository configured (set CI_RELEASE_REPOSITORY to owner/name)"
            )

        with httpx.Client() as http:
            client = GitHubReleaseClient(
                http,
                repository=self.settings.repository,
                token=token,
                api_url=self.settings.release_api_url,
                timeout=self.settings.http_timeout,
            )
            with tag_lock(self.settings.repository, descriptor.tag):
                return publish_release(client, descriptor)


__all__ = [
    "GitHubReleaseBackend",
    "ReleaseBackend",
    "ReleaseDescriptor",
    "publish_release",
    "read_token",
    "tag_lock",
]
