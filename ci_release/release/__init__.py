"""Release publication module."""

from ci_release.release.github import GitHubReleaseClient
from ci_release.release.publisher import (
    GitHubReleaseBackend,
    ReleaseBackend,
    ReleaseDescriptor,
    publish_release,
    read_token,
)

__all__ = [
    "GitHubReleaseBackend",
    "GitHubReleaseClient",
    "ReleaseBackend",
    "ReleaseDescriptor",
    "publish_release",
    "read_token",
]
