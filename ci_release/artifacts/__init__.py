"""Artifact publication module.

This module handles:
- Declaring and collecting artifact bundles
- Storing bundles with per-bundle manifests
- Enforcing that no bundle is published empty
"""

from ci_release.artifacts.bundles import ArtifactBundle, bundles_for_job, collect_files
from ci_release.artifacts.publisher import publish_bundle, publish_bundles
from ci_release.artifacts.store import (
    ArtifactStore,
    FilesystemArtifactStore,
    StoredBundle,
)

__all__ = [
    "ArtifactBundle",
    "ArtifactStore",
    "FilesystemArtifactStore",
    "StoredBundle",
    "bundles_for_job",
    "collect_files",
    "publish_bundle",
    "publish_bundles",
]
