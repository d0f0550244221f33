"""Artifact publication.

Publishing a bundle whose root yields no files is an error: a job never
reports success with an empty bundle.
"""

from __future__ import annotations

import logging

from ci_release.artifacts.bundles import ArtifactBundle, collect_files
from ci_release.artifacts.store import ArtifactStore, StoredBundle
from ci_release.errors import ArtifactMissingError
from ci_release.types import JobSpec

logger = logging.getLogger(__name__)


def publish_bundle(
    store: ArtifactStore,
    run_id: str,
    bundle: ArtifactBundle,
    job: JobSpec | None = None,
) -> StoredBundle:
    """Collect and store one bundle.

    Args:
        store: Artifact store.
        run_id: Run the bundle belongs to.
        bundle: Bundle to publish.
        job: Job publishing the bundle, for error reports.

    Returns:
        StoredBundle.

    Raises:
        ArtifactMissingError: If the bundle root yields no files.
    """
    files = collect_files(bundle.root_path)
    if not files:
        raise ArtifactMissingError(bundle.name, str(bundle.root_path), job=job)
    logger.debug("Publishing %d file(s) for bundle %s", len(files), bundle.name)
    return store.upload(run_id, bundle.name, bundle.root_path, files)


def publish_bundles(
    store: ArtifactStore,
    run_id: str,
    bundles: list[ArtifactBundle],
    job: JobSpec | None = None,
) -> list[StoredBundle]:
    """Publish bundles in order, stopping at the first failure.

    Args:
        store: Artifact store.
        run_id: Run the bundles belong to.
        bundles: Bundles to publish.
        job: Job publishing the bundles.

    Returns:
        Stored bundles.

    Raises:
        ArtifactMissingError: If any bundle has no files.
    """
    return [publish_bundle(store, run_id, bundle, job=job) for bundle in bundles]


__all__ = ["publish_bundle", "publish_bundles"]
