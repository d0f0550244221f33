"""Artifact bundles.

This module handles:
- Declaring the bundles a job publishes (binary, manpages, completions)
- Collecting the files under a bundle's root path
- Computing checksums
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from ci_release.builds.paths import BuildOutputPaths
from ci_release.types import FileInfo, JobSpec

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


@dataclass(frozen=True)
class ArtifactBundle:
    """A named set of files published together.

    Attributes:
        name: Bundle name (e.g. 'crunchy-cli_linux').
        root_path: File or directory the bundle is collected from.
    """

    name: str
    root_path: Path


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def bundles_for_job(
    outputs: BuildOutputPaths,
    job: JobSpec,
    binary: str,
) -> list[ArtifactBundle]:
    """Return the three bundles a job publishes.

    Args:
        outputs: Build output paths of the job.
        job: The job.
        binary: Binary name, without extension.

    Returns:
        Bundles in publication order: binary, manpages, completions.
    """
    return [
        ArtifactBundle(name=f"{binary}_{job.platform}", root_path=outputs.binary),
        ArtifactBundle(name="manpages", root_path=outputs.manpages),
        ArtifactBundle(name="completions", root_path=outputs.completions),
    ]


def collect_files(root: Path) -> list[FileInfo]:
    """Collect the files under a bundle root.

    A file root yields itself; a directory yields every file below it in
    sorted order; a missing root yields nothing.

    Args:
        root: Bundle root path.

    Returns:
        List of FileInfo with paths relative to the root.
    """
    if root.is_file():
        paths = [root]
        base = root.parent
    elif root.is_dir():
        paths = sorted(p for p in root.rglob("*") if p.is_file())
        base = root
    else:
        logger.debug("Bundle root does not exist: %s", root)
        return []

    files = [
        FileInfo(
            filename=path.name,
            relative_path=path.relative_to(base).as_posix(),
            size_bytes=path.stat().st_size,
            sha256=compute_file_hash(path),
        )
        for path in paths
    ]
    logger.debug("Collected %d file(s) from %s", len(files), root)
    return files


__all__ = [
    "HASH_CHUNK_SIZE",
    "ArtifactBundle",
    "bundles_for_job",
    "collect_files",
    "compute_file_hash",
]
