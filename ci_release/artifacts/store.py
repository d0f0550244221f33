"""Artifact storage.

This module handles:
- The artifact storage interface
- A filesystem store copying bundles under <root>/<run_id>/<bundle>/
- Per-bundle manifest generation

Layout:
  root/
    <run_id>/
      <bundle name>/
        manifest.json
        <files...>
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from ci_release.types import FileInfo

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


@dataclass
class StoredBundle:
    """Acknowledgement of a stored bundle."""

    name: str
    location: Path
    files: list[FileInfo]


class ArtifactStore(Protocol):
    """Destination for published bundles."""

    def upload(
        self,
        run_id: str,
        name: str,
        root_path: Path,
        files: list[FileInfo],
    ) -> StoredBundle:
        """Store files collected from root_path under a bundle name."""
        ...


def generate_manifest(
    name: str,
    files: list[FileInfo],
    run_id: str,
) -> dict[str, Any]:
    """Generate a bundle manifest.

    Args:
        name: Bundle name.
        files: Files in the bundle.
        run_id: Run the bundle belongs to.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    return {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "run_id": run_id,
        "bundle": name,
        "files": [asdict(f) for f in files],
        "summary": {
            "total_files": len(files),
            "total_size_bytes": sum(f.size_bytes for f in files),
        },
    }


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.debug("Wrote manifest to %s", output_path)
    return output_path


class FilesystemArtifactStore:
    """Artifact store backed by a local directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def bundle_dir(self, run_id: str, name: str) -> Path:
        """Return the directory a bundle is stored in."""
        return self.root / run_id / name

    def upload(
        self,
        run_id: str,
        name: str,
        root_path: Path,
        files: list[FileInfo],
    ) -> StoredBundle:
        dest = self.bundle_dir(run_id, name)
        # Re-uploading a bundle within a run replaces it
        if dest.exists():
            shutil.rmtree(dest)
        dest.mkdir(parents=True)

        base = root_path.parent if root_path.is_file() else root_path
        for info in files:
            target = dest / info.relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(base / info.relative_path, target)

        write_manifest(generate_manifest(name, files, run_id), dest / MANIFEST_FILENAME)
        logger.info("Stored bundle %s (%d file(s)) at %s", name, len(files), dest)
        return StoredBundle(name=name, location=dest, files=files)


__all__ = [
    "MANIFEST_FILENAME",
    "ArtifactStore",
    "FilesystemArtifactStore",
    "StoredBundle",
    "generate_manifest",
    "write_manifest",
]
