"""Dependency cache storage and restore/save.

This module handles:
- The cache backend interface (get/put bytes by key)
- A filesystem backend storing one tar.gz per key
- Packing the configured cache paths into an entry and restoring them

Entries are never deleted here; eviction belongs to the backend owner.
"""

from __future__ import annotations

import io
import logging
import os
import re
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Protocol

from ci_release.errors import CacheError
from ci_release.types import CacheStatus

logger = logging.getLogger(__name__)

# Archive prefixes mapping cache paths back to their roots
HOME_PREFIX = "home"
WORKSPACE_PREFIX = "workspace"

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._\-]")


class CacheBackend(Protocol):
    """Key-addressed storage for cache entries."""

    def get(self, key: str) -> bytes | None:
        """Return the entry for key, or None if absent."""
        ...

    def put(self, key: str, data: bytes) -> None:
        """Store (or overwrite) the entry for key."""
        ...


class FilesystemCacheBackend:
    """Cache backend storing entries as files in a directory.

    Layout:
      root/
        <key>.tar.gz
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def entry_path(self, key: str) -> Path:
        """Return the file path for a key."""
        return self.root / f"{_SAFE_KEY.sub('_', key)}.tar.gz"

    def get(self, key: str) -> bytes | None:
        path = self.entry_path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.entry_path(key)
        # Write to a temp file then rename so readers never see partial entries
        fd, tmp_name = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            Path(tmp_name).replace(path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class CacheManager:
    """Restore and save a job's dependency cache.

    Args:
        backend: Cache backend.
        workspace: Workspace root; relative cache paths resolve against it.
        paths: Paths to cache ('~' expands to home).
        home: Home directory (defaults to the current user's).
    """

    def __init__(
        self,
        backend: CacheBackend,
        workspace: Path,
        paths: list[str],
        home: Path | None = None,
    ) -> None:
        self.backend = backend
        self.workspace = workspace
        self.paths = paths
        self.home = home if home is not None else Path.home()

    def _resolve(self, entry: str) -> tuple[Path, str] | None:
        """Resolve a configured path to (absolute path, archive name)."""
        if entry.startswith("~"):
            rel = entry[1:].lstrip("/")
            path = self.home / rel
            return path, f"{HOME_PREFIX}/{rel}".rstrip("/")
        path = Path(entry)
        if path.is_absolute():
            logger.warning("Ignoring absolute cache path outside home: %s", entry)
            return None
        rel = path.as_posix().rstrip("/")
        return self.workspace / rel, f"{WORKSPACE_PREFIX}/{rel}"

    def pack(self) -> bytes:
        """Pack the configured paths into a tar.gz archive.

        Missing paths are skipped.

        Returns:
            Archive bytes.
        """
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for entry in self.paths:
                resolved = self._resolve(entry)
                if resolved is None:
                    continue
                path, arcname = resolved
                if not path.exists():
                    logger.debug("Cache path does not exist, skipping: %s", path)
                    continue
                tar.add(str(path), arcname=arcname)
        return buffer.getvalue()

    def unpack(self, data: bytes) -> None:
        """Extract an archive produced by pack() back to its roots.

        Raises:
            CacheError: If the archive is corrupt or unsafe.
        """
        with tempfile.TemporaryDirectory(prefix="ci_release_cache_") as tmp:
            tmp_dir = Path(tmp)
            try:
                with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
                    for member in tar.getmembers():
                        member_path = Path(member.name)
                        if member_path.is_absolute() or ".." in member_path.parts:
                            raise CacheError(
                                f"Refusing to restore {member.name}: path traversal detected"
                            )
                    tar.extractall(tmp_dir, filter="data")
            except tarfile.TarError as e:
                raise CacheError(f"Corrupt cache entry: {e}") from e

            for prefix, dest in (
                (HOME_PREFIX, self.home),
                (WORKSPACE_PREFIX, self.workspace),
            ):
                src = tmp_dir / prefix
                if src.exists():
                    shutil.copytree(src, dest, dirs_exist_ok=True, symlinks=True)

    def restore(self, key: str) -> CacheStatus:
        """Restore the entry for key into place.

        Args:
            key: Cache key.

        Returns:
            CacheStatus.HIT if an entry was restored, CacheStatus.MISS otherwise.
        """
        data = self.backend.get(key)
        if data is None:
            logger.info("Cache miss for key %s", key)
            return CacheStatus.MISS

        self.unpack(data)
        logger.info("Cache hit for key %s (%d bytes restored)", key, len(data))
        return CacheStatus.HIT

    def save(self, key: str) -> int:
        """Pack the configured paths and store them under key.

        Always overwrites, so a hit still refreshes the entry.

        Args:
            key: Cache key.

        Returns:
            Size of the stored entry in bytes.
        """
        data = self.pack()
        self.backend.put(key, data)
        logger.info("Saved cache entry %s (%d bytes)", key, len(data))
        return len(data)


__all__ = [
    "CacheBackend",
    "CacheManager",
    "FilesystemCacheBackend",
]
