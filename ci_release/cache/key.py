"""Cache key computation for dependency caches.

This module handles:
- Content digest of the dependency lockfile(s)
- Deterministic cache key derivation from (os, tool, lockfile digest)

Identical lockfile content on the same OS always yields the same key; any
lockfile change, or a different OS identifier, yields a different key.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Schema version for cache key format; bump when cache key format changes
CACHE_KEY_SCHEMA_VERSION = "1"

# Directories never searched for lockfiles
IGNORED_DIRS = {".git", "target", "node_modules"}

HASH_CHUNK_SIZE = 64 * 1024  # 64KB


@dataclass(frozen=True)
class CacheKeyInputs:
    """Canonical representation of all cache key inputs.

    Attributes:
        schema_version: Version of cache key schema.
        os: Operating-system identifier of the job.
        tool: Tool name the cache belongs to (e.g. 'cargo').
        lockfile_digest: Content digest of the lockfile(s).
    """

    os: str
    tool: str
    lockfile_digest: str
    schema_version: str = CACHE_KEY_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def _file_sha256(path: Path) -> str:
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            sha256.update(chunk)
    return sha256.hexdigest()


def find_lockfiles(root: Path, pattern: str) -> list[Path]:
    """Find lockfiles under root matching a glob pattern.

    Args:
        root: Directory to search.
        pattern: Glob relative to root (e.g. '**/Cargo.lock').

    Returns:
        Sorted list of matching files.
    """
    matches = []
    for path in root.glob(pattern):
        if not path.is_file():
            continue
        rel_parts = path.relative_to(root).parts
        if any(part in IGNORED_DIRS for part in rel_parts[:-1]):
            continue
        matches.append(path)
    return sorted(matches)


def compute_lockfile_digest(root: Path, pattern: str = "**/Cargo.lock") -> str:
    """Compute the content digest of all lockfiles matching a pattern.

    The digest covers each file's relative path and contents, in sorted
    order, so it does not depend on filesystem iteration order.

    Args:
        root: Workspace root.
        pattern: Lockfile glob relative to root.

    Returns:
        SHA-256 hex digest.
    """
    lockfiles = find_lockfiles(root, pattern)
    if not lockfiles:
        logger.warning("No lockfile matching %s under %s", pattern, root)

    entries = [
        [path.relative_to(root).as_posix(), _file_sha256(path)] for path in lockfiles
    ]
    canonical_json = json.dumps(entries, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def compute_cache_key(os: str, lockfile_digest: str, tool: str = "cargo") -> str:
    """Compute a cache key from the OS identifier and lockfile digest.

    The key is human-readable (`<os>-<tool>-<hash>`) and the hash itself
    also covers the OS, so entries for different OS identifiers can never
    collide even if their lockfile digests do.

    Args:
        os: Operating-system identifier.
        lockfile_digest: Digest returned by compute_lockfile_digest().
        tool: Tool name embedded in the key.

    Returns:
        Cache key string.
    """
    inputs = CacheKeyInputs(os=os, tool=tool, lockfile_digest=lockfile_digest)
    canonical_json = json.dumps(
        inputs.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
    return f"{os}-{tool}-{digest}"


def compute_cache_key_for_workspace(
    os: str,
    workspace: Path,
    pattern: str = "**/Cargo.lock",
    tool: str = "cargo",
) -> str:
    """Convenience function computing the key directly from a workspace.

    Args:
        os: Operating-system identifier.
        workspace: Workspace root.
        pattern: Lockfile glob.
        tool: Tool name embedded in the key.

    Returns:
        Cache key string.
    """
    return compute_cache_key(os, compute_lockfile_digest(workspace, pattern), tool)


__all__ = [
    "CACHE_KEY_SCHEMA_VERSION",
    "CacheKeyInputs",
    "compute_cache_key",
    "compute_cache_key_for_workspace",
    "compute_lockfile_digest",
    "find_lockfiles",
]
