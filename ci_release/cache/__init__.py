"""Dependency cache module.

This module handles:
- Cache key computation from the OS identifier and lockfile digest
- Restoring and saving cache entries through a key-addressed backend
"""

from ci_release.cache.key import (
    compute_cache_key,
    compute_cache_key_for_workspace,
    compute_lockfile_digest,
)
from ci_release.cache.store import CacheBackend, CacheManager, FilesystemCacheBackend

__all__ = [
    "CacheBackend",
    "CacheManager",
    "FilesystemCacheBackend",
    "compute_cache_key",
    "compute_cache_key_for_workspace",
    "compute_lockfile_digest",
]
