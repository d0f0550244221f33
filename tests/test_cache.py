"""Tests for the dependency cache: key computation and restore/save."""

import io
import tarfile
from pathlib import Path

import pytest

from ci_release.cache import (
    CacheManager,
    FilesystemCacheBackend,
    compute_cache_key,
    compute_cache_key_for_workspace,
    compute_lockfile_digest,
)
from ci_release.cache.key import find_lockfiles
from ci_release.errors import CacheError
from ci_release.types import CacheStatus


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "Cargo.lock").write_text('[[package]]\nname = "crunchy-cli"\nversion = "3.0.0"\n')
    return ws


class TestLockfileDigest:
    """Tests for compute_lockfile_digest."""

    def test_same_content_same_digest(self, tmp_path: Path) -> None:
        """Identical lockfiles in different trees give the same digest."""
        for name in ("a", "b"):
            (tmp_path / name).mkdir()
            (tmp_path / name / "Cargo.lock").write_text("same")

        assert compute_lockfile_digest(tmp_path / "a") == compute_lockfile_digest(
            tmp_path / "b"
        )

    def test_changed_content_changes_digest(self, workspace: Path) -> None:
        before = compute_lockfile_digest(workspace)
        (workspace / "Cargo.lock").write_text("changed")
        assert compute_lockfile_digest(workspace) != before

    def test_nested_lockfiles(self, workspace: Path) -> None:
        """Lockfiles anywhere below the root contribute."""
        before = compute_lockfile_digest(workspace)
        (workspace / "crates" / "lib").mkdir(parents=True)
        (workspace / "crates" / "lib" / "Cargo.lock").write_text("nested")
        assert compute_lockfile_digest(workspace) != before

    def test_build_output_ignored(self, workspace: Path) -> None:
        """Lockfiles inside target/ do not affect the digest."""
        before = compute_lockfile_digest(workspace)
        (workspace / "target" / "package").mkdir(parents=True)
        (workspace / "target" / "package" / "Cargo.lock").write_text("generated")
        assert compute_lockfile_digest(workspace) == before
        assert len(find_lockfiles(workspace, "**/Cargo.lock")) == 1

    def test_no_lockfile_is_deterministic(self, tmp_path: Path) -> None:
        assert compute_lockfile_digest(tmp_path) == compute_lockfile_digest(tmp_path)


class TestCacheKey:
    """Tests for compute_cache_key."""

    def test_same_inputs_same_key(self, workspace: Path) -> None:
        """Same lockfile on the same OS always yields the same key."""
        key1 = compute_cache_key_for_workspace("ubuntu-latest", workspace)
        key2 = compute_cache_key_for_workspace("ubuntu-latest", workspace)
        assert key1 == key2

    def test_different_lockfile_different_key(self, workspace: Path) -> None:
        key1 = compute_cache_key_for_workspace("ubuntu-latest", workspace)
        (workspace / "Cargo.lock").write_text("bumped dependency")
        key2 = compute_cache_key_for_workspace("ubuntu-latest", workspace)
        assert key1 != key2

    def test_different_os_different_key(self) -> None:
        """Different OS identifiers never share a key, even for equal digests."""
        digest = "0" * 64
        assert compute_cache_key("ubuntu-latest", digest) != compute_cache_key(
            "macos-latest", digest
        )

    def test_key_format(self) -> None:
        """Keys read as <os>-<tool>-<hash>."""
        key = compute_cache_key("Linux", "abc", tool="cargo")
        prefix, _, digest = key.rpartition("-")
        assert prefix == "Linux-cargo"
        assert len(digest) == 64


class TestFilesystemCacheBackend:
    """Tests for FilesystemCacheBackend."""

    def test_get_missing(self, tmp_path: Path) -> None:
        assert FilesystemCacheBackend(tmp_path).get("nope") is None

    def test_put_then_get(self, tmp_path: Path) -> None:
        backend = FilesystemCacheBackend(tmp_path / "cache")
        backend.put("Linux-cargo-abc", b"data")
        assert backend.get("Linux-cargo-abc") == b"data"

    def test_put_overwrites(self, tmp_path: Path) -> None:
        backend = FilesystemCacheBackend(tmp_path)
        backend.put("k", b"old")
        backend.put("k", b"new")
        assert backend.get("k") == b"new"
        assert not list(tmp_path.glob("*.tmp"))

    def test_unsafe_key_characters(self, tmp_path: Path) -> None:
        """Keys cannot escape the cache directory."""
        backend = FilesystemCacheBackend(tmp_path / "cache")
        path = backend.entry_path("../../etc/passwd")
        assert path.parent == tmp_path / "cache"


class TestCacheManager:
    """Tests for CacheManager restore/save."""

    @pytest.fixture
    def home(self, tmp_path: Path) -> Path:
        home = tmp_path / "home"
        registry = home / ".cargo" / "registry" / "cache"
        registry.mkdir(parents=True)
        (registry / "serde-1.0.crate").write_bytes(b"crate bytes")
        return home

    def _manager(self, tmp_path: Path, workspace: Path, home: Path) -> CacheManager:
        return CacheManager(
            FilesystemCacheBackend(tmp_path / "cache"),
            workspace,
            ["~/.cargo/registry/cache/", "~/.cargo/git/db/", "target/"],
            home=home,
        )

    def test_miss_then_hit(self, tmp_path: Path, workspace: Path, home: Path) -> None:
        """The first run misses; after a save the second run hits."""
        manager = self._manager(tmp_path, workspace, home)
        key = compute_cache_key_for_workspace("ubuntu-latest", workspace)

        assert manager.restore(key) == CacheStatus.MISS
        manager.save(key)
        assert manager.restore(key) == CacheStatus.HIT

    def test_restore_puts_files_back(
        self, tmp_path: Path, workspace: Path, home: Path
    ) -> None:
        (workspace / "target" / "release").mkdir(parents=True)
        (workspace / "target" / "release" / "dep.rlib").write_bytes(b"rlib")
        manager = self._manager(tmp_path, workspace, home)
        manager.save("k")

        # Fresh machine: empty home and workspace
        new_home = tmp_path / "home2"
        new_ws = tmp_path / "ws2"
        new_ws.mkdir()
        restored = self._manager(tmp_path, new_ws, new_home)

        assert restored.restore("k") == CacheStatus.HIT
        crate = new_home / ".cargo" / "registry" / "cache" / "serde-1.0.crate"
        assert crate.read_bytes() == b"crate bytes"
        assert (new_ws / "target" / "release" / "dep.rlib").read_bytes() == b"rlib"

    def test_missing_paths_skipped(self, tmp_path: Path, workspace: Path) -> None:
        """Paths that do not exist are not an error."""
        manager = self._manager(tmp_path, workspace, tmp_path / "empty-home")
        assert manager.save("k") > 0
        assert manager.restore("k") == CacheStatus.HIT

    def test_os_keys_isolated(self, tmp_path: Path, workspace: Path, home: Path) -> None:
        """An entry saved for one OS is not visible to another."""
        manager = self._manager(tmp_path, workspace, home)
        digest = compute_lockfile_digest(workspace)
        manager.save(compute_cache_key("ubuntu-latest", digest))

        assert manager.restore(compute_cache_key("macos-latest", digest)) == CacheStatus.MISS

    def test_corrupt_entry(self, tmp_path: Path, workspace: Path, home: Path) -> None:
        backend = FilesystemCacheBackend(tmp_path / "cache")
        backend.put("k", b"not a tarball")
        manager = CacheManager(backend, workspace, ["target/"], home=home)

        with pytest.raises(CacheError, match="Corrupt"):
            manager.restore("k")

    def test_traversal_rejected(self, tmp_path: Path, workspace: Path, home: Path) -> None:
        """Entries with members escaping their root are refused."""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            data = b"evil"
            info = tarfile.TarInfo("workspace/../../evil.txt")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))

        backend = FilesystemCacheBackend(tmp_path / "cache")
        backend.put("k", buffer.getvalue())
        manager = CacheManager(backend, workspace, ["target/"], home=home)

        with pytest.raises(CacheError, match="path traversal"):
            manager.restore("k")
        assert not (tmp_path / "evil.txt").exists()
