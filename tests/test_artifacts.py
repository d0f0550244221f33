"""Tests for artifact bundles, storage and publication."""

import json
from pathlib import Path

import pytest

from ci_release.artifacts import (
    ArtifactBundle,
    FilesystemArtifactStore,
    bundles_for_job,
    collect_files,
    publish_bundle,
    publish_bundles,
)
from ci_release.artifacts.bundles import compute_file_hash
from ci_release.artifacts.store import MANIFEST_FILENAME
from ci_release.builds import BuildOutputPaths
from ci_release.errors import ArtifactMissingError
from ci_release.types import JobSpec, Stage

JOB = JobSpec(os="ubuntu-latest", toolchain="x86_64-unknown-linux-musl", platform="linux")


@pytest.fixture
def outputs(tmp_path: Path) -> BuildOutputPaths:
    """Build outputs with a binary, manpages and completions."""
    paths = BuildOutputPaths.for_job(tmp_path / "ws", JOB, "crunchy-cli")
    paths.release_dir.mkdir(parents=True)
    paths.binary.write_bytes(b"\x7fELF binary")
    paths.manpages.mkdir()
    (paths.manpages / "crunchy-cli.1").write_text(".TH CRUNCHY-CLI 1")
    (paths.manpages / "crunchy-cli-login.1").write_text(".TH LOGIN 1")
    paths.completions.mkdir()
    (paths.completions / "crunchy-cli.bash").write_text("complete -F _crunchy crunchy-cli")
    return paths


class TestBundlesForJob:
    """Tests for bundles_for_job."""

    def test_three_bundles(self, outputs: BuildOutputPaths) -> None:
        bundles = bundles_for_job(outputs, JOB, "crunchy-cli")

        assert [b.name for b in bundles] == ["crunchy-cli_linux", "manpages", "completions"]
        assert bundles[0].root_path == outputs.binary
        assert bundles[1].root_path == outputs.manpages
        assert bundles[2].root_path == outputs.completions


class TestCollectFiles:
    """Tests for collect_files."""

    def test_single_file(self, outputs: BuildOutputPaths) -> None:
        files = collect_files(outputs.binary)
        assert len(files) == 1
        assert files[0].filename == "crunchy-cli"
        assert files[0].relative_path == "crunchy-cli"
        assert files[0].size_bytes == len(b"\x7fELF binary")
        assert files[0].sha256 == compute_file_hash(outputs.binary)

    def test_directory_sorted(self, outputs: BuildOutputPaths) -> None:
        files = collect_files(outputs.manpages)
        assert [f.relative_path for f in files] == ["crunchy-cli-login.1", "crunchy-cli.1"]

    def test_nested_directory(self, tmp_path: Path) -> None:
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "b" / "x.txt").write_text("x")
        files = collect_files(tmp_path / "a")
        assert [f.relative_path for f in files] == ["b/x.txt"]

    def test_missing_root(self, tmp_path: Path) -> None:
        assert collect_files(tmp_path / "missing") == []

    def test_empty_directory(self, tmp_path: Path) -> None:
        (tmp_path / "empty").mkdir()
        assert collect_files(tmp_path / "empty") == []


class TestPublishBundle:
    """Tests for publish_bundle and the filesystem store."""

    def test_stores_file_bundle(self, tmp_path: Path, outputs: BuildOutputPaths) -> None:
        store = FilesystemArtifactStore(tmp_path / "artifacts")
        bundle = ArtifactBundle(name="crunchy-cli_linux", root_path=outputs.binary)

        stored = publish_bundle(store, "run-1", bundle, job=JOB)

        dest = tmp_path / "artifacts" / "run-1" / "crunchy-cli_linux"
        assert stored.location == dest
        assert (dest / "crunchy-cli").read_bytes() == b"\x7fELF binary"

    def test_manifest_written(self, tmp_path: Path, outputs: BuildOutputPaths) -> None:
        store = FilesystemArtifactStore(tmp_path / "artifacts")
        bundle = ArtifactBundle(name="manpages", root_path=outputs.manpages)

        stored = publish_bundle(store, "run-1", bundle)

        manifest = json.loads((stored.location / MANIFEST_FILENAME).read_text())
        assert manifest["bundle"] == "manpages"
        assert manifest["run_id"] == "run-1"
        assert manifest["summary"]["total_files"] == 2
        assert {f["filename"] for f in manifest["files"]} == {
            "crunchy-cli.1",
            "crunchy-cli-login.1",
        }

    def test_empty_bundle_is_error(self, tmp_path: Path) -> None:
        """A bundle whose root yields no files raises ArtifactMissingError."""
        store = FilesystemArtifactStore(tmp_path / "artifacts")
        (tmp_path / "completions").mkdir()
        bundle = ArtifactBundle(name="completions", root_path=tmp_path / "completions")

        with pytest.raises(ArtifactMissingError) as exc_info:
            publish_bundle(store, "run-1", bundle, job=JOB)

        err = exc_info.value
        assert err.bundle_name == "completions"
        assert err.stage == Stage.ARTIFACTS
        assert err.job == JOB
        assert not (tmp_path / "artifacts" / "run-1" / "completions").exists()

    def test_republish_replaces(self, tmp_path: Path, outputs: BuildOutputPaths) -> None:
        """Uploading a bundle twice in a run leaves only the latest files."""
        store = FilesystemArtifactStore(tmp_path / "artifacts")
        bundle = ArtifactBundle(name="manpages", root_path=outputs.manpages)
        publish_bundle(store, "run-1", bundle)

        (outputs.manpages / "crunchy-cli-login.1").unlink()
        stored = publish_bundle(store, "run-1", bundle)

        assert not (stored.location / "crunchy-cli-login.1").exists()


class TestPublishBundles:
    """Tests for publish_bundles."""

    def test_all_bundles(self, tmp_path: Path, outputs: BuildOutputPaths) -> None:
        store = FilesystemArtifactStore(tmp_path / "artifacts")
        stored = publish_bundles(store, "run-1", bundles_for_job(outputs, JOB, "crunchy-cli"))

        assert [s.name for s in stored] == ["crunchy-cli_linux", "manpages", "completions"]
        assert all(s.files for s in stored)

    def test_stops_at_empty_bundle(self, tmp_path: Path, outputs: BuildOutputPaths) -> None:
        """No bundle after an empty one is published."""
        for f in outputs.manpages.iterdir():
            f.unlink()
        store = FilesystemArtifactStore(tmp_path / "artifacts")

        with pytest.raises(ArtifactMissingError, match="manpages"):
            publish_bundles(store, "run-1", bundles_for_job(outputs, JOB, "crunchy-cli"))

        assert not (tmp_path / "artifacts" / "run-1" / "completions").exists()
