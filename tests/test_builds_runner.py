"""Tests for builds/runner.py and builds/paths.py.

Tests cargo command composition and stage execution.
Uses mocked subprocess for execution tests.
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from ci_release.builds import BuildOutputPaths, CargoExecutor
from ci_release.builds.runner import compose_cargo_command, run_stage, run_test_and_build
from ci_release.errors import BuildError
from ci_release.types import JobSpec, Stage

JOB = JobSpec(os="ubuntu-latest", toolchain="x86_64-unknown-linux-musl", platform="linux")


def _completed(code: int):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, code)

    return run


class TestComposeCargoCommand:
    """Tests for compose_cargo_command."""

    def test_release_all_features(self) -> None:
        cmd = compose_cargo_command("test", "x86_64-unknown-linux-musl")
        assert cmd == [
            "cargo",
            "test",
            "--release",
            "--all-features",
            "--target",
            "x86_64-unknown-linux-musl",
        ]

    def test_debug_default_features(self) -> None:
        cmd = compose_cargo_command("build", "t", release=False, all_features=False)
        assert cmd == ["cargo", "build", "--target", "t"]


class TestBuildOutputPaths:
    """Tests for BuildOutputPaths."""

    def test_for_job(self, tmp_path: Path) -> None:
        paths = BuildOutputPaths.for_job(tmp_path, JOB, "crunchy-cli")
        release = tmp_path / "target" / "x86_64-unknown-linux-musl" / "release"
        assert paths.release_dir == release
        assert paths.binary == release / "crunchy-cli"
        assert paths.manpages == release / "manpages"
        assert paths.completions == release / "completions"

    def test_ext_appended(self, tmp_path: Path) -> None:
        job = JobSpec(os="windows-latest", toolchain="x86_64-pc-windows-msvc", platform="windows", ext=".exe")
        paths = BuildOutputPaths.for_job(tmp_path, job, "crunchy-cli")
        assert paths.binary.name == "crunchy-cli.exe"


class TestRunStage:
    """Tests for run_stage."""

    def test_success(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs" / "test.log"
        with patch("subprocess.run", side_effect=_completed(0)):
            result = run_stage(Stage.TEST, ["cargo", "test"], tmp_path, log_path)

        assert result.exit_code == 0
        assert result.stage == Stage.TEST
        content = log_path.read_text()
        assert "# Command: cargo test" in content
        assert f"# CWD: {tmp_path}" in content
        assert "# Exit code: 0" in content
        assert "# Duration:" in content

    def test_test_failure(self, tmp_path: Path) -> None:
        with patch("subprocess.run", side_effect=_completed(101)):
            with pytest.raises(BuildError) as exc_info:
                run_stage(Stage.TEST, ["cargo", "test"], tmp_path, tmp_path / "t.log", job=JOB)

        err = exc_info.value
        assert err.code == "test_failed"
        assert err.stage == Stage.TEST
        assert err.exit_code == 101
        assert err.job == JOB

    def test_build_failure_code(self, tmp_path: Path) -> None:
        with patch("subprocess.run", side_effect=_completed(1)):
            with pytest.raises(BuildError) as exc_info:
                run_stage(Stage.BUILD, ["cargo", "build"], tmp_path, tmp_path / "b.log")
        assert exc_info.value.code == "build_failed"

    def test_timeout(self, tmp_path: Path) -> None:
        """A timeout raises BuildError with code build_timeout."""
        log_path = tmp_path / "build.log"
        with patch(
            "subprocess.run", side_effect=subprocess.TimeoutExpired(["cargo"], 5)
        ):
            with pytest.raises(BuildError) as exc_info:
                run_stage(Stage.BUILD, ["cargo", "build"], tmp_path, log_path, timeout=5)

        assert exc_info.value.code == "build_timeout"
        assert "TIMEOUT after 5 seconds" in log_path.read_text()

    def test_cannot_start(self, tmp_path: Path) -> None:
        with patch("subprocess.run", side_effect=FileNotFoundError("cargo")):
            with pytest.raises(BuildError, match="Failed to execute"):
                run_stage(Stage.TEST, ["cargo", "test"], tmp_path, tmp_path / "t.log")


class TestRunTestAndBuild:
    """Tests for the test-then-build gate."""

    def test_both_stages_run(self, tmp_path: Path) -> None:
        calls: list[list[str]] = []

        def run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0)

        with patch("subprocess.run", side_effect=run):
            result = run_test_and_build(JOB, tmp_path, tmp_path / "logs", "crunchy-cli")

        assert [c[1] for c in calls] == ["test", "build"]
        assert result.outputs.binary.name == "crunchy-cli"
        assert (tmp_path / "logs" / "test.log").exists()
        assert (tmp_path / "logs" / "build.log").exists()

    def test_test_failure_means_zero_build_invocations(self, tmp_path: Path) -> None:
        """The build command is never executed when tests fail."""
        calls: list[list[str]] = []

        def run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 101 if cmd[1] == "test" else 0)

        with patch("subprocess.run", side_effect=run):
            with pytest.raises(BuildError) as exc_info:
                run_test_and_build(JOB, tmp_path, tmp_path / "logs", "crunchy-cli")

        assert exc_info.value.stage == Stage.TEST
        assert [c[1] for c in calls] == ["test"]
        assert not (tmp_path / "logs" / "build.log").exists()

    def test_executor_uses_timeouts(self, tmp_path: Path) -> None:
        timeouts: list[int | None] = []

        def run(cmd, **kwargs):
            timeouts.append(kwargs.get("timeout"))
            return subprocess.CompletedProcess(cmd, 0)

        executor = CargoExecutor("crunchy-cli", test_timeout=100, build_timeout=200)
        with patch("subprocess.run", side_effect=run):
            executor.run(JOB, tmp_path, tmp_path / "logs")

        assert timeouts == [100, 200]

    def test_executor_passes_job_environment(self, tmp_path: Path) -> None:
        """Both stages run in the job's workspace with its CARGO_HOME."""
        seen: list[tuple[Path, str]] = []

        def run(cmd, **kwargs):
            seen.append((kwargs["cwd"], kwargs["env"]["CARGO_HOME"]))
            return subprocess.CompletedProcess(cmd, 0)

        workspace = tmp_path / "job" / "src"
        workspace.mkdir(parents=True)
        cargo_home = str(tmp_path / "job" / "home" / ".cargo")

        with patch("subprocess.run", side_effect=run):
            result = CargoExecutor("crunchy-cli").run(
                JOB, workspace, tmp_path / "logs", env={"CARGO_HOME": cargo_home}
            )

        assert seen == [(workspace, cargo_home), (workspace, cargo_home)]
        assert result.outputs.release_dir.is_relative_to(workspace)
