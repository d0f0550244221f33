"""Build runner for the test and release build stages.

This module handles:
- Composing cargo test/build commands for a target triple
- Executing each stage with output captured to a per-stage log
- Enforcing stage timeouts
- Gating the build on a passing test stage
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ci_release.builds.paths import BuildOutputPaths
from ci_release.errors import BUILD_FAILED, BUILD_TIMEOUT, TEST_FAILED, BuildError
from ci_release.process import run_logged_command
from ci_release.types import JobSpec, Stage

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Result of one executed stage.

    Attributes:
        stage: Stage that ran.
        exit_code: Process exit code.
        log_path: Path to the stage log file.
        started_at: Stage start time.
        finished_at: Stage finish time.
        command: The command that was executed.
    """

    stage: Stage
    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str


@dataclass
class BuildResult:
    """Result of the test and build stages of one job."""

    test: StageResult
    build: StageResult
    outputs: BuildOutputPaths


def compose_cargo_command(
    subcommand: str,
    target: str,
    release: bool = True,
    all_features: bool = True,
) -> list[str]:
    """Compose a cargo command.

    Args:
        subcommand: Cargo subcommand ('test' or 'build').
        target: Target triple.
        release: Build with the release profile.
        all_features: Enable all crate features.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = ["cargo", subcommand]
    if release:
        cmd.append("--release")
    if all_features:
        cmd.append("--all-features")
    cmd.extend(["--target", target])
    return cmd


def run_stage(
    stage: Stage,
    cmd: list[str],
    workspace: Path,
    log_path: Path,
    timeout: int | None = None,
    job: JobSpec | None = None,
    env: dict[str, str] | None = None,
) -> StageResult:
    """Execute one stage command.

    Args:
        stage: Stage being run (Stage.TEST or Stage.BUILD).
        cmd: Command to execute.
        workspace: Working directory.
        log_path: Stage log file.
        timeout: Timeout in seconds (None = no timeout).
        job: Job the stage belongs to, for error reports.
        env: Environment overrides for the stage command.

    Returns:
        StageResult for a zero exit.

    Raises:
        BuildError: On non-zero exit, timeout, or failure to start.
    """
    failed_code = TEST_FAILED if stage == Stage.TEST else BUILD_FAILED

    try:
        result = run_logged_command(
            cmd, cwd=workspace, log_path=log_path, timeout=timeout, env_override=env
        )
    except subprocess.TimeoutExpired as e:
        raise BuildError(
            f"{stage.value} stage timed out after {timeout} seconds",
            stage=stage,
            exit_code=-1,
            log_path=str(log_path),
            code=BUILD_TIMEOUT,
            job=job,
        ) from e
    except OSError as e:
        raise BuildError(
            f"Failed to execute {stage.value} stage: {e}",
            stage=stage,
            log_path=str(log_path),
            code=failed_code,
            job=job,
        ) from e

    if not result.success:
        raise BuildError(
            f"{stage.value} stage failed with exit code {result.exit_code}",
            stage=stage,
            exit_code=result.exit_code,
            log_path=str(log_path),
            code=failed_code,
            job=job,
        )

    return StageResult(
        stage=stage,
        exit_code=result.exit_code,
        log_path=log_path,
        started_at=result.started_at,
        finished_at=result.finished_at,
        command=result.command,
    )


def run_test_and_build(
    job: JobSpec,
    workspace: Path,
    logs_dir: Path,
    binary: str,
    test_timeout: int | None = None,
    build_timeout: int | None = None,
    env: dict[str, str] | None = None,
) -> BuildResult:
    """Run the test stage and, only if it passes, the release build.

    Args:
        job: Job to build.
        workspace: Source tree root.
        logs_dir: Directory receiving test.log and build.log.
        binary: Binary name, without extension.
        test_timeout: Test stage timeout in seconds.
        build_timeout: Build stage timeout in seconds.
        env: Environment overrides (the job's CARGO_HOME).

    Returns:
        BuildResult with both stage results and the output paths.

    Raises:
        BuildError: If either stage fails; a test failure means the build
            command is never executed.
    """
    test = run_stage(
        Stage.TEST,
        compose_cargo_command("test", job.toolchain),
        workspace,
        logs_dir / "test.log",
        timeout=test_timeout,
        job=job,
        env=env,
    )
    build = run_stage(
        Stage.BUILD,
        compose_cargo_command("build", job.toolchain),
        workspace,
        logs_dir / "build.log",
        timeout=build_timeout,
        job=job,
        env=env,
    )

    outputs = BuildOutputPaths.for_job(workspace, job, binary)
    logger.info("Build finished for %s: %s", job.job_id, outputs.binary)
    return BuildResult(test=test, build=build, outputs=outputs)


class CargoExecutor:
    """Build executor running cargo in a job's workspace."""

    def __init__(
        self,
        binary: str,
        test_timeout: int | None = None,
        build_timeout: int | None = None,
    ) -> None:
        self.binary = binary
        self.test_timeout = test_timeout
        self.build_timeout = build_timeout

    def run(
        self,
        job: JobSpec,
        workspace: Path,
        logs_dir: Path,
        env: dict[str, str] | None = None,
    ) -> BuildResult:
        """Run the test and build stages for a job."""
        return run_test_and_build(
            job,
            workspace,
            logs_dir,
            self.binary,
            test_timeout=self.test_timeout,
            build_timeout=self.build_timeout,
            env=env,
        )


__all__ = [
    "BuildResult",
    "CargoExecutor",
    "StageResult",
    "compose_cargo_command",
    "run_stage",
    "run_test_and_build",
]
