"""Subprocess execution with log capture.

Every external command the pipeline runs (toolchain installers, the test
and build commands) goes through run_logged_command(), which appends the
command's combined stdout/stderr to a log file framed by a header and a
footer recording the command, working directory, timestamps, exit code
and duration.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of one logged command.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code.
        log_path: Log file the output was appended to.
        started_at: Start time.
        finished_at: Finish time.
    """

    command: str
    exit_code: int
    log_path: Path
    started_at: datetime
    finished_at: datetime

    @property
    def success(self) -> bool:
        """Check if the command exited with status zero."""
        return self.exit_code == 0


def run_logged_command(
    cmd: list[str],
    cwd: Path,
    log_path: Path,
    timeout: int | None = None,
    env_override: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command, appending its output to a log file.

    Args:
        cmd: Command as a list of strings.
        cwd: Working directory.
        log_path: Log file (created with parents if needed).
        timeout: Timeout in seconds (None = no timeout).
        env_override: Optional environment variable overrides.

    Returns:
        CommandResult; a non-zero exit is reported, not raised.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds the timeout.
        OSError: If the command cannot be started.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s", cmd_str)

    env: dict[str, str] | None = None
    if env_override:
        env = dict(os.environ)
        env.update(env_override)

    started_at = datetime.now(timezone.utc)
    with log_path.open("a") as log_file:
        log_file.write(f"# Command: {cmd_str}\n")
        log_file.write(f"# Started: {started_at.isoformat()}\n")
        log_file.write(f"# CWD: {cwd}\n")
        log_file.write("# " + "=" * 70 + "\n\n")
        log_file.flush()

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
            raise

        finished_at = datetime.now(timezone.utc)
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {result.returncode}\n")
        log_file.write(f"# Duration: {duration:.1f}s\n\n")

    if result.returncode != 0:
        logger.error(
            "Command exited with %d: %s. See log: %s",
            result.returncode,
            cmd_str,
            log_path,
        )

    return CommandResult(
        command=cmd_str,
        exit_code=result.returncode,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
    )


__all__ = ["CommandResult", "run_logged_command"]
