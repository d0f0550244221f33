"""Toolchain provisioning.

This module handles:
- Installing the compiler toolchain channel with rustup
- Adding the job's target triple
- Installing platform system packages (e.g. musl-tools on linux)

Every step checks whether its work is already done first, so provisioning
the same job twice runs no installer the second time. Installers change
host-wide state, so jobs provisioning in parallel take turns through a
lock file.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shlex
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ci_release.errors import ProvisioningError
from ci_release.process import run_logged_command
from ci_release.types import JobSpec

logger = logging.getLogger(__name__)

# Timeout for read-only status queries (seconds)
QUERY_TIMEOUT = 60


def _query(cmd: list[str]) -> subprocess.CompletedProcess[str] | None:
    """Run a status query, returning None if the tool is unavailable."""
    try:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=QUERY_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Query %s failed: %s", shlex.join(cmd), e)
        return None


def installed_targets() -> set[str]:
    """Return the target triples rustup reports as installed."""
    result = _query(["rustup", "target", "list", "--installed"])
    if result is None or result.returncode != 0:
        return set()
    return {line.strip() for line in result.stdout.splitlines() if line.strip()}


def packages_installed(packages: list[str]) -> bool:
    """Check whether dpkg reports all packages as installed."""
    if not packages:
        return True
    result = _query(["dpkg", "-s", *packages])
    return result is not None and result.returncode == 0


@contextmanager
def host_lock(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive lock on lock_path for the duration of the block.

    Args:
        lock_path: Lock file, created if missing.

    Yields:
        None when the lock is held.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o600)
    locked = False
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        locked = True
        logger.debug("Acquired provisioning lock %s", lock_path)
        yield
    finally:
        if locked:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


def _privilege_prefix() -> list[str]:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        return []
    return ["sudo"]


class ToolchainProvisioner:
    """Install the toolchain and system packages a job needs.

    Args:
        channel: Toolchain release channel (e.g. 'stable').
        system_packages: Packages to install, keyed by platform tag.
        lock_path: Lock file serializing installs on this host (None = no lock).
        timeout: Timeout for each installer command in seconds.
    """

    def __init__(
        self,
        channel: str,
        system_packages: dict[str, list[str]],
        lock_path: Path | None = None,
        timeout: int | None = None,
    ) -> None:
        self.channel = channel
        self.system_packages = system_packages
        self.lock_path = lock_path
        self.timeout = timeout

    def _run(self, cmd: list[str], log_path: Path, job: JobSpec, cwd: Path) -> None:
        cmd_str = shlex.join(cmd)
        try:
            result = run_logged_command(
                cmd, cwd=cwd, log_path=log_path, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise ProvisioningError(
                f"Provisioning command timed out after {self.timeout}s: {cmd_str}",
                command=cmd_str,
                exit_code=-1,
                job=job,
            ) from e
        except OSError as e:
            raise ProvisioningError(
                f"Failed to execute provisioning command {cmd_str}: {e}",
                command=cmd_str,
                job=job,
            ) from e

        if not result.success:
            raise ProvisioningError(
                f"Provisioning command failed with exit code {result.exit_code}: "
                f"{cmd_str}",
                command=cmd_str,
                exit_code=result.exit_code,
                job=job,
            )

    def install(self, job: JobSpec, log_path: Path, workspace: Path) -> None:
        """Provision everything a job needs.

        Args:
            job: Job to provision for.
            log_path: Provisioning log file.
            workspace: Working directory for installer commands.

        Raises:
            ProvisioningError: If any installer command fails.
        """
        if self.lock_path is None:
            self._install(job, log_path, workspace)
            return
        with host_lock(self.lock_path):
            self._install(job, log_path, workspace)

    def _install(self, job: JobSpec, log_path: Path, workspace: Path) -> None:
        packages = self.system_packages.get(job.platform, [])
        if packages:
            if packages_installed(packages):
                logger.info("System packages already installed: %s", packages)
            else:
                self._run(
                    [*_privilege_prefix(), "apt-get", "install", "-y", *packages],
                    log_path,
                    job,
                    workspace,
                )

        self._run(
            ["rustup", "toolchain", "install", self.channel, "--profile", "minimal"],
            log_path,
            job,
            workspace,
        )

        if job.toolchain in installed_targets():
            logger.info("Target %s already installed", job.toolchain)
        else:
            self._run(
                ["rustup", "target", "add", "--toolchain", self.channel, job.toolchain],
                log_path,
                job,
                workspace,
            )

        logger.info("Toolchain ready for %s", job.job_id)


__all__ = [
    "ToolchainProvisioner",
    "host_lock",
    "installed_targets",
    "packages_installed",
]
