"""Build output path contract.

The build executor writes its outputs to these locations and the artifact
publisher reads them from the same object, so the two can never disagree
about where a job's outputs live.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ci_release.types import JobSpec


@dataclass(frozen=True)
class BuildOutputPaths:
    """Deterministic output locations of a release build.

    Attributes:
        release_dir: target/<toolchain>/release
        binary: release_dir/<binary><ext>
        manpages: release_dir/manpages
        completions: release_dir/completions
    """

    release_dir: Path
    binary: Path
    manpages: Path
    completions: Path

    @classmethod
    def for_job(cls, workspace: Path, job: JobSpec, binary: str) -> BuildOutputPaths:
        """Compute the output paths for a job."""
        release_dir = workspace / "target" / job.toolchain / "release"
        return cls(
            release_dir=release_dir,
            binary=release_dir / f"{binary}{job.ext}",
            manpages=release_dir / "manpages",
            completions=release_dir / "completions",
        )


__all__ = ["BuildOutputPaths"]
