"""Per-job working directories.

Each job gets its own root under the work directory:

  <work_dir>/<run_key>/<job_id>/
    src/    copy of the checked-out source tree
    home/   home directory for '~' cache paths and CARGO_HOME

Jobs never touch the checked-out tree or a shared home, so a restored
cache entry or a build's target/ directory stays within one job.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Build output directories never copied from the source tree
EXCLUDED_DIRS = ("target",)


@dataclass(frozen=True)
class JobWorkspace:
    """Isolated directories for one job.

    Attributes:
        root: Job root directory.
    """

    root: Path

    @property
    def source(self) -> Path:
        return self.root / "src"

    @property
    def home(self) -> Path:
        return self.root / "home"

    @property
    def env(self) -> dict[str, str]:
        """Environment overrides pointing cargo at the job's home."""
        return {"CARGO_HOME": str(self.home / ".cargo")}

    @classmethod
    def prepare(cls, source_dir: Path, root: Path) -> JobWorkspace:
        """Create a fresh job root holding a copy of the source tree.

        Any leftover root from an earlier attempt is removed first.

        Args:
            source_dir: Checked-out source tree.
            root: Job root directory.

        Returns:
            JobWorkspace.
        """
        workspace = cls(root)
        if root.exists():
            shutil.rmtree(root)
        shutil.copytree(
            source_dir,
            workspace.source,
            symlinks=True,
            ignore=shutil.ignore_patterns(*EXCLUDED_DIRS),
        )
        workspace.home.mkdir(parents=True)
        logger.debug("Prepared job workspace %s", root)
        return workspace

    def remove(self) -> None:
        """Delete the job root."""
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove job workspace %s: %s", self.root, e)


__all__ = ["JobWorkspace"]
