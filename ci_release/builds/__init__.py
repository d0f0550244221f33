"""Build/test execution module.

This module handles:
- The build output path contract shared with artifact publication
- Running the test stage and, on success, the release build
"""

from ci_release.builds.paths import BuildOutputPaths
from ci_release.builds.runner import BuildResult, CargoExecutor

__all__ = ["BuildOutputPaths", "BuildResult", "CargoExecutor"]
