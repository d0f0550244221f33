"""ci-release - build, test and draft-release pipeline engine.

This package resolves a build matrix into jobs and runs each job through
dependency caching, toolchain provisioning, test/build execution, artifact
publication and draft release publication.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
