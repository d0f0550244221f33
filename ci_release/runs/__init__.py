"""Pipeline runs module.

This module handles:
- Running the workflow's jobs for an event
- Persisting run and job records
"""

from ci_release.runs.models import JobRecord, PipelineRun

__all__ = ["JobRecord", "PipelineRun"]

# Service functions live in ci_release.runs.service
