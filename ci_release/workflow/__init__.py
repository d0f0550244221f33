"""Workflow definition module.

This module handles:
- Loading and validating workflow definitions (YAML/JSON)
- Resolving the build matrix into JobSpecs
- Matching source-control events against the workflow triggers
"""

from ci_release.workflow.io import load_workflow, parse_workflow_data
from ci_release.workflow.matrix import resolve_matrix
from ci_release.workflow.schema import WorkflowSchema
from ci_release.workflow.triggers import parse_event, should_run

__all__ = [
    "WorkflowSchema",
    "load_workflow",
    "parse_event",
    "parse_workflow_data",
    "resolve_matrix",
    "should_run",
]
