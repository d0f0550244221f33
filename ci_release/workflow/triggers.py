"""Trigger matching.

Decides whether a workflow runs for a source-control event. Only push,
pull_request and workflow_dispatch are recognized; anything else is a
TriggerError.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from ci_release.errors import TriggerError
from ci_release.types import EventContext, TriggerEvent
from ci_release.workflow.schema import WorkflowSchema

logger = logging.getLogger(__name__)


def parse_event(name: str) -> TriggerEvent:
    """Parse an event name.

    Args:
        name: Event name as delivered by the hosting platform.

    Returns:
        TriggerEvent member.

    Raises:
        TriggerError: If the event type is not recognized.
    """
    try:
        return TriggerEvent(name.strip().lower())
    except ValueError:
        valid = ", ".join(e.value for e in TriggerEvent)
        raise TriggerError(
            f"Unsupported event type '{name}' (expected one of: {valid})"
        ) from None


@lru_cache(maxsize=256)
def branch_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a branch glob.

    '*' and '?' stop at '/', so 'feature/*' matches 'feature/a' but not
    'feature/a/b'; '**' matches across '/'. Matching is case-sensitive.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def branch_matches(branch: str | None, patterns: list[str]) -> bool:
    """Check a branch against glob patterns."""
    if branch is None:
        return False
    return any(branch_pattern(p).fullmatch(branch) for p in patterns)


def should_run(workflow: WorkflowSchema, context: EventContext) -> bool:
    """Check whether the workflow is triggered by an event.

    Args:
        workflow: Workflow definition.
        context: Event that occurred.

    Returns:
        True if the workflow should run.
    """
    triggers = workflow.triggers

    if context.event == TriggerEvent.PUSH:
        if triggers.push is None:
            return False
        matched = branch_matches(context.branch, triggers.push.branches)
        if not matched:
            logger.info(
                "Push to %s does not match branches %s",
                context.branch,
                triggers.push.branches,
            )
        return matched

    if context.event == TriggerEvent.PULL_REQUEST:
        return triggers.pull_request

    return triggers.workflow_dispatch


__all__ = ["branch_matches", "branch_pattern", "parse_event", "should_run"]
