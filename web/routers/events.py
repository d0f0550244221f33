"""Event endpoint.

- POST /events - Deliver a source-control event (X-GitHub-Event header)

Unsupported event types and invalid workflows are rejected with 422.
Events that trigger the workflow start a run in the background and
return 202; events that do not trigger it return 200.
"""

import logging
from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    Header,
    HTTPException,
    Response,
)
from fastapi import status as http_status
from sqlalchemy.orm import Session, sessionmaker

from ci_release.config import Settings
from ci_release.db import get_session
from ci_release.errors import ConfigurationError, PipelineError
from ci_release.runs.service import run_pipeline
from ci_release.types import EventContext
from ci_release.workflow import WorkflowSchema, load_workflow, parse_event, should_run
from web.deps import get_app_settings, get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter()


def context_from_payload(event: str, payload: dict[str, Any]) -> EventContext:
    """Build an EventContext from a webhook payload.

    Raises:
        TriggerError: If the event type is not supported.
    """
    event_type = parse_event(event)
    ref = payload.get("ref")
    sha = payload.get("after")

    pull_request = payload.get("pull_request")
    if isinstance(pull_request, dict):
        head = pull_request.get("head") or {}
        ref = ref or head.get("ref")
        sha = sha or head.get("sha")

    return EventContext(event=event_type, ref=ref, sha=sha)


def execute_run(
    session_factory: sessionmaker[Session],
    settings: Settings,
    context: EventContext,
    workflow: WorkflowSchema,
) -> None:
    """Run the pipeline in its own session."""
    try:
        with get_session(session_factory) as session:
            run_pipeline(session, settings, context, workflow=workflow)
    except PipelineError as e:
        logger.error("Background run failed: %s", e.describe())
    except Exception:
        # Nothing above the task reports it, so the log is the only record
        logger.exception("Background run crashed")


@router.post("", status_code=http_status.HTTP_202_ACCEPTED)
def receive_event(
    response: Response,
    background_tasks: BackgroundTasks,
    x_github_event: str = Header(..., description="Event type"),
    payload: dict[str, Any] | None = Body(None),
    settings: Settings = Depends(get_app_settings),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Accept an event and start a run if it triggers the workflow."""
    try:
        context = context_from_payload(x_github_event, payload or {})
        workflow = load_workflow(settings.resolve_workflow_file())
    except ConfigurationError as e:
        raise HTTPException(
            status_code=422,
            detail={"code": e.code, "message": str(e)},
        ) from None

    if not should_run(workflow, context):
        response.status_code = http_status.HTTP_200_OK
        return {"triggered": False, "event": context.event.value, "ref": context.ref}

    background_tasks.add_task(execute_run, session_factory, settings, context, workflow)
    logger.info("Accepted %s event for %s", context.event.value, context.ref)
    return {"triggered": True, "event": context.event.value, "ref": context.ref}
