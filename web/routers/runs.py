"""Run history endpoints.

- GET /runs - List runs
- GET /runs/{id} - Get a run with its jobs
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from sqlalchemy.orm import Session

from ci_release.runs.service import RunNotFoundError, get_run, list_runs
from ci_release.types import RunStatus
from web.deps import get_db

router = APIRouter()


@router.get("")
def list_runs_endpoint(
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=500, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List runs, newest first."""
    status_filter: RunStatus | None = None
    if status:
        try:
            status_filter = RunStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in RunStatus)
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": f"Invalid status: {status}. Valid values: {valid}",
                },
            ) from None

    return [run.to_dict() for run in list_runs(db, status=status_filter, limit=limit)]


@router.get("/{run_id}")
def get_run_endpoint(
    run_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a run by ID.

    Raises:
        HTTPException: 404 if the run does not exist.
    """
    try:
        return get_run(db, run_id).to_dict()
    except RunNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": str(e)},
        ) from None
