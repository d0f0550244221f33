"""Matrix resolution.

Expands the declared matrix rows into immutable JobSpecs. All rows are
validated up front; a single malformed row fails the whole resolution
with a ConfigurationError so no job starts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from ci_release.errors import ConfigurationError
from ci_release.types import JobSpec
from ci_release.workflow.schema import MatrixEntrySchema

logger = logging.getLogger(__name__)


def _describe_validation(e: ValidationError) -> str:
    problems = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "(row)"
        problems.append(f"{loc}: {err['msg']}")
    return "; ".join(problems)


def resolve_matrix(rows: Iterable[Mapping[str, Any]]) -> list[JobSpec]:
    """Resolve matrix rows into JobSpecs, one per row.

    Args:
        rows: Matrix rows with os, toolchain, platform and optional ext.

    Returns:
        List of JobSpecs in declaration order.

    Raises:
        ConfigurationError: If the matrix is empty, a row is malformed,
            or two rows resolve to the same job id.
    """
    specs: list[JobSpec] = []
    seen: dict[str, int] = {}

    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ConfigurationError(
                f"Matrix row {index} must be a mapping, got {type(row).__name__}"
            )
        try:
            entry = MatrixEntrySchema.model_validate(dict(row))
        except ValidationError as e:
            raise ConfigurationError(
                f"Matrix row {index} is malformed: {_describe_validation(e)}"
            ) from e

        spec = JobSpec(
            os=entry.os,
            toolchain=entry.toolchain,
            platform=entry.platform,
            ext=entry.ext,
        )
        if spec.job_id in seen:
            raise ConfigurationError(
                f"Matrix rows {seen[spec.job_id]} and {index} both resolve to "
                f"job '{spec.job_id}'"
            )
        seen[spec.job_id] = index
        specs.append(spec)

    if not specs:
        raise ConfigurationError("Matrix has no rows")

    logger.info("Resolved %d job(s) from matrix", len(specs))
    return specs


__all__ = ["resolve_matrix"]
