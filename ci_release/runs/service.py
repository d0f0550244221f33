"""Pipeline service module.

This module provides the high-level pipeline API:
- run_pipeline(): Main entry point - trigger check, matrix fan-out, persistence
- run_job(): One job's strict stage sequence in an isolated workspace
- Run history queries

Stage order within a job is cache restore, provision, test, build,
artifacts, release; the cache is saved when the job ends whatever its
outcome. A job failure never affects its siblings.
"""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ci_release.artifacts import (
    ArtifactStore,
    FilesystemArtifactStore,
    bundles_for_job,
    publish_bundles,
)
from ci_release.builds import BuildResult, CargoExecutor
from ci_release.cache import CacheBackend, CacheManager, FilesystemCacheBackend
from ci_release.cache.key import compute_cache_key_for_workspace
from ci_release.config import Settings
from ci_release.errors import CacheError, ConfigurationError, PipelineError
from ci_release.release import GitHubReleaseBackend, ReleaseBackend, ReleaseDescriptor
from ci_release.runs.models import JobRecord, PipelineRun
from ci_release.runs.workspace import JobWorkspace
from ci_release.toolchain import ToolchainProvisioner
from ci_release.types import (
    CacheStatus,
    EventContext,
    JobOutcome,
    JobSpec,
    JobStatus,
    RunStatus,
    Stage,
)
from ci_release.workflow import WorkflowSchema, load_workflow, resolve_matrix, should_run

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "internal_error"

# Lock file under the work directory serializing toolchain installs
PROVISION_LOCK = "provision.lock"


class RunNotFoundError(Exception):
    """Raised when a run is not found."""

    def __init__(self, run_id: int, code: str = "run_not_found") -> None:
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id
        self.code = code


class Provisioner(Protocol):
    def install(self, job: JobSpec, log_path: Path, workspace: Path) -> None: ...


class Executor(Protocol):
    def run(
        self,
        job: JobSpec,
        workspace: Path,
        logs_dir: Path,
        env: dict[str, str] | None = None,
    ) -> BuildResult: ...


@dataclass
class PipelineBackends:
    """Collaborators a job runs against.

    Attributes:
        cache: Dependency cache backend.
        artifacts: Artifact store.
        provisioner: Toolchain provisioner.
        executor: Test/build executor.
        release: Release backend (None disables the release stage).
    """

    cache: CacheBackend
    artifacts: ArtifactStore
    provisioner: Provisioner
    executor: Executor
    release: ReleaseBackend | None = None


def default_backends(settings: Settings, workflow: WorkflowSchema) -> PipelineBackends:
    """Build the production backends from settings.

    Args:
        settings: Application settings.
        workflow: Workflow definition.

    Returns:
        PipelineBackends.
    """
    return PipelineBackends(
        cache=FilesystemCacheBackend(settings.cache_dir),
        artifacts=FilesystemArtifactStore(settings.artifacts_dir),
        provisioner=ToolchainProvisioner(
            workflow.toolchain_channel,
            workflow.system_packages,
            lock_path=settings.work_dir / PROVISION_LOCK,
            timeout=settings.provision_timeout,
        ),
        executor=CargoExecutor(
            workflow.binary,
            test_timeout=settings.test_timeout,
            build_timeout=settings.build_timeout,
        ),
        release=GitHubReleaseBackend(settings) if workflow.release.enabled else None,
    )


def _save_cache(manager: CacheManager, key: str, job: JobSpec) -> None:
    try:
        manager.save(key)
    except (CacheError, OSError) as e:
        logger.error("Failed to save cache for %s: %s", job.job_id, e)


def run_job(
    job: JobSpec,
    workflow: WorkflowSchema,
    backends: PipelineBackends,
    source_dir: Path,
    job_root: Path,
    run_key: str,
    logs_dir: Path,
) -> JobOutcome:
    """Run one job through every stage in its own workspace.

    The job works on a fresh copy of source_dir under job_root, with its
    own home for '~' cache paths and CARGO_HOME. The job root is removed
    once the cache has been saved.

    Args:
        job: Job to run.
        workflow: Workflow definition.
        backends: Stage collaborators.
        source_dir: Checked-out source tree (never modified).
        job_root: Directory the job's workspace is created in.
        run_key: Run identifier used for artifact storage.
        logs_dir: Directory for this job's stage logs.

    Returns:
        JobOutcome naming the first failing stage, if any.
    """
    outcome = JobOutcome(job=job, status=JobStatus.RUNNING, started_at=datetime.now())
    manager: CacheManager | None = None
    stage = Stage.CACHE_RESTORE
    logs_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Starting job %s", job.job_id)
    workspace = JobWorkspace.prepare(source_dir, job_root)

    try:
        if workflow.cache.enabled:
            outcome.cache_key = compute_cache_key_for_workspace(
                job.os, workspace.source, workflow.cache.lockfile, workflow.cache.tool
            )
            manager = CacheManager(
                backends.cache, workspace.source, workflow.cache.paths, workspace.home
            )
            try:
                outcome.cache_status = manager.restore(outcome.cache_key)
            except CacheError as e:
                logger.warning("Ignoring unusable cache entry for %s: %s", job.job_id, e)
                outcome.cache_status = CacheStatus.MISS

        stage = Stage.PROVISION
        backends.provisioner.install(job, logs_dir / "provision.log", workspace.source)

        stage = Stage.TEST
        result = backends.executor.run(job, workspace.source, logs_dir, env=workspace.env)

        stage = Stage.ARTIFACTS
        stored = publish_bundles(
            backends.artifacts,
            run_key,
            bundles_for_job(result.outputs, job, workflow.binary),
            job=job,
        )
        outcome.published_bundles = [bundle.name for bundle in stored]

        if backends.release is not None:
            stage = Stage.RELEASE
            descriptor = ReleaseDescriptor.from_schema(
                workflow.release, [result.outputs.binary]
            )
            outcome.release_outcome = backends.release.create_or_update_draft(descriptor)

        outcome.status = JobStatus.SUCCEEDED
        logger.info("Job %s succeeded", job.job_id)

    except PipelineError as e:
        if e.job is None:
            e.job = job
        if e.stage is None:
            e.stage = stage
        outcome.status = JobStatus.FAILED
        outcome.failed_stage = e.stage
        outcome.error_code = e.code
        outcome.error_message = str(e)
        logger.error("Job failed: %s", e.describe())

    finally:
        if manager is not None and outcome.cache_key is not None:
            _save_cache(manager, outcome.cache_key, job)
        workspace.remove()
        outcome.finished_at = datetime.now()

    return outcome


def _apply_outcome(record: JobRecord, outcome: JobOutcome) -> None:
    record.cache_key = outcome.cache_key
    record.cache_status = outcome.cache_status.value if outcome.cache_status else None
    record.published_bundles = list(outcome.published_bundles)
    record.release_outcome = (
        outcome.release_outcome.value if outcome.release_outcome else None
    )
    if outcome.succeeded:
        record.mark_succeeded()
    else:
        record.mark_failed(
            stage=outcome.failed_stage.value if outcome.failed_stage else None,
            code=outcome.error_code,
            message=outcome.error_message,
        )
    # The job's own clock, not the time its result was collected
    record.started_at = outcome.started_at
    if outcome.finished_at is not None:
        record.finished_at = outcome.finished_at


def _check_work_dir(settings: Settings) -> None:
    work_dir = settings.work_dir.resolve()
    if work_dir.is_relative_to(settings.workspace_dir.resolve()):
        raise ConfigurationError(
            f"Work directory {settings.work_dir} must be outside the workspace "
            f"{settings.workspace_dir}"
        )


def run_pipeline(
    session: Session,
    settings: Settings,
    context: EventContext,
    workflow: WorkflowSchema | None = None,
    backends: PipelineBackends | None = None,
) -> PipelineRun | None:
    """Run the workflow for an event.

    Each state change is committed as it happens, so the database write
    lock is only held briefly and other runs can record progress while
    this one's jobs execute.

    Args:
        session: Database session.
        settings: Application settings.
        context: Triggering event.
        workflow: Workflow definition (loaded from settings if not provided).
        backends: Stage collaborators (production defaults if not provided).

    Returns:
        The persisted PipelineRun, or None if the event does not trigger
        the workflow.

    Raises:
        ConfigurationError: If the workflow file cannot be loaded.
    """
    if workflow is None:
        workflow = load_workflow(settings.resolve_workflow_file())

    if not should_run(workflow, context):
        logger.info("Workflow %s not triggered by %s", workflow.name, context.event.value)
        return None

    run = PipelineRun(
        workflow_name=workflow.name,
        event=context.event.value,
        ref=context.ref,
        sha=context.sha,
        status=RunStatus.PENDING.value,
    )
    session.add(run)
    session.commit()

    try:
        _check_work_dir(settings)
        jobs = resolve_matrix(workflow.matrix.include)
    except ConfigurationError as e:
        logger.error("Run %d blocked: %s", run.id, e.describe())
        run.mark_failed(code=e.code, message=str(e))
        session.commit()
        return run

    if backends is None:
        backends = default_backends(settings, workflow)

    records = {job.job_id: JobRecord.for_job(job) for job in jobs}
    for job in jobs:
        record = records[job.job_id]
        record.log_dir = str(settings.logs_dir / run.run_key / job.job_id)
        run.jobs.append(record)
    run.mark_running()
    session.commit()

    workers = settings.max_parallel_jobs or len(jobs)
    run_root = settings.work_dir / run.run_key
    logger.info("Run %d: %d job(s), %d worker(s)", run.id, len(jobs), workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="job") as pool:
        futures: dict[Future[JobOutcome], JobSpec] = {
            pool.submit(
                run_job,
                job,
                workflow,
                backends,
                settings.workspace_dir,
                run_root / job.job_id,
                run.run_key,
                Path(records[job.job_id].log_dir or ""),
            ): job
            for job in jobs
        }

        for future in as_completed(futures):
            job = futures[future]
            try:
                outcome = future.result()
            except Exception as e:
                logger.exception("Job %s crashed", job.job_id)
                outcome = JobOutcome(
                    job=job,
                    status=JobStatus.FAILED,
                    error_code=INTERNAL_ERROR,
                    error_message=str(e),
                )
            _apply_outcome(records[job.job_id], outcome)
            session.commit()

    shutil.rmtree(run_root, ignore_errors=True)
    run.mark_finished()
    session.commit()
    logger.info("Run %d finished: %s", run.id, run.status)
    return run


def get_run(session: Session, run_id: int) -> PipelineRun:
    """Get a run by ID.

    Args:
        session: Database session.
        run_id: Run ID.

    Returns:
        PipelineRun instance.

    Raises:
        RunNotFoundError: If run not found.
    """
    run = session.get(PipelineRun, run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def list_runs(
    session: Session,
    status: RunStatus | None = None,
    limit: int = 50,
) -> list[PipelineRun]:
    """List runs, newest first.

    Args:
        session: Database session.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of PipelineRun instances.
    """
    stmt = select(PipelineRun)
    if status is not None:
        stmt = stmt.where(PipelineRun.status == status.value)
    stmt = stmt.order_by(PipelineRun.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "PipelineBackends",
    "RunNotFoundError",
    "default_backends",
    "get_run",
    "list_runs",
    "run_job",
    "run_pipeline",
]
