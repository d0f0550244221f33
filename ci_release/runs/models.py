"""Run history ORM models.

A PipelineRun records one triggered execution of the workflow; each of
its JobRecords records one matrix job: its dimensions, cache outcome,
first failing stage and release outcome.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ci_release.db import Base
from ci_release.types import JobSpec, JobStatus, RunStatus


class PipelineRun(Base):
    """ORM model for a pipeline run.

    Attributes:
        id: Primary key; also names the run's log and artifact directories.
        workflow_name: Name of the workflow that ran.
        event: Triggering event type.
        ref: Git ref of the event, if any.
        sha: Commit SHA of the event, if any.
        status: Run status (pending, running, succeeded, failed).
        error_code: Error code if the run failed before any job started.
        error_message: Error message for such failures.
        requested_at: Timestamp when the run was requested.
        started_at: Timestamp when jobs started.
        finished_at: Timestamp when the last job finished.
    """

    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    workflow_name: Mapped[str] = mapped_column(String(255), nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sha: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RunStatus.PENDING.value, index=True
    )
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    jobs: Mapped[list["JobRecord"]] = relationship(
        "JobRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="JobRecord.id",
    )

    def __repr__(self) -> str:
        """Return string representation of PipelineRun."""
        return f"<PipelineRun(id={self.id}, event='{self.event}', status='{self.status}')>"

    @property
    def run_key(self) -> str:
        """Return the directory name used for this run's logs and artifacts."""
        return f"run-{self.id}"

    def mark_running(self) -> None:
        """Mark this run as running."""
        self.status = RunStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_finished(self) -> None:
        """Derive the final status from the jobs."""
        failed = any(job.status != JobStatus.SUCCEEDED.value for job in self.jobs)
        self.status = (
            RunStatus.FAILED.value if failed or not self.jobs else RunStatus.SUCCEEDED.value
        )
        self.finished_at = datetime.now()

    def mark_failed(self, code: str | None = None, message: str | None = None) -> None:
        """Mark this run as failed before any job started.

        Args:
            code: Error code.
            message: Error message details.
        """
        self.status = RunStatus.FAILED.value
        self.finished_at = datetime.now()
        if code:
            self.error_code = code
        if message:
            self.error_message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "workflow_name": self.workflow_name,
            "event": self.event,
            "ref": self.ref,
            "sha": self.sha,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "jobs": [job.to_dict() for job in self.jobs],
        }


class JobRecord(Base):
    """ORM model for one matrix job of a run.

    Attributes:
        id: Primary key.
        run_id: Foreign key to PipelineRun.
        job_id: Job identifier within the run.
        os, toolchain, platform, ext: Matrix dimensions.
        status: Job status.
        cache_key: Dependency cache key.
        cache_status: Cache lookup outcome (hit/miss).
        failed_stage: First failing stage, if any.
        error_code: Error code of the failure.
        error_message: Error message of the failure.
        release_outcome: created/updated, if the release stage ran.
        published_bundles: Names of the bundles stored.
        log_dir: Directory holding the job's stage logs.
    """

    __tablename__ = "job_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("pipeline_runs.id"), nullable=False, index=True
    )
    job_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Dimensions
    os: Mapped[str] = mapped_column(String(100), nullable=False)
    toolchain: Mapped[str] = mapped_column(String(100), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    ext: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value, index=True
    )

    cache_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cache_status: Mapped[str | None] = mapped_column(String(10), nullable=True)

    failed_stage: Mapped[str | None] = mapped_column(String(30), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    release_outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    published_bundles: Mapped[list[str] | None] = mapped_column(
        JSON, nullable=True, default=list
    )
    log_dir: Mapped[str | None] = mapped_column(String(500), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    run: Mapped["PipelineRun"] = relationship("PipelineRun", back_populates="jobs")

    def __repr__(self) -> str:
        """Return string representation of JobRecord."""
        return f"<JobRecord(id={self.id}, job_id='{self.job_id}', status='{self.status}')>"

    @classmethod
    def for_job(cls, job: JobSpec) -> "JobRecord":
        """Create a pending record for a job."""
        return cls(
            job_id=job.job_id,
            os=job.os,
            toolchain=job.toolchain,
            platform=job.platform,
            ext=job.ext,
            status=JobStatus.PENDING.value,
        )

    def mark_succeeded(self) -> None:
        """Mark this job as succeeded."""
        self.status = JobStatus.SUCCEEDED.value
        self.finished_at = datetime.now()

    def mark_failed(
        self,
        stage: str | None = None,
        code: str | None = None,
        message: str | None = None,
    ) -> None:
        """Mark this job as failed.

        Args:
            stage: First failing stage.
            code: Error code.
            message: Error message details.
        """
        self.status = JobStatus.FAILED.value
        self.finished_at = datetime.now()
        self.failed_stage = stage
        self.error_code = code
        self.error_message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "os": self.os,
            "toolchain": self.toolchain,
            "platform": self.platform,
            "ext": self.ext,
            "status": self.status,
            "cache_key": self.cache_key,
            "cache_status": self.cache_status,
            "failed_stage": self.failed_stage,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "release_outcome": self.release_outcome,
            "published_bundles": list(self.published_bundles or []),
            "log_dir": self.log_dir,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = ["JobRecord", "PipelineRun"]
