"""Job ORM model.

A Job is the unit of work of the deployment pipeline: one source tree to be
turned into a directory of static artifacts. The same row backs the queue,
the status endpoint, and the artifact server.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sitedeploy.db import Base
from sitedeploy.errors import JobStateError
from sitedeploy.types import JOB_TRANSITIONS, JobStatus


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class Job(Base):
    """ORM model for build jobs.

    Attributes:
        id: Opaque token, also the public deployment handle.
        app_id: Optional grouping identifier supplied by the producer.
        source_kind: How the source was submitted (inline, archive, url).
        source_files: Inline mapping of relative path to file content.
        source_location: Archive path or URL for non-inline sources.
        status: pending, processing, ready or error.
        artifact_path: Compiled output directory (ready only).
        error_message: Verbatim diagnostic text (error only).
        log_path: Build log of the latest attempt.
        created_at: Submission time; drives FIFO order.
        updated_at: Time of the last status change.
        started_at: Time the job was claimed.
        finished_at: Time the job reached ready or error.
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    app_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Source reference
    source_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    source_files: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    source_location: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Status and outcome
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value, index=True
    )
    artifact_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    log_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Timing
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_jobs_status_created", "status", "created_at"),)

    def __repr__(self) -> str:
        """Return string representation of Job."""
        return f"<Job(id='{self.id}', status='{self.status}')>"

    def _transition(self, target: JobStatus) -> None:
        current = JobStatus(self.status)
        if target not in JOB_TRANSITIONS[current]:
            raise JobStateError(self.id, current.value, target.value)
        self.status = target.value
        self.updated_at = utcnow()

    def mark_ready(self, artifact_path: str) -> None:
        """Mark this job as ready with its artifact directory."""
        self._transition(JobStatus.READY)
        self.artifact_path = artifact_path
        self.error_message = None
        self.finished_at = self.updated_at

    def mark_error(self, message: str) -> None:
        """Mark this job as failed with a diagnostic message."""
        self._transition(JobStatus.ERROR)
        self.error_message = message
        self.artifact_path = None
        self.finished_at = self.updated_at

    def is_building(self) -> bool:
        """Check if this job is still waiting for or undergoing a build."""
        return self.status in (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


__all__ = ["Job", "utcnow"]
