"""Job store service module.

This module provides the durable queue API:
- create_job(): submit a source tree (the insert is the enqueue)
- claim_next_pending(): atomic oldest-first claim
- complete_job() / fail_job(): terminal transitions
- recover_stale(): startup crash recovery
- Lookups for the status endpoint and the artifact server
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from sitedeploy.errors import NotFoundError, ValidationError
from sitedeploy.jobs.models import Job, utcnow
from sitedeploy.jobs.sources import (
    ArchiveSource,
    InlineSource,
    SourceRef,
    UrlSource,
    normalize_files,
)
from sitedeploy.types import JobStatus, SourceKind

logger = logging.getLogger(__name__)

# Upper bound on claim attempts when racing another claimer.
MAX_CLAIM_ATTEMPTS = 10


def _validate_job_id(job_id: str) -> str:
    job_id = job_id.strip()
    if not job_id or len(job_id) > 64:
        raise ValidationError("Job id must be 1-64 characters")
    # Dot-prefixed names are reserved inside the artifact and staging roots
    if "/" in job_id or "\\" in job_id or job_id.startswith("."):
        raise ValidationError(f"Invalid job id: {job_id!r}")
    return job_id


def _source_columns(source: SourceRef) -> dict[str, object]:
    if isinstance(source, InlineSource):
        if not source.files:
            raise ValidationError("No files provided")
        return {
            "source_kind": SourceKind.INLINE.value,
            "source_files": normalize_files(source.files),
            "source_location": None,
        }
    if isinstance(source, ArchiveSource):
        if not Path(source.path).is_file():
            raise ValidationError(f"Archive not found: {source.path}")
        return {
            "source_kind": SourceKind.ARCHIVE.value,
            "source_files": None,
            "source_location": str(Path(source.path)),
        }
    if isinstance(source, UrlSource):
        if not source.url.startswith(("http://", "https://")):
            raise ValidationError(f"Unsupported source URL: {source.url}")
        return {
            "source_kind": SourceKind.URL.value,
            "source_files": None,
            "source_location": source.url,
        }
    raise ValidationError(f"Unsupported source type: {type(source).__name__}")


def create_job(
    session: Session,
    source: SourceRef | None,
    job_id: str | None = None,
    app_id: str | None = None,
) -> Job:
    """Create a pending job.

    Creating the row is the enqueue; the worker picks it up on its next scan.
    When ``job_id`` names an existing job, that job is returned unchanged.

    Args:
        session: Database session.
        source: Source reference to build.
        job_id: Optional caller-supplied id.
        app_id: Optional grouping identifier.

    Returns:
        The pending (or pre-existing) Job.

    Raises:
        ValidationError: If no usable source is provided.
    """
    if job_id is not None:
        job_id = _validate_job_id(job_id)
        existing = session.get(Job, job_id)
        if existing is not None:
            logger.info(
                "Job %s already exists (status=%s), not resubmitting",
                job_id,
                existing.status,
                extra={"job_id": job_id},
            )
            return existing

    if source is None:
        raise ValidationError("No files, archive or URL provided")

    columns = _source_columns(source)
    now = utcnow()
    job = Job(
        id=job_id or uuid.uuid4().hex,
        app_id=app_id,
        status=JobStatus.PENDING.value,
        created_at=now,
        updated_at=now,
        **columns,
    )
    session.add(job)
    session.flush()
    logger.info(
        "Created job %s (source=%s)", job.id, job.source_kind, extra={"job_id": job.id}
    )
    return job


def claim_next_pending(session: Session) -> Job | None:
    """Atomically claim the oldest pending job.

    The transition is a conditional UPDATE guarded on ``status='pending'``,
    so a concurrent caller that selected the same row sees zero affected rows
    and moves on to the next candidate.

    Jobs are taken in ``created_at`` order. Jobs created in the same
    microsecond are taken in id order, which for generated ids is arbitrary
    but stable across callers.

    Args:
        session: Database session.

    Returns:
        The claimed Job (now processing), or None if nothing is pending.
    """
    for _ in range(MAX_CLAIM_ATTEMPTS):
        candidate_id = session.execute(
            select(Job.id)
            .where(Job.status == JobStatus.PENDING.value)
            .order_by(Job.created_at.asc(), Job.id.asc())
            .limit(1)
        ).scalar_one_or_none()
        if candidate_id is None:
            return None

        now = utcnow()
        result = session.execute(
            update(Job)
            .where(Job.id == candidate_id, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.PROCESSING.value,
                updated_at=now,
                started_at=now,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        session.flush()
        if result.rowcount == 1:
            job = session.get(Job, candidate_id, populate_existing=True)
            logger.info("Claimed job %s", candidate_id, extra={"job_id": candidate_id})
            return job
        logger.debug("Lost claim race for job %s, retrying", candidate_id)
    return None


def get_job(session: Session, job_id: str) -> Job:
    """Get a job by id.

    Raises:
        NotFoundError: If the job does not exist.
    """
    job = session.get(Job, job_id)
    if job is None:
        raise NotFoundError("Job", job_id)
    return job


def get_job_or_none(session: Session, job_id: str) -> Job | None:
    """Get a job by id, or None if not found."""
    return session.get(Job, job_id)


def complete_job(session: Session, job_id: str, artifact_path: str) -> Job:
    """Transition a job from processing to ready.

    Raises:
        NotFoundError: If the job does not exist.
        JobStateError: If the job is not processing.
    """
    job = get_job(session, job_id)
    job.mark_ready(artifact_path)
    session.flush()
    logger.info("Job %s is ready", job_id, extra={"job_id": job_id})
    return job


def fail_job(session: Session, job_id: str, error_message: str) -> Job:
    """Transition a job from processing to error.

    Raises:
        NotFoundError: If the job does not exist.
        JobStateError: If the job is not processing.
    """
    job = get_job(session, job_id)
    job.mark_error(error_message)
    session.flush()
    logger.info("Job %s failed", job_id, extra={"job_id": job_id})
    return job


def set_log_path(session: Session, job_id: str, log_path: str | None) -> None:
    """Record the build log location of a job."""
    job = get_job(session, job_id)
    job.log_path = log_path
    session.flush()


def recover_stale(session: Session) -> int:
    """Reset every processing job back to pending.

    Called once at worker startup to compensate for a crash that left a
    job claimed but never completed.

    Returns:
        Number of jobs recovered.
    """
    stale_ids = list(
        session.execute(
            select(Job.id).where(Job.status == JobStatus.PROCESSING.value)
        ).scalars()
    )
    if not stale_ids:
        return 0

    session.execute(
        update(Job)
        .where(Job.status == JobStatus.PROCESSING.value)
        .values(status=JobStatus.PENDING.value, updated_at=utcnow(), started_at=None)
        .execution_options(synchronize_session=False)
    )
    session.flush()
    session.expire_all()
    for job_id in stale_ids:
        logger.warning(
            "Recovered stale job %s (was processing)",
            job_id,
            extra={"job_id": job_id},
        )
    return len(stale_ids)


def has_processing(session: Session) -> bool:
    """Check whether any job is currently processing."""
    stmt = select(Job.id).where(Job.status == JobStatus.PROCESSING.value).limit(1)
    return session.execute(stmt).first() is not None


def count_pending(session: Session) -> int:
    """Count jobs waiting to be claimed."""
    stmt = select(func.count()).select_from(Job).where(
        Job.status == JobStatus.PENDING.value
    )
    return int(session.execute(stmt).scalar_one())


def list_jobs(
    session: Session,
    status: JobStatus | None = None,
    app_id: str | None = None,
    limit: int = 100,
) -> list[Job]:
    """List jobs, newest first, with optional filters."""
    stmt = select(Job)
    if status is not None:
        stmt = stmt.where(Job.status == status.value)
    if app_id is not None:
        stmt = stmt.where(Job.app_id == app_id)
    stmt = stmt.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "claim_next_pending",
    "complete_job",
    "count_pending",
    "create_job",
    "fail_job",
    "get_job",
    "get_job_or_none",
    "has_processing",
    "list_jobs",
    "recover_stale",
    "set_log_path",
]
