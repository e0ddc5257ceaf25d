"""Deployment submission and status endpoints.

- POST /api/deploy - Submit a source tree for building
- GET /api/status/{id} - Get the status of a deployment
- GET /api/jobs - List jobs
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sitedeploy.apps.service import deploy_app
from sitedeploy.config import Settings
from sitedeploy.errors import NotFoundError, ValidationError
from sitedeploy.jobs.models import Job
from sitedeploy.jobs.service import create_job, get_job, list_jobs
from sitedeploy.jobs.sources import ArchiveSource, InlineSource, SourceRef, UrlSource
from sitedeploy.types import JobStatus
from web.deps import error_response, get_app_settings, get_db

router = APIRouter()


class DeployRequest(BaseModel):
    """Request body for a deployment.

    Exactly one of ``files``, ``archive_path`` or ``archive_url`` may be
    given. With ``app_id`` and no source, the app's saved files are used.
    """

    id: str | None = None
    app_id: str | None = None
    files: dict[str, str] | None = None
    archive_path: str | None = None
    archive_url: str | None = None


def _request_source(request: DeployRequest) -> SourceRef | None:
    sources: list[SourceRef] = []
    if request.files is not None:
        sources.append(InlineSource(files=request.files))
    if request.archive_path:
        sources.append(ArchiveSource(path=Path(request.archive_path)))
    if request.archive_url:
        sources.append(UrlSource(url=request.archive_url))
    if len(sources) > 1:
        raise ValidationError("Provide only one of files, archive_path or archive_url")
    return sources[0] if sources else None


def _job_to_dict(job: Job, settings: Settings) -> dict[str, Any]:
    """Convert a job to its status payload."""
    data: dict[str, Any] = {
        "id": job.id,
        "app_id": job.app_id,
        "status": job.status,
        "source_kind": job.source_kind,
        "url": settings.artifact_url(job.id),
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "finished_at": job.finished_at.isoformat() if job.finished_at else None,
    }
    if job.status == JobStatus.READY.value:
        data["artifact_url"] = settings.artifact_url(job.id)
    if job.status == JobStatus.ERROR.value:
        data["error_message"] = job.error_message
    return data


@router.post("/deploy")
def deploy_endpoint(
    request: DeployRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Submit a source tree; the job is built asynchronously.

    Returns:
        Job id, status and the deployment URL to poll.

    Raises:
        HTTPException: 400 on invalid input, 404 for an unknown app.
    """
    try:
        source = _request_source(request)
        if source is None and request.app_id:
            existing = db.get(Job, request.id) if request.id else None
            job = existing or deploy_app(db, request.app_id, job_id=request.id)
        else:
            job = create_job(db, source, job_id=request.id, app_id=request.app_id)
    except ValidationError as e:
        raise error_response(http_status.HTTP_400_BAD_REQUEST, e) from None
    except NotFoundError as e:
        raise error_response(http_status.HTTP_404_NOT_FOUND, e) from None

    return {
        "id": job.id,
        "status": job.status,
        "url": settings.artifact_url(job.id),
    }


@router.get("/status/{job_id}")
def status_endpoint(
    job_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Get the status of a deployment.

    Raises:
        HTTPException: If the job is not found.
    """
    try:
        job = get_job(db, job_id)
    except NotFoundError as e:
        raise error_response(http_status.HTTP_404_NOT_FOUND, e) from None
    return _job_to_dict(job, settings)


@router.get("/jobs")
def list_jobs_endpoint(
    status: str | None = Query(None, description="Filter by status"),
    app_id: str | None = Query(None, description="Filter by app id"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> list[dict[str, Any]]:
    """List jobs, newest first."""
    status_filter: JobStatus | None = None
    if status:
        try:
            status_filter = JobStatus(status)
        except ValueError:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": f"Invalid status: {status}. Valid values: "
                    "pending, processing, ready, error",
                },
            ) from None

    jobs = list_jobs(db, status=status_filter, app_id=app_id, limit=limit)
    return [_job_to_dict(j, settings) for j in jobs]
