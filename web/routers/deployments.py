"""Deployment serving endpoints.

- GET /deployments/{id} - Redirect to the trailing-slash URL
- GET /deployments/{id}/{path} - Serve a deployment file or status page
- GET /preview?id= - Entry redirect to a deployment

Response selection lives in sitedeploy.serving; this router only renders it.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi import status as http_status
from fastapi.responses import (
    FileResponse,
    HTMLResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from sitedeploy.config import Settings
from sitedeploy.jobs.service import get_job_or_none
from sitedeploy.serving import ResolutionKind, resolve_request
from web.deps import get_app_settings, get_db

router = APIRouter()

# Templates are resolved relative to the web package
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def _deployment_root(job_id: str) -> str:
    return f"/deployments/{job_id}/"


@router.get("/preview", include_in_schema=False)
def preview(id: str | None = Query(None, description="Deployment id")) -> RedirectResponse:
    """Redirect a preview link to the deployment root."""
    if not id:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": "validation", "message": "Missing id parameter"},
        )
    return RedirectResponse(_deployment_root(id), status_code=http_status.HTTP_302_FOUND)


@router.get("/deployments/{job_id}", include_in_schema=False)
def deployment_redirect(job_id: str) -> RedirectResponse:
    """Redirect to the trailing-slash URL so relative asset paths resolve."""
    return RedirectResponse(
        _deployment_root(job_id), status_code=http_status.HTTP_302_FOUND
    )


@router.get("/deployments/{job_id}/{subpath:path}", include_in_schema=False)
def serve_deployment(
    request: Request,
    job_id: str,
    subpath: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Serve a file of a ready deployment, or the page matching its status."""
    assert settings.artifacts_dir is not None
    job = get_job_or_none(db, job_id)
    resolution = resolve_request(job, subpath, settings.artifacts_dir)

    if resolution.kind is ResolutionKind.LOADING:
        return templates.TemplateResponse(
            request=request,
            name="loading.html",
            context={"job_id": resolution.job_id},
            headers=resolution.headers,
        )
    if resolution.kind is ResolutionKind.ERROR_PAGE:
        return templates.TemplateResponse(
            request=request,
            name="error.html",
            context={
                "job_id": resolution.job_id,
                "error_message": resolution.error_message,
            },
            status_code=resolution.status_code,
            headers=resolution.headers,
        )
    if resolution.kind is ResolutionKind.DOCUMENT:
        return HTMLResponse(
            resolution.body or "",
            status_code=resolution.status_code,
            headers=resolution.headers,
        )
    if resolution.kind is ResolutionKind.FILE:
        assert resolution.path is not None
        return FileResponse(resolution.path, headers=resolution.headers)
    return PlainTextResponse(
        resolution.body or "",
        status_code=resolution.status_code,
        headers=resolution.headers,
    )
