"""App endpoints.

- POST /api/apps - Save an app's source tree
- GET /api/apps/{id} - Get a saved app
- POST /api/apps/{id}/deploy - Deploy the app's current files
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi import status as http_status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from sitedeploy.apps.models import App
from sitedeploy.apps.service import deploy_app, get_app, save_app
from sitedeploy.config import Settings
from sitedeploy.errors import NotFoundError, ValidationError
from web.deps import error_response, get_app_settings, get_db

router = APIRouter()


class SaveAppRequest(BaseModel):
    """Request body for saving an app."""

    id: str | None = None
    files: dict[str, str]


def _app_to_dict(app: App) -> dict[str, Any]:
    return {
        "id": app.id,
        "files": app.files,
        "latest_deploy_id": app.latest_deploy_id,
        "created_at": app.created_at.isoformat() if app.created_at else None,
        "updated_at": app.updated_at.isoformat() if app.updated_at else None,
    }


@router.post("")
def save_app_endpoint(
    request: SaveAppRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Create or update an app."""
    try:
        app = save_app(db, request.files, app_id=request.id)
    except ValidationError as e:
        raise error_response(http_status.HTTP_400_BAD_REQUEST, e) from None
    return {"id": app.id, "file_count": len(app.files)}


@router.get("/{app_id}")
def get_app_endpoint(
    app_id: str,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get an app by id."""
    try:
        app = get_app(db, app_id)
    except NotFoundError as e:
        raise error_response(http_status.HTTP_404_NOT_FOUND, e) from None
    return _app_to_dict(app)


@router.post("/{app_id}/deploy")
def deploy_app_endpoint(
    app_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Deploy an app's saved files as a new job."""
    try:
        job = deploy_app(db, app_id)
    except NotFoundError as e:
        raise error_response(http_status.HTTP_404_NOT_FOUND, e) from None
    except ValidationError as e:
        raise error_response(http_status.HTTP_400_BAD_REQUEST, e) from None
    return {"id": job.id, "status": job.status, "url": settings.artifact_url(job.id)}
