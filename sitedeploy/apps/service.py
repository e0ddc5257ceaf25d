"""App service module: save, fetch and deploy stored source trees."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.orm import Session

from sitedeploy.apps.models import App
from sitedeploy.errors import NotFoundError, ValidationError
from sitedeploy.jobs.models import Job, utcnow
from sitedeploy.jobs.service import create_job
from sitedeploy.jobs.sources import InlineSource, normalize_files

logger = logging.getLogger(__name__)


def save_app(session: Session, files: dict[str, str], app_id: str | None = None) -> App:
    """Create or update an app's source tree.

    Raises:
        ValidationError: If files are empty or contain invalid paths.
    """
    if not files:
        raise ValidationError("No files provided")
    normalized = normalize_files(files)

    app = session.get(App, app_id) if app_id else None
    if app is None:
        app = App(id=app_id or uuid.uuid4().hex, files=normalized)
        session.add(app)
        logger.info("Created app %s with %d files", app.id, len(normalized))
    else:
        app.files = normalized
        app.updated_at = utcnow()
        logger.info("Updated app %s with %d files", app.id, len(normalized))
    session.flush()
    return app


def get_app(session: Session, app_id: str) -> App:
    """Get an app by id.

    Raises:
        NotFoundError: If the app does not exist.
    """
    app = session.get(App, app_id)
    if app is None:
        raise NotFoundError("App", app_id)
    return app


def deploy_app(session: Session, app_id: str, job_id: str | None = None) -> Job:
    """Snapshot an app's files into a new pending job.

    Raises:
        NotFoundError: If the app does not exist.
    """
    app = get_app(session, app_id)
    job = create_job(
        session, InlineSource(files=dict(app.files)), job_id=job_id, app_id=app.id
    )
    app.latest_deploy_id = job.id
    app.updated_at = utcnow()
    session.flush()
    return job


__all__ = ["deploy_app", "get_app", "save_app"]
