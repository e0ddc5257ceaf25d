"""Request dependencies for FastAPI.

Provides the database session and effective settings to route handlers.

Transaction boundaries are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from sitedeploy.config import Settings, get_settings
from sitedeploy.errors import SiteDeployError


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state.

    Args:
        request: FastAPI request object.

    Returns:
        SQLAlchemy session factory.
    """
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_app_settings(request: Request) -> Settings:
    """Get the settings the application was created with."""
    settings: Settings | None = getattr(request.app.state, "settings", None)
    if settings is None:
        return get_settings()
    return settings


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        # Commit on success - only reached if no exception was raised
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def error_response(status_code: int, error: SiteDeployError) -> HTTPException:
    """Wrap a sitedeploy error in an HTTPException with a code/message detail."""
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": str(error)},
    )
