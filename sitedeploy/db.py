"""Database engine and session management for sitedeploy.

The jobs and apps tables live in one SQLAlchemy database, SQLite by
default. The API process and the worker each build their engine from
``Settings.db_url`` and share it between the event loop and the build
thread.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def get_engine(db_url: str) -> Engine:
    """Create an engine, creating the SQLite file's directory if needed."""
    connect_args: dict[str, object] = {}
    if db_url.startswith("sqlite"):
        # Sessions are opened on the event loop thread and the build thread
        connect_args["check_same_thread"] = False
        database = make_url(db_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(db_url, connect_args=connect_args)


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory whose objects stay usable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Open a session that commits on success and rolls back on error.

    Yields:
        SQLAlchemy Session instance.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Engine) -> None:
    """Create the jobs and apps tables if they do not exist."""
    # Importing the models registers them on Base.metadata
    from sitedeploy.apps import models as apps_models  # noqa: F401
    from sitedeploy.jobs import models as jobs_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
