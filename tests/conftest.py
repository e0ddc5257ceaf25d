"""Shared fixtures."""

import uuid
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from helpers import BUILD_SCRIPT, install_script, python_command
from sitedeploy.config import Settings
from sitedeploy.db import Base, create_all_tables


@pytest.fixture
def install_counter(tmp_path: Path) -> Path:
    """File counting install command runs."""
    return tmp_path / "install-count"


@pytest.fixture
def settings(tmp_path: Path, install_counter: Path) -> Settings:
    """Settings rooted in tmp_path with fast, local commands."""
    return Settings(
        data_dir=tmp_path / "data",
        build_command=python_command(BUILD_SCRIPT),
        fallback_build_command=None,
        install_command=python_command(install_script(install_counter)),
        build_timeout=60,
        install_timeout=60,
        embedded_worker=False,
        busy_interval=0.01,
        idle_interval=0.05,
        fs_retry_delay=0,
        public_base_url="http://testserver",
    )


@pytest.fixture
def session_factory(tmp_path: Path):
    """Session factory bound to a fresh SQLite file."""
    db_file = tmp_path / f"test_{uuid.uuid4().hex[:8]}.db"
    engine = create_engine(f"sqlite:///{db_file}", echo=False)
    create_all_tables(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    """A database session, closed after the test."""
    with session_factory() as db_session:
        yield db_session
