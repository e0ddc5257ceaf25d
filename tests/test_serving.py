"""Tests for deployment request resolution."""

from pathlib import Path

import pytest

from sitedeploy.jobs.models import Job
from sitedeploy.serving import (
    IMMUTABLE_CACHE_CONTROL,
    ResolutionKind,
    resolve_file,
    resolve_request,
    rewrite_root_document,
)
from sitedeploy.types import JobStatus


def _job(status: JobStatus, **kwargs) -> Job:
    return Job(id="site", source_kind="inline", status=status.value, **kwargs)


@pytest.fixture
def artifacts(tmp_path: Path) -> Path:
    root = tmp_path / "deployments"
    site = root / "site"
    (site / "assets").mkdir(parents=True)
    (site / "index.html").write_text('<script src="/assets/app.js"></script>')
    (site / "assets" / "app.js").write_text("1")
    return root


class TestRewriteRootDocument:
    """Tests for rewrite_root_document."""

    @pytest.mark.parametrize(
        ("html", "expected"),
        [
            ('<script src="/a.js">', '<script src="./a.js">'),
            ('<link href="/a.css">', '<link href="./a.css">'),
            ('<img src="//cdn.example.com/a.png">', '<img src="//cdn.example.com/a.png">'),
            ('<a href="https://example.com/">', '<a href="https://example.com/">'),
            ('<img src="a.png">', '<img src="a.png">'),
        ],
    )
    def test_rewrite(self, html: str, expected: str) -> None:
        """Only root-relative references should change."""
        assert rewrite_root_document(html) == expected


class TestResolveFile:
    """Tests for resolve_file."""

    def test_directory_serves_index(self, artifacts: Path) -> None:
        assert resolve_file(artifacts / "site", "") == (artifacts / "site" / "index.html").resolve()

    def test_traversal(self, artifacts: Path) -> None:
        (artifacts / "secret.txt").write_text("x")
        assert resolve_file(artifacts / "site", "../secret.txt") is None

    def test_missing(self, artifacts: Path) -> None:
        assert resolve_file(artifacts / "site", "nope.js") is None


class TestResolveRequest:
    """Tests for resolve_request."""

    def test_unknown_job(self, artifacts: Path) -> None:
        resolution = resolve_request(None, "", artifacts)
        assert resolution.status_code == 404
        assert resolution.body == "Deployment not found"

    @pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.PROCESSING])
    @pytest.mark.parametrize("subpath", ["", "index.html"])
    def test_building_root(self, artifacts: Path, status: JobStatus, subpath: str) -> None:
        """The root document of a building job is the loading page."""
        resolution = resolve_request(_job(status), subpath, artifacts)
        assert resolution.kind is ResolutionKind.LOADING
        assert resolution.status_code == 200
        assert resolution.headers["Cache-Control"] == "no-cache"

    def test_building_asset(self, artifacts: Path) -> None:
        """Other paths of a building job are temporarily unavailable."""
        resolution = resolve_request(_job(JobStatus.PENDING), "assets/app.js", artifacts)
        assert resolution.status_code == 503
        assert resolution.body == "Building..."
        assert resolution.headers["Retry-After"] == "1"

    def test_error(self, artifacts: Path) -> None:
        """Failed jobs resolve to the error page for any path."""
        job = _job(JobStatus.ERROR, error_message="boom")
        resolution = resolve_request(job, "assets/app.js", artifacts)
        assert resolution.kind is ResolutionKind.ERROR_PAGE
        assert resolution.status_code == 200
        assert resolution.error_message == "boom"

    def test_ready_root_document(self, artifacts: Path) -> None:
        """The root document is rewritten and not cached."""
        resolution = resolve_request(_job(JobStatus.READY), "", artifacts)
        assert resolution.kind is ResolutionKind.DOCUMENT
        assert resolution.body == '<script src="./assets/app.js"></script>'
        assert resolution.headers["Cache-Control"] == "no-cache"

    def test_ready_asset(self, artifacts: Path) -> None:
        """Assets are served as files with an immutable cache header."""
        resolution = resolve_request(_job(JobStatus.READY), "assets/app.js", artifacts)
        assert resolution.kind is ResolutionKind.FILE
        assert resolution.headers["Cache-Control"] == IMMUTABLE_CACHE_CONTROL

    def test_ready_uses_recorded_artifact_path(self, artifacts: Path, tmp_path: Path) -> None:
        """A recorded artifact path wins over the default location."""
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (elsewhere / "only-here.txt").write_text("x")
        job = _job(JobStatus.READY, artifact_path=str(elsewhere))
        assert resolve_request(job, "only-here.txt", artifacts).kind is ResolutionKind.FILE

    def test_ready_missing(self, artifacts: Path) -> None:
        resolution = resolve_request(_job(JobStatus.READY), "missing.css", artifacts)
        assert resolution.status_code == 404
        assert resolution.body == "File not found"
