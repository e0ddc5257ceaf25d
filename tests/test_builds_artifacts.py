"""Tests for builds/artifacts.py module.

Tests output discovery, manifest generation and atomic placement.
"""

import errno
import hashlib
import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from sitedeploy.builds.artifacts import (
    compute_file_hash,
    discover_artifacts,
    find_output_dir,
    generate_manifest,
    manifest_path_for,
    place_artifacts,
    write_manifest,
)
from sitedeploy.errors import BuildError
from sitedeploy.types import ArtifactInfo


def _make_output(root: Path) -> Path:
    out = root / "dist"
    (out / "assets").mkdir(parents=True)
    (out / "index.html").write_text("<html></html>")
    (out / "assets" / "app.js").write_text("console.log(1)")
    return out


class TestComputeFileHash:
    """Tests for compute_file_hash."""

    def test_matches_hashlib(self, tmp_path: Path) -> None:
        """Streaming hash should equal a one-shot digest."""
        f = tmp_path / "f.bin"
        f.write_bytes(b"x" * 200_000)
        assert compute_file_hash(f, chunk_size=1000) == hashlib.sha256(
            b"x" * 200_000
        ).hexdigest()


class TestFindOutputDir:
    """Tests for find_output_dir."""

    def test_first_existing_candidate(self, tmp_path: Path) -> None:
        """The first existing candidate in order should win."""
        (tmp_path / "build").mkdir()
        (tmp_path / "out").mkdir()
        assert find_output_dir(tmp_path, ["dist", "build", "out"]) == tmp_path / "build"

    def test_none_found(self, tmp_path: Path) -> None:
        """No candidate should raise BuildError naming the candidates."""
        with pytest.raises(BuildError) as exc_info:
            find_output_dir(tmp_path, ["dist", "build", "out"])
        assert str(exc_info.value) == "Build output (dist/build/out) not found"
        assert exc_info.value.code == "output_not_found"


class TestDiscoverAndManifest:
    """Tests for discover_artifacts and manifest helpers."""

    def test_discover(self, tmp_path: Path) -> None:
        """Every file should be listed with size, hash and content type."""
        artifacts = discover_artifacts(_make_output(tmp_path))

        assert [a.relative_path for a in artifacts] == ["assets/app.js", "index.html"]
        index = artifacts[1]
        assert index.size_bytes == len("<html></html>")
        assert index.content_type == "text/html"

    def test_generate_and_write(self, tmp_path: Path) -> None:
        """The manifest should summarize artifacts and carry metadata."""
        artifacts = [
            ArtifactInfo("index.html", 10, "aa", "text/html"),
            ArtifactInfo("app.js", 5, "bb", None),
        ]
        manifest = generate_manifest(
            artifacts, job_id="j1", cache_key="k", extra_metadata={"used_fallback": False}
        )
        path = write_manifest(manifest, manifest_path_for(tmp_path, "j1"))

        assert path == tmp_path / ".manifests" / "j1.json"
        data = json.loads(path.read_text())
        assert data["job_id"] == "j1"
        assert data["cache_key"] == "k"
        assert data["summary"] == {"total_artifacts": 2, "total_size_bytes": 15}
        assert data["metadata"]["used_fallback"] is False


class TestPlaceArtifacts:
    """Tests for place_artifacts."""

    def test_moves_output(self, tmp_path: Path) -> None:
        """Output should end up at <root>/<job_id> with no temp leftovers."""
        output = _make_output(tmp_path / "stage")
        root = tmp_path / "deployments"

        final = place_artifacts(output, root, "job-1")

        assert final == root / "job-1"
        assert (final / "assets" / "app.js").read_text() == "console.log(1)"
        assert not output.exists()
        assert [p.name for p in root.iterdir()] == ["job-1"]

    def test_replaces_existing(self, tmp_path: Path) -> None:
        """An existing deployment directory should be replaced wholesale."""
        root = tmp_path / "deployments"
        (root / "job-1").mkdir(parents=True)
        (root / "job-1" / "stale.txt").write_text("old")

        final = place_artifacts(_make_output(tmp_path / "stage"), root, "job-1")

        assert not (final / "stale.txt").exists()
        assert (final / "index.html").exists()
        assert sorted(p.name for p in root.iterdir()) == ["job-1"]

    def test_transient_error_retried(self, tmp_path: Path) -> None:
        """A single EBUSY while renaming into place should be retried."""
        output = _make_output(tmp_path / "stage")
        root = tmp_path / "deployments"
        real_replace = os.replace
        calls = {"n": 0}

        def busy_once(src, dst):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError(errno.EBUSY, "Device or resource busy", str(src))
            return real_replace(src, dst)

        with patch("sitedeploy.builds.artifacts.os.replace", side_effect=busy_once):
            final = place_artifacts(output, root, "job-1", attempts=3, delay=0)

        assert calls["n"] == 2
        assert (final / "index.html").exists()
        assert [p.name for p in root.iterdir()] == ["job-1"]

    def test_gives_up_after_attempts(self, tmp_path: Path) -> None:
        """Persistent transient errors should fail with placement_busy."""
        output = _make_output(tmp_path / "stage")
        root = tmp_path / "deployments"

        def always_busy(src, dst):
            raise OSError(errno.EBUSY, "Device or resource busy", str(src))

        with patch("sitedeploy.builds.artifacts.os.replace", side_effect=always_busy):
            with pytest.raises(BuildError) as exc_info:
                place_artifacts(output, root, "job-1", attempts=2, delay=0)

        assert exc_info.value.code == "placement_busy"
        assert not (root / "job-1").exists()
        assert list(root.iterdir()) == []

    def test_non_transient_error_not_retried(self, tmp_path: Path) -> None:
        """Other OS errors should fail immediately."""
        output = _make_output(tmp_path / "stage")

        def read_only(src, dst):
            raise OSError(errno.EROFS, "Read-only file system", str(src))

        with patch(
            "sitedeploy.builds.artifacts.os.replace", side_effect=read_only
        ) as mock_replace:
            with pytest.raises(BuildError) as exc_info:
                place_artifacts(output, tmp_path / "deployments", "job-1", delay=0)

        assert mock_replace.call_count == 1
        assert exc_info.value.code == "placement_error"

    @pytest.mark.parametrize("job_id", [".manifests", ".hidden", "a/b", ""])
    def test_reserved_ids_rejected(self, tmp_path: Path, job_id: str) -> None:
        """Ids that are not plain visible names must not touch the root."""
        root = tmp_path / "deployments"
        manifest = write_manifest({"job_id": "site-a"}, manifest_path_for(root, "site-a"))

        with pytest.raises(BuildError) as exc_info:
            place_artifacts(_make_output(tmp_path / "stage"), root, job_id)

        assert exc_info.value.code == "invalid_job_id"
        assert manifest.exists()
