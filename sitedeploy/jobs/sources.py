"""Source variants for build jobs.

Every submission shape converges on one capability, ``materialize(destination)``,
which writes the job's source tree into the staging area:

- InlineSource: path/content pairs submitted with the job
- ArchiveSource: a previously stored zip archive
- UrlSource: a zip archive fetched over HTTP
"""

from __future__ import annotations

import logging
import posixpath
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

import httpx

from sitedeploy.errors import BuildError, ValidationError
from sitedeploy.types import SourceKind

if TYPE_CHECKING:
    from sitedeploy.jobs.models import Job

logger = logging.getLogger(__name__)

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Directories never collected from a local project
SKIPPED_DIRS = frozenset({"node_modules", ".git", "dist", "build", "out"})


def normalize_source_path(path: str) -> str:
    """Normalize a producer-supplied relative path.

    Leading slashes and backslash separators are tolerated; absolute
    drive paths and ``..`` segments are not.

    Args:
        path: Path as submitted.

    Returns:
        Normalized POSIX relative path.

    Raises:
        ValidationError: If the path is empty or escapes the tree.
    """
    cleaned = path.replace("\\", "/").lstrip("/")
    if not cleaned:
        raise ValidationError(f"Invalid source path: {path!r}")
    normalized = posixpath.normpath(cleaned)
    parts = PurePosixPath(normalized).parts
    if normalized in (".", "") or ".." in parts or ":" in parts[0]:
        raise ValidationError(f"Invalid source path: {path!r}", code="path_traversal")
    return normalized


def normalize_files(files: dict[str, str]) -> dict[str, str]:
    """Normalize every key of an inline file mapping.

    Raises:
        ValidationError: On an invalid path, duplicate after normalization,
            or non-string content.
    """
    result: dict[str, str] = {}
    for raw_path, content in files.items():
        if not isinstance(content, str):
            raise ValidationError(f"Content of {raw_path!r} must be a string")
        path = normalize_source_path(raw_path)
        if path in result:
            raise ValidationError(f"Duplicate source path after normalization: {path}")
        result[path] = content
    return result


def _safe_target(destination: Path, relative: str) -> Path:
    target = (destination / relative).resolve()
    root = destination.resolve()
    if target != root and root not in target.parents:
        raise BuildError(
            f"Refusing to write outside staging area: {relative}", code="path_traversal"
        )
    return target


class SourceRef(Protocol):
    """A job source that can write itself into a staging directory."""

    kind: SourceKind

    def materialize(self, destination: Path) -> list[str]:
        """Write the source tree under destination, returning relative paths."""
        ...


@dataclass
class InlineSource:
    """Source tree submitted inline as path -> content."""

    files: dict[str, str]
    kind: SourceKind = field(default=SourceKind.INLINE, init=False)

    def materialize(self, destination: Path) -> list[str]:
        written: list[str] = []
        for raw_path, content in sorted(self.files.items()):
            try:
                relative = normalize_source_path(raw_path)
            except ValidationError as e:
                raise BuildError(str(e), code=e.code) from e
            target = _safe_target(destination, relative)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as e:
                raise BuildError(
                    f"Failed to write source file {relative}: {e}",
                    code="source_write_error",
                ) from e
            written.append(relative)
        logger.debug("Materialized %d inline files into %s", len(written), destination)
        return written


def extract_zip(archive_path: Path, destination: Path) -> list[str]:
    """Extract a zip archive with path traversal checks.

    Args:
        archive_path: Path to the zip file.
        destination: Directory to extract into.

    Returns:
        Relative paths of extracted files.

    Raises:
        BuildError: If the archive is missing, corrupt, or unsafe.
    """
    if not archive_path.is_file():
        raise BuildError(
            f"Source archive not found: {archive_path}", code="source_not_found"
        )

    written: list[str] = []
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            for member in members:
                # Security: validate every member before writing anything
                try:
                    normalize_source_path(member.filename)
                except ValidationError as e:
                    raise BuildError(
                        f"Refusing to extract {member.filename}: path traversal detected",
                        code="path_traversal",
                    ) from e
            for member in members:
                relative = normalize_source_path(member.filename)
                target = _safe_target(destination, relative)
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as src, target.open("wb") as dst:
                    while chunk := src.read(DOWNLOAD_CHUNK_SIZE):
                        dst.write(chunk)
                written.append(relative)
    except zipfile.BadZipFile as e:
        raise BuildError(
            f"Invalid source archive {archive_path}: {e}", code="bad_archive"
        ) from e
    except OSError as e:
        raise BuildError(
            f"Failed to extract {archive_path}: {e}", code="extraction_error"
        ) from e

    logger.info("Extracted %d files from %s", len(written), archive_path.name)
    return written


@dataclass
class ArchiveSource:
    """Source tree stored as a zip archive on the local filesystem."""

    path: Path
    kind: SourceKind = field(default=SourceKind.ARCHIVE, init=False)

    def materialize(self, destination: Path) -> list[str]:
        return extract_zip(self.path, destination)


@dataclass
class UrlSource:
    """Source tree published as a zip archive at an HTTP(S) URL."""

    url: str
    timeout: float = 120.0
    kind: SourceKind = field(default=SourceKind.URL, init=False)

    def download(self, client: httpx.Client, dest_path: Path) -> int:
        """Stream the archive to dest_path, returning the byte count.

        Raises:
            BuildError: If the download fails.
        """
        logger.info("Downloading source archive %s", self.url)
        try:
            with client.stream("GET", self.url, timeout=self.timeout) as response:
                response.raise_for_status()
                total_bytes = 0
                with dest_path.open("wb") as f:
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        total_bytes += len(chunk)
        except httpx.HTTPStatusError as e:
            raise BuildError(
                f"HTTP error downloading {self.url}: "
                f"{e.response.status_code} {e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise BuildError(f"Timeout downloading {self.url}", code="timeout") from e
        except httpx.RequestError as e:
            raise BuildError(
                f"Network error downloading {self.url}: {e}", code="network_error"
            ) from e
        return total_bytes

    def materialize(self, destination: Path) -> list[str]:
        with tempfile.TemporaryDirectory(prefix="sitedeploy_src_") as tmp:
            archive_path = Path(tmp) / "source.zip"
            with httpx.Client(follow_redirects=True) as client:
                size = self.download(client, archive_path)
            logger.debug("Downloaded %d bytes from %s", size, self.url)
            return extract_zip(archive_path, destination)


def read_source_dir(root: Path) -> dict[str, str]:
    """Collect a local project directory as inline files.

    Dependency, VCS and output directories are skipped, as are files that
    are not valid UTF-8 text.

    Args:
        root: Project directory.

    Returns:
        Mapping of relative POSIX path to file content.
    """
    files: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part in SKIPPED_DIRS for part in relative.parts) or not path.is_file():
            continue
        try:
            files[relative.as_posix()] = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping non-text file %s", relative)
    return files


def source_from_job(job: Job, download_timeout: float = 120.0) -> SourceRef:
    """Rebuild the source variant persisted on a job row.

    Raises:
        BuildError: If the row carries no usable source.
    """
    kind = SourceKind(job.source_kind)
    if kind is SourceKind.INLINE:
        if not job.source_files:
            raise BuildError(f"Job {job.id} has no inline files", code="no_source")
        return InlineSource(files=dict(job.source_files))
    if not job.source_location:
        raise BuildError(f"Job {job.id} has no source location", code="no_source")
    if kind is SourceKind.ARCHIVE:
        return ArchiveSource(path=Path(job.source_location))
    return UrlSource(url=job.source_location, timeout=download_timeout)


__all__ = [
    "ArchiveSource",
    "InlineSource",
    "SourceRef",
    "UrlSource",
    "extract_zip",
    "normalize_files",
    "normalize_source_path",
    "read_source_dir",
    "source_from_job",
]
