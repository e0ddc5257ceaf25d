"""Deployment request resolution.

Maps a job (or its absence) and a request subpath to what the artifact
server should answer. The web layer only renders the result, so every
rule here is testable without HTTP:

- unknown id: 404 "Deployment not found"
- pending/processing: loading page for the root document, 503 otherwise
- error: diagnostic page with the job's error message
- ready: the requested file, with the root document's absolute asset
  references rewritten to relative ones
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sitedeploy.jobs.models import Job
from sitedeploy.types import JobStatus

INDEX_DOCUMENT = "index.html"

IMMUTABLE_CACHE_CONTROL = "public, max-age=86400, immutable"
NO_CACHE = "no-cache"

# Absolute references ("/assets/x.js") but not protocol-relative ones ("//cdn")
_ABSOLUTE_REF = re.compile(r'(src|href)="/(?!/)')


class ResolutionKind(str, Enum):
    """What the server should send back."""

    TEXT = "text"
    LOADING = "loading"
    ERROR_PAGE = "error_page"
    DOCUMENT = "document"
    FILE = "file"


@dataclass
class Resolution:
    """Outcome of resolving a deployment request."""

    status_code: int
    kind: ResolutionKind
    body: str | None = None
    path: Path | None = None
    headers: dict[str, str] = field(default_factory=dict)
    job_id: str | None = None
    error_message: str | None = None


def rewrite_root_document(html: str) -> str:
    """Rewrite ``src="/`` and ``href="/`` references to ``./``.

    Deployments are served under ``/deployments/<id>/``, so references to
    the site root would otherwise escape the deployment.
    """
    return _ABSOLUTE_REF.sub(r'\1="./', html)


def _not_found(message: str) -> Resolution:
    return Resolution(status_code=404, kind=ResolutionKind.TEXT, body=message)


def _artifact_root(job: Job, artifacts_root: Path) -> Path:
    if job.artifact_path:
        return Path(job.artifact_path)
    return artifacts_root / job.id


def resolve_file(root: Path, subpath: str) -> Path | None:
    """Resolve a request subpath to a file inside ``root``.

    Empty subpaths and directories resolve to their ``index.html``.

    Returns:
        The file path, or None when it does not exist or escapes ``root``.
    """
    base = root.resolve()
    candidate = (base / subpath.lstrip("/")).resolve()
    try:
        candidate.relative_to(base)
    except ValueError:
        return None
    if candidate.is_dir():
        candidate = candidate / INDEX_DOCUMENT
    if not candidate.is_file():
        return None
    return candidate


def resolve_request(job: Job | None, subpath: str, artifacts_root: Path) -> Resolution:
    """Decide the response for ``/deployments/<id>/<subpath>``.

    Args:
        job: The deployment's job, or None if the id is unknown.
        subpath: Path below the deployment root ("" for the root document).
        artifacts_root: Root directory of all deployments.

    Returns:
        Resolution describing status, content and headers.
    """
    if job is None:
        return _not_found("Deployment not found")

    subpath = subpath.lstrip("/")

    if job.is_building():
        if subpath in ("", INDEX_DOCUMENT):
            return Resolution(
                status_code=200,
                kind=ResolutionKind.LOADING,
                headers={"Cache-Control": NO_CACHE},
                job_id=job.id,
            )
        return Resolution(
            status_code=503,
            kind=ResolutionKind.TEXT,
            body="Building...",
            headers={"Retry-After": "1"},
        )

    if job.status == JobStatus.ERROR.value:
        return Resolution(
            status_code=200,
            kind=ResolutionKind.ERROR_PAGE,
            headers={"Cache-Control": NO_CACHE},
            job_id=job.id,
            error_message=job.error_message or "Unknown error",
        )

    root = _artifact_root(job, artifacts_root)
    target = resolve_file(root, subpath)
    if target is None:
        return _not_found("File not found")

    if target == root.resolve() / INDEX_DOCUMENT:
        html = target.read_text(encoding="utf-8", errors="replace")
        return Resolution(
            status_code=200,
            kind=ResolutionKind.DOCUMENT,
            body=rewrite_root_document(html),
            path=target,
            headers={"Cache-Control": NO_CACHE},
        )

    return Resolution(
        status_code=200,
        kind=ResolutionKind.FILE,
        path=target,
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )


__all__ = [
    "IMMUTABLE_CACHE_CONTROL",
    "Resolution",
    "ResolutionKind",
    "resolve_file",
    "resolve_request",
    "rewrite_root_document",
]
