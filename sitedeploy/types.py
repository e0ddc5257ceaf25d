"""Shared type definitions for sitedeploy.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class JobStatus(str, Enum):
    """Status of a build job."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class SourceKind(str, Enum):
    """How a job's source tree was submitted."""

    INLINE = "inline"
    ARCHIVE = "archive"
    URL = "url"


# Legal job transitions; recovery (processing -> pending) is handled separately.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.READY, JobStatus.ERROR}),
    JobStatus.READY: frozenset(),
    JobStatus.ERROR: frozenset(),
}


@dataclass
class ArtifactInfo:
    """Information about a file in a deployment."""

    relative_path: str
    size_bytes: int
    sha256: str
    content_type: str | None = None


@dataclass
class BuildOutcome:
    """Result of a successful orchestrator run."""

    artifact_path: Path
    log_path: Path
    cache_key: str
    cache_hit: bool
    used_fallback: bool = False
    backfilled: list[str] = field(default_factory=list)
    artifacts: list[ArtifactInfo] = field(default_factory=list)


__all__ = [
    "JOB_TRANSITIONS",
    "ArtifactInfo",
    "BuildOutcome",
    "JobStatus",
    "SourceKind",
]
