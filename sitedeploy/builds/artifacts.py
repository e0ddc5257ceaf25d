"""Artifact placement and manifest generation.

This module handles:
- Locating the compiler's output directory among conventional names
- Computing checksums for deployed files
- Generating deployment manifests
- Publishing the output with an atomic directory rename

Readers only ever see either no artifact directory or a complete one.
"""

from __future__ import annotations

import hashlib
import json
import logging
import mimetypes
import os
import shutil
import uuid
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sitedeploy.builds.staging import TRANSIENT_ERRNOS, retry_transient
from sitedeploy.errors import BuildError, TransientIOError
from sitedeploy.types import ArtifactInfo

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

MANIFESTS_DIRNAME = ".manifests"


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def find_output_dir(source_dir: Path, candidates: list[str]) -> Path:
    """Return the first existing output directory among candidates.

    Raises:
        BuildError: If none of the candidates exists.
    """
    for name in candidates:
        path = source_dir / name
        if path.is_dir():
            logger.debug("Found build output directory: %s", path)
            return path
    raise BuildError(
        f"Build output ({'/'.join(candidates)}) not found", code="output_not_found"
    )


def discover_artifacts(output_dir: Path) -> list[ArtifactInfo]:
    """List every file in a build output directory.

    Args:
        output_dir: Directory containing compiled output.

    Returns:
        ArtifactInfo per file, sorted by relative path.
    """
    artifacts: list[ArtifactInfo] = []
    for path in sorted(output_dir.rglob("*")):
        if not path.is_file():
            continue
        content_type, _ = mimetypes.guess_type(path.name)
        artifacts.append(
            ArtifactInfo(
                relative_path=path.relative_to(output_dir).as_posix(),
                size_bytes=path.stat().st_size,
                sha256=compute_file_hash(path),
                content_type=content_type,
            )
        )
    logger.info("Discovered %d artifacts in %s", len(artifacts), output_dir)
    return artifacts


def generate_manifest(
    artifacts: list[ArtifactInfo],
    job_id: str | None = None,
    cache_key: str | None = None,
    extra_metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate a deployment manifest.

    Args:
        artifacts: List of discovered artifacts.
        job_id: Optional job id.
        cache_key: Optional dependency cache key.
        extra_metadata: Optional additional metadata.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "artifacts": [asdict(a) for a in artifacts],
    }
    if job_id is not None:
        manifest["job_id"] = job_id
    if cache_key:
        manifest["cache_key"] = cache_key
    if extra_metadata:
        manifest["metadata"] = extra_metadata

    manifest["summary"] = {
        "total_artifacts": len(artifacts),
        "total_size_bytes": sum(a.size_bytes for a in artifacts),
    }
    return manifest


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write manifest to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)
    logger.info("Wrote manifest to %s", output_path)
    return output_path


def manifest_path_for(artifacts_root: Path, job_id: str) -> Path:
    """Return where the manifest of a deployment is stored."""
    return artifacts_root / MANIFESTS_DIRNAME / f"{job_id}.json"


def place_artifacts(
    output_dir: Path,
    artifacts_root: Path,
    job_id: str,
    attempts: int = 5,
    delay: float = 0.2,
) -> Path:
    """Move build output to the job's canonical artifact directory.

    The output is first moved next to the final location and then renamed
    into place, so the final path appears atomically. An existing directory
    for the same job is replaced. Each filesystem step is retried with
    backoff on transient errors.

    Args:
        output_dir: Compiler output directory.
        artifacts_root: Root directory of all deployments.
        job_id: Job id (final directory name).
        attempts: Attempts per step on transient errors.
        delay: Initial backoff delay in seconds.

    Returns:
        The final artifact directory.

    Raises:
        BuildError: If the id is not a plain directory name or the move fails.
    """
    # Dot-prefixed names are reserved for manifests and temp directories
    if not job_id or job_id.startswith(".") or "/" in job_id or "\\" in job_id:
        raise BuildError(f"Invalid deployment id: {job_id!r}", code="invalid_job_id")

    artifacts_root.mkdir(parents=True, exist_ok=True)
    final = artifacts_root / job_id
    token = uuid.uuid4().hex[:8]
    tmp = artifacts_root / f".{job_id}.{token}.tmp"
    old = artifacts_root / f".{job_id}.{token}.old"

    def step(description: str, operation: Callable[[], object]) -> None:
        def attempt() -> None:
            try:
                operation()
            except OSError as e:
                if e.errno in TRANSIENT_ERRNOS:
                    raise TransientIOError(f"Failed {description}: {e}") from e
                raise

        retry_transient(
            attempt, description, attempts=attempts, delay=delay, code="placement_busy"
        )

    def move_output() -> None:
        if tmp.exists():
            shutil.rmtree(tmp)
        shutil.move(str(output_dir), str(tmp))

    try:
        step(f"moving output of {job_id}", move_output)
        if final.exists():
            step(f"retiring previous deployment {job_id}", lambda: os.replace(final, old))
        step(f"publishing deployment {job_id}", lambda: os.replace(tmp, final))
    except OSError as e:
        raise BuildError(
            f"Failed to place artifacts for {job_id}: {e}", code="placement_error"
        ) from e
    finally:
        if tmp.exists():
            shutil.rmtree(tmp, ignore_errors=True)
        if old.exists():
            shutil.rmtree(old, ignore_errors=True)

    logger.info("Placed artifacts at %s", final)
    return final


__all__ = [
    "HASH_CHUNK_SIZE",
    "compute_file_hash",
    "discover_artifacts",
    "find_output_dir",
    "generate_manifest",
    "manifest_path_for",
    "place_artifacts",
    "write_manifest",
]
