"""Staging area management for builds.

This module handles:
- Removing leftover staging directories with bounded retry/backoff
- Creating the per-job staging layout
- Path containment checks

Layout::

    <staging_dir>/<job_id>/source/     materialized tree + scaffolding
    <staging_dir>/<job_id>/build.log   combined install/compile output
"""

from __future__ import annotations

import errno
import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from sitedeploy.errors import BuildError, TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# errno values treated as transient contention
TRANSIENT_ERRNOS = frozenset(
    {errno.EBUSY, errno.EACCES, errno.EPERM, errno.ENOTEMPTY, errno.EAGAIN}
)


@dataclass
class StagingArea:
    """Paths of one job's staging area."""

    root: Path
    source_dir: Path
    log_path: Path


def _remove_once(path: Path) -> None:
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        if e.errno in TRANSIENT_ERRNOS:
            raise TransientIOError(f"Failed to remove {path}: {e}") from e
        raise BuildError(f"Failed to remove {path}: {e}", code="staging_error") from e


def retry_transient(
    operation: Callable[[], T],
    description: str,
    attempts: int = 5,
    delay: float = 0.2,
    code: str = "io_busy",
) -> T:
    """Call ``operation``, retrying while it raises TransientIOError.

    The delay doubles after each failed attempt.

    Args:
        operation: Zero-argument callable to run.
        description: What the operation does, for log messages.
        attempts: Maximum number of attempts.
        delay: Initial backoff delay in seconds.
        code: Error code used once all attempts are exhausted.

    Returns:
        Whatever ``operation`` returns.

    Raises:
        BuildError: If the operation still fails after all attempts.
    """
    attempts = max(attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransientIOError as e:
            if attempt == attempts:
                raise BuildError(
                    f"{e} (gave up after {attempts} attempts)", code=code
                ) from e
            logger.warning(
                "Transient error while %s (attempt %d/%d): %s",
                description,
                attempt,
                attempts,
                e,
            )
            time.sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")


def remove_tree(path: Path, attempts: int = 5, delay: float = 0.2) -> None:
    """Remove a file or directory tree, retrying transient errors.

    Args:
        path: Path to remove; missing paths are ignored.
        attempts: Maximum number of attempts.
        delay: Initial backoff delay in seconds.

    Raises:
        BuildError: If removal still fails after all attempts, or fails
            with a non-transient error.
    """
    retry_transient(
        lambda: _remove_once(path),
        f"removing {path}",
        attempts=attempts,
        delay=delay,
        code="staging_busy",
    )


def prepare_staging(
    staging_root: Path,
    job_id: str,
    attempts: int = 5,
    delay: float = 0.2,
) -> StagingArea:
    """Clean and recreate the staging area of a job.

    Args:
        staging_root: Root directory for all staging areas.
        job_id: Job id (directory name).
        attempts: Retry attempts for removing leftovers.
        delay: Initial backoff delay.

    Returns:
        StagingArea with freshly created directories.

    Raises:
        BuildError: If the area cannot be cleaned or created.
    """
    root = validate_path_within_base(staging_root / job_id, staging_root, "staging")
    remove_tree(root, attempts=attempts, delay=delay)
    source_dir = root / "source"
    try:
        source_dir.mkdir(parents=True)
    except OSError as e:
        raise BuildError(
            f"Failed to create staging area {root}: {e}", code="staging_error"
        ) from e
    logger.debug("Prepared staging area %s", root)
    return StagingArea(root=root, source_dir=source_dir, log_path=root / "build.log")


def validate_path_within_base(path: Path, base: Path, path_type: str) -> Path:
    """Validate that a path is contained within a base directory.

    Args:
        path: Path to validate (will be resolved).
        base: Base directory (will be resolved).
        path_type: Description of the path for error messages.

    Returns:
        The resolved path.

    Raises:
        BuildError: If path escapes base directory.
    """
    resolved_path = path.resolve()
    resolved_base = base.resolve()

    try:
        resolved_path.relative_to(resolved_base)
    except ValueError:
        raise BuildError(
            f"{path_type} path traversal detected: {path} resolves outside {base}",
            code="path_traversal",
        ) from None

    return resolved_path


__all__ = [
    "TRANSIENT_ERRNOS",
    "StagingArea",
    "prepare_staging",
    "remove_tree",
    "retry_transient",
    "validate_path_within_base",
]
