"""Content-addressed dependency cache.

This module handles:
- Per-key file locks so a dependency set is installed at most once
- Populating a cache entry by running the install command once
- Materializing an entry into a staging area (hard links, copy fallback)
- Recency-based pruning that never removes an entry in use

Layout::

    <cache_dir>/<key>/package.json
    <cache_dir>/<key>/node_modules/
    <cache_dir>/.locks/<key>.lock
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import shutil
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sitedeploy.builds.cache_key import (
    MANIFEST_FILENAME,
    compute_manifest_key,
    dependency_manifest,
)
from sitedeploy.builds.runner import output_tail, run_command
from sitedeploy.errors import BuildError

logger = logging.getLogger(__name__)

DEPENDENCY_DIRNAME = "node_modules"
LOCK_DIRNAME = ".locks"


@contextmanager
def entry_lock(
    lock_dir: Path,
    key: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """Acquire an exclusive lock for a cache key.

    Args:
        lock_dir: Directory for lock files.
        key: Cache key to lock on.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        None when lock is acquired.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_file = lock_dir / f"{key[:64]}.lock"

    fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    lock_acquired = False
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    lock_acquired = True
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= timeout:
                        raise TimeoutError(
                            f"Timeout waiting for cache lock on {key[:16]}"
                        ) from None
                    time.sleep(0.1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)
            lock_acquired = True

        logger.debug("Cache lock acquired for key: %s", key[:16])
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Cache lock released for key: %s", key[:16])
        os.close(fd)


def _link_or_copy(src: str, dst: str) -> str:
    try:
        os.link(src, dst)
    except OSError:
        shutil.copy2(src, dst)
    return dst


@dataclass
class CacheEntry:
    """A populated dependency set."""

    key: str
    path: Path
    last_used: datetime


class DependencyCache:
    """Dependency sets keyed by manifest hash, shared across jobs.

    Args:
        cache_dir: Root of the cache.
        install_command: Command that installs dependencies in an entry dir.
        install_timeout: Wall-clock bound for the install command.
        keep: Entries retained by ``prune`` when called without an argument.
    """

    def __init__(
        self,
        cache_dir: Path,
        install_command: str,
        install_timeout: float | None = None,
        keep: int = 3,
    ) -> None:
        self.cache_dir = cache_dir
        self.install_command = install_command
        self.install_timeout = install_timeout
        self.keep = keep

    @property
    def lock_dir(self) -> Path:
        return self.cache_dir / LOCK_DIRNAME

    def entry_path(self, key: str) -> Path:
        return self.cache_dir / key

    def key_for(self, manifest: dict[str, Any]) -> str:
        return compute_manifest_key(manifest)

    def get(self, key: str) -> Path | None:
        """Return the entry directory if it is fully populated."""
        path = self.entry_path(key)
        if (path / DEPENDENCY_DIRNAME).is_dir():
            return path
        return None

    def populate(
        self,
        key: str,
        manifest: dict[str, Any],
        log_path: Path | None = None,
    ) -> Path:
        """Install a manifest's dependencies into a new cache entry.

        Installation happens in a temporary sibling directory that is renamed
        into place only after the install command succeeds.

        Raises:
            BuildError: If installation fails or times out.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        final = self.entry_path(key)
        tmp = self.cache_dir / f".{key}.{uuid.uuid4().hex[:8]}.tmp"
        tmp.mkdir(parents=True)
        if log_path is None:
            log_path = tmp / "install.log"

        logger.info("Populating dependency cache entry %s", key[:16])
        try:
            (tmp / MANIFEST_FILENAME).write_text(
                json.dumps(dependency_manifest(manifest), indent=2, sort_keys=True),
                encoding="utf-8",
            )
            result = run_command(
                self.install_command, tmp, log_path, timeout=self.install_timeout
            )
            if not result.success:
                message = (
                    f"Dependency installation failed with exit code "
                    f"{result.exit_code}: {result.command}"
                )
                tail = output_tail(result.output)
                raise BuildError(
                    f"{message}\n{tail}" if tail else message,
                    code="dependency_install_failed",
                    log_path=str(log_path),
                )
            (tmp / DEPENDENCY_DIRNAME).mkdir(exist_ok=True)
            if final.exists():
                shutil.rmtree(final)
            os.replace(tmp, final)
        finally:
            if tmp.exists():
                shutil.rmtree(tmp, ignore_errors=True)

        logger.info("Dependency cache entry %s created", key[:16])
        return final

    def materialize(self, key: str, destination: Path) -> Path:
        """Copy a cached dependency directory into a staging area.

        Files are hard-linked where the filesystem allows it and copied
        otherwise. The entry's mtime is refreshed to record the use.

        Raises:
            BuildError: If the entry is missing or the copy fails.
        """
        entry = self.get(key)
        if entry is None:
            raise BuildError(
                f"Dependency cache entry missing: {key[:16]}", code="cache_miss"
            )
        target = destination / DEPENDENCY_DIRNAME
        try:
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.exists():
                shutil.rmtree(target)
            shutil.copytree(
                entry / DEPENDENCY_DIRNAME,
                target,
                symlinks=True,
                copy_function=_link_or_copy,
            )
            os.utime(entry)
        except OSError as e:
            raise BuildError(
                f"Failed to copy cached dependencies into {destination}: {e}",
                code="cache_copy_error",
            ) from e
        logger.debug("Materialized dependency entry %s into %s", key[:16], destination)
        return target

    def prepare(
        self,
        staging_dir: Path,
        manifest: dict[str, Any],
        log_path: Path | None = None,
    ) -> tuple[str, bool]:
        """Provide a ready dependency directory for a staged tree.

        The lookup, install and copy all happen under the key's lock, so the
        install runs at most once per manifest and the entry cannot be pruned
        while it is being copied.

        Returns:
            Tuple of (cache key, whether the entry already existed).

        Raises:
            BuildError: If installation or copying fails.
        """
        key = self.key_for(manifest)
        with entry_lock(self.lock_dir, key):
            hit = self.get(key) is not None
            if hit:
                logger.info("Using cached dependencies (%s)", key[:16])
            else:
                logger.info("No cached dependencies, installing (%s)", key[:16])
                self.populate(key, manifest, log_path=log_path)
            self.materialize(key, staging_dir)

        if not hit:
            self.prune()
        return key, hit

    def list_entries(self) -> list[CacheEntry]:
        """List populated entries, most recently used first."""
        if not self.cache_dir.exists():
            return []
        entries: list[CacheEntry] = []
        for path in self.cache_dir.iterdir():
            if path.name.startswith(".") or not path.is_dir():
                continue
            if not (path / DEPENDENCY_DIRNAME).is_dir():
                continue
            mtime = path.stat().st_mtime
            entries.append(
                CacheEntry(
                    key=path.name,
                    path=path,
                    last_used=datetime.fromtimestamp(mtime, tz=timezone.utc),
                )
            )
        entries.sort(key=lambda e: e.last_used, reverse=True)
        return entries

    def prune(self, keep: int | None = None) -> list[str]:
        """Remove all but the ``keep`` most recently used entries.

        Entries whose lock is held are in use and are skipped.

        Returns:
            Keys of removed entries.
        """
        if keep is None:
            keep = self.keep
        removed: list[str] = []
        for entry in self.list_entries()[keep:]:
            try:
                with entry_lock(self.lock_dir, entry.key, timeout=0):
                    logger.info("Removing old dependency cache entry: %s", entry.key[:16])
                    shutil.rmtree(entry.path)
                    removed.append(entry.key)
            except TimeoutError:
                logger.info("Skipping in-use cache entry: %s", entry.key[:16])
        return removed


__all__ = [
    "DEPENDENCY_DIRNAME",
    "CacheEntry",
    "DependencyCache",
    "entry_lock",
]
