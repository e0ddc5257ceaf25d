"""Build orchestrator.

This module turns one claimed job into a published artifact directory:

1. Clean the job's staging area (transient errors retried with backoff)
2. Materialize the source tree
3. Backfill missing scaffolding
4. Resolve dependencies through the dependency cache
5. Compile, with one fallback command
6. Place artifacts atomically
7. Notify post-build hooks (via ``notify_success``, after the job is ready)

Any failure in steps 1-6 surfaces as BuildError. There is no retry here;
a failed job must be resubmitted.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sitedeploy.builds.artifacts import (
    discover_artifacts,
    find_output_dir,
    generate_manifest,
    manifest_path_for,
    place_artifacts,
    write_manifest,
)
from sitedeploy.builds.cache_key import load_manifest
from sitedeploy.builds.dependency_cache import DependencyCache
from sitedeploy.builds.hooks import PostBuildHook, WebhookHook, run_hooks
from sitedeploy.builds.runner import run_build
from sitedeploy.builds.scaffold import backfill_scaffolding
from sitedeploy.builds.staging import prepare_staging
from sitedeploy.config import Settings, get_settings
from sitedeploy.errors import BuildError
from sitedeploy.jobs.sources import SourceRef
from sitedeploy.types import BuildOutcome

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Stage, compile and publish job source trees.

    Args:
        settings: Application settings.
        cache: Dependency cache (built from settings if not given).
        hooks: Post-build hooks (a webhook hook is added when
            ``post_build_webhook_url`` is configured and hooks is None).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: DependencyCache | None = None,
        hooks: list[PostBuildHook] | None = None,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self.settings = settings

        assert settings.staging_dir is not None
        assert settings.artifacts_dir is not None
        assert settings.cache_dir is not None
        self.staging_root: Path = settings.staging_dir
        self.artifacts_root: Path = settings.artifacts_dir

        if cache is None:
            cache = DependencyCache(
                cache_dir=settings.cache_dir,
                install_command=settings.install_command,
                install_timeout=settings.install_timeout,
                keep=settings.cache_keep,
            )
        self.cache = cache

        if hooks is None:
            hooks = []
            if settings.post_build_webhook_url:
                hooks.append(
                    WebhookHook(
                        settings.post_build_webhook_url,
                        artifact_url=settings.artifact_url,
                        timeout=settings.webhook_timeout,
                    )
                )
        self.hooks = hooks

    def build(self, job_id: str, source: SourceRef) -> BuildOutcome:
        """Run the pipeline for one job.

        Blocks until the job's artifacts are published or the build fails.

        Args:
            job_id: Id of the claimed job.
            source: The job's source variant.

        Returns:
            BuildOutcome describing the published deployment.

        Raises:
            BuildError: On any staging, dependency, compile or placement failure.
        """
        settings = self.settings
        log_extra = {"job_id": job_id}
        logger.info("Building job %s (source=%s)", job_id, source.kind.value, extra=log_extra)

        area = prepare_staging(
            self.staging_root,
            job_id,
            attempts=settings.fs_retry_attempts,
            delay=settings.fs_retry_delay,
        )

        try:
            written = source.materialize(area.source_dir)
            logger.info("Materialized %d source files", len(written), extra=log_extra)

            backfilled = backfill_scaffolding(area.source_dir)

            manifest = load_manifest(area.source_dir)
            cache_key, cache_hit = self.cache.prepare(
                area.source_dir, manifest, log_path=area.log_path
            )

            result = run_build(
                area.source_dir,
                area.log_path,
                build_command=settings.build_command,
                fallback_command=settings.fallback_build_command,
                timeout=settings.build_timeout,
            )

            output_dir = find_output_dir(area.source_dir, settings.output_dirs)
            artifacts = discover_artifacts(output_dir)
            write_manifest(
                generate_manifest(
                    artifacts,
                    job_id=job_id,
                    cache_key=cache_key,
                    extra_metadata={
                        "command": result.command,
                        "used_fallback": result.used_fallback,
                        "backfilled": backfilled,
                    },
                ),
                manifest_path_for(self.artifacts_root, job_id),
            )
            artifact_path = place_artifacts(
                output_dir,
                self.artifacts_root,
                job_id,
                attempts=settings.fs_retry_attempts,
                delay=settings.fs_retry_delay,
            )
        except BuildError as e:
            if e.log_path is None:
                e.log_path = str(area.log_path)
            logger.error("Build failed for job %s: %s", job_id, e, extra=log_extra)
            raise
        except OSError as e:
            logger.exception("I/O error while building job %s", job_id, extra=log_extra)
            raise BuildError(
                f"I/O error during build: {e}", code="io_error", log_path=str(area.log_path)
            ) from e

        logger.info(
            "Build succeeded for job %s (%d artifacts, cache %s)",
            job_id,
            len(artifacts),
            "hit" if cache_hit else "miss",
            extra=log_extra,
        )
        return BuildOutcome(
            artifact_path=artifact_path,
            log_path=area.log_path,
            cache_key=cache_key,
            cache_hit=cache_hit,
            used_fallback=result.used_fallback,
            backfilled=backfilled,
            artifacts=artifacts,
        )

    def notify_success(self, job_id: str) -> int:
        """Run post-build hooks for a ready job; failures are only logged."""
        return run_hooks(self.hooks, job_id)


__all__ = ["BuildOrchestrator"]
