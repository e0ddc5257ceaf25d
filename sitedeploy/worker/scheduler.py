"""Self-rescheduling build scheduler.

The scheduler drains the job queue one job at a time. It is driven by
event-loop timers rather than a blocking loop: each scan arms the next one,
with a short delay while work remains and a longer one when the queue is
empty.

One Scheduler is constructed per process; its scanning flag and timer
handle are private state, controlled with ``start()`` and ``stop()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sitedeploy.db import get_session
from sitedeploy.errors import BuildError
from sitedeploy.jobs.service import (
    claim_next_pending,
    complete_job,
    count_pending,
    fail_job,
    has_processing,
    recover_stale,
    set_log_path,
)
from sitedeploy.jobs.sources import SourceRef, source_from_job

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from sitedeploy.builds.orchestrator import BuildOrchestrator
    from sitedeploy.config import Settings

logger = logging.getLogger(__name__)


class Scheduler:
    """Timer-driven worker that claims pending jobs and builds them.

    Args:
        session_factory: Factory for database sessions.
        orchestrator: Build orchestrator used for each claimed job.
        busy_interval: Delay before the next scan while jobs remain.
        idle_interval: Delay before the next scan when the queue is empty.
        download_timeout: Timeout applied to URL sources.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        orchestrator: BuildOrchestrator,
        busy_interval: float = 1.0,
        idle_interval: float = 5.0,
        download_timeout: float = 120.0,
    ) -> None:
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.busy_interval = busy_interval
        self.idle_interval = idle_interval
        self.download_timeout = download_timeout

        self._scanning = False
        self._running = False
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._current: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[int]] = set()
        self._stopped: asyncio.Event | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker[Session],
        orchestrator: BuildOrchestrator | None = None,
    ) -> Scheduler:
        """Build a scheduler (and, if needed, its orchestrator) from settings."""
        if orchestrator is None:
            from sitedeploy.builds.orchestrator import BuildOrchestrator

            orchestrator = BuildOrchestrator(settings)
        return cls(
            session_factory,
            orchestrator,
            busy_interval=settings.busy_interval,
            idle_interval=settings.idle_interval,
            download_timeout=settings.download_timeout,
        )

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scanning(self) -> bool:
        return self._scanning

    def start(self) -> int:
        """Recover stale jobs and arm the first scan.

        Must be called from within a running event loop.

        Returns:
            Number of jobs reset from processing to pending.
        """
        if self._running:
            return 0
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()

        with get_session(self.session_factory) as session:
            recovered = recover_stale(session)
        if recovered:
            logger.warning("Recovered %d stale job(s) at startup", recovered)

        self._running = True
        logger.info(
            "Scheduler started (busy=%.1fs, idle=%.1fs)",
            self.busy_interval,
            self.idle_interval,
        )
        self._arm(0)
        return recovered

    def stop(self) -> None:
        """Cancel the pending timer; an in-flight build runs to completion."""
        if not self._running:
            return
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._stopped is not None:
            self._stopped.set()
        logger.info("Scheduler stopped")

    async def wait_closed(self) -> None:
        """Wait for the in-flight scan and post-build hooks to finish."""
        if self._current is not None:
            await asyncio.gather(self._current, return_exceptions=True)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def run_forever(self) -> None:
        """Start the scheduler and run until stopped or cancelled."""
        self.start()
        assert self._stopped is not None
        try:
            await self._stopped.wait()
        finally:
            self.stop()
            await self.wait_closed()

    def _arm(self, delay: float) -> None:
        if not self._running or self._loop is None:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if not self._running or self._loop is None:
            return
        if self._scanning:
            self._arm(self.busy_interval)
            return
        self._current = self._loop.create_task(self._cycle())

    async def _cycle(self) -> None:
        try:
            delay = await self.scan_once()
        except Exception:
            logger.exception("Scan cycle failed")
            delay = self.idle_interval
        self._current = None
        self._arm(delay)

    async def scan_once(self) -> float:
        """Run one scan cycle.

        Returns:
            Delay in seconds before the next scan should run.
        """
        if self._scanning:
            return self.busy_interval
        self._scanning = True
        try:
            with get_session(self.session_factory) as session:
                if has_processing(session):
                    logger.debug("A job is already processing, backing off")
                    return self.idle_interval

                job = claim_next_pending(session)
                if job is None:
                    return self.idle_interval
                job_id = job.id
                try:
                    source: SourceRef | None = source_from_job(
                        job, download_timeout=self.download_timeout
                    )
                except BuildError as e:
                    fail_job(session, job_id, str(e))
                    source = None

            if source is not None:
                await self._process(job_id, source)

            with get_session(self.session_factory) as session:
                remaining = count_pending(session)
            return self.busy_interval if remaining else self.idle_interval
        finally:
            self._scanning = False

    async def _process(self, job_id: str, source: SourceRef) -> None:
        log_extra = {"job_id": job_id}
        try:
            outcome = await asyncio.to_thread(self.orchestrator.build, job_id, source)
        except Exception as e:
            if not isinstance(e, BuildError):
                logger.exception("Unexpected error building job %s", job_id, extra=log_extra)
            log_path = getattr(e, "log_path", None)
            with get_session(self.session_factory) as session:
                fail_job(session, job_id, str(e) or type(e).__name__)
                set_log_path(session, job_id, log_path)
            return

        with get_session(self.session_factory) as session:
            complete_job(session, job_id, str(outcome.artifact_path))
            set_log_path(session, job_id, str(outcome.log_path))

        if self.orchestrator.hooks:
            task = asyncio.get_running_loop().create_task(
                asyncio.to_thread(self.orchestrator.notify_success, job_id)
            )
            self._background.add(task)
            task.add_done_callback(self._hook_done)

    def _hook_done(self, task: asyncio.Task[int]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Post-build hooks raised: %s", exc)


__all__ = ["Scheduler"]
