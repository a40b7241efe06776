"""GTFS-RT polling worker: runs sync cycles on a fixed interval."""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from transit_sync.logging import bind_log_context, get_logger, unbind_log_context
from transit_sync.services.gtfs_rt.pacer import RateLimitPacer
from transit_sync.services.gtfs_rt.workflow import RealtimeSyncWorkflow
from transit_sync.services.workflow.checkpoints import InMemoryCheckpointStore
from transit_sync.services.workflow.executor import DurableExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from transit_sync.context import PipelineContext

logger = get_logger(__name__)


class RealtimePoller:
    """Polls GTFS-RT feeds on a schedule and persists merged data.

    Usage:
        poller = RealtimePoller(context)
        await poller.start()   # launches background task
        await poller.stop()    # cancels background task

        # Or run a single sync cycle:
        report = await poller.run_once()
    """

    def __init__(
        self,
        context: PipelineContext,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = context.settings
        self.context = context
        self._poll_interval = settings.realtime_poll_interval_sec
        self._stale_threshold = settings.stale_feed_threshold_sec
        self._sleep = sleep
        self.pacer = RateLimitPacer(
            window_sec=settings.rate_limit_window_sec,
            default_limit=settings.rate_limit_default,
            pause_sec=settings.rate_limit_pause_sec,
        )

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._poll_count = 0
        self._last_poll_at: datetime | None = None
        self._last_report: dict[str, Any] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def poll_count(self) -> int:
        return self._poll_count

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            logger.warning("Poller already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("GTFS-RT poller started", poll_interval_sec=self._poll_interval)

    async def stop(self) -> None:
        """Stop the background polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("GTFS-RT poller stopped")

    async def run_once(self) -> dict[str, Any]:
        """Execute a single sync cycle across all agencies and feeds.

        Each cycle is its own run with throwaway checkpoints; only the pacer
        carries state from one cycle to the next.
        """
        settings = self.context.settings
        run_id = uuid.uuid4().hex
        self._poll_count += 1
        self._last_poll_at = datetime.now(timezone.utc)

        executor = DurableExecutor(
            run_id,
            InMemoryCheckpointStore(),
            max_attempts=settings.step_max_attempts,
            backoff_base=settings.step_backoff_base,
            backoff_max=settings.step_backoff_max,
            deadline=time.time() + settings.workflow_budget_sec,
            sleep=self._sleep,
        )
        bind_log_context(run_id=run_id)
        try:
            logger.info("Starting sync cycle", poll_count=self._poll_count)
            report = await RealtimeSyncWorkflow(self.context, executor, self.pacer).run()
        finally:
            unbind_log_context("run_id")

        report["poll_count"] = self._poll_count
        report["started_at"] = self._last_poll_at.isoformat()
        report["ended_at"] = datetime.now(timezone.utc).isoformat()
        self._last_report = report
        return report

    async def get_status(self) -> dict[str, Any]:
        """Get current poller status for health/meta endpoints."""
        return {
            "running": self._running,
            "poll_count": self._poll_count,
            "last_poll_at": self._last_poll_at.isoformat() if self._last_poll_at else None,
            "poll_interval_sec": self._poll_interval,
            "stale_threshold_sec": self._stale_threshold,
            "rate_limit": {
                "limit": self.pacer.limit,
                "remaining": self.pacer.remaining,
                "interval_sec": self.pacer.interval_sec,
            },
            "last_report": self._last_report,
        }

    async def _poll_loop(self) -> None:
        """Main polling loop that runs until stopped."""
        while self._running:
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Sync cycle failed unexpectedly", exc_info=exc)

            try:
                await self._sleep(self._poll_interval)
            except asyncio.CancelledError:
                break
