"""One real-time sync cycle as a durable workflow.

    Fetch agencies -> [agency] Sync feed_type -> paced sleep -> ... -> done

Upstream quota is shared by every agency and feed type, so calls are spread
over the rate-limit window and the cycle ends early, after a pause, once the
quota runs out.
"""

from __future__ import annotations

import functools
import time
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from transit_sync.errors import (
    FeedDecodeError,
    FeedRejectedError,
    QuotaExhausted,
    StepRetriesExhausted,
    UnknownFeedSourceError,
)
from transit_sync.logging import get_logger
from transit_sync.services.gtfs_rt.decoder import GtfsRtDecoder
from transit_sync.services.gtfs_rt.merger import RealtimeMerger
from transit_sync.services.gtfs_rt.writer import RealtimeWriter
from transit_sync.services.gtfs_static.versions import FeedVersionManager

if TYPE_CHECKING:
    from transit_sync.context import PipelineContext
    from transit_sync.services.gtfs_rt.pacer import RateLimitPacer
    from transit_sync.services.workflow.executor import DurableExecutor

logger = get_logger(__name__)

WORKFLOW_NAME = "realtime_sync"

# Feed type constants
FEED_TRIP_UPDATES = "trip_updates"
FEED_VEHICLE_POSITIONS = "vehicle_positions"
FEED_SERVICE_ALERTS = "service_alerts"


class RealtimeSyncWorkflow:
    """Syncs every configured feed of every known agency once."""

    def __init__(
        self, context: PipelineContext, executor: DurableExecutor, pacer: RateLimitPacer
    ) -> None:
        self.settings = context.settings
        self.session_factory = context.session_factory
        self.fetcher = context.realtime_fetcher
        self.executor = executor
        self.pacer = pacer
        self.decoder = GtfsRtDecoder()
        self.versions = FeedVersionManager(context.session_factory)
        self.merger = RealtimeMerger(
            context.session_factory,
            lookup_chunk=self.settings.realtime_lookup_chunk,
            batch_size=self.settings.realtime_batch_size,
        )
        self.writer = RealtimeWriter(batch_size=self.settings.realtime_batch_size)

    async def run(self) -> dict[str, Any]:
        poll_id = self.executor.run_id[:8]
        step = self.executor.step
        report: dict[str, Any] = {
            "poll_id": poll_id,
            "feeds": {},
            "paused_sec": None,
            "stopped_early": False,
        }

        agencies = await step("Fetch agencies", self.versions.list_sources)
        calls = [
            (agency, feed_type)
            for agency in agencies
            for feed_type in self.settings.realtime_feeds
        ]

        for index, (agency, feed_type) in enumerate(calls):
            if self.executor.deadline_exceeded():
                logger.warning("Sync cycle budget exceeded, stopping", poll_id=poll_id)
                report["stopped_early"] = True
                break

            name = f"[{agency}] Sync {feed_type}"
            try:
                result = await step(
                    name, functools.partial(self._sync_feed, agency, feed_type, poll_id)
                )
            except StepRetriesExhausted as exc:
                logger.error("Skipping feed after retries", agency=agency, feed_type=feed_type)
                await self._record_failure(agency, feed_type, str(exc.__cause__ or exc))
                result = {"status": "failed", "error": str(exc)}

            report["feeds"][f"{agency}/{feed_type}"] = result
            observed = "rate_remaining" in result
            if observed:
                self.pacer.observe(
                    result.get("rate_limit"), result["rate_remaining"], result.get("rate_reset")
                )

            if observed and self.pacer.exhausted:
                pause = self.pacer.pause_sec
                logger.info("Quota exhausted, pausing until reset", poll_id=poll_id, pause_sec=pause)
                await self.executor.sleep(f"{name} quota", pause)
                report["paused_sec"] = pause
                report["stopped_early"] = index < len(calls) - 1
                break

            if index < len(calls) - 1:
                await self.executor.sleep(name, self.pacer.interval_sec)

        logger.info(
            "Sync cycle complete",
            poll_id=poll_id,
            feeds=len(report["feeds"]),
            stopped_early=report["stopped_early"],
        )
        return report

    async def _sync_feed(self, agency: str, feed_type: str, poll_id: str) -> dict[str, Any]:
        """Fetch, decode and merge one feed; records the outcome in ingest status."""
        context = await self.versions.get_feed_context(agency)
        url = self.settings.realtime_feed_url_for(feed_type, agency)
        sync_time = int(time.time())

        try:
            fetched = await self.fetcher.fetch(url, feed_type, poll_id)
        except QuotaExhausted as exc:
            await self.writer.update_ingest_status(
                self.session_factory,
                context.feed_source_id,
                feed_type,
                "rate_limited",
                rate_limit_remaining=0,
                error_message=str(exc),
            )
            return {
                "status": "rate_limited",
                "rate_limit": None,
                "rate_remaining": 0,
                "rate_reset": exc.reset_sec,
            }
        except FeedRejectedError as exc:
            await self.writer.update_ingest_status(
                self.session_factory,
                context.feed_source_id,
                feed_type,
                "error",
                error_message=str(exc),
            )
            return {"status": "error", "error": str(exc)}

        rate = {
            "rate_limit": fetched.rate_limit,
            "rate_remaining": fetched.rate_remaining,
            "rate_reset": fetched.rate_reset,
        }

        try:
            feed = self.decoder.decode(fetched.content, feed_type, poll_id)
        except FeedDecodeError as exc:
            await self.writer.update_ingest_status(
                self.session_factory,
                context.feed_source_id,
                feed_type,
                "decode_error",
                feed_hash=fetched.sha256,
                rate_limit_remaining=fetched.rate_remaining,
                error_message=str(exc),
            )
            return {"status": "decode_error", "error": str(exc), **rate}

        feed_ts = self.decoder.get_feed_timestamp(feed)
        stale = bool(feed_ts) and sync_time - feed_ts > self.settings.stale_feed_threshold_sec
        if stale:
            logger.warning(
                "Stale GTFS-RT feed detected",
                agency=agency,
                feed_type=feed_type,
                poll_id=poll_id,
                feed_age_sec=sync_time - feed_ts,
                threshold_sec=self.settings.stale_feed_threshold_sec,
            )

        merged = await self._merge(agency, feed_type, feed, sync_time, poll_id, context)
        entity_count = self.decoder.get_entity_count(feed)
        await self.writer.update_ingest_status(
            self.session_factory,
            context.feed_source_id,
            feed_type,
            "ok",
            entity_count=entity_count,
            rows_written=merged["inserted"],
            feed_hash=fetched.sha256,
            feed_timestamp=feed_ts or None,
            rate_limit_remaining=fetched.rate_remaining,
        )
        return {
            "status": "ok",
            "entity_count": entity_count,
            "stale": stale,
            **merged,
            **rate,
        }

    async def _merge(
        self, agency: str, feed_type: str, feed: Any, sync_time: int, poll_id: str, context: Any
    ) -> dict[str, int]:
        """Route to the correct merge based on feed type."""
        if feed_type == FEED_TRIP_UPDATES:
            return await self.merger.merge_trip_updates(agency, feed, sync_time, poll_id, context)
        if feed_type == FEED_VEHICLE_POSITIONS:
            return await self.merger.merge_vehicle_positions(
                agency, feed, sync_time, poll_id, context
            )
        if feed_type == FEED_SERVICE_ALERTS:
            return await self.merger.reconcile_alerts(agency, feed, sync_time, poll_id, context)
        msg = f"Unknown real-time feed type: {feed_type}"
        raise ValueError(msg)

    async def _record_failure(self, agency: str, feed_type: str, error: str) -> None:
        try:
            context = await self.versions.get_feed_context(agency)
            await self.writer.update_ingest_status(
                self.session_factory, context.feed_source_id, feed_type, "error", error_message=error
            )
        except (UnknownFeedSourceError, SQLAlchemyError) as exc:
            logger.error("Failed to update ingest status on error", feed_type=feed_type, error=str(exc))
