"""GTFS-RT sync control and status endpoints."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text

from transit_sync.logging import get_logger
from transit_sync.services.gtfs_rt.poller import RealtimePoller

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


def get_poller(request: Request) -> RealtimePoller:
    return request.app.state.poller


# --- Response schemas ---


class FeedIngestStatus(BaseModel):
    """Status of a single (source, feed type)."""

    source: str
    feed_type: str
    status: str
    last_success_at: Optional[int] = None
    last_attempt_at: Optional[int] = None
    feed_timestamp: Optional[int] = None
    error_message: str = ""
    entity_count: int = 0
    rows_written: int = 0
    feed_hash: str = ""
    rate_limit_remaining: Optional[int] = None
    is_fresh: bool = True


class LastIngestResponse(BaseModel):
    """Response for /meta/last-ingest."""

    feeds: List[FeedIngestStatus]
    stale_threshold_sec: int


class PollerStatusResponse(BaseModel):
    running: bool
    poll_count: int
    last_poll_at: Optional[str] = None
    poll_interval_sec: int
    stale_threshold_sec: int
    rate_limit: Dict[str, Any]
    last_report: Optional[Dict[str, Any]] = None


class RunOnceResponse(BaseModel):
    """Response for run-once endpoint."""

    poll_id: str
    poll_count: int
    started_at: str
    ended_at: str = ""
    feeds: Dict[str, Any]
    paused_sec: Optional[int] = None
    stopped_early: bool = False


# --- Meta endpoints ---


@router.get(
    "/meta/last-ingest",
    response_model=LastIngestResponse,
    summary="Get last ingest status per source and feed",
)
async def get_last_ingest(request: Request) -> dict[str, Any]:
    """Return ingest status for each source and feed type with a freshness flag."""
    context = request.app.state.context
    stale_threshold = context.settings.stale_feed_threshold_sec
    now = int(time.time())

    async with context.session_factory() as session:
        result = await session.execute(
            text("""
                SELECT s.source_name, m.feed_type, m.status, m.last_success_at,
                       m.last_attempt_at, m.feed_timestamp, m.error_message,
                       m.entity_count, m.rows_written, m.feed_hash, m.rate_limit_remaining
                FROM realtime_ingest_status m
                JOIN feed_source s ON s.feed_source_id = m.feed_source_id
                ORDER BY s.source_name, m.feed_type
            """)
        )
        rows = result.mappings().all()

    feeds: list[dict[str, Any]] = []
    for row in rows:
        last_success = row["last_success_at"]
        feeds.append(
            {
                "source": row["source_name"],
                "feed_type": row["feed_type"],
                "status": row["status"],
                "last_success_at": last_success,
                "last_attempt_at": row["last_attempt_at"],
                "feed_timestamp": row["feed_timestamp"],
                "error_message": row["error_message"] or "",
                "entity_count": row["entity_count"] or 0,
                "rows_written": row["rows_written"] or 0,
                "feed_hash": row["feed_hash"] or "",
                "rate_limit_remaining": row["rate_limit_remaining"],
                "is_fresh": last_success is not None and now - last_success <= stale_threshold,
            }
        )

    return {"feeds": feeds, "stale_threshold_sec": stale_threshold}


# --- Admin endpoints ---


@router.post(
    "/admin/realtime/run-once",
    response_model=RunOnceResponse,
    summary="Trigger a single GTFS-RT sync cycle",
)
async def run_once(request: Request) -> dict[str, Any]:
    """Execute one sync cycle immediately (all agencies, all configured feeds)."""
    return await get_poller(request).run_once()


@router.post(
    "/admin/realtime/start",
    response_model=PollerStatusResponse,
    summary="Start the GTFS-RT poller",
)
async def start_poller(request: Request) -> dict[str, Any]:
    poller = get_poller(request)
    await poller.start()
    return await poller.get_status()


@router.post(
    "/admin/realtime/stop",
    response_model=PollerStatusResponse,
    summary="Stop the GTFS-RT poller",
)
async def stop_poller(request: Request) -> dict[str, Any]:
    poller = get_poller(request)
    await poller.stop()
    return await poller.get_status()


@router.get(
    "/admin/realtime/status",
    response_model=PollerStatusResponse,
    summary="Get GTFS-RT poller status",
)
async def poller_status(request: Request) -> dict[str, Any]:
    return await get_poller(request).get_status()
