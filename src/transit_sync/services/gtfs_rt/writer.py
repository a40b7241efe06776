"""GTFS-RT database writer with batch idempotent inserts."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 500

# Table definitions for batch insert; conflict_cols None means plain INSERT
_TABLE_DEFS: dict[str, dict[str, Any]] = {
    "trip_updates": {
        "columns": (
            "feed_source_id",
            "trip_id",
            "trip_pk",
            "delay",
            "status",
            "updated_time",
        ),
        "conflict_cols": ("feed_source_id", "trip_id", "updated_time"),
    },
    "vehicle_positions": {
        "columns": (
            "feed_source_id",
            "vehicle_id",
            "trip_id",
            "trip_pk",
            "route_id",
            "route_pk",
            "latitude",
            "longitude",
            "bearing",
            "speed",
            "current_stop_sequence",
            "current_status",
            "occupancy_status",
            "position_time",
        ),
        "conflict_cols": ("feed_source_id", "vehicle_id", "position_time"),
    },
    "service_alerts": {
        "columns": (
            "feed_source_id",
            "alert_id",
            "header",
            "description",
            "cause",
            "effect",
            "severity_level",
            "start_time",
            "end_time",
            "route_id",
            "stop_id",
            "trip_id",
            "affected_route_pk",
            "affected_stop_pk",
            "affected_trip_pk",
        ),
        "conflict_cols": None,
    },
}


class RealtimeWriter:
    """Batch writer for merged GTFS-RT rows and per-feed ingest status."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.batch_size = batch_size

    async def write_trip_updates(
        self, session: AsyncSession, rows: list[dict[str, Any]], poll_id: str
    ) -> int:
        """Batch insert trip updates with ON CONFLICT DO NOTHING."""
        return await self._batch_insert(session, "trip_updates", rows, poll_id)

    async def write_vehicle_positions(
        self, session: AsyncSession, rows: list[dict[str, Any]], poll_id: str
    ) -> int:
        """Batch insert vehicle positions with ON CONFLICT DO NOTHING."""
        return await self._batch_insert(session, "vehicle_positions", rows, poll_id)

    async def write_alerts(
        self, session: AsyncSession, rows: list[dict[str, Any]], poll_id: str
    ) -> int:
        """Insert alert rows without committing; the caller owns the transaction."""
        return await self._batch_insert(session, "service_alerts", rows, poll_id, commit=False)

    async def update_ingest_status(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed_source_id: int,
        feed_type: str,
        status: str,
        *,
        entity_count: int = 0,
        rows_written: int = 0,
        feed_hash: str = "",
        feed_timestamp: int | None = None,
        rate_limit_remaining: int | None = None,
        error_message: str = "",
    ) -> None:
        """Upsert the ingest status row for a (source, feed type)."""
        now = int(time.time())
        last_success = now if status == "ok" else None

        stmt = text("""
            INSERT INTO realtime_ingest_status
                (feed_source_id, feed_type, status, last_attempt_at, last_success_at,
                 feed_timestamp, entity_count, rows_written, feed_hash,
                 rate_limit_remaining, error_message)
            VALUES
                (:feed_source_id, :feed_type, :status, :last_attempt_at, :last_success_at,
                 :feed_timestamp, :entity_count, :rows_written, :feed_hash,
                 :rate_limit_remaining, :error_message)
            ON CONFLICT (feed_source_id, feed_type) DO UPDATE SET
                last_success_at = CASE
                    WHEN EXCLUDED.status = 'ok' THEN EXCLUDED.last_attempt_at
                    ELSE realtime_ingest_status.last_success_at
                END,
                last_attempt_at = EXCLUDED.last_attempt_at,
                status = EXCLUDED.status,
                feed_timestamp = COALESCE(EXCLUDED.feed_timestamp, realtime_ingest_status.feed_timestamp),
                entity_count = EXCLUDED.entity_count,
                rows_written = EXCLUDED.rows_written,
                feed_hash = EXCLUDED.feed_hash,
                rate_limit_remaining = EXCLUDED.rate_limit_remaining,
                error_message = EXCLUDED.error_message
        """)
        async with session_factory() as session:
            await session.execute(
                stmt,
                {
                    "feed_source_id": feed_source_id,
                    "feed_type": feed_type,
                    "status": status,
                    "last_attempt_at": now,
                    "last_success_at": last_success,
                    "feed_timestamp": feed_timestamp,
                    "entity_count": entity_count,
                    "rows_written": rows_written,
                    "feed_hash": feed_hash,
                    "rate_limit_remaining": rate_limit_remaining,
                    "error_message": error_message[:500] if error_message else "",
                },
            )
            await session.commit()

    async def _batch_insert(
        self,
        session: AsyncSession,
        table: str,
        rows: list[dict[str, Any]],
        poll_id: str,
        *,
        commit: bool = True,
    ) -> int:
        """Batch INSERT for a given table, ignoring duplicate observations.

        Returns the total number of rows actually inserted.
        """
        if not rows:
            return 0

        table_def = _TABLE_DEFS[table]
        columns = table_def["columns"]
        conflict_cols = table_def["conflict_cols"]

        column_list = ", ".join(columns)
        conflict_sql = (
            f"ON CONFLICT ({', '.join(conflict_cols)}) DO NOTHING" if conflict_cols else ""
        )

        total_inserted = 0

        for batch_start in range(0, len(rows), self.batch_size):
            batch = rows[batch_start : batch_start + self.batch_size]

            values_sql = ", ".join(
                "(" + ", ".join(f":{col}_{i}" for col in columns) + ")"
                for i in range(len(batch))
            )
            params: dict[str, Any] = {}
            for i, row in enumerate(batch):
                for col in columns:
                    params[f"{col}_{i}"] = row.get(col)

            stmt = text(f"""
                INSERT INTO {table} ({column_list})
                VALUES {values_sql}
                {conflict_sql}
            """)

            try:
                result = await session.execute(stmt, params)
                inserted = result.rowcount if result.rowcount and result.rowcount > 0 else 0
                total_inserted += inserted
                if commit:
                    await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.error(
                    "Batch insert failed",
                    table=table,
                    poll_id=poll_id,
                    batch_start=batch_start,
                    batch_size=len(batch),
                    error=str(exc),
                )
                raise

        logger.info(
            "Batch insert complete",
            table=table,
            poll_id=poll_id,
            total_rows=len(rows),
            inserted=total_inserted,
            duplicates_skipped=len(rows) - total_inserted,
        )
        return total_inserted
