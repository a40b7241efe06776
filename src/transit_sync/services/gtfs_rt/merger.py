"""Merges decoded GTFS-RT feeds into the store against the active static version.

Trip updates and vehicle positions are historized with duplicate
observations ignored. The alert feed is a full snapshot, so alert closure is
derived by set difference against the alert rows currently open in the store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from sqlalchemy import bindparam, text

from transit_sync.logging import get_logger
from transit_sync.services.gtfs_rt.normalizer import RealtimeNormalizer
from transit_sync.services.gtfs_rt.writer import RealtimeWriter
from transit_sync.services.gtfs_static.versions import FeedVersionManager

if TYPE_CHECKING:
    from google.transit import gtfs_realtime_pb2  # type: ignore[import-untyped]
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from transit_sync.services.gtfs_static.versions import FeedContext

logger = get_logger(__name__)

DEFAULT_LOOKUP_CHUNK = 500

# (table, surrogate key column, natural id column)
_LOOKUPS = {
    "trip": ("trips", "trip_pk", "trip_id"),
    "route": ("routes", "route_pk", "route_id"),
    "stop": ("stops", "stop_pk", "stop_id"),
}

# A stored alert row is the same fact as a snapshot row when all of these match.
_ALERT_MATCH_COLUMNS = (
    "alert_id",
    "route_id",
    "stop_id",
    "trip_id",
    "header",
    "description",
    "cause",
    "effect",
    "severity_level",
    "end_time",
)


def _alert_key(row: dict) -> tuple:
    return tuple(row[col] for col in _ALERT_MATCH_COLUMNS)


class RealtimeMerger:
    """Resolves natural ids to surrogate keys and writes real-time facts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lookup_chunk: int = DEFAULT_LOOKUP_CHUNK,
        batch_size: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self.lookup_chunk = lookup_chunk
        self.versions = FeedVersionManager(session_factory)
        self.writer = RealtimeWriter(batch_size=batch_size)

    async def _resolve(
        self,
        session: AsyncSession,
        kind: str,
        feed_version_id: int | None,
        natural_ids: Iterable[str | None],
    ) -> dict[str, int]:
        """Map natural ids to surrogate keys within one feed version.

        Ids absent from the version are simply missing from the result.
        """
        wanted = sorted({nid for nid in natural_ids if nid})
        if feed_version_id is None or not wanted:
            return {}

        table, key_col, natural_col = _LOOKUPS[kind]
        stmt = text(
            f"SELECT {natural_col}, {key_col} FROM {table} "
            f"WHERE feed_version_id = :fv AND {natural_col} IN :ids"
        ).bindparams(bindparam("ids", expanding=True))

        resolved: dict[str, int] = {}
        for start in range(0, len(wanted), self.lookup_chunk):
            result = await session.execute(
                stmt, {"fv": feed_version_id, "ids": wanted[start : start + self.lookup_chunk]}
            )
            resolved.update({row[0]: row[1] for row in result.all()})
        return resolved

    async def merge_trip_updates(
        self,
        source: str,
        feed: gtfs_realtime_pb2.FeedMessage,
        sync_time: int,
        poll_id: str,
        context: FeedContext | None = None,
    ) -> dict[str, int]:
        """Insert one historized row per trip update.

        An unresolved trip id leaves ``trip_pk`` NULL; the row is still kept.
        """
        context = context or await self.versions.get_feed_context(source)
        rows = RealtimeNormalizer.normalize_trip_updates(feed, sync_time)

        async with self._session_factory() as session:
            trips = await self._resolve(
                session, "trip", context.feed_version_id, (r["trip_id"] for r in rows)
            )
            for row in rows:
                row["feed_source_id"] = context.feed_source_id
                row["trip_pk"] = trips.get(row["trip_id"])
            inserted = await self.writer.write_trip_updates(session, rows, poll_id)

        linked = sum(1 for row in rows if row["trip_pk"] is not None)
        if len(rows) - linked:
            logger.warning(
                "Trip updates with unknown trips",
                source=source,
                poll_id=poll_id,
                unresolved=len(rows) - linked,
            )
        return {"rows": len(rows), "inserted": inserted, "linked": linked}

    async def merge_vehicle_positions(
        self,
        source: str,
        feed: gtfs_realtime_pb2.FeedMessage,
        sync_time: int,
        poll_id: str,
        context: FeedContext | None = None,
    ) -> dict[str, int]:
        context = context or await self.versions.get_feed_context(source)
        rows = RealtimeNormalizer.normalize_vehicle_positions(feed, sync_time)

        async with self._session_factory() as session:
            trips = await self._resolve(
                session, "trip", context.feed_version_id, (r["trip_id"] for r in rows)
            )
            routes = await self._resolve(
                session, "route", context.feed_version_id, (r["route_id"] for r in rows)
            )
            for row in rows:
                row["feed_source_id"] = context.feed_source_id
                row["trip_pk"] = trips.get(row["trip_id"]) if row["trip_id"] else None
                row["route_pk"] = routes.get(row["route_id"]) if row["route_id"] else None
            inserted = await self.writer.write_vehicle_positions(session, rows, poll_id)

        linked = sum(1 for row in rows if row["trip_pk"] is not None)
        return {"rows": len(rows), "inserted": inserted, "linked": linked}

    async def _load_alert_rows(
        self, session: AsyncSession, feed_source_id: int, alert_ids: list[str], now: int
    ) -> dict[int, dict]:
        """Stored rows that are still open, plus every row for ``alert_ids``."""
        columns = ", ".join(("alert_pk", *_ALERT_MATCH_COLUMNS))
        rows: dict[int, dict] = {}

        result = await session.execute(
            text(
                f"SELECT {columns} FROM service_alerts "
                f"WHERE feed_source_id = :source_id AND (end_time IS NULL OR end_time > :now)"
            ),
            {"source_id": feed_source_id, "now": now},
        )
        rows.update({row.alert_pk: dict(row._mapping) for row in result.all()})

        by_id = text(
            f"SELECT {columns} FROM service_alerts "
            f"WHERE feed_source_id = :source_id AND alert_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        for start in range(0, len(alert_ids), self.lookup_chunk):
            result = await session.execute(
                by_id,
                {"source_id": feed_source_id, "ids": alert_ids[start : start + self.lookup_chunk]},
            )
            rows.update({row.alert_pk: dict(row._mapping) for row in result.all()})
        return rows

    async def reconcile_alerts(
        self,
        source: str,
        feed: gtfs_realtime_pb2.FeedMessage,
        sync_time: int,
        poll_id: str,
        context: FeedContext | None = None,
    ) -> dict[str, int]:
        """Close stored alert rows missing from the snapshot and insert the new ones.

        Rows are matched on the alert id, the informed entity and the alert
        content, including a feed-provided end. A stored row that matches a
        snapshot row is kept as it is, whether still open or already ended by
        the feed, so an unchanged snapshot writes nothing. An open row with no
        match is closed at ``sync_time``; a snapshot row with no match is
        inserted. Both happen in one transaction.
        """
        context = context or await self.versions.get_feed_context(source)
        rows = RealtimeNormalizer.normalize_alerts(feed, sync_time)
        present = sorted({row["alert_id"] for row in rows})

        async with self._session_factory() as session:
            try:
                stored = await self._load_alert_rows(
                    session, context.feed_source_id, present, sync_time
                )
                stored_keys: dict[tuple, list[dict]] = {}
                for row in stored.values():
                    stored_keys.setdefault(_alert_key(row), []).append(row)

                new_rows: list[dict] = []
                matched: set[int] = set()
                seen: set[tuple] = set()
                for row in rows:
                    key = _alert_key(row)
                    if key in seen:
                        continue
                    seen.add(key)
                    if key in stored_keys:
                        matched.update(r["alert_pk"] for r in stored_keys[key])
                    else:
                        new_rows.append(row)

                open_rows = [
                    row
                    for row in stored.values()
                    if row["end_time"] is None or row["end_time"] > sync_time
                ]
                unmatched = [row for row in open_rows if row["alert_pk"] not in matched]
                to_close = sorted(row["alert_pk"] for row in unmatched)
                closed_ids = {row["alert_id"] for row in unmatched}
                already_open = {row["alert_id"] for row in open_rows if row["alert_pk"] in matched}

                close_stmt = text(
                    "UPDATE service_alerts SET end_time = :now WHERE alert_pk IN :pks"
                ).bindparams(bindparam("pks", expanding=True))
                for start in range(0, len(to_close), self.lookup_chunk):
                    await session.execute(
                        close_stmt,
                        {"now": sync_time, "pks": to_close[start : start + self.lookup_chunk]},
                    )

                fv = context.feed_version_id
                routes = await self._resolve(session, "route", fv, (r["route_id"] for r in new_rows))
                stops = await self._resolve(session, "stop", fv, (r["stop_id"] for r in new_rows))
                trips = await self._resolve(session, "trip", fv, (r["trip_id"] for r in new_rows))
                for row in new_rows:
                    row["feed_source_id"] = context.feed_source_id
                    row["affected_route_pk"] = routes.get(row["route_id"]) if row["route_id"] else None
                    row["affected_stop_pk"] = stops.get(row["stop_id"]) if row["stop_id"] else None
                    row["affected_trip_pk"] = trips.get(row["trip_id"]) if row["trip_id"] else None

                inserted = await self.writer.write_alerts(session, new_rows, poll_id)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.error(
                    "Alert reconciliation failed", source=source, poll_id=poll_id, error=str(exc)
                )
                raise

        logger.info(
            "Service alerts reconciled",
            source=source,
            poll_id=poll_id,
            present=len(present),
            closed_alerts=len(closed_ids),
            closed_rows=len(to_close),
            inserted=inserted,
        )
        return {
            "rows": len(rows),
            "inserted": inserted,
            "closed": len(closed_ids),
            "already_open": len(already_open),
        }
