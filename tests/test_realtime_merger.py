"""Tests for merging real-time feeds against the active static version."""

from __future__ import annotations

from typing import Any, Callable

import pytest
from sqlalchemy import text

from transit_sync.context import PipelineContext
from transit_sync.errors import UnknownFeedSourceError
from transit_sync.services.gtfs_rt.merger import RealtimeMerger

from .fixtures.gtfs_rt_fixture import (
    build_alert_feed,
    build_alerts_snapshot,
    build_trip_update_feed,
    build_vehicle_position_feed,
    parse_feed,
)


@pytest.fixture
async def merger(context: PipelineContext, import_feed: Callable[..., Any]) -> RealtimeMerger:
    outcome = await import_feed(context)
    assert outcome["status"] == "succeeded", outcome["error"]
    return RealtimeMerger(context.session_factory, lookup_chunk=2, batch_size=2)


async def _rows(context: PipelineContext, sql: str) -> list[tuple]:
    async with context.session_factory() as session:
        return [tuple(row) for row in (await session.execute(text(sql))).all()]


class TestMergeTripUpdates:
    async def test_rows_are_linked_to_active_trips(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        feed = parse_feed(build_trip_update_feed(feed_timestamp=1700000000))

        result = await merger.merge_trip_updates("translink", feed, 1700000005, "poll-1")

        assert result == {"rows": 1, "inserted": 1, "linked": 1}
        rows = await _rows(
            context,
            "SELECT u.trip_id, u.delay, u.updated_time, t.trip_id FROM trip_updates u "
            "JOIN trips t ON t.trip_pk = u.trip_pk",
        )
        assert rows == [("trip-001-001", 60, 1700000000, "trip-001-001")]

    async def test_same_observation_is_not_duplicated(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        feed = parse_feed(build_trip_update_feed(feed_timestamp=1700000000))

        await merger.merge_trip_updates("translink", feed, 1700000005, "poll-1")
        again = await merger.merge_trip_updates("translink", feed, 1700000065, "poll-2")
        later = parse_feed(build_trip_update_feed(delay=90, feed_timestamp=1700000060))
        newer = await merger.merge_trip_updates("translink", later, 1700000065, "poll-2")

        assert again["inserted"] == 0
        assert newer["inserted"] == 1
        assert await _rows(context, "SELECT delay FROM trip_updates ORDER BY updated_time") == [
            (60,),
            (90,),
        ]

    async def test_unknown_trip_is_kept_unlinked(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        feed = parse_feed(build_trip_update_feed(trip_id="ghost", feed_timestamp=1700000000))

        result = await merger.merge_trip_updates("translink", feed, 1700000005, "poll-1")

        assert result == {"rows": 1, "inserted": 1, "linked": 0}
        assert await _rows(context, "SELECT trip_id, trip_pk FROM trip_updates") == [("ghost", None)]

    async def test_unknown_source(self, context: PipelineContext) -> None:
        merger = RealtimeMerger(context.session_factory)
        feed = parse_feed(build_trip_update_feed(feed_timestamp=1700000000))

        with pytest.raises(UnknownFeedSourceError):
            await merger.merge_trip_updates("nowhere", feed, 1700000005, "poll-1")


class TestMergeVehiclePositions:
    async def test_position_is_linked(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        feed = parse_feed(build_vehicle_position_feed(timestamp=1700000100, feed_timestamp=1700000000))

        result = await merger.merge_vehicle_positions("translink", feed, 1700000200, "poll-1")
        again = await merger.merge_vehicle_positions("translink", feed, 1700000260, "poll-2")

        assert result == {"rows": 1, "inserted": 1, "linked": 1}
        assert again["inserted"] == 0
        rows = await _rows(
            context,
            "SELECT vehicle_id, position_time, trip_pk IS NOT NULL, route_pk IS NOT NULL "
            "FROM vehicle_positions",
        )
        assert rows == [("veh_001", 1700000100, 1, 1)]


class TestReconcileAlerts:
    async def test_snapshot_lifecycle(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        a1 = [{"route_id": "001"}, {"stop_id": "50001"}]
        a2 = [{"trip_id": "trip-001-001"}]

        opened = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": a1, "a2": a2})), 1000, "p1"
        )
        assert opened == {"rows": 3, "inserted": 3, "closed": 0, "already_open": 0}

        unchanged = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": a1, "a2": a2})), 2000, "p2"
        )
        assert unchanged == {"rows": 3, "inserted": 0, "closed": 0, "already_open": 2}

        closed = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a2": a2})), 3000, "p3"
        )
        assert closed == {"rows": 1, "inserted": 0, "closed": 1, "already_open": 1}
        assert await _rows(
            context, "SELECT DISTINCT end_time FROM service_alerts WHERE alert_id = 'a1'"
        ) == [(3000,)]

        reopened = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": a1, "a2": a2})), 4000, "p4"
        )
        assert reopened == {"rows": 3, "inserted": 2, "closed": 0, "already_open": 1}
        assert await _rows(
            context,
            "SELECT start_time, end_time FROM service_alerts "
            "WHERE alert_id = 'a1' ORDER BY alert_pk",
        ) == [(1000, 3000), (1000, 3000), (4000, None), (4000, None)]

    async def test_informed_entities_are_resolved(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        snapshot = {"a1": [{"route_id": "001"}, {"stop_id": "50001"}, {"trip_id": "nope"}]}

        await merger.reconcile_alerts("translink", parse_feed(build_alerts_snapshot(snapshot)), 1000, "p1")

        rows = await _rows(
            context,
            "SELECT affected_route_pk IS NOT NULL, affected_stop_pk IS NOT NULL, "
            "affected_trip_pk IS NOT NULL FROM service_alerts ORDER BY alert_pk",
        )
        assert rows == [(1, 0, 0), (0, 1, 0), (0, 0, 0)]

    async def test_empty_snapshot_closes_everything(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": [], "a2": []})), 1000, "p1"
        )

        result = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({})), 2000, "p2"
        )

        assert result == {"rows": 0, "inserted": 0, "closed": 2, "already_open": 0}
        assert await _rows(context, "SELECT COUNT(*) FROM service_alerts WHERE end_time IS NULL") == [(0,)]

    async def test_entity_added_to_open_alert_is_inserted(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": [{"route_id": "001"}]})), 1000, "p1"
        )

        grown = await merger.reconcile_alerts(
            "translink",
            parse_feed(build_alerts_snapshot({"a1": [{"route_id": "001"}, {"stop_id": "50001"}]})),
            2000,
            "p2",
        )

        assert grown == {"rows": 2, "inserted": 1, "closed": 0, "already_open": 1}
        assert await _rows(
            context,
            "SELECT route_id, stop_id, start_time, end_time, affected_stop_pk IS NOT NULL "
            "FROM service_alerts ORDER BY alert_pk",
        ) == [("001", None, 1000, None, 0), (None, "50001", 2000, None, 1)]

    async def test_entity_removed_from_open_alert_is_closed(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        both = {"a1": [{"route_id": "001"}, {"stop_id": "50001"}]}
        await merger.reconcile_alerts("translink", parse_feed(build_alerts_snapshot(both)), 1000, "p1")

        shrunk = await merger.reconcile_alerts(
            "translink", parse_feed(build_alerts_snapshot({"a1": [{"route_id": "001"}]})), 2000, "p2"
        )

        assert shrunk["inserted"] == 0
        assert shrunk["already_open"] == 1
        assert await _rows(
            context, "SELECT route_id, stop_id, end_time FROM service_alerts ORDER BY alert_pk"
        ) == [("001", None, None), (None, "50001", 2000)]

    async def test_changed_alert_text_supersedes_open_row(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        await merger.reconcile_alerts(
            "translink", parse_feed(build_alert_feed(alert_id="a1", header="Detour")), 1000, "p1"
        )

        result = await merger.reconcile_alerts(
            "translink",
            parse_feed(build_alert_feed(alert_id="a1", header="Detour extended")),
            2000,
            "p2",
        )

        assert result["inserted"] == 1
        assert await _rows(
            context, "SELECT header, start_time, end_time FROM service_alerts ORDER BY alert_pk"
        ) == [("Detour", 1000, 2000), ("Detour extended", 2000, None)]

    async def test_alert_with_past_end_is_stored_once(
        self, context: PipelineContext, merger: RealtimeMerger
    ) -> None:
        snapshot = build_alert_feed(alert_id="x", active_start=100, active_end=500)

        results = [
            await merger.reconcile_alerts("translink", parse_feed(snapshot), now, f"p{now}")
            for now in (1000, 2000, 3000)
        ]

        assert [r["inserted"] for r in results] == [1, 0, 0]
        assert [r["closed"] for r in results] == [0, 0, 0]
        assert await _rows(context, "SELECT start_time, end_time FROM service_alerts") == [
            (100, 500)
        ]
