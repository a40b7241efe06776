"""Tests for GTFS-RT normalizer."""

from __future__ import annotations

import pytest

from transit_sync.services.gtfs_rt.normalizer import RealtimeNormalizer

from .fixtures.gtfs_rt_fixture import (
    build_alert_feed,
    build_alerts_snapshot,
    build_empty_feed,
    build_multi_entity_trip_update_feed,
    build_trip_update_feed,
    build_vehicle_position_feed,
    parse_feed,
)

SYNC_TIME = 1700000500


class TestNormalizeTripUpdates:
    def test_first_stop_arrival_delay(self) -> None:
        feed = parse_feed(build_trip_update_feed(feed_timestamp=1700000000))

        rows = RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)

        assert rows == [
            {
                "trip_id": "trip-001-001",
                "delay": 60,
                "status": "SCHEDULED",
                "updated_time": 1700000000,
            }
        ]

    def test_top_level_delay_wins(self) -> None:
        feed = parse_feed(build_trip_update_feed(delay=300, feed_timestamp=1700000000))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)[0]["delay"] == 300

    def test_departure_delay_when_no_arrival(self) -> None:
        feed = parse_feed(
            build_trip_update_feed(
                stop_updates=[{"stop_id": "50001", "stop_sequence": 1, "departure_delay": 45}],
                feed_timestamp=1700000000,
            )
        )
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)[0]["delay"] == 45

    def test_no_delay_information_is_zero(self) -> None:
        feed = parse_feed(build_trip_update_feed(stop_updates=[], feed_timestamp=1700000000))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)[0]["delay"] == 0

    def test_canceled_trip(self) -> None:
        feed = parse_feed(build_trip_update_feed(schedule_relationship=3, feed_timestamp=1))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)[0]["status"] == "CANCELED"

    def test_missing_header_timestamp_uses_sync_time(self) -> None:
        feed = parse_feed(build_trip_update_feed(feed_timestamp=0))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)[0]["updated_time"] == SYNC_TIME

    def test_entity_without_trip_id_is_skipped(self) -> None:
        feed = parse_feed(build_trip_update_feed(trip_id="", feed_timestamp=1700000000))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME) == []

    def test_multi_entity(self) -> None:
        feed = parse_feed(build_multi_entity_trip_update_feed(count=4, feed_timestamp=1700000000))
        rows = RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME)
        assert [row["delay"] for row in rows] == [0, 30, 60, 90]

    def test_empty_feed(self) -> None:
        feed = parse_feed(build_empty_feed(1700000000))
        assert RealtimeNormalizer.normalize_trip_updates(feed, SYNC_TIME) == []


class TestNormalizeVehiclePositions:
    def test_full_position(self) -> None:
        feed = parse_feed(
            build_vehicle_position_feed(occupancy_status=1, timestamp=1700000100, feed_timestamp=1700000000)
        )

        row = RealtimeNormalizer.normalize_vehicle_positions(feed, SYNC_TIME)[0]

        assert row["vehicle_id"] == "veh_001"
        assert row["trip_id"] == "trip-001-001"
        assert row["route_id"] == "001"
        assert row["latitude"] == pytest.approx(49.2827, abs=0.001)
        assert row["bearing"] == pytest.approx(90.0)
        assert row["speed"] == pytest.approx(12.5)
        assert row["current_stop_sequence"] == 3
        assert row["current_status"] == "STOPPED_AT"
        assert row["occupancy_status"] == "MANY_SEATS_AVAILABLE"
        assert row["position_time"] == 1700000100

    def test_absent_optional_fields_are_none(self) -> None:
        feed = parse_feed(
            build_vehicle_position_feed(trip_id="", bearing=None, speed=None, feed_timestamp=1700000000)
        )

        row = RealtimeNormalizer.normalize_vehicle_positions(feed, SYNC_TIME)[0]

        assert row["trip_id"] is None
        assert row["route_id"] is None
        assert row["bearing"] is None
        assert row["speed"] is None
        assert row["occupancy_status"] is None
        assert row["position_time"] == 1700000000

    def test_vehicle_id_falls_back_to_entity_id(self) -> None:
        feed = parse_feed(build_vehicle_position_feed(vehicle_id="", feed_timestamp=0))

        row = RealtimeNormalizer.normalize_vehicle_positions(feed, SYNC_TIME)[0]

        assert row["vehicle_id"] == "vp_"
        assert row["position_time"] == SYNC_TIME


class TestNormalizeAlerts:
    def test_single_alert(self) -> None:
        feed = parse_feed(
            build_alert_feed(active_start=1700000000, active_end=1700003600, feed_timestamp=1)
        )

        rows = RealtimeNormalizer.normalize_alerts(feed, SYNC_TIME)

        assert rows == [
            {
                "alert_id": "alert_001",
                "header": "Delay on Route 1",
                "description": "Expect 10 min delays due to mechanical issue.",
                "cause": "TECHNICAL_PROBLEM",
                "effect": "SIGNIFICANT_DELAYS",
                "severity_level": None,
                "start_time": 1700000000,
                "end_time": 1700003600,
                "route_id": "001",
                "stop_id": None,
                "trip_id": None,
            }
        ]

    def test_one_row_per_informed_entity(self) -> None:
        feed = parse_feed(
            build_alerts_snapshot(
                {"a1": [{"route_id": "001"}, {"stop_id": "50001"}, {"trip_id": "trip-001-001"}]}
            )
        )

        rows = RealtimeNormalizer.normalize_alerts(feed, SYNC_TIME)

        assert [(r["route_id"], r["stop_id"], r["trip_id"]) for r in rows] == [
            ("001", None, None),
            (None, "50001", None),
            (None, None, "trip-001-001"),
        ]
        assert {r["alert_id"] for r in rows} == {"a1"}

    def test_alert_without_informed_entities(self) -> None:
        feed = parse_feed(build_alert_feed(route_id="", cause=None, effect=None))

        rows = RealtimeNormalizer.normalize_alerts(feed, SYNC_TIME)

        assert len(rows) == 1
        assert rows[0]["route_id"] is None
        assert rows[0]["cause"] == "UNKNOWN_CAUSE"
        assert rows[0]["effect"] == "UNKNOWN_EFFECT"
        assert rows[0]["start_time"] == SYNC_TIME
        assert rows[0]["end_time"] is None

    def test_alert_without_id_is_skipped(self) -> None:
        feed = parse_feed(build_alert_feed(alert_id=""))
        assert RealtimeNormalizer.normalize_alerts(feed, SYNC_TIME) == []
