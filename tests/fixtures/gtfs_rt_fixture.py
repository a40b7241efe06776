"""Test fixtures for GTFS-RT protobuf data."""

from __future__ import annotations

import time

from google.transit import gtfs_realtime_pb2


def _new_feed(feed_timestamp: int | None) -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    if feed_timestamp != 0:
        feed.header.timestamp = feed_timestamp or int(time.time())
    return feed


def build_trip_update_feed(
    trip_id: str = "trip-001-001",
    route_id: str = "001",
    stop_updates: list[dict] | None = None,
    delay: int | None = None,
    schedule_relationship: int = 0,
    feed_timestamp: int | None = None,
) -> bytes:
    """Build a serialized FeedMessage with a TripUpdate entity.

    Args:
        trip_id: The trip identifier.
        route_id: The route identifier.
        stop_updates: List of dicts with keys: stop_id, stop_sequence,
            arrival_delay, departure_delay. Defaults to two stops.
        delay: Top-level TripUpdate.delay, left unset when None.
        schedule_relationship: TripDescriptor schedule relationship.
        feed_timestamp: Unix timestamp for the feed header; 0 leaves it unset.

    Returns:
        Serialized protobuf bytes.
    """
    feed = _new_feed(feed_timestamp)

    entity = feed.entity.add()
    entity.id = f"tu_{trip_id}"
    tu = entity.trip_update
    tu.trip.trip_id = trip_id
    tu.trip.route_id = route_id
    tu.trip.schedule_relationship = schedule_relationship
    if delay is not None:
        tu.delay = delay

    if stop_updates is None:
        stop_updates = [
            {"stop_id": "50001", "stop_sequence": 1, "arrival_delay": 60, "departure_delay": 65},
            {"stop_id": "50002", "stop_sequence": 2, "arrival_delay": 120, "departure_delay": 125},
        ]

    for su in stop_updates:
        stu = tu.stop_time_update.add()
        stu.stop_id = su["stop_id"]
        stu.stop_sequence = su["stop_sequence"]
        if "arrival_delay" in su:
            stu.arrival.delay = su["arrival_delay"]
        if "departure_delay" in su:
            stu.departure.delay = su["departure_delay"]

    return feed.SerializeToString()


def build_vehicle_position_feed(
    vehicle_id: str = "veh_001",
    trip_id: str = "trip-001-001",
    route_id: str = "001",
    lat: float = 49.2827,
    lon: float = -123.1207,
    bearing: float | None = 90.0,
    speed: float | None = 12.5,
    occupancy_status: int | None = None,
    timestamp: int | None = None,
    feed_timestamp: int | None = None,
) -> bytes:
    """Build a serialized FeedMessage with a VehiclePosition entity."""
    feed = _new_feed(feed_timestamp)

    entity = feed.entity.add()
    entity.id = f"vp_{vehicle_id}"
    vp = entity.vehicle
    vp.vehicle.id = vehicle_id
    if trip_id:
        vp.trip.trip_id = trip_id
        vp.trip.route_id = route_id
    vp.position.latitude = lat
    vp.position.longitude = lon
    if bearing is not None:
        vp.position.bearing = bearing
    if speed is not None:
        vp.position.speed = speed
    vp.current_stop_sequence = 3
    vp.current_status = 1  # STOPPED_AT
    if occupancy_status is not None:
        vp.occupancy_status = occupancy_status
    if timestamp is not None:
        vp.timestamp = timestamp

    return feed.SerializeToString()


def _add_alert(
    feed: gtfs_realtime_pb2.FeedMessage,
    alert_id: str,
    *,
    cause: int | None = 3,
    effect: int | None = 3,
    severity_level: int | None = None,
    header: str = "Delay on Route 1",
    description: str = "Expect 10 min delays due to mechanical issue.",
    informed: list[dict] | None = None,
    active_start: int | None = None,
    active_end: int | None = None,
) -> None:
    entity = feed.entity.add()
    entity.id = alert_id
    alert = entity.alert
    if cause is not None:
        alert.cause = cause
    if effect is not None:
        alert.effect = effect
    if severity_level is not None:
        alert.severity_level = severity_level

    ts = alert.header_text.translation.add()
    ts.text = header
    ts.language = "en"

    ds = alert.description_text.translation.add()
    ds.text = description
    ds.language = "en"

    if active_start or active_end:
        period = alert.active_period.add()
        if active_start:
            period.start = active_start
        if active_end:
            period.end = active_end

    for target in informed or []:
        ie = alert.informed_entity.add()
        if target.get("route_id"):
            ie.route_id = target["route_id"]
        if target.get("stop_id"):
            ie.stop_id = target["stop_id"]
        if target.get("trip_id"):
            ie.trip.trip_id = target["trip_id"]


def build_alert_feed(
    alert_id: str = "alert_001",
    cause: int | None = 3,  # TECHNICAL_PROBLEM
    effect: int | None = 3,  # SIGNIFICANT_DELAYS
    header: str = "Delay on Route 1",
    description: str = "Expect 10 min delays due to mechanical issue.",
    route_id: str = "001",
    stop_id: str = "",
    active_start: int | None = None,
    active_end: int | None = None,
    feed_timestamp: int | None = None,
) -> bytes:
    """Build a serialized FeedMessage with a single Alert entity."""
    feed = _new_feed(feed_timestamp)
    informed = [{"route_id": route_id, "stop_id": stop_id}] if route_id or stop_id else []
    _add_alert(
        feed,
        alert_id,
        cause=cause,
        effect=effect,
        header=header,
        description=description,
        informed=informed,
        active_start=active_start,
        active_end=active_end,
    )
    return feed.SerializeToString()


def build_alerts_snapshot(
    alerts: dict[str, list[dict]],
    feed_timestamp: int | None = None,
) -> bytes:
    """Build a full alert snapshot: alert id -> list of informed entities."""
    feed = _new_feed(feed_timestamp)
    for alert_id, informed in alerts.items():
        _add_alert(feed, alert_id, informed=informed)
    return feed.SerializeToString()


def build_empty_feed(feed_timestamp: int | None = None) -> bytes:
    """Build an empty FeedMessage with no entities."""
    return _new_feed(feed_timestamp).SerializeToString()


def build_multi_entity_trip_update_feed(
    count: int = 5, feed_timestamp: int | None = None
) -> bytes:
    """Build a FeedMessage with multiple TripUpdate entities."""
    feed = _new_feed(feed_timestamp)

    for i in range(count):
        entity = feed.entity.add()
        entity.id = f"tu_trip_{i:03d}"
        tu = entity.trip_update
        tu.trip.trip_id = f"trip_{i:03d}"
        tu.trip.route_id = f"route_{i:03d}"

        stu = tu.stop_time_update.add()
        stu.stop_id = f"stop_{i:03d}"
        stu.stop_sequence = 1
        stu.arrival.delay = i * 30
        stu.departure.delay = i * 30 + 5

    return feed.SerializeToString()


def parse_feed(data: bytes) -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(data)
    return feed
