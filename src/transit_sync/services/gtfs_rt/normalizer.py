"""GTFS-RT normalizer: protobuf entities to flat row dicts.

Rows carry natural ids only; the merger resolves them to surrogate keys.
All times are unix epoch seconds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from google.transit import gtfs_realtime_pb2  # type: ignore[import-untyped]

logger = get_logger(__name__)

# Enum lookup maps
SCHEDULE_RELATIONSHIP = {
    0: "SCHEDULED",
    1: "ADDED",
    2: "UNSCHEDULED",
    3: "CANCELED",
}

VEHICLE_STOP_STATUS = {
    0: "INCOMING_AT",
    1: "STOPPED_AT",
    2: "IN_TRANSIT_TO",
}

OCCUPANCY_STATUS = {
    0: "EMPTY",
    1: "MANY_SEATS_AVAILABLE",
    2: "FEW_SEATS_AVAILABLE",
    3: "STANDING_ROOM_ONLY",
    4: "CRUSHED_STANDING_ROOM_ONLY",
    5: "FULL",
    6: "NOT_ACCEPTING_PASSENGERS",
    7: "NO_DATA_AVAILABLE",
    8: "NOT_BOARDABLE",
}

CAUSE_MAP = {
    1: "UNKNOWN_CAUSE",
    2: "OTHER_CAUSE",
    3: "TECHNICAL_PROBLEM",
    4: "STRIKE",
    5: "DEMONSTRATION",
    6: "ACCIDENT",
    7: "HOLIDAY",
    8: "WEATHER",
    9: "MAINTENANCE",
    10: "CONSTRUCTION",
    11: "POLICE_ACTIVITY",
    12: "MEDICAL_EMERGENCY",
}

EFFECT_MAP = {
    1: "NO_SERVICE",
    2: "REDUCED_SERVICE",
    3: "SIGNIFICANT_DELAYS",
    4: "DETOUR",
    5: "ADDITIONAL_SERVICE",
    6: "MODIFIED_SERVICE",
    7: "OTHER_EFFECT",
    8: "UNKNOWN_EFFECT",
    9: "STOP_MOVED",
    10: "NO_EFFECT",
    11: "ACCESSIBILITY_ISSUE",
}

SEVERITY_LEVEL = {
    1: "UNKNOWN_SEVERITY",
    2: "INFO",
    3: "WARNING",
    4: "SEVERE",
}


def _get_translation(translated_string: Any) -> str | None:
    """Extract first translation text from a TranslatedString, or None."""
    if translated_string and translated_string.translation:
        return str(translated_string.translation[0].text)
    return None


def effective_delay(trip_update: Any) -> int:
    """Delay in seconds for a TripUpdate.

    The top-level delay wins; otherwise the first stop-time update's arrival
    delay, then its departure delay; otherwise zero.
    """
    if trip_update.HasField("delay"):
        return int(trip_update.delay)
    if trip_update.stop_time_update:
        first = trip_update.stop_time_update[0]
        if first.HasField("arrival") and first.arrival.HasField("delay"):
            return int(first.arrival.delay)
        if first.HasField("departure") and first.departure.HasField("delay"):
            return int(first.departure.delay)
    return 0


class RealtimeNormalizer:
    """Normalizes decoded GTFS-RT entities into flat dicts for the merger."""

    @staticmethod
    def normalize_trip_updates(
        feed: gtfs_realtime_pb2.FeedMessage, sync_time: int
    ) -> list[dict[str, Any]]:
        """One row per TripUpdate with a trip id.

        The observation time is the feed header timestamp, or ``sync_time``
        when the header has none.
        """
        updated_time = feed.header.timestamp or sync_time
        rows: list[dict[str, Any]] = []

        for entity in feed.entity:
            if not entity.HasField("trip_update"):
                continue

            tu = entity.trip_update
            trip_id = tu.trip.trip_id
            if not trip_id:
                continue

            rows.append(
                {
                    "trip_id": trip_id,
                    "delay": effective_delay(tu),
                    "status": SCHEDULE_RELATIONSHIP.get(
                        tu.trip.schedule_relationship, "SCHEDULED"
                    ),
                    "updated_time": updated_time,
                }
            )

        return rows

    @staticmethod
    def normalize_vehicle_positions(
        feed: gtfs_realtime_pb2.FeedMessage, sync_time: int
    ) -> list[dict[str, Any]]:
        header_time = feed.header.timestamp
        rows: list[dict[str, Any]] = []

        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue

            vp = entity.vehicle
            vehicle_id = vp.vehicle.id if vp.HasField("vehicle") else ""
            vehicle_id = vehicle_id or entity.id
            if not vehicle_id:
                continue

            trip_id = route_id = None
            if vp.HasField("trip"):
                trip_id = vp.trip.trip_id or None
                route_id = vp.trip.route_id or None

            position = vp.position if vp.HasField("position") else None
            rows.append(
                {
                    "vehicle_id": vehicle_id,
                    "trip_id": trip_id,
                    "route_id": route_id,
                    "latitude": position.latitude if position else None,
                    "longitude": position.longitude if position else None,
                    "bearing": position.bearing
                    if position and position.HasField("bearing")
                    else None,
                    "speed": position.speed if position and position.HasField("speed") else None,
                    "current_stop_sequence": vp.current_stop_sequence
                    if vp.HasField("current_stop_sequence")
                    else None,
                    "current_status": VEHICLE_STOP_STATUS.get(vp.current_status)
                    if vp.HasField("current_status")
                    else None,
                    "occupancy_status": OCCUPANCY_STATUS.get(vp.occupancy_status)
                    if vp.HasField("occupancy_status")
                    else None,
                    "position_time": vp.timestamp or header_time or sync_time,
                }
            )

        return rows

    @staticmethod
    def normalize_alerts(
        feed: gtfs_realtime_pb2.FeedMessage, sync_time: int
    ) -> list[dict[str, Any]]:
        """One row per (alert, informed entity); an alert without any gets one row.

        Alerts without an entity id cannot be reconciled and are skipped.
        """
        rows: list[dict[str, Any]] = []

        for entity in feed.entity:
            if not entity.HasField("alert"):
                continue

            alert_id = entity.id
            if not alert_id:
                logger.warning("Skipping alert without id")
                continue

            alert = entity.alert
            start_time = end_time = None
            if alert.active_period:
                period = alert.active_period[0]
                start_time = period.start or None
                end_time = period.end or None

            base = {
                "alert_id": alert_id,
                "header": _get_translation(alert.header_text),
                "description": _get_translation(alert.description_text),
                "cause": CAUSE_MAP.get(alert.cause, "UNKNOWN_CAUSE"),
                "effect": EFFECT_MAP.get(alert.effect, "UNKNOWN_EFFECT"),
                "severity_level": SEVERITY_LEVEL.get(alert.severity_level)
                if alert.HasField("severity_level")
                else None,
                "start_time": start_time or sync_time,
                "end_time": end_time,
            }

            # Expand per informed entity (or single row if none)
            informed_entities = list(alert.informed_entity) or [None]
            for ie in informed_entities:
                route_id = stop_id = trip_id = None
                if ie is not None:
                    route_id = ie.route_id or None
                    stop_id = ie.stop_id or None
                    if ie.HasField("trip"):
                        trip_id = ie.trip.trip_id or None
                rows.append({**base, "route_id": route_id, "stop_id": stop_id, "trip_id": trip_id})

        return rows
