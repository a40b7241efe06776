"""Typed records for every GTFS table the importer understands.

Field names are the GTFS column names. Each field declares how its raw text
is converted (``kind``) and whether a row without it is dropped
(``required``). Fields that reference another table keep the natural id
here; the loader swaps them for surrogate keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

TEXT = "text"
INT = "int"
FLOAT = "float"
DATE = "date"
TIME = "time"


def column(kind: str = TEXT, *, required: bool = False, default: Any = None) -> Any:
    return field(default=default, metadata={"kind": kind, "required": required})


@dataclass(slots=True)
class FeedInfoRecord:
    feed_publisher_name: Optional[str] = column()
    feed_publisher_url: Optional[str] = column()
    feed_lang: Optional[str] = column()
    default_lang: Optional[str] = column()
    feed_version: Optional[str] = column()
    feed_start_date: Optional[int] = column(DATE)
    feed_end_date: Optional[int] = column(DATE)
    feed_contact_email: Optional[str] = column()
    feed_contact_url: Optional[str] = column()


@dataclass(slots=True)
class AgencyRecord:
    agency_id: str = column(default="")
    agency_name: Optional[str] = column()
    agency_url: Optional[str] = column()
    agency_timezone: Optional[str] = column()
    agency_lang: Optional[str] = column()
    agency_phone: Optional[str] = column()
    agency_fare_url: Optional[str] = column()
    agency_email: Optional[str] = column()
    cemv_support: Optional[int] = column(INT)


@dataclass(slots=True)
class StopRecord:
    stop_id: str = column(required=True)
    stop_code: Optional[str] = column()
    stop_name: Optional[str] = column()
    tts_stop_name: Optional[str] = column()
    stop_desc: Optional[str] = column()
    stop_lat: Optional[float] = column(FLOAT)
    stop_lon: Optional[float] = column(FLOAT)
    zone_id: Optional[str] = column()
    stop_url: Optional[str] = column()
    location_type: Optional[int] = column(INT)
    parent_station: Optional[str] = column()
    stop_timezone: Optional[str] = column()
    wheelchair_boarding: Optional[int] = column(INT)
    level_id: Optional[str] = column()
    platform_code: Optional[str] = column()
    stop_access: Optional[int] = column(INT)


@dataclass(slots=True)
class LevelRecord:
    level_id: str = column(required=True)
    level_index: Optional[float] = column(FLOAT)
    level_name: Optional[str] = column()


@dataclass(slots=True)
class RouteRecord:
    route_id: str = column(required=True)
    agency_id: Optional[str] = column()
    route_short_name: Optional[str] = column()
    route_long_name: Optional[str] = column()
    route_desc: Optional[str] = column()
    route_type: Optional[int] = column(INT)
    route_url: Optional[str] = column()
    route_color: Optional[str] = column()
    route_text_color: Optional[str] = column()
    route_sort_order: Optional[int] = column(INT)
    continuous_pickup: Optional[int] = column(INT)
    continuous_drop_off: Optional[int] = column(INT)
    network_id: Optional[str] = column()
    cemv_support: Optional[int] = column(INT)


@dataclass(slots=True)
class CalendarRecord:
    service_id: str = column(required=True)
    monday: Optional[int] = column(INT)
    tuesday: Optional[int] = column(INT)
    wednesday: Optional[int] = column(INT)
    thursday: Optional[int] = column(INT)
    friday: Optional[int] = column(INT)
    saturday: Optional[int] = column(INT)
    sunday: Optional[int] = column(INT)
    start_date: Optional[int] = column(DATE)
    end_date: Optional[int] = column(DATE)


@dataclass(slots=True)
class CalendarDateRecord:
    service_id: str = column(required=True)
    date: int = column(DATE, required=True)
    exception_type: Optional[int] = column(INT)


@dataclass(slots=True)
class TripRecord:
    route_id: str = column(required=True)
    service_id: str = column(required=True)
    trip_id: str = column(required=True)
    trip_headsign: Optional[str] = column()
    trip_short_name: Optional[str] = column()
    direction_id: Optional[int] = column(INT)
    block_id: Optional[str] = column()
    shape_id: Optional[str] = column()
    wheelchair_accessible: Optional[int] = column(INT)
    bikes_allowed: Optional[int] = column(INT)
    cars_allowed: Optional[int] = column(INT)


@dataclass(slots=True)
class StopTimeRecord:
    trip_id: str = column(required=True)
    stop_id: str = column(required=True)
    stop_sequence: int = column(INT, required=True)
    arrival_time: Optional[int] = column(TIME)
    departure_time: Optional[int] = column(TIME)
    location_group_id: Optional[str] = column()
    location_id: Optional[str] = column()
    stop_headsign: Optional[str] = column()
    start_pickup_drop_off_window: Optional[int] = column(TIME)
    end_pickup_drop_off_window: Optional[int] = column(TIME)
    pickup_type: Optional[int] = column(INT)
    drop_off_type: Optional[int] = column(INT)
    continuous_pickup: Optional[int] = column(INT)
    continuous_drop_off: Optional[int] = column(INT)
    shape_dist_traveled: Optional[float] = column(FLOAT)
    timepoint: Optional[int] = column(INT)
    pickup_booking_rule_id: Optional[str] = column()
    drop_off_booking_rule_id: Optional[str] = column()


@dataclass(slots=True)
class ShapePointRecord:
    shape_id: str = column(required=True)
    shape_pt_lat: float = column(FLOAT, required=True)
    shape_pt_lon: float = column(FLOAT, required=True)
    shape_pt_sequence: int = column(INT, required=True)
    shape_dist_traveled: Optional[float] = column(FLOAT)


@dataclass(slots=True)
class FareAttributeRecord:
    fare_id: str = column(required=True)
    price: Optional[float] = column(FLOAT)
    currency_type: Optional[str] = column()
    payment_method: Optional[int] = column(INT)
    transfers: Optional[int] = column(INT)
    agency_id: Optional[str] = column()
    transfer_duration: Optional[int] = column(INT)


@dataclass(slots=True)
class FareRuleRecord:
    fare_id: str = column(required=True)
    route_id: Optional[str] = column()
    origin_id: Optional[str] = column()
    destination_id: Optional[str] = column()
    contains_id: Optional[str] = column()


@dataclass(slots=True)
class TransferRecord:
    from_stop_id: str = column(required=True)
    to_stop_id: str = column(required=True)
    from_route_id: Optional[str] = column()
    to_route_id: Optional[str] = column()
    from_trip_id: Optional[str] = column()
    to_trip_id: Optional[str] = column()
    transfer_type: Optional[int] = column(INT)
    min_transfer_time: Optional[int] = column(INT)


@dataclass(slots=True)
class FrequencyRecord:
    trip_id: str = column(required=True)
    start_time: Optional[int] = column(TIME)
    end_time: Optional[int] = column(TIME)
    headway_secs: Optional[int] = column(INT)
    exact_times: Optional[int] = column(INT)


@dataclass(slots=True)
class AttributionRecord:
    attribution_id: Optional[str] = column()
    agency_id: Optional[str] = column()
    route_id: Optional[str] = column()
    trip_id: Optional[str] = column()
    organization_name: Optional[str] = column()
    is_producer: Optional[int] = column(INT)
    is_operator: Optional[int] = column(INT)
    is_authority: Optional[int] = column(INT)
    attribution_url: Optional[str] = column()
    attribution_email: Optional[str] = column()
    attribution_phone: Optional[str] = column()


@dataclass(slots=True)
class PathwayRecord:
    pathway_id: str = column(required=True)
    from_stop_id: str = column(required=True)
    to_stop_id: str = column(required=True)
    pathway_mode: Optional[int] = column(INT)
    is_bidirectional: Optional[int] = column(INT)
    length: Optional[float] = column(FLOAT)
    traversal_time: Optional[int] = column(INT)
    stair_count: Optional[int] = column(INT)
    max_slope: Optional[float] = column(FLOAT)
    min_width: Optional[float] = column(FLOAT)
    signposted_as: Optional[str] = column()
    reversed_signposted_as: Optional[str] = column()


@dataclass(slots=True)
class AreaRecord:
    area_id: str = column(required=True)
    area_name: Optional[str] = column()


@dataclass(slots=True)
class StopAreaRecord:
    area_id: str = column(required=True)
    stop_id: str = column(required=True)


@dataclass(slots=True)
class NetworkRecord:
    network_id: str = column(required=True)
    network_name: Optional[str] = column()


@dataclass(slots=True)
class RouteNetworkRecord:
    network_id: str = column(required=True)
    route_id: str = column(required=True)


@dataclass(slots=True)
class TimeframeRecord:
    timeframe_group_id: str = column(required=True)
    service_id: str = column(required=True)
    start_time: Optional[int] = column(TIME)
    end_time: Optional[int] = column(TIME)


@dataclass(slots=True)
class RiderCategoryRecord:
    rider_category_id: str = column(required=True)
    rider_category_name: Optional[str] = column()
    is_default_fare_category: Optional[int] = column(INT)
    eligibility_url: Optional[str] = column()


@dataclass(slots=True)
class FareMediaRecord:
    fare_media_id: str = column(required=True)
    fare_media_name: Optional[str] = column()
    fare_media_type: Optional[int] = column(INT)


@dataclass(slots=True)
class FareProductRecord:
    fare_product_id: str = column(required=True)
    fare_product_name: Optional[str] = column()
    rider_category_id: Optional[str] = column()
    fare_media_id: Optional[str] = column()
    amount: Optional[float] = column(FLOAT)
    currency: Optional[str] = column()


@dataclass(slots=True)
class FareLegRuleRecord:
    fare_product_id: str = column(required=True)
    leg_group_id: Optional[str] = column()
    network_id: Optional[str] = column()
    from_area_id: Optional[str] = column()
    to_area_id: Optional[str] = column()
    from_timeframe_group_id: Optional[str] = column()
    to_timeframe_group_id: Optional[str] = column()
    rule_priority: Optional[int] = column(INT)


@dataclass(slots=True)
class FareLegJoinRuleRecord:
    from_network_id: str = column(required=True)
    to_network_id: str = column(required=True)
    from_stop_id: Optional[str] = column()
    to_stop_id: Optional[str] = column()


@dataclass(slots=True)
class FareTransferRuleRecord:
    from_leg_group_id: Optional[str] = column()
    to_leg_group_id: Optional[str] = column()
    transfer_count: Optional[int] = column(INT)
    duration_limit: Optional[int] = column(INT)
    duration_limit_type: Optional[int] = column(INT)
    fare_transfer_type: Optional[int] = column(INT)
    fare_product_id: Optional[str] = column()


@dataclass(slots=True)
class LocationGroupRecord:
    location_group_id: str = column(required=True)
    location_group_name: Optional[str] = column()


@dataclass(slots=True)
class LocationGroupStopRecord:
    location_group_id: str = column(required=True)
    stop_id: str = column(required=True)


@dataclass(slots=True)
class BookingRuleRecord:
    booking_rule_id: str = column(required=True)
    booking_type: Optional[int] = column(INT)
    prior_notice_duration_min: Optional[int] = column(INT)
    prior_notice_duration_max: Optional[int] = column(INT)
    prior_notice_last_day: Optional[int] = column(INT)
    prior_notice_last_time: Optional[int] = column(TIME)
    prior_notice_start_day: Optional[int] = column(INT)
    prior_notice_start_time: Optional[int] = column(TIME)
    prior_notice_service_id: Optional[str] = column()
    message: Optional[str] = column()
    pickup_message: Optional[str] = column()
    drop_off_message: Optional[str] = column()
    phone_number: Optional[str] = column()
    info_url: Optional[str] = column()
    booking_url: Optional[str] = column()


@dataclass(slots=True)
class TranslationRecord:
    table_name: str = column(required=True)
    field_name: str = column(required=True)
    language: str = column(required=True)
    translation: str = column(required=True)
    record_id: Optional[str] = column()
    record_sub_id: Optional[str] = column()
    field_value: Optional[str] = column()
