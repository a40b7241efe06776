"""Static GTFS entity models.

Every table carries ``feed_version_id`` and an integer surrogate key used by
all internal joins; the feed's natural identifier is kept verbatim next to it.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transit_sync.models.base import Base


def version_fk(*, primary_key: bool = False) -> Mapped[int]:
    return mapped_column(
        Integer,
        ForeignKey("feed_version.feed_version_id", ondelete="CASCADE"),
        nullable=False,
        primary_key=primary_key,
    )


class FeedInfo(Base):
    """feed_info.txt; at most one row per version."""

    __tablename__ = "feed_info"

    feed_version_id: Mapped[int] = version_fk(primary_key=True)
    feed_publisher_name: Mapped[str | None] = mapped_column(Text)
    feed_publisher_url: Mapped[str | None] = mapped_column(Text)
    feed_lang: Mapped[str | None] = mapped_column(Text)
    default_lang: Mapped[str | None] = mapped_column(Text)
    feed_version: Mapped[str | None] = mapped_column(Text)
    feed_start_date: Mapped[int | None] = mapped_column(BigInteger)
    feed_end_date: Mapped[int | None] = mapped_column(BigInteger)
    feed_contact_email: Mapped[str | None] = mapped_column(Text)
    feed_contact_url: Mapped[str | None] = mapped_column(Text)


class Agency(Base):
    __tablename__ = "agency"

    agency_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    agency_id: Mapped[str] = mapped_column(Text, nullable=False, default="")
    agency_name: Mapped[str | None] = mapped_column(Text)
    agency_url: Mapped[str | None] = mapped_column(Text)
    agency_timezone: Mapped[str | None] = mapped_column(Text)
    agency_lang: Mapped[str | None] = mapped_column(Text)
    agency_phone: Mapped[str | None] = mapped_column(Text)
    agency_fare_url: Mapped[str | None] = mapped_column(Text)
    agency_email: Mapped[str | None] = mapped_column(Text)
    cemv_support: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (UniqueConstraint("feed_version_id", "agency_id", name="uq_agency_natural"),)


class Stop(Base):
    """Stop, station, entrance or boarding area.

    ``parent_station`` holds the parent's surrogate key and is filled in a
    second pass after all stops of the version are loaded.
    """

    __tablename__ = "stops"

    stop_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    stop_id: Mapped[str] = mapped_column(Text, nullable=False)
    stop_code: Mapped[str | None] = mapped_column(Text)
    stop_name: Mapped[str | None] = mapped_column(Text)
    tts_stop_name: Mapped[str | None] = mapped_column(Text)
    stop_desc: Mapped[str | None] = mapped_column(Text)
    stop_lat: Mapped[float | None] = mapped_column(Float)
    stop_lon: Mapped[float | None] = mapped_column(Float)
    zone_id: Mapped[str | None] = mapped_column(Text)
    stop_url: Mapped[str | None] = mapped_column(Text)
    location_type: Mapped[int | None] = mapped_column(Integer)
    parent_station: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="SET NULL")
    )
    stop_timezone: Mapped[str | None] = mapped_column(Text)
    wheelchair_boarding: Mapped[int | None] = mapped_column(Integer)
    level_id: Mapped[str | None] = mapped_column(Text)
    platform_code: Mapped[str | None] = mapped_column(Text)
    stop_access: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "stop_id", name="uq_stops_natural"),
        Index("ix_stops_parent_station", "parent_station"),
    )


class Level(Base):
    __tablename__ = "levels"

    level_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    level_id: Mapped[str] = mapped_column(Text, nullable=False)
    level_index: Mapped[float | None] = mapped_column(Float)
    level_name: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (UniqueConstraint("feed_version_id", "level_id", name="uq_levels_natural"),)


class Route(Base):
    __tablename__ = "routes"

    route_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    route_id: Mapped[str] = mapped_column(Text, nullable=False)
    agency_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("agency.agency_pk", ondelete="SET NULL")
    )
    route_short_name: Mapped[str | None] = mapped_column(Text)
    route_long_name: Mapped[str | None] = mapped_column(Text)
    route_desc: Mapped[str | None] = mapped_column(Text)
    route_type: Mapped[int | None] = mapped_column(Integer)
    route_url: Mapped[str | None] = mapped_column(Text)
    route_color: Mapped[str | None] = mapped_column(Text)
    route_text_color: Mapped[str | None] = mapped_column(Text)
    route_sort_order: Mapped[int | None] = mapped_column(Integer)
    continuous_pickup: Mapped[int | None] = mapped_column(Integer)
    continuous_drop_off: Mapped[int | None] = mapped_column(Integer)
    network_id: Mapped[str | None] = mapped_column(Text)
    cemv_support: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (UniqueConstraint("feed_version_id", "route_id", name="uq_routes_natural"),)


class Calendar(Base):
    """Weekly service pattern; dates are epoch seconds at local noon."""

    __tablename__ = "calendar"

    service_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    service_id: Mapped[str] = mapped_column(Text, nullable=False)
    monday: Mapped[int | None] = mapped_column(Integer)
    tuesday: Mapped[int | None] = mapped_column(Integer)
    wednesday: Mapped[int | None] = mapped_column(Integer)
    thursday: Mapped[int | None] = mapped_column(Integer)
    friday: Mapped[int | None] = mapped_column(Integer)
    saturday: Mapped[int | None] = mapped_column(Integer)
    sunday: Mapped[int | None] = mapped_column(Integer)
    start_date: Mapped[int | None] = mapped_column(BigInteger)
    end_date: Mapped[int | None] = mapped_column(BigInteger)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "service_id", name="uq_calendar_natural"),
    )


class CalendarDate(Base):
    __tablename__ = "calendar_dates"

    calendar_date_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    service_id: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    exception_type: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id", "service_id", "date", name="uq_calendar_dates_natural"
        ),
    )


class Trip(Base):
    __tablename__ = "trips"

    trip_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    route_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="CASCADE"), nullable=False
    )
    service_id: Mapped[str] = mapped_column(Text, nullable=False)
    trip_id: Mapped[str] = mapped_column(Text, nullable=False)
    trip_headsign: Mapped[str | None] = mapped_column(Text)
    trip_short_name: Mapped[str | None] = mapped_column(Text)
    direction_id: Mapped[int | None] = mapped_column(Integer)
    block_id: Mapped[str | None] = mapped_column(Text)
    shape_id: Mapped[str | None] = mapped_column(Text)
    wheelchair_accessible: Mapped[int | None] = mapped_column(Integer)
    bikes_allowed: Mapped[int | None] = mapped_column(Integer)
    cars_allowed: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "trip_id", name="uq_trips_natural"),
        Index("ix_trips_route_pk", "route_pk"),
    )


class StopTime(Base):
    """Scheduled call; times are seconds since local midnight (may exceed 86400)."""

    __tablename__ = "stop_times"

    stop_time_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    trip_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="CASCADE"), nullable=False
    )
    stop_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="CASCADE"), nullable=False
    )
    arrival_time: Mapped[int | None] = mapped_column(Integer)
    departure_time: Mapped[int | None] = mapped_column(Integer)
    location_group_id: Mapped[str | None] = mapped_column(Text)
    location_id: Mapped[str | None] = mapped_column(Text)
    stop_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    stop_headsign: Mapped[str | None] = mapped_column(Text)
    start_pickup_drop_off_window: Mapped[int | None] = mapped_column(Integer)
    end_pickup_drop_off_window: Mapped[int | None] = mapped_column(Integer)
    pickup_type: Mapped[int | None] = mapped_column(Integer)
    drop_off_type: Mapped[int | None] = mapped_column(Integer)
    continuous_pickup: Mapped[int | None] = mapped_column(Integer)
    continuous_drop_off: Mapped[int | None] = mapped_column(Integer)
    shape_dist_traveled: Mapped[float | None] = mapped_column(Float)
    timepoint: Mapped[int | None] = mapped_column(Integer)
    pickup_booking_rule_id: Mapped[str | None] = mapped_column(Text)
    drop_off_booking_rule_id: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("trip_pk", "stop_sequence", name="uq_stop_times_trip_sequence"),
        Index("ix_stop_times_stop_pk", "stop_pk"),
        Index("ix_stop_times_feed_version", "feed_version_id"),
    )


class ShapePoint(Base):
    __tablename__ = "shapes"

    shape_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    shape_id: Mapped[str] = mapped_column(Text, nullable=False)
    shape_pt_lat: Mapped[float] = mapped_column(Float, nullable=False)
    shape_pt_lon: Mapped[float] = mapped_column(Float, nullable=False)
    shape_pt_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    shape_dist_traveled: Mapped[float | None] = mapped_column(Float)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id", "shape_id", "shape_pt_sequence", name="uq_shapes_natural"
        ),
    )


class FareAttribute(Base):
    __tablename__ = "fare_attributes"

    fare_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    fare_id: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float | None] = mapped_column(Float)
    currency_type: Mapped[str | None] = mapped_column(Text)
    payment_method: Mapped[int | None] = mapped_column(Integer)
    transfers: Mapped[int | None] = mapped_column(Integer)
    agency_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("agency.agency_pk", ondelete="SET NULL")
    )
    transfer_duration: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "fare_id", name="uq_fare_attributes_natural"),
    )


class FareRule(Base):
    __tablename__ = "fare_rules"

    fare_rule_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    fare_id: Mapped[str] = mapped_column(Text, nullable=False)
    route_id: Mapped[str | None] = mapped_column(Text)
    origin_id: Mapped[str | None] = mapped_column(Text)
    destination_id: Mapped[str | None] = mapped_column(Text)
    contains_id: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_fare_rules_feed_version", "feed_version_id"),)


class Transfer(Base):
    __tablename__ = "transfers"

    transfer_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    from_stop_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="CASCADE"), nullable=False
    )
    to_stop_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="CASCADE"), nullable=False
    )
    from_route_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="SET NULL")
    )
    to_route_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="SET NULL")
    )
    from_trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    to_trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    transfer_type: Mapped[int | None] = mapped_column(Integer)
    min_transfer_time: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (Index("ix_transfers_feed_version", "feed_version_id"),)


class Frequency(Base):
    __tablename__ = "frequencies"

    frequency_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    trip_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="CASCADE"), nullable=False
    )
    start_time: Mapped[int | None] = mapped_column(Integer)
    end_time: Mapped[int | None] = mapped_column(Integer)
    headway_secs: Mapped[int | None] = mapped_column(Integer)
    exact_times: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (Index("ix_frequencies_feed_version", "feed_version_id"),)


class Attribution(Base):
    __tablename__ = "attributions"

    attribution_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    attribution_id: Mapped[str | None] = mapped_column(Text)
    agency_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("agency.agency_pk", ondelete="SET NULL")
    )
    route_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="SET NULL")
    )
    trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    organization_name: Mapped[str | None] = mapped_column(Text)
    is_producer: Mapped[int | None] = mapped_column(Integer)
    is_operator: Mapped[int | None] = mapped_column(Integer)
    is_authority: Mapped[int | None] = mapped_column(Integer)
    attribution_url: Mapped[str | None] = mapped_column(Text)
    attribution_email: Mapped[str | None] = mapped_column(Text)
    attribution_phone: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_attributions_feed_version", "feed_version_id"),)


class Pathway(Base):
    __tablename__ = "pathways"

    pathway_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    pathway_id: Mapped[str] = mapped_column(Text, nullable=False)
    from_stop_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="CASCADE"), nullable=False
    )
    to_stop_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="CASCADE"), nullable=False
    )
    pathway_mode: Mapped[int | None] = mapped_column(Integer)
    is_bidirectional: Mapped[int | None] = mapped_column(Integer)
    length: Mapped[float | None] = mapped_column(Float)
    traversal_time: Mapped[int | None] = mapped_column(Integer)
    stair_count: Mapped[int | None] = mapped_column(Integer)
    max_slope: Mapped[float | None] = mapped_column(Float)
    min_width: Mapped[float | None] = mapped_column(Float)
    signposted_as: Mapped[str | None] = mapped_column(Text)
    reversed_signposted_as: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "pathway_id", name="uq_pathways_natural"),
    )
