"""GTFS fares v2, flex and translation tables.

These tables keep their references as natural ids; only the version link
is a foreign key.
"""

from __future__ import annotations

from sqlalchemy import Float, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transit_sync.models.base import Base
from transit_sync.models.static import version_fk


class Area(Base):
    __tablename__ = "areas"

    area_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    area_id: Mapped[str] = mapped_column(Text, nullable=False)
    area_name: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (UniqueConstraint("feed_version_id", "area_id", name="uq_areas_natural"),)


class StopArea(Base):
    __tablename__ = "stop_areas"

    stop_area_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    area_id: Mapped[str] = mapped_column(Text, nullable=False)
    stop_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "area_id", "stop_id", name="uq_stop_areas_natural"),
    )


class Network(Base):
    __tablename__ = "networks"

    network_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    network_id: Mapped[str] = mapped_column(Text, nullable=False)
    network_name: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "network_id", name="uq_networks_natural"),
    )


class RouteNetwork(Base):
    __tablename__ = "route_networks"

    route_network_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    network_id: Mapped[str] = mapped_column(Text, nullable=False)
    route_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id", "network_id", "route_id", name="uq_route_networks_natural"
        ),
    )


class Timeframe(Base):
    __tablename__ = "timeframes"

    timeframe_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    timeframe_group_id: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[int | None] = mapped_column(Integer)
    end_time: Mapped[int | None] = mapped_column(Integer)
    service_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_timeframes_feed_version", "feed_version_id"),)


class RiderCategory(Base):
    __tablename__ = "rider_categories"

    rider_category_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    rider_category_id: Mapped[str] = mapped_column(Text, nullable=False)
    rider_category_name: Mapped[str | None] = mapped_column(Text)
    is_default_fare_category: Mapped[int | None] = mapped_column(Integer)
    eligibility_url: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id", "rider_category_id", name="uq_rider_categories_natural"
        ),
    )


class FareMedia(Base):
    __tablename__ = "fare_media"

    fare_media_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    fare_media_id: Mapped[str] = mapped_column(Text, nullable=False)
    fare_media_name: Mapped[str | None] = mapped_column(Text)
    fare_media_type: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "fare_media_id", name="uq_fare_media_natural"),
    )


class FareProduct(Base):
    """fare_products.txt; one product id may repeat per rider category and medium."""

    __tablename__ = "fare_products"

    fare_product_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    fare_product_id: Mapped[str] = mapped_column(Text, nullable=False)
    fare_product_name: Mapped[str | None] = mapped_column(Text)
    rider_category_id: Mapped[str | None] = mapped_column(Text)
    fare_media_id: Mapped[str | None] = mapped_column(Text)
    amount: Mapped[float | None] = mapped_column(Float)
    currency: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_fare_products_feed_version", "feed_version_id"),)


class FareLegRule(Base):
    __tablename__ = "fare_leg_rules"

    fare_leg_rule_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    leg_group_id: Mapped[str | None] = mapped_column(Text)
    network_id: Mapped[str | None] = mapped_column(Text)
    from_area_id: Mapped[str | None] = mapped_column(Text)
    to_area_id: Mapped[str | None] = mapped_column(Text)
    from_timeframe_group_id: Mapped[str | None] = mapped_column(Text)
    to_timeframe_group_id: Mapped[str | None] = mapped_column(Text)
    fare_product_id: Mapped[str] = mapped_column(Text, nullable=False)
    rule_priority: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (Index("ix_fare_leg_rules_feed_version", "feed_version_id"),)


class FareLegJoinRule(Base):
    __tablename__ = "fare_leg_join_rules"

    fare_leg_join_rule_pk: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    feed_version_id: Mapped[int] = version_fk()
    from_network_id: Mapped[str] = mapped_column(Text, nullable=False)
    to_network_id: Mapped[str] = mapped_column(Text, nullable=False)
    from_stop_id: Mapped[str | None] = mapped_column(Text)
    to_stop_id: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_fare_leg_join_rules_feed_version", "feed_version_id"),)


class FareTransferRule(Base):
    __tablename__ = "fare_transfer_rules"

    fare_transfer_rule_pk: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    feed_version_id: Mapped[int] = version_fk()
    from_leg_group_id: Mapped[str | None] = mapped_column(Text)
    to_leg_group_id: Mapped[str | None] = mapped_column(Text)
    transfer_count: Mapped[int | None] = mapped_column(Integer)
    duration_limit: Mapped[int | None] = mapped_column(Integer)
    duration_limit_type: Mapped[int | None] = mapped_column(Integer)
    fare_transfer_type: Mapped[int | None] = mapped_column(Integer)
    fare_product_id: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_fare_transfer_rules_feed_version", "feed_version_id"),)


class LocationGroup(Base):
    __tablename__ = "location_groups"

    location_group_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    location_group_id: Mapped[str] = mapped_column(Text, nullable=False)
    location_group_name: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id", "location_group_id", name="uq_location_groups_natural"
        ),
    )


class LocationGroupStop(Base):
    __tablename__ = "location_group_stops"

    location_group_stop_pk: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    feed_version_id: Mapped[int] = version_fk()
    location_group_id: Mapped[str] = mapped_column(Text, nullable=False)
    stop_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "feed_version_id",
            "location_group_id",
            "stop_id",
            name="uq_location_group_stops_natural",
        ),
    )


class BookingRule(Base):
    __tablename__ = "booking_rules"

    booking_rule_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    booking_rule_id: Mapped[str] = mapped_column(Text, nullable=False)
    booking_type: Mapped[int | None] = mapped_column(Integer)
    prior_notice_duration_min: Mapped[int | None] = mapped_column(Integer)
    prior_notice_duration_max: Mapped[int | None] = mapped_column(Integer)
    prior_notice_last_day: Mapped[int | None] = mapped_column(Integer)
    prior_notice_last_time: Mapped[int | None] = mapped_column(Integer)
    prior_notice_start_day: Mapped[int | None] = mapped_column(Integer)
    prior_notice_start_time: Mapped[int | None] = mapped_column(Integer)
    prior_notice_service_id: Mapped[str | None] = mapped_column(Text)
    message: Mapped[str | None] = mapped_column(Text)
    pickup_message: Mapped[str | None] = mapped_column(Text)
    drop_off_message: Mapped[str | None] = mapped_column(Text)
    phone_number: Mapped[str | None] = mapped_column(Text)
    info_url: Mapped[str | None] = mapped_column(Text)
    booking_url: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("feed_version_id", "booking_rule_id", name="uq_booking_rules_natural"),
    )


class Translation(Base):
    __tablename__ = "translations"

    translation_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_version_id: Mapped[int] = version_fk()
    table_name: Mapped[str] = mapped_column(Text, nullable=False)
    field_name: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(Text, nullable=False)
    translation: Mapped[str] = mapped_column(Text, nullable=False)
    record_id: Mapped[str | None] = mapped_column(Text)
    record_sub_id: Mapped[str | None] = mapped_column(Text)
    field_value: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (Index("ix_translations_feed_version", "feed_version_id"),)
