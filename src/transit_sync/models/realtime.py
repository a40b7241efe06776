"""Real-time fact models.

Trip updates and vehicle positions are historized: one row per observation,
deduplicated on the observation key. Service alerts are opened once and
closed by setting ``end_time`` when they disappear from the upstream feed.
All times are unix epoch seconds.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from transit_sync.models.base import Base


def source_fk() -> Mapped[int]:
    return mapped_column(Integer, ForeignKey("feed_source.feed_source_id"), nullable=False)


class TripUpdate(Base):
    """One observed delay/status for a trip at a feed timestamp."""

    __tablename__ = "trip_updates"

    update_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_source_id: Mapped[int] = source_fk()
    trip_id: Mapped[str] = mapped_column(Text, nullable=False)
    trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    delay: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="SCHEDULED")
    updated_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "feed_source_id", "trip_id", "updated_time", name="uq_trip_updates_observation"
        ),
        Index("ix_trip_updates_trip_pk", "trip_pk"),
        Index("ix_trip_updates_updated_time", "updated_time"),
    )


class VehiclePosition(Base):
    __tablename__ = "vehicle_positions"

    position_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_source_id: Mapped[int] = source_fk()
    vehicle_id: Mapped[str] = mapped_column(Text, nullable=False)
    trip_id: Mapped[str | None] = mapped_column(Text)
    trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    route_id: Mapped[str | None] = mapped_column(Text)
    route_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="SET NULL")
    )
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    bearing: Mapped[float | None] = mapped_column(Float)
    speed: Mapped[float | None] = mapped_column(Float)
    current_stop_sequence: Mapped[int | None] = mapped_column(Integer)
    current_status: Mapped[str | None] = mapped_column(String(32))
    occupancy_status: Mapped[str | None] = mapped_column(String(32))
    position_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "feed_source_id", "vehicle_id", "position_time", name="uq_vehicle_positions_observation"
        ),
        Index("ix_vehicle_positions_trip_pk", "trip_pk"),
    )


class ServiceAlert(Base):
    """One (alert, informed entity) pair; several rows may share an alert_id."""

    __tablename__ = "service_alerts"

    alert_pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_source_id: Mapped[int] = source_fk()
    alert_id: Mapped[str] = mapped_column(Text, nullable=False)
    header: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    cause: Mapped[str | None] = mapped_column(String(32))
    effect: Mapped[str | None] = mapped_column(String(32))
    severity_level: Mapped[str | None] = mapped_column(String(32))
    start_time: Mapped[int | None] = mapped_column(BigInteger)
    end_time: Mapped[int | None] = mapped_column(BigInteger)
    route_id: Mapped[str | None] = mapped_column(Text)
    stop_id: Mapped[str | None] = mapped_column(Text)
    trip_id: Mapped[str | None] = mapped_column(Text)
    affected_route_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("routes.route_pk", ondelete="SET NULL")
    )
    affected_stop_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stops.stop_pk", ondelete="SET NULL")
    )
    affected_trip_pk: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("trips.trip_pk", ondelete="SET NULL")
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_service_alerts_open", "feed_source_id", "end_time"),
        Index("ix_service_alerts_alert_id", "alert_id"),
    )


class RealtimeIngestStatus(Base):
    """Last ingest outcome per (source, feed type)."""

    __tablename__ = "realtime_ingest_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_source_id: Mapped[int] = source_fk()
    feed_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="unknown")
    last_attempt_at: Mapped[int | None] = mapped_column(BigInteger)
    last_success_at: Mapped[int | None] = mapped_column(BigInteger)
    feed_timestamp: Mapped[int | None] = mapped_column(BigInteger)
    entity_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rows_written: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    feed_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    rate_limit_remaining: Mapped[int | None] = mapped_column(Integer)
    error_message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("feed_source_id", "feed_type", name="uq_realtime_ingest_status_feed"),
    )
