"""Feed source and feed version models."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from transit_sync.models.base import Base

VERSION_LOADING = "loading"
VERSION_COMPLETE = "complete"
VERSION_PRUNED = "pruned"


class FeedSource(Base):
    """One upstream publisher (agency or regional operator)."""

    __tablename__ = "feed_source"

    feed_source_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    source_desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_lang: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class FeedVersion(Base):
    """One content-addressed snapshot of a source's static feed.

    ``version_label`` is derived from the source name and the SHA-256 of the
    archive, so identical bytes always map to the same row. ``status`` tracks
    the import lifecycle: ``loading`` until activation, then ``complete``;
    ``pruned`` once its static rows have been removed.
    """

    __tablename__ = "feed_version"

    feed_version_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feed_source.feed_source_id"), nullable=False
    )
    version_label: Mapped[str] = mapped_column(String(255), nullable=False)
    feed_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    feed_start_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    feed_end_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("FALSE")
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=VERSION_LOADING, server_default=VERSION_LOADING
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("feed_source_id", "version_label", name="uq_feed_version_label"),
        Index(
            "uq_feed_version_one_active",
            "feed_source_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )
