"""Feed version lifecycle: content-hash deduplication, activation and pruning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import text

from transit_sync.errors import UnknownFeedSourceError
from transit_sync.logging import get_logger
from transit_sync.models.feeds import VERSION_COMPLETE, VERSION_LOADING, VERSION_PRUNED
from transit_sync.services.gtfs_static.tables import IMPORT_ORDER

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

# Real-time columns that point at static rows, nulled before those rows go away.
REALTIME_LINKS: tuple[tuple[str, str, str], ...] = (
    ("trip_updates", "trip_pk", "trips"),
    ("vehicle_positions", "trip_pk", "trips"),
    ("vehicle_positions", "route_pk", "routes"),
    ("service_alerts", "affected_trip_pk", "trips"),
    ("service_alerts", "affected_route_pk", "routes"),
    ("service_alerts", "affected_stop_pk", "stops"),
)
LINKED_KEYS = {"trips": "trip_pk", "routes": "route_pk", "stops": "stop_pk"}


def version_label(source: str, feed_hash: str) -> str:
    return f"{source}-{feed_hash}"


@dataclass(frozen=True)
class VersionInit:
    feed_source_id: int
    feed_version_id: int
    version_label: str
    is_new: bool


@dataclass(frozen=True)
class FeedContext:
    """The source row and its active version (None if nothing is active yet)."""

    feed_source_id: int
    feed_version_id: Optional[int]


class FeedVersionManager:
    """Owns ``feed_source``/``feed_version`` rows and the static data under them."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ensure_source(
        self,
        session: AsyncSession,
        source: str,
        description: str | None = None,
        default_lang: str | None = None,
    ) -> int:
        result = await session.execute(
            text("""
                INSERT INTO feed_source (source_name, source_desc, default_lang)
                VALUES (:source, :description, :lang)
                ON CONFLICT (source_name) DO UPDATE SET
                    source_desc = COALESCE(EXCLUDED.source_desc, feed_source.source_desc),
                    default_lang = COALESCE(EXCLUDED.default_lang, feed_source.default_lang)
                RETURNING feed_source_id
            """),
            {"source": source, "description": description, "lang": default_lang},
        )
        return int(result.scalar_one())

    async def initialize(
        self,
        source: str,
        feed_hash: str,
        *,
        description: str | None = None,
        default_lang: str | None = None,
        feed_start_date: int | None = None,
        feed_end_date: int | None = None,
    ) -> VersionInit:
        """Create the version for ``(source, feed_hash)`` or find the existing one.

        An existing ``complete`` version means the same bytes were already
        imported: ``is_new`` is False and nothing is written. A leftover
        ``loading`` or ``pruned`` version is cleared and reused.
        """
        label = version_label(source, feed_hash)
        async with self._session_factory() as session:
            try:
                source_id = await self.ensure_source(session, source, description, default_lang)
                result = await session.execute(
                    text("""
                        INSERT INTO feed_version (
                            feed_source_id, version_label, feed_hash,
                            feed_start_date, feed_end_date, is_active, status
                        )
                        VALUES (:source_id, :label, :hash, :start, :end, FALSE, :status)
                        ON CONFLICT (feed_source_id, version_label) DO NOTHING
                        RETURNING feed_version_id
                    """),
                    {
                        "source_id": source_id,
                        "label": label,
                        "hash": feed_hash,
                        "start": feed_start_date,
                        "end": feed_end_date,
                        "status": VERSION_LOADING,
                    },
                )
                created = result.scalar_one_or_none()
                existing = None
                if created is None:
                    existing = (
                        await session.execute(
                            text("""
                                SELECT feed_version_id, status FROM feed_version
                                WHERE feed_source_id = :source_id AND version_label = :label
                            """),
                            {"source_id": source_id, "label": label},
                        )
                    ).one()
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if created is not None:
            logger.info("Created feed version", source=source, feed_version_id=created, label=label)
            return VersionInit(source_id, int(created), label, True)

        version_id, status = int(existing[0]), existing[1]
        if status == VERSION_COMPLETE:
            logger.info("Feed unchanged, version exists", source=source, feed_version_id=version_id)
            return VersionInit(source_id, version_id, label, False)

        logger.warning(
            "Reusing incomplete feed version", source=source, feed_version_id=version_id, status=status
        )
        await self.clear_version_data(version_id)
        async with self._session_factory() as session:
            await session.execute(
                text("""
                    UPDATE feed_version
                    SET status = :status, feed_start_date = :start, feed_end_date = :end
                    WHERE feed_version_id = :fv
                """),
                {
                    "status": VERSION_LOADING,
                    "start": feed_start_date,
                    "end": feed_end_date,
                    "fv": version_id,
                },
            )
            await session.commit()
        return VersionInit(source_id, version_id, label, True)

    async def clear_version_data(self, feed_version_id: int) -> None:
        """Delete every static row of a version, children before parents."""
        async with self._session_factory() as session:
            try:
                await self._unlink_realtime(session, feed_version_id)
                await session.execute(
                    text("UPDATE stops SET parent_station = NULL WHERE feed_version_id = :fv"),
                    {"fv": feed_version_id},
                )
                for table in reversed(IMPORT_ORDER):
                    await session.execute(
                        text(f"DELETE FROM {table} WHERE feed_version_id = :fv"),
                        {"fv": feed_version_id},
                    )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.info("Cleared feed version data", feed_version_id=feed_version_id)

    async def _unlink_realtime(self, session: AsyncSession, feed_version_id: int) -> None:
        for table, column, target in REALTIME_LINKS:
            key = LINKED_KEYS[target]
            await session.execute(
                text(f"""
                    UPDATE {table} SET {column} = NULL
                    WHERE {column} IN (
                        SELECT {key} FROM {target} WHERE feed_version_id = :fv
                    )
                """),
                {"fv": feed_version_id},
            )

    async def activate(self, feed_source_id: int, feed_version_id: int) -> dict[str, Any]:
        """Make this the only active version of its source, in one transaction.

        A validity window missing from feed_info is filled from the
        calendar tables.
        """
        async with self._session_factory() as session:
            try:
                await session.execute(
                    text("""
                        UPDATE feed_version SET is_active = FALSE
                        WHERE feed_source_id = :source_id AND feed_version_id <> :fv
                    """),
                    {"source_id": feed_source_id, "fv": feed_version_id},
                )
                await session.execute(
                    text("""
                        UPDATE feed_version SET
                            is_active = TRUE,
                            status = :status,
                            activated_at = CURRENT_TIMESTAMP,
                            feed_start_date = COALESCE(
                                feed_start_date,
                                (SELECT MIN(start_date) FROM calendar WHERE feed_version_id = :fv),
                                (SELECT MIN(date) FROM calendar_dates WHERE feed_version_id = :fv)
                            ),
                            feed_end_date = COALESCE(
                                feed_end_date,
                                (SELECT MAX(end_date) FROM calendar WHERE feed_version_id = :fv),
                                (SELECT MAX(date) FROM calendar_dates WHERE feed_version_id = :fv)
                            )
                        WHERE feed_version_id = :fv
                    """),
                    {"status": VERSION_COMPLETE, "fv": feed_version_id},
                )
                window = (
                    await session.execute(
                        text("""
                            SELECT feed_start_date, feed_end_date FROM feed_version
                            WHERE feed_version_id = :fv
                        """),
                        {"fv": feed_version_id},
                    )
                ).one()
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.info("Activated feed version", feed_version_id=feed_version_id)
        return {
            "feed_version_id": feed_version_id,
            "feed_start_date": window[0],
            "feed_end_date": window[1],
        }

    async def prune_superseded(self, feed_source_id: int, keep: int) -> list[int]:
        """Drop static data of complete versions beyond the newest ``keep``.

        The version rows stay, marked ``pruned``, so re-importing the same
        bytes later is recognized and reloaded.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                text("""
                    SELECT feed_version_id FROM feed_version
                    WHERE feed_source_id = :source_id AND status = :status
                    ORDER BY is_active DESC, activated_at DESC, feed_version_id DESC
                """),
                {"source_id": feed_source_id, "status": VERSION_COMPLETE},
            )
            complete = [int(row[0]) for row in result.all()]

        pruned = complete[keep:]
        for version_id in pruned:
            await self.clear_version_data(version_id)
            async with self._session_factory() as session:
                await session.execute(
                    text("""
                        UPDATE feed_version SET status = :status, is_active = FALSE
                        WHERE feed_version_id = :fv
                    """),
                    {"status": VERSION_PRUNED, "fv": version_id},
                )
                await session.commit()
        if pruned:
            logger.info("Pruned superseded feed versions", feed_source_id=feed_source_id, pruned=pruned)
        return pruned

    async def get_feed_context(self, source: str) -> FeedContext:
        """Resolve a source name to its id and active version.

        Raises:
            UnknownFeedSourceError: If the source was never imported.
        """
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    text("""
                        SELECT s.feed_source_id, v.feed_version_id
                        FROM feed_source s
                        LEFT JOIN feed_version v
                            ON v.feed_source_id = s.feed_source_id AND v.is_active = TRUE
                        WHERE s.source_name = :source
                    """),
                    {"source": source},
                )
            ).first()
        if row is None:
            msg = f"Unknown feed source: {source}"
            raise UnknownFeedSourceError(msg)
        return FeedContext(
            feed_source_id=int(row[0]),
            feed_version_id=int(row[1]) if row[1] is not None else None,
        )

    async def list_sources(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT source_name FROM feed_source ORDER BY source_name")
            )
            return [row[0] for row in result.all()]

    async def get_active_version(self, feed_source_id: int) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    text("""
                        SELECT feed_version_id, version_label, feed_hash, status,
                               feed_start_date, feed_end_date
                        FROM feed_version
                        WHERE feed_source_id = :source_id AND is_active = TRUE
                    """),
                    {"source_id": feed_source_id},
                )
            ).first()
        return dict(row._mapping) if row is not None else None
