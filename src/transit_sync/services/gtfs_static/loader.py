"""Batched upsert-with-returning writer for static GTFS tables."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from transit_sync.errors import RowError
from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from transit_sync.services.gtfs_static.normalizer import RowNormalizer
    from transit_sync.services.gtfs_static.parser import Row
    from transit_sync.services.gtfs_static.remap import RemapTables
    from transit_sync.services.gtfs_static.tables import TableSpec

logger = get_logger(__name__)

# Keeps every statement under the bind-parameter limits of asyncpg and SQLite.
MAX_PARAMS_PER_STATEMENT = 30000
MAX_STEP_WARNINGS = 20


@dataclass
class TableCounts:
    read: int = 0
    written: int = 0
    dropped: int = 0
    failed: int = 0
    nulled: int = 0

    def add(self, other: TableCounts | dict[str, int]) -> None:
        values = other if isinstance(other, dict) else other.as_dict()
        for name, value in values.items():
            setattr(self, name, getattr(self, name, 0) + value)

    def as_dict(self) -> dict[str, int]:
        return {
            "read": self.read,
            "written": self.written,
            "dropped": self.dropped,
            "failed": self.failed,
            "nulled": self.nulled,
        }


@dataclass
class LoadResult:
    """Outcome of loading one table, or one chunk of one.

    ``keys`` holds the natural id -> surrogate key pairs returned by the
    store for id-map tables. ``parents`` holds ``[child_pk, parent_id]``
    pairs left for the parent-station pass.
    """

    counts: TableCounts = field(default_factory=TableCounts)
    keys: dict[str, int] = field(default_factory=dict)
    parents: list[list[Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        if len(self.warnings) < MAX_STEP_WARNINGS:
            self.warnings.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": self.counts.as_dict(),
            "keys": self.keys,
            "parents": self.parents,
            "warnings": self.warnings,
        }


class TableLoader:
    """Writes normalized rows for one table in bounded, concurrent batches.

    Every batch is one multi-row ``INSERT ... ON CONFLICT`` statement in its
    own transaction. Batches of one call may run concurrently; callers load
    tables one after another so a table's keys are complete before any
    dependent table is loaded.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int = 1000,
        write_concurrency: int = 4,
    ) -> None:
        self._session_factory = session_factory
        self.batch_size = batch_size
        self.write_concurrency = write_concurrency

    async def load(
        self,
        spec: TableSpec,
        rows: Iterable[Row],
        feed_version_id: int,
        remap: RemapTables,
        normalizer: RowNormalizer,
        *,
        replace: bool | None = None,
    ) -> LoadResult:
        """Normalize, resolve and write ``rows`` for ``spec``.

        ``replace`` deletes the version's existing rows first; it defaults to
        the table's replace mode.
        """
        result = LoadResult()
        counts = result.counts
        nulled_before = normalizer.nulled_fields
        staged: dict[tuple[Any, ...], dict[str, Any]] = {}
        appended: list[dict[str, Any]] = []
        pending_parents: dict[str, str] = {}

        for row in rows:
            counts.read += 1
            try:
                record = normalizer.normalize(spec.record, row)
            except RowError as exc:
                counts.failed += 1
                result.warn(f"{spec.filename} row {counts.read}: {exc}")
                continue

            values = {name: getattr(record, name) for name in spec.record_fields}
            unresolved = None
            for ref in spec.references:
                natural_id = values.pop(ref.field)
                key = remap.resolve(ref, natural_id)
                if key is None and ref.required:
                    unresolved = f"{ref.field}={natural_id!r}"
                    break
                values[ref.column] = key
            if unresolved is not None:
                counts.dropped += 1
                result.warn(f"{spec.filename} row {counts.read}: unresolved {unresolved}")
                continue

            for name in spec.deferred:
                parent_id = values.pop(name)
                if parent_id is not None and spec.natural_key:
                    pending_parents[values[spec.natural_key]] = parent_id
            values["feed_version_id"] = feed_version_id

            if spec.conflict:
                staged[tuple(values[c] for c in spec.conflict)] = values
            else:
                appended.append(values)

        counts.nulled = normalizer.nulled_fields - nulled_before
        to_write = list(staged.values()) if spec.conflict else appended

        if replace is None:
            replace = spec.replace
        if replace:
            await self.delete_version_rows(spec.table, feed_version_id)

        if to_write:
            counts.written = await self._write(spec, to_write, result.keys)

        if pending_parents:
            result.parents = [
                [result.keys[child], parent]
                for child, parent in pending_parents.items()
                if child in result.keys
            ]

        if counts.dropped or counts.failed:
            logger.warning(
                "Skipped rows while loading table",
                table=spec.table,
                dropped=counts.dropped,
                failed=counts.failed,
            )
        logger.info("Loaded table rows", table=spec.table, **counts.as_dict())
        return result

    def _statement(self, spec: TableSpec, columns: tuple[str, ...], size: int) -> Any:
        column_list = ", ".join(columns)
        values_sql = ", ".join(
            "(" + ", ".join(f":{col}_{i}" for col in columns) + ")" for i in range(size)
        )
        sql = f"INSERT INTO {spec.table} ({column_list}) VALUES {values_sql}"

        if spec.conflict:
            conflict_list = ", ".join(spec.conflict)
            update_cols = [col for col in columns if col not in spec.conflict]
            if spec.update and update_cols:
                update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_cols)
                sql += f" ON CONFLICT ({conflict_list}) DO UPDATE SET {update_set}"
            else:
                sql += f" ON CONFLICT ({conflict_list}) DO NOTHING"

        if spec.key_column and spec.natural_key:
            sql += f" RETURNING {spec.key_column}, {spec.natural_key}"
        return text(sql)

    async def _write(
        self, spec: TableSpec, rows: list[dict[str, Any]], keys: dict[str, int]
    ) -> int:
        columns = spec.columns
        per_statement = max(1, min(self.batch_size, MAX_PARAMS_PER_STATEMENT // len(columns)))
        semaphore = asyncio.Semaphore(self.write_concurrency)

        async def write_batch(batch: list[dict[str, Any]]) -> list[Any]:
            params: dict[str, Any] = {}
            for i, row in enumerate(batch):
                for col in columns:
                    params[f"{col}_{i}"] = row.get(col)
            stmt = self._statement(spec, columns, len(batch))

            async with semaphore, self._session_factory() as session:
                try:
                    result = await session.execute(stmt, params)
                    returned = result.all() if result.returns_rows else []
                    await session.commit()
                except Exception as exc:
                    await session.rollback()
                    logger.error(
                        "Batch upsert failed", table=spec.table, rows=len(batch), error=str(exc)
                    )
                    raise
            return returned

        batches = [rows[i : i + per_statement] for i in range(0, len(rows), per_statement)]
        results = await asyncio.gather(*(write_batch(batch) for batch in batches))
        for returned in results:
            for key, natural_id in returned:
                keys[natural_id] = key
        return len(rows)

    async def delete_version_rows(self, table: str, feed_version_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                text(f"DELETE FROM {table} WHERE feed_version_id = :fv"),
                {"fv": feed_version_id},
            )
            await session.commit()
        return result.rowcount or 0

    async def resolve_parents(
        self, pairs: Iterable[list[Any]], stops_map: Any
    ) -> tuple[int, int]:
        """Second pass for ``stops.parent_station``.

        Returns the number of resolved and unresolved links; unresolved
        parents stay NULL.
        """
        updates: list[dict[str, int]] = []
        unresolved = 0
        for child_pk, parent_id in pairs:
            parent_pk = stops_map.get(parent_id)
            if parent_pk is None:
                unresolved += 1
                continue
            updates.append({"child": child_pk, "parent": parent_pk})

        stmt = text("UPDATE stops SET parent_station = :parent WHERE stop_pk = :child")
        for start in range(0, len(updates), self.batch_size):
            async with self._session_factory() as session:
                try:
                    await session.execute(stmt, updates[start : start + self.batch_size])
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        if unresolved:
            logger.warning("Unresolved parent stations", unresolved=unresolved)
        return len(updates), unresolved

