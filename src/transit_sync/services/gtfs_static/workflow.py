"""Durable static GTFS import workflow.

Each state of the import is one checkpointed step of a ``DurableExecutor``:

    Fetch archive -> Hash and stage archive -> Initialize feed version
      duplicate: Cleanup staging
      new:       Import {table} [chunk n] ... -> Resolve parent stations
                 -> Activate feed version -> Cleanup staging

Steps only touch the store through upserts, replace-mode reloads and
hash-gated version creation, so re-running a step that crashed before its
checkpoint is safe. The id maps are rebuilt from step results, which lets a
resumed run skip every table that was already loaded.
"""

from __future__ import annotations

import functools
import io
from typing import TYPE_CHECKING, Any

from transit_sync.errors import BlobStoreError
from transit_sync.logging import get_logger
from transit_sync.services.gtfs_static.archive import GtfsArchive, sha256_hex
from transit_sync.services.gtfs_static.loader import TableLoader
from transit_sync.services.gtfs_static.normalizer import (
    RowNormalizer,
    parse_gtfs_date,
    resolve_timezone,
)
from transit_sync.services.gtfs_static.parser import ChunkedTableReader, iter_rows
from transit_sync.services.gtfs_static.remap import RemapTables
from transit_sync.services.gtfs_static.report import ImportReport
from transit_sync.services.gtfs_static.tables import IMPORT_ORDER, STOPS, TABLES
from transit_sync.services.gtfs_static.versions import FeedVersionManager

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from transit_sync.context import PipelineContext
    from transit_sync.services.gtfs_static.tables import TableSpec
    from transit_sync.services.workflow.executor import DurableExecutor

logger = get_logger(__name__)

WORKFLOW_NAME = "static_import"


class StaticImportWorkflow:
    """Imports one source's static feed into a new, then active, feed version."""

    def __init__(self, context: PipelineContext, executor: DurableExecutor) -> None:
        self.settings = context.settings
        self.blob_store = context.blob_store
        self.fetcher = context.archive_fetcher
        self.executor = executor
        self.versions = FeedVersionManager(context.session_factory)
        self.loader = TableLoader(
            context.session_factory,
            batch_size=self.settings.import_batch_size,
            write_concurrency=self.settings.import_write_concurrency,
        )

    async def run(self, source: str, archive_path: str | None = None) -> dict[str, Any]:
        run_id = self.executor.run_id
        prefix = f"imports/{run_id}"
        step = self.executor.step
        report = ImportReport(run_id=run_id, source=source)

        await step(
            f"[{source}] Fetch archive",
            functools.partial(self._fetch_archive, source, archive_path, prefix),
        )
        staged = await step(
            f"[{source}] Hash and stage archive", functools.partial(self._stage_archive, prefix)
        )
        report.feed_hash = staged["feed_hash"]
        files: dict[str, int] = staged["files"]

        version = await step(
            f"[{source}] Initialize feed version",
            functools.partial(self._initialize_version, source, staged["feed_hash"], prefix, files),
        )
        report.feed_version_id = version["feed_version_id"]
        report.version_label = version["version_label"]

        if not version["is_new"]:
            report.skipped_unchanged = True
            await step(f"[{source}] Cleanup staging", functools.partial(self._cleanup, prefix))
            report.finish()
            logger.info("Feed unchanged, import skipped", feed_version_id=report.feed_version_id)
            return report.to_dict()

        feed_version_id = version["feed_version_id"]
        normalizer = RowNormalizer(
            resolve_timezone(version["timezone"], self.settings.default_timezone)
        )
        remap = RemapTables()
        parents: list[list[Any]] = []

        for table in IMPORT_ORDER:
            spec = TABLES[table]
            if spec.filename not in files:
                continue
            if spec.chunking is None:
                results = [
                    await step(
                        f"[{source}] Import {table}",
                        functools.partial(
                            self._load_table, spec, prefix, feed_version_id, remap, normalizer
                        ),
                    )
                ]
            else:
                results = await self._load_chunked(
                    source, spec, prefix, feed_version_id, remap, normalizer
                )
            for result in results:
                report.add_table(table, result["counts"], result["warnings"])
                if spec.id_map:
                    remap.record(spec.id_map, result["keys"])
                parents.extend(result["parents"])

        links = await step(
            f"[{source}] Resolve parent stations",
            functools.partial(self._resolve_parents, parents, remap),
        )
        report.parent_links.update(links)

        report.activation = await step(
            f"[{source}] Activate feed version",
            functools.partial(self._activate, version["feed_source_id"], feed_version_id),
        )
        await step(f"[{source}] Cleanup staging", functools.partial(self._cleanup, prefix))

        report.finish()
        totals = report.totals()
        logger.info(
            "GTFS static import complete",
            feed_version_id=feed_version_id,
            duration_ms=report.duration_ms,
            **totals.as_dict(),
        )
        return report.to_dict()

    async def _fetch_archive(
        self, source: str, archive_path: str | None, prefix: str
    ) -> dict[str, Any]:
        if archive_path:
            data = await self.fetcher.fetch_local(archive_path)
        else:
            data = await self.fetcher.fetch_remote(self.settings.static_feed_url_for(source))
        key = f"{prefix}/archive.zip"
        await self.blob_store.put(key, data)
        return {"key": key, "size": len(data)}

    async def _stage_archive(self, prefix: str) -> dict[str, Any]:
        key = f"{prefix}/archive.zip"
        data = await self.blob_store.get(key)
        if data is None:
            msg = f"Staged archive not found: {key}"
            raise BlobStoreError(msg)
        feed_hash = sha256_hex(data)
        with GtfsArchive(data) as archive:
            files = await archive.stage(self.blob_store, prefix)
        logger.info("Archive hashed and staged", feed_hash=feed_hash[:12], files=len(files))
        return {"feed_hash": feed_hash, "files": files}

    async def _first_row(self, prefix: str, filename: str, files: dict[str, int]) -> dict:
        if filename not in files:
            return {}
        data = await self.blob_store.get(f"{prefix}/{filename}")
        if not data:
            return {}
        return next(iter_rows(io.BytesIO(data), filename=filename), {})

    async def _initialize_version(
        self, source: str, feed_hash: str, prefix: str, files: dict[str, int]
    ) -> dict[str, Any]:
        agency = await self._first_row(prefix, "agency.txt", files)
        feed_info = await self._first_row(prefix, "feed_info.txt", files)
        tz = resolve_timezone(agency.get("agency_timezone"), self.settings.default_timezone)

        init = await self.versions.initialize(
            source,
            feed_hash,
            description=feed_info.get("feed_publisher_name") or agency.get("agency_name"),
            default_lang=feed_info.get("default_lang") or feed_info.get("feed_lang"),
            feed_start_date=_optional_date(feed_info.get("feed_start_date"), tz),
            feed_end_date=_optional_date(feed_info.get("feed_end_date"), tz),
        )
        return {
            "feed_source_id": init.feed_source_id,
            "feed_version_id": init.feed_version_id,
            "version_label": init.version_label,
            "is_new": init.is_new,
            "timezone": tz.key,
        }

    def _reader(self, spec: TableSpec, prefix: str, chunk_bytes: int | None) -> ChunkedTableReader:
        return ChunkedTableReader(
            self.blob_store,
            f"{prefix}/{spec.filename}",
            chunk_bytes,
            required_columns=spec.required_columns,
            filename=spec.filename,
        )

    async def _load_table(
        self,
        spec: TableSpec,
        prefix: str,
        feed_version_id: int,
        remap: RemapTables,
        normalizer: RowNormalizer,
    ) -> dict[str, Any]:
        chunk = await self._reader(spec, prefix, None).read_chunk(0)
        result = await self.loader.load(spec, chunk.rows, feed_version_id, remap, normalizer)
        return result.to_dict()

    async def _load_chunk(
        self,
        spec: TableSpec,
        prefix: str,
        feed_version_id: int,
        remap: RemapTables,
        normalizer: RowNormalizer,
        offset: int,
        header: list[str] | None,
    ) -> dict[str, Any]:
        reader = self._reader(spec, prefix, getattr(self.settings, spec.chunking))
        chunk = await reader.read_chunk(offset, header)
        result = await self.loader.load(spec, chunk.rows, feed_version_id, remap, normalizer)
        data = result.to_dict()
        data.update(
            offset=offset, consumed=chunk.consumed, header=chunk.header, at_eof=chunk.at_eof
        )
        return data

    async def _load_chunked(
        self,
        source: str,
        spec: TableSpec,
        prefix: str,
        feed_version_id: int,
        remap: RemapTables,
        normalizer: RowNormalizer,
    ) -> list[dict[str, Any]]:
        """Load a large table one byte-range chunk per step, strictly in order."""
        results: list[dict[str, Any]] = []
        offset = 0
        header: list[str] | None = None
        number = 0
        while True:
            number += 1
            data = await self.executor.step(
                f"[{source}] Import {spec.table} chunk {number}",
                functools.partial(
                    self._load_chunk,
                    spec,
                    prefix,
                    feed_version_id,
                    remap,
                    normalizer,
                    offset,
                    header,
                ),
            )
            results.append(data)
            offset += data["consumed"]
            header = data["header"]
            if data["at_eof"] or not data["consumed"]:
                break
        logger.info("Loaded chunked table", table=spec.table, chunks=number)
        return results

    async def _resolve_parents(self, parents: list[list[Any]], remap: RemapTables) -> dict[str, int]:
        resolved, unresolved = await self.loader.resolve_parents(parents, remap[STOPS])
        return {"resolved": resolved, "unresolved": unresolved}

    async def _activate(self, feed_source_id: int, feed_version_id: int) -> dict[str, Any]:
        window = await self.versions.activate(feed_source_id, feed_version_id)
        pruned = await self.versions.prune_superseded(
            feed_source_id, self.settings.feed_versions_to_keep
        )
        return {**window, "pruned": pruned}

    async def _cleanup(self, prefix: str) -> dict[str, int]:
        deleted = await self.blob_store.delete_prefix(f"{prefix}/")
        logger.info("Staging cleaned up", prefix=prefix, deleted=deleted)
        return {"deleted": deleted}


def _optional_date(value: str | None, tz: ZoneInfo) -> int | None:
    if not value:
        return None
    try:
        return parse_gtfs_date(value, tz)
    except ValueError:
        logger.warning("Ignoring invalid feed_info date", value=value)
        return None
