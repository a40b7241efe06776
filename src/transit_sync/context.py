"""Explicit dependencies shared by the import and real-time pipelines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from transit_sync.database import create_engine, create_session_factory
from transit_sync.services.gtfs_rt.fetcher import RealtimeFetcher
from transit_sync.services.gtfs_static.fetcher import ArchiveFetcher
from transit_sync.storage import LocalBlobStore, MemoryBlobStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from transit_sync.config import Settings
    from transit_sync.storage import BlobStore


@dataclass(frozen=True)
class PipelineContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    blob_store: BlobStore
    archive_fetcher: ArchiveFetcher
    realtime_fetcher: RealtimeFetcher

    async def close(self) -> None:
        await self.engine.dispose()


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the configured blob store backend."""
    if settings.blob_backend == "s3":
        from transit_sync.storage.s3 import S3BlobStore

        if not settings.blob_s3_bucket:
            msg = "BLOB_S3_BUCKET is required for the s3 blob backend"
            raise ValueError(msg)
        return S3BlobStore(settings.blob_s3_bucket, settings.blob_s3_prefix)
    if settings.blob_backend == "memory":
        return MemoryBlobStore()
    return LocalBlobStore(settings.blob_local_root)


def build_context(settings: Settings) -> PipelineContext:
    engine = create_engine(settings)
    return PipelineContext(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        blob_store=create_blob_store(settings),
        archive_fetcher=ArchiveFetcher(
            timeout_sec=settings.http_timeout_sec,
            max_retries=settings.http_max_retries,
            backoff_base=settings.http_backoff_base,
        ),
        realtime_fetcher=RealtimeFetcher(
            timeout_sec=settings.realtime_fetch_timeout_sec,
            max_retries=settings.http_max_retries,
            backoff_base=settings.http_backoff_base,
        ),
    )
