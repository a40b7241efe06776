"""Pytest configuration and fixtures.

Tests run against a throwaway SQLite database per test (via aiosqlite) and
an in-memory blob store; upstream HTTP is served by ``httpx.MockTransport``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from transit_sync.config import Settings
from transit_sync.context import PipelineContext
from transit_sync.database import create_engine, create_schema, create_session_factory
from transit_sync.main import attach_services, create_app
from transit_sync.services.gtfs_rt.fetcher import RealtimeFetcher
from transit_sync.services.gtfs_static.fetcher import ArchiveFetcher
from transit_sync.services.workflow.runner import WorkflowRunner
from transit_sync.storage import MemoryBlobStore

from .fixtures.gtfs_fixture import build_gtfs_zip

Handler = Callable[[httpx.Request], httpx.Response]


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("no upstream in tests", request=request)


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    """Settings pointing at a per-test SQLite file, with retries made instant."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'transit.db'}",
        blob_backend="memory",
        import_write_concurrency=1,
        step_backoff_base=0.0,
        step_backoff_max=0.0,
        http_max_retries=1,
        http_backoff_base=0.0,
        realtime_poll_interval_sec=1,
    )


@pytest.fixture
async def make_context(settings: Settings) -> AsyncGenerator[Callable[..., Any], None]:
    """Factory for a schema-ready ``PipelineContext``.

    ``static_handler`` and ``realtime_handler`` serve the archive and
    real-time fetchers; without one every request fails to connect. Keyword
    overrides are applied to a copy of the settings. All contexts share the
    test's database file.
    """
    created: list[PipelineContext] = []

    async def _make(
        static_handler: Handler | None = None,
        realtime_handler: Handler | None = None,
        **overrides: Any,
    ) -> PipelineContext:
        ctx_settings = settings.model_copy(update=overrides) if overrides else settings
        engine = create_engine(ctx_settings)
        await create_schema(engine)
        context = PipelineContext(
            settings=ctx_settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            blob_store=MemoryBlobStore(),
            archive_fetcher=ArchiveFetcher(
                max_retries=ctx_settings.http_max_retries,
                backoff_base=0.0,
                transport=httpx.MockTransport(static_handler or _unreachable),
            ),
            realtime_fetcher=RealtimeFetcher(
                max_retries=ctx_settings.http_max_retries,
                backoff_base=0.0,
                transport=httpx.MockTransport(realtime_handler or _unreachable),
            ),
        )
        created.append(context)
        return context

    yield _make

    for ctx in created:
        await ctx.close()


@pytest.fixture
async def context(make_context: Callable[..., Any]) -> PipelineContext:
    return await make_context()


@pytest.fixture
def import_feed(tmp_path: Any) -> Callable[..., Any]:
    """Run a static import of ``zip_bytes`` to completion; returns the run outcome."""
    counter = iter(range(1_000))

    async def _import(
        context: PipelineContext,
        zip_bytes: bytes | None = None,
        source: str = "translink",
        run_id: str | None = None,
    ) -> dict[str, Any]:
        path = tmp_path / f"feed-{next(counter)}.zip"
        path.write_bytes(zip_bytes if zip_bytes is not None else build_gtfs_zip())
        runner = WorkflowRunner(context)
        return await runner.run_static_import(source, str(path), run_id=run_id)

    return _import


@pytest.fixture
async def app_client(
    settings: Settings, context: PipelineContext
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app with services wired to the test context."""
    app = create_app(settings)
    attach_services(app, context)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.poller.stop()
    await app.state.runner.shutdown()
