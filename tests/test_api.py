"""Tests for the admin and meta HTTP endpoints."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from httpx import AsyncClient

from transit_sync.context import PipelineContext
from transit_sync.services.gtfs_rt.writer import RealtimeWriter
from transit_sync.services.gtfs_static.versions import FeedVersionManager

from .fixtures.gtfs_fixture import build_gtfs_zip


async def _wait_for_run(client: AsyncClient, run_id: str) -> dict[str, Any]:
    for _ in range(400):
        run = (await client.get(f"/admin/workflows/{run_id}")).json()
        if run["status"] != "running":
            return run
        await asyncio.sleep(0.05)
    msg = f"run {run_id} did not finish"
    raise AssertionError(msg)


def _archive(tmp_path: Path) -> str:
    path = tmp_path / "gtfs.zip"
    path.write_bytes(build_gtfs_zip())
    return str(path)


class TestStaticImportEndpoints:
    async def test_start_import_returns_202(self, app_client: AsyncClient, tmp_path: Path) -> None:
        response = await app_client.post(
            "/admin/imports/static",
            json={"source": "translink", "archive_path": _archive(tmp_path)},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["source"] == "translink"
        assert body["status"] == "running"

        run = await _wait_for_run(app_client, body["run_id"])
        assert run["status"] == "succeeded"
        assert run["result"]["counts"]["stops"]["written"] == 5
        assert run["steps"][0]["name"] == "[translink] Fetch archive"
        assert run["params"] == {"archive_path": str(tmp_path / "gtfs.zip")}

    async def test_concurrent_import_is_409(self, app_client: AsyncClient, tmp_path: Path) -> None:
        body = {"source": "translink", "archive_path": _archive(tmp_path)}

        first = await app_client.post("/admin/imports/static", json=body)
        second = await app_client.post("/admin/imports/static", json=body)

        assert second.status_code == 409
        detail = second.json()["detail"]
        assert detail["run_id"] == first.json()["run_id"]
        assert "already running" in detail["message"]
        await _wait_for_run(app_client, first.json()["run_id"])

    async def test_invalid_body_is_422(self, app_client: AsyncClient) -> None:
        response = await app_client.post("/admin/imports/static", json={"source": ""})

        assert response.status_code == 422

    async def test_list_runs(self, app_client: AsyncClient, tmp_path: Path) -> None:
        started = await app_client.post(
            "/admin/imports/static",
            json={"source": "translink", "archive_path": _archive(tmp_path)},
        )
        await _wait_for_run(app_client, started.json()["run_id"])

        runs = (await app_client.get("/admin/imports/runs", params={"source": "translink"})).json()

        assert [run["run_id"] for run in runs] == [started.json()["run_id"]]
        assert (await app_client.get("/admin/imports/runs", params={"source": "x"})).json() == []

    async def test_unknown_workflow_is_404(self, app_client: AsyncClient) -> None:
        assert (await app_client.get("/admin/workflows/missing")).status_code == 404
        assert (await app_client.post("/admin/workflows/missing/resume")).status_code == 404

    async def test_resume_failed_run(
        self, app_client: AsyncClient, tmp_path: Path
    ) -> None:
        missing = tmp_path / "late.zip"
        started = await app_client.post(
            "/admin/imports/static",
            json={"source": "translink", "archive_path": str(missing)},
        )
        failed = await _wait_for_run(app_client, started.json()["run_id"])
        assert failed["status"] == "failed"
        assert "FileNotFoundError" in failed["error"]

        missing.write_bytes(build_gtfs_zip())
        response = await app_client.post(f"/admin/workflows/{failed['run_id']}/resume")

        assert response.status_code == 202
        run = await _wait_for_run(app_client, failed["run_id"])
        assert run["status"] == "succeeded"
        assert run["attempts"] == 2


class TestRealtimeEndpoints:
    async def test_last_ingest(self, app_client: AsyncClient, context: PipelineContext) -> None:
        init = await FeedVersionManager(context.session_factory).initialize("translink", "h1")
        writer = RealtimeWriter()
        await writer.update_ingest_status(
            context.session_factory, init.feed_source_id, "trip_updates", "ok", entity_count=3
        )
        await writer.update_ingest_status(
            context.session_factory,
            init.feed_source_id,
            "service_alerts",
            "error",
            error_message="boom",
        )

        data = (await app_client.get("/meta/last-ingest")).json()

        assert data["stale_threshold_sec"] == 120
        feeds = {feed["feed_type"]: feed for feed in data["feeds"]}
        assert feeds["trip_updates"]["source"] == "translink"
        assert feeds["trip_updates"]["is_fresh"] is True
        assert feeds["trip_updates"]["entity_count"] == 3
        assert feeds["service_alerts"]["is_fresh"] is False
        assert feeds["service_alerts"]["error_message"] == "boom"

    async def test_last_ingest_empty(self, app_client: AsyncClient) -> None:
        data = (await app_client.get("/meta/last-ingest")).json()

        assert data["feeds"] == []

    async def test_run_once_and_status(self, app_client: AsyncClient) -> None:
        response = await app_client.post("/admin/realtime/run-once")

        assert response.status_code == 200
        report = response.json()
        assert report["poll_count"] == 1
        assert report["feeds"] == {}

        status = (await app_client.get("/admin/realtime/status")).json()
        assert status["running"] is False
        assert status["poll_count"] == 1
        assert status["last_report"]["poll_id"] == report["poll_id"]
        assert status["rate_limit"]["interval_sec"] == 60

    async def test_start_and_stop(self, app_client: AsyncClient) -> None:
        started = (await app_client.post("/admin/realtime/start")).json()
        stopped = (await app_client.post("/admin/realtime/stop")).json()

        assert started["running"] is True
        assert stopped["running"] is False
