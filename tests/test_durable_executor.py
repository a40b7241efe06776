"""Tests for the durable step executor and its checkpoint stores."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from transit_sync.context import PipelineContext
from transit_sync.errors import (
    FetchError,
    InvalidArchiveError,
    StepRetriesExhausted,
    WorkflowTimeout,
)
from transit_sync.models.workflow import WorkflowRun
from transit_sync.services.workflow.checkpoints import (
    InMemoryCheckpointStore,
    SqlCheckpointStore,
)
from transit_sync.services.workflow.executor import DurableExecutor


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _executor(store: Any = None, **kwargs: Any) -> DurableExecutor:
    kwargs.setdefault("sleep", AsyncMock())
    kwargs.setdefault("backoff_base", 2.0)
    return DurableExecutor("run-1", store or InMemoryCheckpointStore(), **kwargs)


class TestDurableExecutor:
    async def test_step_runs_once_and_is_replayed(self) -> None:
        store = InMemoryCheckpointStore()
        fn = AsyncMock(return_value={"rows": 3})

        first = await _executor(store).step("Import stops", fn)
        replay = _executor(store)
        second = await replay.step("Import stops", fn)

        assert first == second == {"rows": 3}
        fn.assert_awaited_once()
        assert replay.steps_replayed == 1

    async def test_transient_errors_are_retried_with_backoff(self) -> None:
        sleep = AsyncMock()
        fn = AsyncMock(side_effect=[FetchError("boom"), httpx.ConnectError("down"), "ok"])

        result = await _executor(sleep=sleep, backoff_max=3.0).step("Fetch archive", fn)

        assert result == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 3.0]

    async def test_retries_exhausted(self) -> None:
        fn = AsyncMock(side_effect=FetchError("still down"))

        with pytest.raises(StepRetriesExhausted) as exc_info:
            await _executor(max_attempts=3).step("Fetch archive", fn)

        assert exc_info.value.step == "Fetch archive"
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, FetchError)

    async def test_fatal_errors_are_not_retried_or_checkpointed(self) -> None:
        store = InMemoryCheckpointStore()
        fn = AsyncMock(side_effect=InvalidArchiveError("not a zip"))

        with pytest.raises(InvalidArchiveError):
            await _executor(store).step("Hash and stage archive", fn)

        fn.assert_awaited_once()
        assert await store.load("run-1", "Hash and stage archive") is None

    async def test_deadline_blocks_new_steps_but_not_replays(self) -> None:
        store = InMemoryCheckpointStore()
        clock = FakeClock()
        await _executor(store, clock=clock).step("done", AsyncMock(return_value=1))

        late = _executor(store, clock=clock, deadline=clock.now - 1)
        assert await late.step("done", AsyncMock()) == 1
        with pytest.raises(WorkflowTimeout):
            await late.step("next", AsyncMock())

    async def test_durable_sleep_resumes_remaining_time(self) -> None:
        store = InMemoryCheckpointStore()
        clock = FakeClock(1_000.0)
        sleep = AsyncMock()

        await _executor(store, clock=clock, sleep=sleep).sleep("pace", 60)
        assert sleep.await_args.args[0] == 60

        clock.now = 1_045.0
        sleep.reset_mock()
        await _executor(store, clock=clock, sleep=sleep).sleep("pace", 60)
        assert sleep.await_args.args[0] == pytest.approx(15.0)

        clock.now = 1_100.0
        sleep.reset_mock()
        await _executor(store, clock=clock, sleep=sleep).sleep("pace", 60)
        sleep.assert_not_awaited()

    async def test_checkpoint_is_isolated_from_caller_mutation(self) -> None:
        store = InMemoryCheckpointStore()
        result: dict[str, Any] = {"keys": {"a": 1}}
        await _executor(store).step("s", AsyncMock(return_value=result))
        result["keys"]["b"] = 2

        record = await store.load("run-1", "s")
        assert record is not None
        assert record.result == {"keys": {"a": 1}}


class TestSqlCheckpointStore:
    async def test_save_load_and_list(self, context: PipelineContext) -> None:
        async with context.session_factory() as session:
            session.add(WorkflowRun(run_id="run-1", workflow="static_import", source="tl"))
            await session.commit()

        store = SqlCheckpointStore(context.session_factory)
        await store.save("run-1", "[tl] Fetch archive", {"key": "imports/run-1/archive.zip"}, 2)
        await store.save("run-1", "[tl] Hash and stage archive", {"files": {"stops.txt": 10}}, 1)

        record = await store.load("run-1", "[tl] Fetch archive")
        assert record is not None
        assert record.result == {"key": "imports/run-1/archive.zip"}
        assert record.attempts == 2
        assert await store.load("run-1", "missing") is None
        assert [s.name for s in await store.list_steps("run-1")] == [
            "[tl] Fetch archive",
            "[tl] Hash and stage archive",
        ]

    async def test_replay_across_executors(self, context: PipelineContext) -> None:
        async with context.session_factory() as session:
            session.add(WorkflowRun(run_id="run-1", workflow="static_import", source="tl"))
            await session.commit()

        store = SqlCheckpointStore(context.session_factory)
        fn = AsyncMock(return_value={"feed_version_id": 4})
        await _executor(store).step("Initialize feed version", fn)
        replayed = await _executor(store).step("Initialize feed version", fn)

        assert replayed == {"feed_version_id": 4}
        fn.assert_awaited_once()
