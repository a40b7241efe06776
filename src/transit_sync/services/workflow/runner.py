"""Starts, tracks and resumes durable workflow runs."""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from transit_sync.errors import (
    ImportAlreadyRunning,
    PipelineError,
    StepRetriesExhausted,
    WorkflowTimeout,
)
from transit_sync.logging import bind_log_context, get_logger, unbind_log_context
from transit_sync.models.workflow import (
    RUN_FAILED,
    RUN_RUNNING,
    RUN_SUCCEEDED,
    RUN_TIMED_OUT,
    WorkflowRun,
)
from transit_sync.services.gtfs_static.workflow import WORKFLOW_NAME, StaticImportWorkflow
from transit_sync.services.workflow.checkpoints import SqlCheckpointStore
from transit_sync.services.workflow.executor import DurableExecutor

if TYPE_CHECKING:
    from transit_sync.context import PipelineContext

logger = get_logger(__name__)


def new_run_id() -> str:
    return uuid.uuid4().hex


class WorkflowRunner:
    """Runs static imports as background tasks with persistent run records.

    At most one import per source runs in this process at a time. A run that
    failed or timed out can be resumed under the same run id; its completed
    steps are replayed from checkpoints.
    """

    def __init__(self, context: PipelineContext) -> None:
        self.context = context
        self._session_factory = context.session_factory
        self._checkpoints = SqlCheckpointStore(context.session_factory)
        self._tasks: dict[str, asyncio.Task[dict[str, Any]]] = {}
        self._active_sources: dict[str, str] = {}

    def _executor(self, run_id: str) -> DurableExecutor:
        settings = self.context.settings
        return DurableExecutor(
            run_id,
            self._checkpoints,
            max_attempts=settings.step_max_attempts,
            backoff_base=settings.step_backoff_base,
            backoff_max=settings.step_backoff_max,
            deadline=time.time() + settings.workflow_budget_sec,
        )

    def _claim(self, source: str, run_id: str) -> None:
        running = self._active_sources.get(source)
        if running is not None:
            raise ImportAlreadyRunning(source, running)
        self._active_sources[source] = run_id

    async def start_static_import(self, source: str, archive_path: str | None = None) -> str:
        """Record a new run and start it in the background; returns the run id.

        Raises:
            ImportAlreadyRunning: If this source already has a run in progress.
        """
        run_id = new_run_id()
        self._claim(source, run_id)
        try:
            await self._create_run(run_id, source, {"archive_path": archive_path})
        except Exception:
            self._active_sources.pop(source, None)
            raise
        self._spawn(run_id, source, archive_path)
        return run_id

    async def run_static_import(
        self, source: str, archive_path: str | None = None, run_id: str | None = None
    ) -> dict[str, Any]:
        """Run an import to completion in the caller's task; returns the run record."""
        run_id = run_id or new_run_id()
        self._claim(source, run_id)
        try:
            await self._create_run(run_id, source, {"archive_path": archive_path})
        except Exception:
            self._active_sources.pop(source, None)
            raise
        return await self._execute(run_id, source, archive_path)

    async def resume(self, run_id: str, *, background: bool = True) -> dict[str, Any] | None:
        """Re-enter a run under its original id. Returns None for unknown runs."""
        async with self._session_factory() as session:
            run = await session.get(WorkflowRun, run_id)
            if run is None:
                return None
            if run.status == RUN_SUCCEEDED:
                return self._as_dict(run)
            self._claim(run.source, run_id)
            run.status = RUN_RUNNING
            run.error = None
            run.finished_at = None
            run.attempts += 1
            source = run.source
            archive_path = (run.params or {}).get("archive_path")
            await session.commit()

        logger.info("Resuming workflow run", run_id=run_id, source=source)
        if background:
            self._spawn(run_id, source, archive_path)
            return await self.get_run(run_id)
        return await self._execute(run_id, source, archive_path)

    async def get_run(self, run_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            run = await session.get(WorkflowRun, run_id)
            if run is None:
                return None
            data = self._as_dict(run)
        data["steps"] = [
            {"name": step.name, "attempts": step.attempts}
            for step in await self._checkpoints.list_steps(run_id)
        ]
        return data

    async def list_runs(self, source: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        stmt = select(WorkflowRun).order_by(WorkflowRun.started_at.desc()).limit(limit)
        if source:
            stmt = stmt.where(WorkflowRun.source == source)
        async with self._session_factory() as session:
            runs = (await session.scalars(stmt)).all()
            return [self._as_dict(run) for run in runs]

    async def wait(self, run_id: str) -> dict[str, Any] | None:
        task = self._tasks.get(run_id)
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task
        return await self.get_run(run_id)

    def is_running(self, source: str) -> bool:
        return source in self._active_sources

    async def shutdown(self) -> None:
        """Cancel in-flight runs; they can be resumed later from their checkpoints."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    def _spawn(self, run_id: str, source: str, archive_path: str | None) -> None:
        task = asyncio.create_task(self._execute(run_id, source, archive_path))
        self._tasks[run_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run_id, None))

    async def _create_run(self, run_id: str, source: str, params: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            session.add(
                WorkflowRun(
                    run_id=run_id,
                    workflow=WORKFLOW_NAME,
                    source=source,
                    params=params,
                    status=RUN_RUNNING,
                    attempts=1,
                )
            )
            await session.commit()

    async def _execute(
        self, run_id: str, source: str, archive_path: str | None
    ) -> dict[str, Any]:
        bind_log_context(run_id=run_id, source=source)
        status, result, error = RUN_FAILED, None, None
        try:
            workflow = StaticImportWorkflow(self.context, self._executor(run_id))
            result = await workflow.run(source, archive_path)
            status = RUN_SUCCEEDED
        except WorkflowTimeout as exc:
            status, error = RUN_TIMED_OUT, str(exc)
            logger.warning("Workflow run timed out", error=error)
        except StepRetriesExhausted as exc:
            error = str(exc)
            logger.error("Workflow run failed, retries exhausted", step=exc.step)
        except PipelineError as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error("Workflow run failed", error=error)
        except asyncio.CancelledError:
            error = "cancelled"
            logger.warning("Workflow run cancelled")
            raise
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("Workflow run crashed")
        finally:
            self._active_sources.pop(source, None)
            await self._finish_run(run_id, status, result, error)
            unbind_log_context("run_id", "source")

        logger.info("Workflow run finished", run_id=run_id, status=status)
        return {"run_id": run_id, "status": status, "result": result, "error": error}

    async def _finish_run(
        self, run_id: str, status: str, result: dict[str, Any] | None, error: str | None
    ) -> None:
        async with self._session_factory() as session:
            run = await session.get(WorkflowRun, run_id)
            if run is None:
                return
            run.status = status
            run.result = result
            run.error = error
            run.finished_at = datetime.now(timezone.utc)
            await session.commit()

    @staticmethod
    def _as_dict(run: WorkflowRun) -> dict[str, Any]:
        return {
            "run_id": run.run_id,
            "workflow": run.workflow,
            "source": run.source,
            "params": run.params,
            "status": run.status,
            "result": run.result,
            "error": run.error,
            "attempts": run.attempts,
            "started_at": run.started_at.isoformat() if run.started_at else None,
            "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        }
