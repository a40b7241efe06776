"""Step checkpoint stores for the durable executor."""

from __future__ import annotations

import abc
import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from transit_sync.models.workflow import WorkflowStep

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@dataclass(frozen=True)
class StepRecord:
    name: str
    result: Any
    attempts: int


class CheckpointStore(abc.ABC):
    """Persists the result of each completed step, keyed by run id and step name."""

    @abc.abstractmethod
    async def load(self, run_id: str, name: str) -> StepRecord | None: ...

    @abc.abstractmethod
    async def save(self, run_id: str, name: str, result: Any, attempts: int) -> None: ...

    @abc.abstractmethod
    async def list_steps(self, run_id: str) -> list[StepRecord]: ...


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self) -> None:
        self._steps: dict[str, dict[str, StepRecord]] = {}

    async def load(self, run_id: str, name: str) -> StepRecord | None:
        return self._steps.get(run_id, {}).get(name)

    async def save(self, run_id: str, name: str, result: Any, attempts: int) -> None:
        # copy so later mutation by the caller cannot change the checkpoint
        record = StepRecord(name, copy.deepcopy(result), attempts)
        self._steps.setdefault(run_id, {})[name] = record

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        return list(self._steps.get(run_id, {}).values())


class SqlCheckpointStore(CheckpointStore):
    """Checkpoints in the ``workflow_steps`` table; survives process restarts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, run_id: str, name: str) -> StepRecord | None:
        async with self._session_factory() as session:
            step = await session.scalar(
                select(WorkflowStep).where(
                    WorkflowStep.run_id == run_id, WorkflowStep.step_name == name
                )
            )
        if step is None:
            return None
        return StepRecord(step.step_name, step.result, step.attempts)

    async def save(self, run_id: str, name: str, result: Any, attempts: int) -> None:
        async with self._session_factory() as session:
            try:
                session.add(
                    WorkflowStep(run_id=run_id, step_name=name, result=result, attempts=attempts)
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def list_steps(self, run_id: str) -> list[StepRecord]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(WorkflowStep)
                .where(WorkflowStep.run_id == run_id)
                .order_by(WorkflowStep.step_pk)
            )
            return [StepRecord(s.step_name, s.result, s.attempts) for s in result.all()]
