"""Durable step executor.

A workflow is plain async code that wraps each unit of work in
``executor.step(name, fn)``. The first time a step completes, its result is
checkpointed; when the same run id is executed again, completed steps return
their checkpointed result without running. Step names must therefore be
deterministic for a given run, and step results must be JSON-serialisable.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import httpx
from sqlalchemy.exc import InterfaceError, OperationalError

from transit_sync.errors import StepRetriesExhausted, TransientError, WorkflowTimeout
from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from transit_sync.services.workflow.checkpoints import CheckpointStore

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientError,
    httpx.TransportError,
    OperationalError,
    InterfaceError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


class DurableExecutor:
    """Runs memoized, retried steps for one workflow run.

    Args:
        run_id: Identity of the run; checkpoints are scoped to it.
        checkpoints: Where step results are persisted.
        max_attempts: Attempts per step before ``StepRetriesExhausted``.
        backoff_base: Delay before retry ``n`` is ``backoff_base ** n`` seconds.
        backoff_max: Upper bound on a single retry delay.
        deadline: Epoch seconds after which no new step is started.
    """

    def __init__(
        self,
        run_id: str,
        checkpoints: CheckpointStore,
        *,
        max_attempts: int = 5,
        backoff_base: float = 2.0,
        backoff_max: float = 60.0,
        deadline: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.run_id = run_id
        self.checkpoints = checkpoints
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.deadline = deadline
        self._sleep = sleep
        self._clock = clock
        self.steps_run = 0
        self.steps_replayed = 0

    def deadline_exceeded(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    async def step(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` once for this run, or return its checkpointed result.

        Raises:
            WorkflowTimeout: If the deadline passed before the step started.
            StepRetriesExhausted: If ``fn`` kept failing transiently.
        """
        record = await self.checkpoints.load(self.run_id, name)
        if record is not None:
            self.steps_replayed += 1
            logger.debug("Replaying checkpointed step", step=name)
            return record.result

        if self.deadline_exceeded():
            msg = f"Workflow budget exceeded before step {name!r}"
            raise WorkflowTimeout(msg)

        attempt = 0
        while True:
            attempt += 1
            try:
                result = await fn()
                break
            except TRANSIENT_ERRORS as exc:
                if attempt >= self.max_attempts:
                    logger.error(
                        "Step failed, retries exhausted", step=name, attempts=attempt, error=str(exc)
                    )
                    raise StepRetriesExhausted(name, attempt) from exc
                delay = min(self.backoff_base**attempt, self.backoff_max)
                logger.warning(
                    "Step failed, retrying",
                    step=name,
                    attempt=attempt,
                    delay_sec=delay,
                    error=str(exc),
                )
                await self._sleep(delay)

        await self.checkpoints.save(self.run_id, name, result, attempt)
        self.steps_run += 1
        logger.debug("Step complete", step=name, attempts=attempt)
        return result

    async def sleep(self, name: str, seconds: float) -> None:
        """Durable sleep; a resumed run only waits for the time remaining."""
        key = f"sleep: {name}"
        record = await self.checkpoints.load(self.run_id, key)
        if record is None:
            wake_at = self._clock() + seconds
            await self.checkpoints.save(self.run_id, key, {"wake_at": wake_at}, 1)
        else:
            wake_at = record.result["wake_at"]

        remaining = wake_at - self._clock()
        if remaining > 0:
            await self._sleep(remaining)
