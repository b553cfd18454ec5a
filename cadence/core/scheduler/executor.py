# cadence/core/scheduler/executor.py
from __future__ import annotations
import asyncio
import inspect
from typing import Any, Optional
from cadence.core.logging import get_logger
from cadence.core.models.job import ExecutionOutcome, Job
from cadence.core.registry.actions import Action
from cadence.core.types.status import ExecutionErrorCode

logger = get_logger('executor')


class Executor:
    """
    Runs a job's action and turns whatever happens into an ExecutionOutcome.

    Sync actions run in a worker thread so they never block the event loop;
    async actions are awaited on it. execute() never raises for action
    failures. Only asyncio.CancelledError propagates, so shutdown can
    cancel in-flight work.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds

    async def execute(self, job: Job, action: Optional[Action]) -> ExecutionOutcome:
        if action is None:
            logger.warning(f"No action for job '{job.name}' ({job.id})")
            return ExecutionOutcome.failure(
                f"no action registered for job '{job.name}'",
                error_code=ExecutionErrorCode.ACTION_NOT_REGISTERED,
            )

        deadline = asyncio.timeout(self.timeout_seconds)
        try:
            async with deadline:
                value = await self._invoke(action)
        except asyncio.CancelledError:
            raise
        except TimeoutError as e:
            if not deadline.expired():
                # Raised by the action itself, not by our deadline.
                return self._failed(job, e)
            # A sync action keeps running in its thread; only the wait is abandoned.
            logger.warning(
                f"Job '{job.name}' timed out after {self.timeout_seconds}s"
            )
            return ExecutionOutcome.failure(
                f'timed out after {self.timeout_seconds}s',
                error_code=ExecutionErrorCode.ACTION_TIMEOUT,
                exception=e,
            )
        except Exception as e:
            return self._failed(job, e)

        return self._to_outcome(value)

    @staticmethod
    def _failed(job: Job, e: Exception) -> ExecutionOutcome:
        logger.error(
            f"Job '{job.name}' failed: {type(e).__name__}: {e}", exc_info=e
        )
        return ExecutionOutcome.failure(
            f'{type(e).__name__}: {e}',
            error_code=ExecutionErrorCode.ACTION_EXCEPTION,
            exception=e,
        )

    async def _invoke(self, action: Action) -> Any:
        if inspect.iscoroutinefunction(action):
            return await action()
        value = await asyncio.to_thread(action)
        # Sync callables may still hand back an awaitable (e.g. functools.partial
        # over a coroutine function).
        if inspect.isawaitable(value):
            return await value
        return value

    @staticmethod
    def _to_outcome(value: Any) -> ExecutionOutcome:
        if isinstance(value, ExecutionOutcome):
            return value
        if value is None:
            return ExecutionOutcome.success()
        return ExecutionOutcome.success(str(value))
