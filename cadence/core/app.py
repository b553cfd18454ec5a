# cadence/core/app.py
from __future__ import annotations
import asyncio
from collections.abc import Mapping
from concurrent.futures import Future
from typing import Any, Awaitable, Callable, Optional, TypeVar
from cadence.core.logging import get_logger
from cadence.core.models.app import AppConfig
from cadence.core.models.job import ExecutionRecord, Job, declared_job_id
from cadence.core.registry.actions import (
    Action,
    ActionProvider,
    ActionRegistry,
    hello_world_action,
)
from cadence.core.scheduler.calculator import RecurrenceRule
from cadence.core.scheduler.execution_log import ExecutionLog
from cadence.core.scheduler.executor import Executor
from cadence.core.scheduler.service import SchedulerLoop
from cadence.core.scheduler.store import Clock, JobStore
from cadence.core.storage import JobRepository
from cadence.core.utils.loop_runner import LoopRunner, LoopRunnerError

_F = TypeVar('_F', bound=Callable[..., Any])

# Attribute stamped on functions decorated with @app.job
_JOB_ID_ATTR = '__cadence_job_id__'


class Cadence:
    """
    Job scheduler app: the surface callers talk to.

    Owns the job store, execution log, action registry, executor and the
    scheduler loop, plus the repository when a database is configured.

    The sync methods (create_job, toggle_job, ...) can be called from any
    thread except the one running the scheduler's event loop. With a
    database configured, their writes run on the scheduler's loop while it
    is running (`cadence run`, start_background()), and on the app's own
    background loop otherwise, so the connection pool is only ever used
    from one loop at a time. Code already running on the scheduler's loop,
    async actions included, must use the *_async variants.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        clock: Optional[Clock] = None,
        default_action: Optional[ActionProvider] = hello_world_action,
        repository: Optional[JobRepository] = None,
    ):
        self.config = config or AppConfig()
        self.logger = get_logger('app')
        scheduler_cfg = self.config.scheduler

        self.store = JobStore(clock=clock, tz_str=scheduler_cfg.timezone)
        self.execution_log = ExecutionLog(scheduler_cfg.execution_log_retention)
        self.actions = ActionRegistry(default_provider=default_action)
        self.executor = Executor(timeout_seconds=scheduler_cfg.execution_timeout_seconds)

        if repository is None and self.config.database is not None:
            from cadence.core.storage.postgres import PostgresJobRepository

            repository = PostgresJobRepository(self.config.database)
        self.repository = repository

        self._scheduler: Optional[SchedulerLoop] = None
        self._loop_runner: Optional[LoopRunner] = None
        self._background: Optional[Future[Any]] = None

        self.logger.info('cadence initialized: ' + ', '.join(self.config.describe()))

    # ----------------- Scheduler lifecycle -----------------

    def get_scheduler(self) -> SchedulerLoop:
        if self._scheduler is None:
            self._scheduler = SchedulerLoop(
                store=self.store,
                execution_log=self.execution_log,
                executor=self.executor,
                actions=self.actions,
                config=self.config.scheduler,
                repository=self.repository,
            )
        return self._scheduler

    async def run_forever(self) -> None:
        """Run the scheduler on the current event loop until stopped."""
        await self.get_scheduler().run_forever()

    def request_stop(self) -> None:
        """Ask a scheduler started with run_forever() to stop (same loop only)."""
        if self._scheduler is not None:
            self._scheduler.request_stop()

    def start_background(self) -> None:
        """Run the scheduler on a dedicated thread, decoupled from the caller."""
        if self._background is not None and not self._background.done():
            return
        scheduler = self.get_scheduler()
        self._background = self._get_loop_runner().submit(scheduler.run_forever)
        self.logger.info('Scheduler running in background thread')

    def stop_background(self, timeout: Optional[float] = None) -> None:
        """Stop a scheduler started with start_background() and join its thread."""
        if self._background is None:
            return
        runner = self._get_loop_runner()
        if not self._background.done() and self._scheduler is not None:
            runner.call(self._scheduler.stop)
        try:
            self._background.result(timeout=timeout)
        finally:
            self._background = None
            # A stopped SchedulerLoop cannot be restarted; the next start builds a new one.
            self._scheduler = None
            self.close()
            self.logger.info('Background scheduler stopped')

    def close(self) -> None:
        """
        Stop the background scheduler and the app's loop thread, if started.

        Pooled database connections opened on that thread are released, so the
        app can afterwards run on another event loop (as `cadence run` does).
        """
        if self._background is not None:
            self.stop_background()
            return
        if self._loop_runner is not None:
            if self.repository is not None and self._loop_runner.is_running:
                try:
                    self._loop_runner.call(self.repository.close)
                except Exception as e:
                    self.logger.error(f'Repository close failed: {e}')
            self._loop_runner.stop()
            self._loop_runner = None

    def _get_loop_runner(self) -> LoopRunner:
        if self._loop_runner is None:
            self._loop_runner = LoopRunner(name='cadence-scheduler')
            self._loop_runner.start()
        return self._loop_runner

    def _scheduler_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._scheduler.loop if self._scheduler is not None else None

    def _check_blocking_allowed(self) -> None:
        """Refuse a blocking write from the thread running the scheduler's loop."""
        if self.repository is None:
            return
        loop = self._scheduler_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return
        if loop is not None and running is loop:
            raise LoopRunnerError(
                'Cannot block on the scheduler loop from its own thread; '
                'await the *_async API instead'
            )

    def _write(self, coro_fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run a repository call from sync code on the loop that owns the pool."""
        loop = self._scheduler_loop()
        if loop is None:
            return self._get_loop_runner().call(coro_fn, *args)
        return asyncio.run_coroutine_threadsafe(coro_fn(*args), loop).result()

    def _persist(self, job_id: str) -> None:
        self._write(self.get_scheduler().persist_job, job_id)

    def _discard(self, job: Job, error: Exception) -> None:
        """Undo an in-memory create whose repository write failed."""
        self.store.delete(job.id)
        self.actions.unregister(job.id)
        self.logger.error(
            f"Could not save job '{job.name}' ({job.id}), not scheduling it: {error}"
        )

    # ----------------- Sync API -----------------

    def create_job(
        self,
        name: str,
        recurrence: RecurrenceRule | Mapping[str, Any],
        action: Optional[Action] = None,
        *,
        job_id: Optional[str] = None,
    ) -> Job:
        """
        Create an active job and compute its first run.

        Args:
            name: Non-empty job name
            recurrence: Recurrence model or mapping such as {'type': 'hourly', 'minute': 30}
            action: Zero-argument callable run on each occurrence; the default
                provider is used when omitted
            job_id: Explicit id; generated when omitted

        Raises:
            JobValidationError: blank name, invalid recurrence or duplicate job_id

        If the repository write fails the job is removed again and the
        error propagates.
        """
        self._check_blocking_allowed()
        job = self._create_in_memory(name, recurrence, action, job_id)
        if self.repository is not None:
            try:
                self._persist(job.id)
            except Exception as e:
                self._discard(job, e)
                raise
        return job

    def list_jobs(self) -> list[Job]:
        """All jobs, newest first."""
        return self.store.list()

    def get_job(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def toggle_job(self, job_id: str) -> Job:
        """Pause an active job or resume a paused one."""
        self._check_blocking_allowed()
        job = self.store.toggle(
            job_id, recompute_stale=self.config.scheduler.recompute_on_resume
        )
        if self.repository is not None:
            self._persist(job.id)
        return job

    def set_job_active(self, job_id: str, active: bool) -> Job:
        self._check_blocking_allowed()
        job = self.store.set_active(
            job_id, active, recompute_stale=self.config.scheduler.recompute_on_resume
        )
        if self.repository is not None:
            self._persist(job.id)
        return job

    def delete_job(self, job_id: str) -> bool:
        """Delete a job. Unknown ids are a no-op returning False."""
        self._check_blocking_allowed()
        removed = self.store.delete(job_id)
        self.actions.unregister(job_id)
        if self.repository is not None:
            self._persist(job_id)
        return removed

    def list_executions(self, job_id: Optional[str] = None) -> list[ExecutionRecord]:
        """Recent executions, newest first, optionally for one job."""
        if job_id is not None:
            return self.execution_log.for_job(job_id)
        return self.execution_log.list()

    def job(
        self, name: str, recurrence: RecurrenceRule | Mapping[str, Any]
    ) -> Callable[[_F], _F]:
        """
        Register the decorated function as a recurring job.

        Declared jobs get an id derived from their name. They live in memory
        until the scheduler starts; with a repository configured, start()
        then merges them with their stored state (pause flag, run count,
        next run) and saves them.

        Example:
            @app.job('nightly-report', DailyRecurrence(hour=3))
            def nightly_report() -> str:
                ...
        """

        def decorator(fn: _F) -> _F:
            job = self._create_in_memory(
                name, recurrence, fn, declared_job_id(name)
            )
            setattr(fn, _JOB_ID_ATTR, job.id)
            return fn

        return decorator

    # ----------------- Async API -----------------

    async def create_job_async(
        self,
        name: str,
        recurrence: RecurrenceRule | Mapping[str, Any],
        action: Optional[Action] = None,
        *,
        job_id: Optional[str] = None,
    ) -> Job:
        job = self._create_in_memory(name, recurrence, action, job_id)
        if self.repository is not None:
            try:
                await self.get_scheduler().persist_job(job.id)
            except Exception as e:
                self._discard(job, e)
                raise
        return job

    async def toggle_job_async(self, job_id: str) -> Job:
        job = self.store.toggle(
            job_id, recompute_stale=self.config.scheduler.recompute_on_resume
        )
        if self.repository is not None:
            await self.get_scheduler().persist_job(job.id)
        return job

    async def set_job_active_async(self, job_id: str, active: bool) -> Job:
        job = self.store.set_active(
            job_id, active, recompute_stale=self.config.scheduler.recompute_on_resume
        )
        if self.repository is not None:
            await self.get_scheduler().persist_job(job.id)
        return job

    async def delete_job_async(self, job_id: str) -> bool:
        removed = self.store.delete(job_id)
        self.actions.unregister(job_id)
        if self.repository is not None:
            await self.get_scheduler().persist_job(job_id)
        return removed

    def _create_in_memory(
        self,
        name: str,
        recurrence: RecurrenceRule | Mapping[str, Any],
        action: Optional[Action],
        job_id: Optional[str] = None,
    ) -> Job:
        if action is not None and not callable(action):
            raise TypeError(f'action must be callable, got {action!r}')
        job = self.store.create(name, recurrence, job_id=job_id)
        if action is not None:
            self.actions.register(job.id, action)
        return job
