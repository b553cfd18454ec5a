# cadence/core/scheduler/service.py
from __future__ import annotations
import asyncio
import time
from datetime import datetime
from typing import Optional
from cadence.core.errors import JobNotFoundError
from cadence.core.logging import get_logger
from cadence.core.models.app import SchedulerConfig
from cadence.core.models.job import ExecutionOutcome, ExecutionRecord, Job
from cadence.core.registry.actions import ActionRegistry
from cadence.core.scheduler.calculator import is_due
from cadence.core.scheduler.execution_log import ExecutionLog
from cadence.core.scheduler.executor import Executor
from cadence.core.scheduler.store import JobStore
from cadence.core.storage import JobRepository
from cadence.core.types.status import ExecutionErrorCode

logger = get_logger('scheduler')


class SchedulerLoop:
    """
    Periodic scanner that dispatches due jobs.

    Responsibilities:
    1. Hydrate the store and execution log from the repository, if any
    2. Every scan_interval_seconds, find active jobs whose next_run has passed
    3. Dispatch each one as its own asyncio task, never waiting on it in the scan
    4. Keep at most one dispatch in flight per job
    5. After each execution, advance the job's schedule and record the outcome

    A failing action still advances the schedule; the same occurrence is not
    retried. Faults while evaluating one job never stop the scan of the others.
    """

    def __init__(
        self,
        store: JobStore,
        execution_log: ExecutionLog,
        executor: Executor,
        actions: ActionRegistry,
        config: Optional[SchedulerConfig] = None,
        repository: Optional[JobRepository] = None,
    ):
        self.store = store
        self.execution_log = execution_log
        self.executor = executor
        self.actions = actions
        self.config = config or SchedulerConfig()
        self.repository = repository
        self._stop = asyncio.Event()
        self._initialized = False
        self._closed = False
        # job id -> dispatch task; only touched from the loop thread
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        # job id -> lock serializing that job's repository writes
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        logger.info(
            f'Scheduler initialized, scan_interval={self.config.scan_interval_seconds}s'
        )

    @property
    def in_flight(self) -> frozenset[str]:
        """Ids of jobs whose action is currently running."""
        return frozenset(self._in_flight)

    @property
    def is_running(self) -> bool:
        return self._initialized and not self._stop.is_set()

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        """Event loop the scheduler runs on, while it is running."""
        return self._loop if self.is_running else None

    async def start(self) -> None:
        """Load persisted jobs and recent history, once."""
        if self._initialized:
            return
        self._loop = asyncio.get_running_loop()
        # Locks taken before start may be bound to another loop.
        self._write_locks.clear()

        if self.repository is not None:
            await self.repository.ensure_schema()
            jobs = await self.repository.load_jobs()
            stored_ids = {job.id for job in jobs}
            redeclared = self.store.load(jobs)

            # Jobs declared in code before start and never stored, plus stored
            # jobs whose declaration changed.
            unsaved = [job for job in self.store.list() if job.id not in stored_ids]
            for job in [*unsaved, *redeclared]:
                await self.repository.save_job(job)

            records = await self.repository.recent_executions(
                self.execution_log.retention
            )
            self.execution_log.extend_oldest_first(records)
            logger.info(
                f'Loaded {len(jobs)} job(s) and {len(records)} execution record(s) '
                f'from storage, saved {len(unsaved) + len(redeclared)} declared job(s)'
            )

        self._initialized = True
        logger.info(f'Scheduler started with {len(self.store)} job(s)')

    def request_stop(self) -> None:
        """Request scheduler to stop gracefully."""
        self._stop.set()

    async def stop(self) -> None:
        """Stop scanning, let in-flight executions finish within the grace period."""
        self._stop.set()
        if self._closed:
            return
        self._closed = True

        tasks = list(self._in_flight.values())
        if tasks:
            logger.info(f'Waiting for {len(tasks)} in-flight execution(s)')
            _, pending = await asyncio.wait(
                tasks, timeout=self.config.shutdown_grace_seconds
            )
            if pending:
                logger.warning(
                    f'Cancelling {len(pending)} execution(s) still running after '
                    f'{self.config.shutdown_grace_seconds}s'
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            # Tasks cancelled before their first step never reach their finally.
            self._in_flight.clear()

        if self.repository is not None:
            try:
                await self.repository.close()
            except Exception as e:
                logger.error(f'Repository close failed: {e}')

        logger.info('Scheduler stopped')

    async def run_forever(self) -> None:
        """Main scheduler loop."""
        logger.info('Starting scheduler loop')

        try:
            await self.start()

            while not self._stop.is_set():
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(f'Error in scheduler loop: {e}', exc_info=True)

                # Wait for scan interval or stop signal
                try:
                    await asyncio.wait_for(
                        self._stop.wait(),
                        timeout=self.config.scan_interval_seconds,
                    )
                    break  # Stop signal received
                except asyncio.TimeoutError:
                    continue  # Continue to next iteration

        finally:
            await self.stop()

    async def tick(self, check_time: Optional[datetime] = None) -> list[str]:
        """
        Scan the store once and dispatch every due job not already in flight.

        Returns the ids dispatched by this scan. Never awaits a dispatch.
        """
        now = check_time or self.store.now()
        dispatched: list[str] = []

        for job in self.store.list():
            try:
                if job.id in self._in_flight:
                    logger.debug(f"Job '{job.name}' still running, skipping")
                    continue
                if not is_due(job, now):
                    continue
                self._in_flight[job.id] = asyncio.create_task(
                    self._dispatch(job), name=f'cadence-job-{job.id}'
                )
                dispatched.append(job.id)
                logger.debug(f"Dispatched job '{job.name}' (next_run={job.next_run})")
            except Exception as e:
                logger.error(
                    f"Error checking job '{job.name}' ({job.id}): {e}", exc_info=True
                )

        if dispatched:
            logger.info(f'Dispatched {len(dispatched)} due job(s)')
        return dispatched

    async def persist_job(self, job_id: str) -> None:
        """
        Mirror the store's current state of one job to the repository.

        Writes for the same job run one at a time and each reads the store
        when it runs, so a slow write never restores a deleted job or an
        older snapshot over a newer one. A job missing from the store is
        deleted from the repository.
        """
        if self.repository is None:
            return
        lock = self._write_locks.setdefault(job_id, asyncio.Lock())
        async with lock:
            try:
                job = self.store.get(job_id)
            except JobNotFoundError:
                await self.repository.delete_job(job_id)
            else:
                await self.repository.save_job(job)

    async def wait_idle(self) -> None:
        """Wait until no execution is in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def _dispatch(self, job: Job) -> None:
        started_at = self.store.now()
        started = time.monotonic()
        try:
            try:
                action = self.actions.resolve(job)
            except Exception as e:
                logger.error(f"Could not resolve action for '{job.name}': {e}")
                outcome = ExecutionOutcome.failure(
                    f'action provider failed: {type(e).__name__}: {e}',
                    error_code=ExecutionErrorCode.ACTION_NOT_REGISTERED,
                    exception=e,
                )
            else:
                outcome = await self.executor.execute(job, action)

            duration_ms = int((time.monotonic() - started) * 1000)
            await self._complete(job, outcome, started_at, duration_ms)
        except asyncio.CancelledError:
            logger.warning(f"Execution of '{job.name}' cancelled")
            raise
        except Exception as e:
            logger.error(
                f"Failed to complete execution of '{job.name}' ({job.id}): {e}",
                exc_info=True,
            )
        finally:
            self._in_flight.pop(job.id, None)

    async def _complete(
        self,
        job: Job,
        outcome: ExecutionOutcome,
        started_at: datetime,
        duration_ms: int,
    ) -> None:
        """Advance the schedule, then record and persist the outcome."""
        finished_at = self.store.now()

        updated: Optional[Job] = None
        try:
            updated = self.store.record_execution(job.id, finished_at)
        except JobNotFoundError:
            logger.info(
                f"Job '{job.name}' ({job.id}) was deleted while running; "
                'recording its execution only'
            )

        record = ExecutionRecord(
            job_id=job.id,
            job_name=job.name,
            timestamp=finished_at,
            started_at=started_at,
            status=outcome.status,
            message=outcome.message,
            error_code=outcome.error_code,
            duration_ms=duration_ms,
        )
        self.execution_log.append(record)

        if outcome.is_success:
            logger.info(
                f"Job '{job.name}' succeeded in {duration_ms}ms"
                + (f', next_run={updated.next_run}' if updated else '')
            )
        else:
            logger.warning(
                f"Job '{job.name}' failed ({record.error_code_str}): {outcome.message}"
                + (f', next_run={updated.next_run}' if updated else '')
            )

        if self.repository is not None:
            try:
                if updated is not None:
                    await self.persist_job(job.id)
                await self.repository.append_execution(record)
            except Exception as e:
                logger.error(
                    f"Failed to persist execution of '{job.name}': {e}", exc_info=True
                )
