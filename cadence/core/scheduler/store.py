# cadence/core/scheduler/store.py
from __future__ import annotations
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional
from cadence.core.errors import ErrorCode, JobValidationError, job_not_found
from cadence.core.logging import get_logger
from cadence.core.models.job import Job
from cadence.core.models.recurrence import parse_recurrence
from cadence.core.scheduler.calculator import RecurrenceRule, calculate_next_run, is_due

logger = get_logger('store')

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """
    In-memory, authoritative collection of jobs.

    Every mutation goes through this class and runs under a single lock, so
    no caller can observe a job halfway through an update. Jobs are frozen;
    operations return the new snapshot instead of mutating in place.

    Operations:
    - create / delete jobs
    - pause and resume (set_active, toggle)
    - record an execution (advances last_run / next_run)
    - list snapshots, newest first
    """

    def __init__(self, clock: Optional[Clock] = None, tz_str: str = 'UTC'):
        self._clock: Clock = clock or utc_now
        self.tz_str = tz_str
        self._jobs: dict[str, Job] = {}
        self._lock = threading.RLock()

    def now(self) -> datetime:
        return self._clock()

    def create(
        self,
        name: str,
        recurrence: RecurrenceRule | Mapping[str, Any],
        *,
        job_id: Optional[str] = None,
    ) -> Job:
        """
        Register a new active job and compute its first next_run.

        Raises:
            JobValidationError: blank name, malformed recurrence, or duplicate job_id
        """
        clean_name = name.strip() if isinstance(name, str) else ''
        if not clean_name:
            raise JobValidationError(
                message='job name is required',
                code=ErrorCode.JOB_EMPTY_NAME,
                notes=[f'name={name!r}'],
                help_text='give the job a non-empty name',
            )
        rule = parse_recurrence(recurrence)

        with self._lock:
            now = self._clock()
            fields: dict[str, Any] = {
                'name': clean_name,
                'recurrence': rule,
                'next_run': calculate_next_run(rule, now, self.tz_str),
                'created_at': now,
            }
            if job_id is not None:
                if job_id in self._jobs:
                    raise JobValidationError(
                        message=f"job id '{job_id}' already exists",
                        code=ErrorCode.JOB_DUPLICATE_ID,
                        help_text='omit job_id to have one generated',
                    )
                fields['id'] = job_id
            job = Job(**fields)
            self._jobs[job.id] = job

        logger.info(
            f"Created job '{job.name}' ({job.id}), {rule.describe()}, next_run={job.next_run}"
        )
        return job

    def load(self, jobs: Iterable[Job]) -> list[Job]:
        """
        Insert stored jobs (oldest first) and return the ones that changed.

        A stored job whose id is already present was declared in code: its
        runtime state (is_active, last_run, run_count, next_run) is kept, while
        name and recurrence come from the declaration. A changed recurrence
        gets a fresh next_run.
        """
        merged: list[Job] = []
        count = 0
        with self._lock:
            for job in jobs:
                declared = self._jobs.pop(job.id, None)
                if declared is not None and (
                    declared.name != job.name or declared.recurrence != job.recurrence
                ):
                    update: dict[str, Any] = {
                        'name': declared.name,
                        'recurrence': declared.recurrence,
                    }
                    if declared.recurrence != job.recurrence:
                        update['next_run'] = calculate_next_run(
                            declared.recurrence, self._clock(), self.tz_str
                        )
                    job = job.model_copy(update=update)
                    merged.append(job)
                self._jobs[job.id] = job
                count += 1
            # Keep insertion order equal to creation order for list().
            self._jobs = dict(
                sorted(self._jobs.items(), key=lambda item: item[1].created_at)
            )
        logger.debug(f'Loaded {count} job(s) into the store, {len(merged)} redeclared')
        return merged

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise job_not_found(job_id)
        return job

    def list(self) -> list[Job]:
        """Snapshot of all jobs, newest first."""
        with self._lock:
            return list(reversed(self._jobs.values()))

    def due(self, check_time: datetime) -> list[Job]:
        """Snapshot of active jobs whose next_run is at or before check_time."""
        return [job for job in self.list() if is_due(job, check_time)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def set_active(
        self, job_id: str, active: bool, *, recompute_stale: bool = False
    ) -> Job:
        """
        Pause or resume a job.

        Pausing keeps next_run. Resuming keeps a stale next_run as well, so the
        job fires on the next scan, unless recompute_stale is set.

        Raises:
            JobNotFoundError: unknown job_id
        """
        with self._lock:
            job = self._require(job_id)
            update: dict[str, Any] = {'is_active': active}
            if active and recompute_stale:
                now = self._clock()
                if job.next_run is None or job.next_run <= now:
                    update['next_run'] = calculate_next_run(
                        job.recurrence, now, self.tz_str
                    )
            updated = job.model_copy(update=update)
            self._jobs[job_id] = updated

        logger.info(
            f"Job '{updated.name}' ({job_id}) {'resumed' if active else 'paused'}, "
            f'next_run={updated.next_run}'
        )
        return updated

    def toggle(self, job_id: str, *, recompute_stale: bool = False) -> Job:
        with self._lock:
            job = self._require(job_id)
            return self.set_active(
                job_id, not job.is_active, recompute_stale=recompute_stale
            )

    def delete(self, job_id: str) -> bool:
        """Remove a job. Unknown ids are a no-op and return False."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            logger.debug(f"No job to delete for id '{job_id}'")
            return False
        logger.info(f"Deleted job '{job.name}' ({job_id})")
        return True

    def record_execution(self, job_id: str, execution_time: datetime) -> Job:
        """
        Set last_run and advance next_run from execution_time.

        Raises:
            JobNotFoundError: unknown job_id (e.g. deleted while running)
        """
        with self._lock:
            job = self._require(job_id)
            updated = job.model_copy(
                update={
                    'last_run': execution_time,
                    'next_run': calculate_next_run(
                        job.recurrence, execution_time, self.tz_str
                    ),
                    'run_count': job.run_count + 1,
                }
            )
            self._jobs[job_id] = updated

        logger.debug(
            f"Recorded execution of '{updated.name}': "
            f'last_run={updated.last_run}, next_run={updated.next_run}'
        )
        return updated

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise job_not_found(job_id)
        return job
