"""Integration tests for PostgresJobRepository and hydration across restarts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cadence.core.app import Cadence
from cadence.core.models.app import AppConfig, SchedulerConfig
from cadence.core.models.database import DatabaseConfig
from cadence.core.models.job import ExecutionRecord, Job, declared_job_id
from cadence.core.models.recurrence import DailyRecurrence, HourlyRecurrence
from cadence.core.storage.postgres import PostgresJobRepository
from cadence.core.types.status import ExecutionErrorCode, ExecutionStatus

pytestmark = pytest.mark.integration

_T = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _job(job_id: str, created: datetime = _T, **overrides: object) -> Job:
    fields: dict[str, object] = {
        'id': job_id,
        'name': f'name-{job_id}',
        'recurrence': DailyRecurrence(hour=3),
        'next_run': _T + timedelta(days=1),
        'created_at': created,
    }
    fields.update(overrides)
    return Job(**fields)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_save_and_load_round_trip(repository: PostgresJobRepository) -> None:
    older = _job('a')
    newer = _job('b', created=_T + timedelta(minutes=1), is_active=False, run_count=3)

    await repository.save_job(newer)
    await repository.save_job(older)

    assert await repository.load_jobs() == [older, newer]


@pytest.mark.asyncio
async def test_save_updates_existing_row(repository: PostgresJobRepository) -> None:
    job = _job('a')
    await repository.save_job(job)

    updated = job.model_copy(update={'run_count': 5, 'last_run': _T})
    await repository.save_job(updated)

    [loaded] = await repository.load_jobs()
    assert loaded.run_count == 5
    assert loaded.last_run == _T


@pytest.mark.asyncio
async def test_delete(repository: PostgresJobRepository) -> None:
    await repository.save_job(_job('a'))

    assert await repository.delete_job('a') is True
    assert await repository.delete_job('a') is False
    assert await repository.load_jobs() == []


@pytest.mark.asyncio
async def test_recent_executions_limit_and_order(
    repository: PostgresJobRepository,
) -> None:
    for n in range(5):
        await repository.append_execution(
            ExecutionRecord(
                id=f'rec-{n}',
                job_id='a',
                job_name='report',
                timestamp=_T + timedelta(minutes=n),
                started_at=_T + timedelta(minutes=n),
                status=ExecutionStatus.FAILURE if n % 2 else ExecutionStatus.SUCCESS,
                error_code=ExecutionErrorCode.ACTION_EXCEPTION if n % 2 else None,
            )
        )

    records = await repository.recent_executions(3)

    assert [r.id for r in records] == ['rec-2', 'rec-3', 'rec-4']
    assert records[1].error_code == 'ACTION_EXCEPTION'


@pytest.mark.asyncio
async def test_ensure_schema_is_repeatable(db_config: DatabaseConfig) -> None:
    first = PostgresJobRepository(db_config)
    second = PostgresJobRepository(db_config)
    try:
        await first.ensure_schema()
        await second.ensure_schema()
    finally:
        await first.close()
        await second.close()


@pytest.mark.asyncio
async def test_declared_job_state_survives_restart(
    repository: PostgresJobRepository, db_config: DatabaseConfig
) -> None:
    """A paused declared job stays paused with its run count after a restart."""
    clock = FakeClock(_T)
    config = AppConfig(
        scheduler=SchedulerConfig(scan_interval_seconds=0.01), database=db_config
    )

    first = Cadence(config, clock=clock)
    first.job('report', HourlyRecurrence(minute=30))(lambda: 'ran')
    scheduler = first.get_scheduler()
    await scheduler.start()
    job_id = declared_job_id('report')
    clock.now = _T + timedelta(minutes=31)
    await scheduler.tick()
    await scheduler.wait_idle()
    await first.set_job_active_async(job_id, False)
    await scheduler.stop()

    second = Cadence(config, clock=clock)
    second.job('report', HourlyRecurrence(minute=30))(lambda: 'ran')
    restarted = second.get_scheduler()
    await restarted.start()
    try:
        job = second.get_job(job_id)
        assert job.is_active is False
        assert job.run_count == 1
        assert [r.job_id for r in second.list_executions()] == [job_id]
        assert len(await repository.load_jobs()) == 1
    finally:
        await restarted.stop()
