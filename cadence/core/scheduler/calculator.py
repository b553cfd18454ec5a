# cadence/core/scheduler/calculator.py
from __future__ import annotations
from collections.abc import Collection
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo
from typing import Optional
from cadence.core.models.job import Job
from cadence.core.models.recurrence import (
    DailyRecurrence,
    HourlyRecurrence,
    WeeklyRecurrence,
)
from cadence.core.types.status import JobState

RecurrenceRule = HourlyRecurrence | DailyRecurrence | WeeklyRecurrence


def calculate_next_run(
    rule: RecurrenceRule, from_time: datetime, tz_str: str = 'UTC'
) -> datetime:
    """
    Calculate the next run time for a recurrence rule.

    The result is always strictly after from_time: a candidate equal to
    from_time counts as already past and rolls to the following period.
    Field ranges are not checked here; the recurrence models validate them.

    Args:
        rule: Recurrence rule (hourly, daily, weekly)
        from_time: Reference time, must be timezone-aware
        tz_str: Timezone whose wall clock the rule's fields refer to

    Returns:
        Next run time as UTC-aware datetime

    Raises:
        ValueError: If from_time is naive or the timezone is invalid
    """
    if from_time.tzinfo is None:
        raise ValueError('from_time must be timezone-aware')

    try:
        tz = ZoneInfo(tz_str)
    except Exception as e:
        raise ValueError(f"Invalid timezone '{tz_str}': {e}")

    local_time = from_time.astimezone(tz)
    reference = from_time.astimezone(timezone.utc)

    match rule:
        case HourlyRecurrence():
            next_run = _calculate_hourly(rule, local_time, reference, tz)
        case DailyRecurrence():
            next_run = _calculate_daily(rule, local_time, reference, tz)
        case WeeklyRecurrence():
            next_run = _calculate_weekly(rule, local_time, reference, tz)

    return next_run


# Candidates are compared to the reference as UTC instants. Aware datetimes
# sharing one ZoneInfo compare by wall clock and ignore fold.


def _calculate_hourly(
    rule: HourlyRecurrence, local_time: datetime, reference: datetime, tz: ZoneInfo
) -> datetime:
    """
    Same hour at :minute, or the following hour if that is not in the future.

    A repeated (fall-back) hour yields both of its instants, so the job
    still runs once per elapsed hour.
    """
    for hour_offset in range(0, 6):
        hour_base = local_time + timedelta(hours=hour_offset)
        for candidate in _local_instants(
            date_value=hour_base.date(),
            hour=hour_base.hour,
            minute=rule.minute,
            tz=tz,
        ):
            if candidate > reference:
                return candidate

    raise RuntimeError('Could not calculate next hourly run within 6 hours')


def _calculate_daily(
    rule: DailyRecurrence, local_time: datetime, reference: datetime, tz: ZoneInfo
) -> datetime:
    """Today at hour:minute, or tomorrow if that is not in the future."""
    for day_offset in range(0, 8):
        candidate = _resolve_local_datetime(
            date_value=(local_time + timedelta(days=day_offset)).date(),
            hour=rule.hour,
            minute=rule.minute,
            tz=tz,
        )
        if candidate is None or candidate <= reference:
            continue
        return candidate

    raise RuntimeError('Could not calculate next daily run within 7 days')


def _calculate_weekly(
    rule: WeeklyRecurrence, local_time: datetime, reference: datetime, tz: ZoneInfo
) -> datetime:
    """Next day_of_week at hour:minute; a week later if today's slot is not in the future."""
    offset = (rule.day_of_week - sunday_based_weekday(local_time.date())) % 7
    for week in range(0, 3):
        candidate = _resolve_local_datetime(
            date_value=(local_time + timedelta(days=offset + 7 * week)).date(),
            hour=rule.hour,
            minute=rule.minute,
            tz=tz,
        )
        if candidate is None or candidate <= reference:
            continue
        return candidate

    raise RuntimeError('Could not calculate next weekly run within 3 weeks')


def sunday_based_weekday(value: date) -> int:
    """Day of week with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def _local_instants(
    date_value: date,
    hour: int,
    minute: int,
    tz: ZoneInfo,
) -> list[datetime]:
    """
    Every real instant (UTC, ascending) showing this wall-clock time in tz.

    Empty for nonexistent local times (spring-forward gaps), two entries for
    ambiguous ones (fall-back).
    """
    naive = datetime(
        year=date_value.year,
        month=date_value.month,
        day=date_value.day,
        hour=hour,
        minute=minute,
    )
    instants: set[datetime] = set()
    for fold in (0, 1):
        candidate = naive.replace(tzinfo=tz, fold=fold)
        roundtrip = candidate.astimezone(timezone.utc).astimezone(tz)
        if roundtrip.replace(tzinfo=None) == naive:
            instants.add(candidate.astimezone(timezone.utc))
    return sorted(instants)


def _resolve_local_datetime(
    date_value: date,
    hour: int,
    minute: int,
    tz: ZoneInfo,
) -> Optional[datetime]:
    """
    Resolve a local wall-clock time to a UTC instant.

    Returns None for nonexistent local times (spring-forward gaps).
    For ambiguous local times (fall-back), returns the earliest instant.
    """
    instants = _local_instants(date_value, hour, minute, tz)
    return instants[0] if instants else None


def is_due(job: Job, check_time: datetime) -> bool:
    """
    Whether a job should be dispatched at check_time.

    Paused jobs are never due, whatever their next_run says.
    """
    if not job.is_active or job.next_run is None:
        return False
    return job.next_run <= check_time


def job_state(
    job: Job, check_time: datetime, in_flight: Collection[str] = ()
) -> JobState:
    """Derive the scheduling state of a job."""
    if job.id in in_flight:
        return JobState.DISPATCHED
    if not job.is_active:
        return JobState.IDLE
    if is_due(job, check_time):
        return JobState.DUE
    return JobState.ARMED
