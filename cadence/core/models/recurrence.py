# cadence/core/models/recurrence.py
from __future__ import annotations
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from typing_extensions import Self
from cadence.core.errors import (
    ErrorCode,
    JobValidationError,
    ValidationReport,
    raise_collected,
)

WEEKDAY_NAMES = (
    'Sunday',
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
)


def _check_range(
    report: ValidationReport, kind: str, field_name: str, value: int, upper: int
) -> None:
    if 0 <= value <= upper:
        return
    report.add(
        JobValidationError(
            message=f'{kind} recurrence {field_name} out of range',
            code=ErrorCode.RECURRENCE_OUT_OF_RANGE,
            notes=[f'{field_name}={value}'],
            help_text=f'{field_name} must be between 0 and {upper}',
        )
    )


class HourlyRecurrence(BaseModel):
    """
    Run a job every hour at a specific minute.

    Examples:
        - Every hour at XX:00 -> HourlyRecurrence()
        - Every hour at XX:30 -> HourlyRecurrence(minute=30)
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    type: Literal['hourly'] = 'hourly'
    minute: int = Field(default=0, description='Minute of the hour (0-59)')

    @model_validator(mode='after')
    def validate_ranges(self) -> Self:
        report = ValidationReport('recurrence')
        _check_range(report, 'hourly', 'minute', self.minute, 59)
        raise_collected(report)
        return self

    def describe(self) -> str:
        return f'every hour at :{self.minute:02d}'


class DailyRecurrence(BaseModel):
    """
    Run a job every day at a specific time.

    Examples:
        - Daily at midnight -> DailyRecurrence()
        - Daily at 15:30 -> DailyRecurrence(hour=15, minute=30)
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    type: Literal['daily'] = 'daily'
    hour: int = Field(default=0, description='Hour of the day (0-23)')
    minute: int = Field(default=0, description='Minute of the hour (0-59)')

    @model_validator(mode='after')
    def validate_ranges(self) -> Self:
        report = ValidationReport('recurrence')
        _check_range(report, 'daily', 'hour', self.hour, 23)
        _check_range(report, 'daily', 'minute', self.minute, 59)
        raise_collected(report)
        return self

    def describe(self) -> str:
        return f'every day at {self.hour:02d}:{self.minute:02d}'


class WeeklyRecurrence(BaseModel):
    """
    Run a job once a week on a given day at a specific time.

    day_of_week counts from Sunday: 0=Sunday, 1=Monday, ... 6=Saturday.

    Examples:
        - Wednesdays at 9 AM -> WeeklyRecurrence(day_of_week=3, hour=9)
        - Sundays at midnight -> WeeklyRecurrence()
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    type: Literal['weekly'] = 'weekly'
    day_of_week: int = Field(default=0, description='Day of week (0=Sunday .. 6=Saturday)')
    hour: int = Field(default=0, description='Hour of the day (0-23)')
    minute: int = Field(default=0, description='Minute of the hour (0-59)')

    @model_validator(mode='after')
    def validate_ranges(self) -> Self:
        report = ValidationReport('recurrence')
        _check_range(report, 'weekly', 'day_of_week', self.day_of_week, 6)
        _check_range(report, 'weekly', 'hour', self.hour, 23)
        _check_range(report, 'weekly', 'minute', self.minute, 59)
        raise_collected(report)
        return self

    def describe(self) -> str:
        return (
            f'every {WEEKDAY_NAMES[self.day_of_week]} '
            f'at {self.hour:02d}:{self.minute:02d}'
        )


Recurrence = Annotated[
    Union[HourlyRecurrence, DailyRecurrence, WeeklyRecurrence],
    Field(discriminator='type'),
]

_recurrence_adapter: TypeAdapter[
    HourlyRecurrence | DailyRecurrence | WeeklyRecurrence
] = TypeAdapter(Recurrence)


def parse_recurrence(
    value: Mapping[str, Any] | HourlyRecurrence | DailyRecurrence | WeeklyRecurrence,
) -> HourlyRecurrence | DailyRecurrence | WeeklyRecurrence:
    """
    Build a recurrence variant from an untyped mapping.

    The mapping must carry a 'type' key ('hourly', 'daily' or 'weekly') and
    only the fields that variant defines. Absent fields default to 0.

    Raises:
        JobValidationError: unknown type, foreign or non-integer fields,
            or out-of-range values
        MultipleValidationErrors: several out-of-range values at once
    """
    if isinstance(value, (HourlyRecurrence, DailyRecurrence, WeeklyRecurrence)):
        return value
    if not isinstance(value, Mapping):
        raise JobValidationError(
            message='recurrence must be a mapping or a recurrence model',
            code=ErrorCode.RECURRENCE_MALFORMED,
            notes=[f'got {type(value).__name__}'],
            help_text="pass e.g. {'type': 'daily', 'hour': 3} or DailyRecurrence(hour=3)",
        )
    try:
        return _recurrence_adapter.validate_python(dict(value))
    except ValidationError as e:
        raise JobValidationError(
            message='malformed recurrence rule',
            code=ErrorCode.RECURRENCE_MALFORMED,
            notes=[
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ],
            help_text=(
                "'type' must be one of: hourly, daily, weekly\n"
                'hourly accepts minute; daily accepts hour, minute;\n'
                'weekly accepts day_of_week, hour, minute'
            ),
        ) from e
