# cadence/core/models/app.py
from typing import Optional
from zoneinfo import ZoneInfo
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self
from cadence.core.defaults import (
    DEFAULT_EXECUTION_LOG_RETENTION,
    DEFAULT_SCAN_INTERVAL_SECONDS,
    DEFAULT_SHUTDOWN_GRACE_SECONDS,
    DEFAULT_TIMEZONE,
)
from cadence.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from cadence.core.models.database import DatabaseConfig
from cadence.core.utils.url import mask_database_url


class SchedulerConfig(BaseModel):
    """
    Scheduler loop configuration.

    Fields:
        - scan_interval_seconds: How often the loop looks for due jobs
        - execution_log_retention: How many execution records are kept in memory
        - execution_timeout_seconds: Per-execution time limit (None = unlimited)
        - timezone: IANA zone used to evaluate recurrence wall-clock fields
        - recompute_on_resume: Recompute a stale next_run when a paused job is resumed,
          instead of firing it on the next scan
        - shutdown_grace_seconds: How long stop() waits for in-flight executions
    """

    model_config = ConfigDict(frozen=True)

    scan_interval_seconds: float = DEFAULT_SCAN_INTERVAL_SECONDS
    execution_log_retention: int = DEFAULT_EXECUTION_LOG_RETENTION
    execution_timeout_seconds: Optional[float] = None
    timezone: str = DEFAULT_TIMEZONE
    recompute_on_resume: bool = False
    shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS

    @model_validator(mode='after')
    def validate_scheduler_settings(self) -> Self:
        """Collect every invalid setting and raise them together."""
        report = ValidationReport('config')

        if self.scan_interval_seconds <= 0:
            report.add(
                ConfigurationError(
                    message='scan_interval_seconds must be positive',
                    code=ErrorCode.CONFIG_INVALID_SCHEDULER,
                    notes=[f'scan_interval_seconds={self.scan_interval_seconds}'],
                    help_text='use a value such as 10 (the default) or 1 for tests',
                )
            )
        if self.execution_log_retention < 1:
            report.add(
                ConfigurationError(
                    message='execution_log_retention must be at least 1',
                    code=ErrorCode.CONFIG_INVALID_SCHEDULER,
                    notes=[f'execution_log_retention={self.execution_log_retention}'],
                    help_text='the log keeps the most recent N records; N must be >= 1',
                )
            )
        if (
            self.execution_timeout_seconds is not None
            and self.execution_timeout_seconds <= 0
        ):
            report.add(
                ConfigurationError(
                    message='execution_timeout_seconds must be positive or None',
                    code=ErrorCode.CONFIG_INVALID_SCHEDULER,
                    notes=[f'execution_timeout_seconds={self.execution_timeout_seconds}'],
                    help_text='set None to let actions run without a time limit',
                )
            )
        if self.shutdown_grace_seconds < 0:
            report.add(
                ConfigurationError(
                    message='shutdown_grace_seconds must not be negative',
                    code=ErrorCode.CONFIG_INVALID_SCHEDULER,
                    notes=[f'shutdown_grace_seconds={self.shutdown_grace_seconds}'],
                )
            )
        try:
            ZoneInfo(self.timezone)
        except Exception as e:
            report.add(
                ConfigurationError(
                    message=f"invalid timezone '{self.timezone}'",
                    code=ErrorCode.CONFIG_INVALID_SCHEDULER,
                    notes=[f'underlying error: {e}'],
                    help_text="use an IANA zone name such as 'UTC' or 'Europe/Istanbul'",
                )
            )

        raise_collected(report)
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    # None keeps everything in memory.
    database: Optional[DatabaseConfig] = None

    def describe(self) -> list[str]:
        """Human readable summary lines, safe for logging."""
        lines = [
            f'scan interval: {self.scheduler.scan_interval_seconds}s',
            f'execution log retention: {self.scheduler.execution_log_retention}',
            f'timezone: {self.scheduler.timezone}',
        ]
        if self.scheduler.execution_timeout_seconds is not None:
            lines.append(
                f'execution timeout: {self.scheduler.execution_timeout_seconds}s'
            )
        if self.database is not None:
            lines.append(f'database: {mask_database_url(self.database.database_url)}')
        else:
            lines.append('database: none (in-memory only)')
        return lines
