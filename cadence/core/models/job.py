# cadence/core/models/job.py
from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from cadence.core.models.recurrence import Recurrence
from cadence.core.types.status import ExecutionErrorCode, ExecutionStatus


_DECLARED_JOB_NAMESPACE = uuid.UUID('5c0f6a52-3f0e-4d8e-9a51-6a0b7c2d9e11')


def new_id() -> str:
    return uuid.uuid4().hex


def declared_job_id(name: str) -> str:
    """Stable id for a job declared in code, so restarts map onto the same stored row."""
    return uuid.uuid5(_DECLARED_JOB_NAMESPACE, name.strip()).hex


class Job(BaseModel):
    """
    A named job with a recurrence rule.

    Jobs are immutable snapshots. JobStore owns them and replaces a record
    wholesale on every mutation, so a Job handed out never changes underneath
    its holder.

    Fields:
        - id: Opaque unique identifier
        - name: Non-empty display name
        - recurrence: When the job repeats (hourly, daily or weekly)
        - is_active: Paused jobs are never dispatched
        - next_run: Next due time (UTC), strictly after the time it was computed against
        - last_run: Completion time of the latest execution (UTC)
        - run_count: Number of recorded executions
        - created_at: Creation time (UTC)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    recurrence: Recurrence
    is_active: bool = True
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    run_count: int = 0
    created_at: datetime


class ExecutionRecord(BaseModel):
    """One finished execution of a job. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    job_id: str
    job_name: str
    timestamp: datetime = Field(description='Completion time (UTC)')
    started_at: datetime
    status: ExecutionStatus
    message: Optional[str] = None
    error_code: Optional[Union[ExecutionErrorCode, str]] = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @property
    def error_code_str(self) -> str | None:
        if isinstance(self.error_code, ExecutionErrorCode):
            return self.error_code.value
        return self.error_code

    def summary(self) -> str:
        """One-line human readable form, e.g. for the CLI."""
        time_str = self.timestamp.strftime('%H:%M:%S')
        if self.succeeded:
            detail = f'executed: {self.message}' if self.message else 'executed'
        else:
            code = f' [{self.error_code_str}]' if self.error_code else ''
            detail = f'failed{code}: {self.message}'
        return f'[{time_str}] Job "{self.job_name}" {detail}'


@dataclass(slots=True, frozen=True)
class ExecutionOutcome:
    """Result of running a job action, as reported by the Executor.

    Actions may also return one directly to report a failure without raising.
    """

    status: ExecutionStatus
    message: str | None = None
    error_code: ExecutionErrorCode | str | None = None
    exception: BaseException | None = None

    @classmethod
    def success(cls, message: str | None = None) -> ExecutionOutcome:
        return cls(status=ExecutionStatus.SUCCESS, message=message)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        error_code: ExecutionErrorCode | str = ExecutionErrorCode.ACTION_EXCEPTION,
        exception: BaseException | None = None,
    ) -> ExecutionOutcome:
        return cls(
            status=ExecutionStatus.FAILURE,
            message=message,
            error_code=error_code,
            exception=exception,
        )

    @property
    def is_success(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS
