from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import (
    String,
    Text,
    Boolean,
    DateTime,
    Integer,
    Index,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from cadence.core.models.job import ExecutionRecord, Job
from cadence.core.models.recurrence import parse_recurrence
from cadence.core.types.status import ExecutionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


class JobModel(Base):
    """
    Durable copy of a Job.

    - id: str # Job.id
    - name: str
    - recurrence: dict # Recurrence model dump, e.g. {"type": "daily", "hour": 3, "minute": 0}
    - is_active: bool
    - next_run_at / last_run_at: datetime # UTC
    - run_count: int
    - created_at / updated_at: datetime
    """

    __tablename__ = 'cadence_jobs'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    recurrence: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    run_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    @classmethod
    def from_job(cls, job: Job) -> JobModel:
        return cls(
            id=job.id,
            name=job.name,
            recurrence=job.recurrence.model_dump(mode='json'),
            is_active=job.is_active,
            next_run_at=job.next_run,
            last_run_at=job.last_run,
            run_count=job.run_count,
            created_at=job.created_at,
            updated_at=_utcnow(),
        )

    def to_job(self) -> Job:
        return Job(
            id=self.id,
            name=self.name,
            recurrence=parse_recurrence(self.recurrence),
            is_active=self.is_active,
            next_run=self.next_run_at,
            last_run=self.last_run_at,
            run_count=self.run_count,
            created_at=self.created_at,
        )


class ExecutionRecordModel(Base):
    """
    Append-only execution history.

    job_id is not a foreign key: history outlives deleted jobs.
    """

    __tablename__ = 'cadence_executions'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    job_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ExecutionStatus] = mapped_column(
        SQLAlchemyEnum(ExecutionStatus, name='cadence_execution_status'),
        nullable=False,
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    finished_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('idx_cadence_executions_job_finished', 'job_id', 'finished_at'),
        Index('idx_cadence_executions_finished', 'finished_at'),
    )

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> ExecutionRecordModel:
        return cls(
            id=record.id,
            job_id=record.job_id,
            job_name=record.job_name,
            status=record.status,
            message=record.message,
            error_code=record.error_code_str,
            started_at=record.started_at,
            finished_at=record.timestamp,
            duration_ms=record.duration_ms,
        )

    def to_record(self) -> ExecutionRecord:
        return ExecutionRecord(
            id=self.id,
            job_id=self.job_id,
            job_name=self.job_name,
            timestamp=self.finished_at,
            started_at=self.started_at,
            status=self.status,
            message=self.message,
            error_code=self.error_code,
            duration_ms=self.duration_ms,
        )
