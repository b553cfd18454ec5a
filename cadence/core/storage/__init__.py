"""
Durable storage for jobs and execution history.

The scheduler works entirely in memory; a repository mirrors its state so
jobs survive restarts. Any object with the JobRepository shape will do;
PostgresJobRepository is the bundled implementation.
"""

from __future__ import annotations

from typing import Protocol

from cadence.core.models.job import ExecutionRecord, Job


class JobRepository(Protocol):
    async def ensure_schema(self) -> None: ...

    async def load_jobs(self) -> list[Job]:
        """All stored jobs, oldest first."""
        ...

    async def save_job(self, job: Job) -> None: ...

    async def delete_job(self, job_id: str) -> bool: ...

    async def append_execution(self, record: ExecutionRecord) -> None: ...

    async def recent_executions(self, limit: int) -> list[ExecutionRecord]:
        """Most recent records, oldest first."""
        ...

    async def close(self) -> None: ...


__all__ = ['JobRepository']
