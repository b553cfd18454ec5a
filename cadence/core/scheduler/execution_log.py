# cadence/core/scheduler/execution_log.py
from __future__ import annotations
import threading
from collections import deque
from collections.abc import Iterable
from cadence.core.defaults import DEFAULT_EXECUTION_LOG_RETENTION
from cadence.core.logging import get_logger
from cadence.core.models.job import ExecutionRecord

logger = get_logger('execution_log')


class ExecutionLog:
    """
    Bounded, newest-first history of executions.

    Holds at most `retention` records; appending past the cap evicts the
    oldest record. In-memory only; durable history is the repository's job.
    """

    def __init__(self, retention: int = DEFAULT_EXECUTION_LOG_RETENTION):
        if retention < 1:
            raise ValueError(f'retention must be >= 1, got {retention}')
        self.retention = retention
        # Left end is the newest record.
        self._records: deque[ExecutionRecord] = deque(maxlen=retention)
        self._lock = threading.Lock()

    def append(self, record: ExecutionRecord) -> None:
        with self._lock:
            evicted = (
                self._records[-1] if len(self._records) == self.retention else None
            )
            self._records.appendleft(record)
        if evicted is not None:
            logger.debug(f'Evicted execution record {evicted.id} ({evicted.job_name})')

    def extend_oldest_first(self, records: Iterable[ExecutionRecord]) -> None:
        """Append records given in chronological order, e.g. loaded from storage."""
        for record in records:
            self.append(record)

    def list(self) -> list[ExecutionRecord]:
        with self._lock:
            return list(self._records)

    def for_job(self, job_id: str) -> list[ExecutionRecord]:
        with self._lock:
            return [r for r in self._records if r.job_id == job_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
