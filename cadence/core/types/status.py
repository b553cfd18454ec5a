# core/types/status.py
"""
Core enums used throughout the application.
This module should not import from other application modules.
"""

from enum import Enum


class JobState(Enum):
    """Scheduling state of a job, derived from its fields and the clock"""

    IDLE = 'idle'  # Paused. Never dispatched regardless of next_run.

    ARMED = 'armed'  # Active, next_run still in the future.

    DUE = 'due'  # Active, next_run at or before now. Picked up by the next scan.

    DISPATCHED = 'dispatched'  # Action in flight; skipped by scans until it completes.

    @property
    def is_runnable(self) -> bool:
        """Whether a scan would dispatch a job in this state."""
        return self is JobState.DUE


class ExecutionStatus(str, Enum):
    """Outcome of a single job execution"""

    SUCCESS = 'success'
    FAILURE = 'failure'


class ExecutionErrorCode(str, Enum):
    """
    Library-defined codes attached to failed executions.

    Actions may return their own string codes through ExecutionOutcome.failure().
    """

    ACTION_EXCEPTION = 'ACTION_EXCEPTION'  # The action raised.
    ACTION_TIMEOUT = 'ACTION_TIMEOUT'  # The action exceeded execution_timeout_seconds.
    ACTION_NOT_REGISTERED = 'ACTION_NOT_REGISTERED'  # No action and no default provider.
