"""cadence - an in-process recurring job scheduler"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.app import Cadence
from .core.models.app import AppConfig, SchedulerConfig
from .core.models.database import DatabaseConfig
from .core.models.recurrence import (
    HourlyRecurrence,
    DailyRecurrence,
    WeeklyRecurrence,
    Recurrence,
    parse_recurrence,
    WEEKDAY_NAMES,
)
from .core.models.job import Job, ExecutionRecord, ExecutionOutcome
from .core.types.status import JobState, ExecutionStatus, ExecutionErrorCode
from .core.registry.actions import (
    Action,
    ActionProvider,
    ActionRegistry,
    ActionNotRegistered,
    hello_world_action,
)
from .core.scheduler import (
    SchedulerLoop,
    JobStore,
    Executor,
    ExecutionLog,
    calculate_next_run,
    is_due,
    job_state,
)
from .core.storage import JobRepository
from .core.errors import (
    ErrorCode,
    CadenceError,
    JobValidationError,
    JobNotFoundError,
    ConfigurationError,
    RegistryError,
    ValidationReport,
    MultipleValidationErrors,
)

__all__ = [
    # Core
    'Cadence',
    'AppConfig',
    'SchedulerConfig',
    'DatabaseConfig',
    # Recurrence
    'HourlyRecurrence',
    'DailyRecurrence',
    'WeeklyRecurrence',
    'Recurrence',
    'parse_recurrence',
    'WEEKDAY_NAMES',
    # Jobs and executions
    'Job',
    'ExecutionRecord',
    'ExecutionOutcome',
    'JobState',
    'ExecutionStatus',
    'ExecutionErrorCode',
    # Actions
    'Action',
    'ActionProvider',
    'ActionRegistry',
    'ActionNotRegistered',
    'hello_world_action',
    # Scheduling engine
    'SchedulerLoop',
    'JobStore',
    'Executor',
    'ExecutionLog',
    'calculate_next_run',
    'is_due',
    'job_state',
    'JobRepository',
    # Errors
    'ErrorCode',
    'CadenceError',
    'JobValidationError',
    'JobNotFoundError',
    'ConfigurationError',
    'RegistryError',
    'ValidationReport',
    'MultipleValidationErrors',
]
