"""Shared default constants for the cadence library."""

# How often the scheduler scans the job store for due jobs.
DEFAULT_SCAN_INTERVAL_SECONDS: float = 10.0

# Number of execution records kept in memory before the oldest is evicted.
DEFAULT_EXECUTION_LOG_RETENTION: int = 10

# Time given to in-flight executions to finish when the scheduler stops.
DEFAULT_SHUTDOWN_GRACE_SECONDS: float = 5.0

# Timezone used to evaluate recurrence wall-clock fields.
DEFAULT_TIMEZONE: str = 'UTC'
