# cadence/core/scheduler/__init__.py
"""
Scheduling engine.

Main components:
- SchedulerLoop: periodic scan and concurrent dispatch of due jobs
- JobStore: authoritative in-memory job collection
- Executor: runs an action and captures its outcome
- ExecutionLog: bounded newest-first execution history
- calculate_next_run: next run time calculation

Example usage:
    from cadence.core.scheduler import SchedulerLoop

    scheduler = SchedulerLoop(store, execution_log, executor, actions)
    await scheduler.run_forever()
"""

from cadence.core.scheduler.service import SchedulerLoop
from cadence.core.scheduler.store import JobStore
from cadence.core.scheduler.executor import Executor
from cadence.core.scheduler.execution_log import ExecutionLog
from cadence.core.scheduler.calculator import calculate_next_run, is_due, job_state

__all__ = [
    'SchedulerLoop',
    'JobStore',
    'Executor',
    'ExecutionLog',
    'calculate_next_run',
    'is_due',
    'job_state',
]
