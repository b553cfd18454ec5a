# cadence/core/registry/actions.py
from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, Iterator, MutableMapping, Optional, Union
from cadence.core.errors import ErrorCode, RegistryError
from cadence.core.logging import get_logger
from cadence.core.models.job import Job

# A zero-argument callable performing a job's work. May be sync or async.
Action = Callable[[], Union[Any, Awaitable[Any]]]
# Supplies an action for jobs that have none registered.
ActionProvider = Callable[[Job], Action]

logger = get_logger('actions')


class ActionNotRegistered(RegistryError, KeyError):
    """Raised when no action is registered for a job id.

    Inherits from KeyError so MutableMapping.__contains__ works correctly
    (it catches KeyError to implement the ``in`` operator).
    """

    def __init__(self, job_id: str) -> None:
        RegistryError.__init__(
            self,
            message=f"no action registered for job '{job_id}'",
            code=ErrorCode.ACTION_NOT_REGISTERED,
            notes=[f"requested job id: '{job_id}'"],
            help_text='pass action= to create_job(), or set a default action provider',
        )
        self.job_id = job_id


def hello_world_action(job: Job) -> Action:
    """Default provider: log a greeting and report it as the execution message."""

    def run() -> str:
        message = 'Hello World!'
        logger.info(f'Job "{job.name}" executed: {message}')
        return message

    return run


class ActionRegistry(MutableMapping[str, Action]):
    """Registry mapping job id -> action.

    Jobs are plain data; their actions live here so the store and the
    durable repository never have to hold callables.
    """

    def __init__(
        self,
        initial: Dict[str, Action] | None = None,
        *,
        default_provider: Optional[ActionProvider] = hello_world_action,
    ) -> None:
        self._data: Dict[str, Action] = dict(initial or {})
        self.default_provider = default_provider

    def __getitem__(self, key: str) -> Action:
        try:
            return self._data[key]
        except KeyError:
            raise ActionNotRegistered(key)

    def __setitem__(self, key: str, value: Action) -> None:
        if not callable(value):
            raise TypeError(f'action for job {key!r} must be callable, got {value!r}')
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    # --- convenience ---
    def register(self, job_id: str, action: Action) -> Action:
        """Attach an action to a job id, replacing any previous one."""
        self[job_id] = action
        return action

    def unregister(self, job_id: str) -> None:
        self._data.pop(job_id, None)

    def resolve(self, job: Job) -> Optional[Action]:
        """Registered action for the job, else the default provider's, else None."""
        action = self._data.get(job.id)
        if action is not None:
            return action
        if self.default_provider is not None:
            return self.default_provider(job)
        return None
