"""
State and event types for the worker supervisor.

The supervisor is driven by events posted from process watchers and signal
handlers. Each event is tagged with the spawn generation it belongs to so a
late or duplicate notification can be recognised and ignored.
"""

import signal
from dataclasses import dataclass
from enum import Enum
from typing import Union


class SupervisorState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED_CLEAN = "exited_clean"
    EXITED_ERROR = "exited_error"
    RESTARTING = "restarting"
    STOPPED_CLEAN = "stopped_clean"
    STOPPED_MAX_RETRIES = "stopped_max_retries"
    STOPPED_BY_SIGNAL = "stopped_by_signal"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        SupervisorState.STOPPED_CLEAN,
        SupervisorState.STOPPED_MAX_RETRIES,
        SupervisorState.STOPPED_BY_SIGNAL,
    }
)


class SignalKind(Enum):
    """External termination requests the supervisor reacts to."""

    INTERRUPT = signal.SIGINT
    TERMINATE = signal.SIGTERM


@dataclass(frozen=True)
class ChildExited:
    """The worker of a given spawn generation terminated."""

    generation: int
    exit_code: int


@dataclass(frozen=True)
class ChildSpawnError:
    """The worker could not be started or communicated with."""

    generation: int
    error: BaseException


@dataclass(frozen=True)
class ShutdownRequested:
    """The supervisor itself received a termination signal."""

    kind: SignalKind


Event = Union[ChildExited, ChildSpawnError, ShutdownRequested]
