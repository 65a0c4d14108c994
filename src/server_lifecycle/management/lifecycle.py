"""Lifecycle states, outcomes and the state machine shared by the monitors."""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

import structlog

from .exceptions import InvalidTransitionError, LifecycleError

logger = structlog.get_logger(__name__)


class LifecycleState(Enum):
    """States of one server process lifecycle."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    STARTED = "started"
    START_FAILED = "start_failed"
    STOPPING = "stopping"
    STOPPED = "stopped"
    STOP_FAILED = "stop_failed"


class FailureCause(Enum):
    """Reason attached to a failed lifecycle phase."""

    TIMEOUT = "timeout"
    EARLY_EXIT = "early_exit"
    LAUNCH_ERROR = "launch_error"
    STOP_TIMEOUT = "stop_timeout"


_TRANSITIONS: Dict[LifecycleState, FrozenSet[LifecycleState]] = {
    LifecycleState.NOT_STARTED: frozenset(
        {LifecycleState.STARTING, LifecycleState.START_FAILED}
    ),
    LifecycleState.STARTING: frozenset(
        {
            LifecycleState.STARTED,
            LifecycleState.START_FAILED,
            LifecycleState.STOPPING,
        }
    ),
    LifecycleState.STARTED: frozenset({LifecycleState.STOPPING}),
    LifecycleState.START_FAILED: frozenset({LifecycleState.STOPPING}),
    LifecycleState.STOPPING: frozenset(
        {LifecycleState.STOPPED, LifecycleState.STOP_FAILED}
    ),
    LifecycleState.STOPPED: frozenset(),
    LifecycleState.STOP_FAILED: frozenset(),
}


@dataclass(frozen=True)
class LifecycleOutcome:
    """Terminal result of a start or stop phase."""

    state: LifecycleState
    cause: Optional[FailureCause] = None
    exit_code: Optional[int] = None
    elapsed: float = 0.0
    polls: int = 0
    error: Optional[LifecycleError] = None

    @property
    def succeeded(self) -> bool:
        """Check if the phase reached STARTED or STOPPED."""
        return self.state in (LifecycleState.STARTED, LifecycleState.STOPPED)

    def raise_for_failure(self) -> None:
        """Raise the attached error if the phase failed."""
        if not self.succeeded and self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "cause": self.cause.value if self.cause else None,
            "exit_code": self.exit_code,
            "elapsed": round(self.elapsed, 3),
            "polls": self.polls,
            "error": self.error.message if self.error else None,
        }


class LifecycleStateMachine:
    """Holds the current lifecycle state.

    Every transition is checked against the allowed transitions and
    written under a lock, so observers on other threads never see a
    partially applied change.
    """

    def __init__(self, initial: LifecycleState = LifecycleState.NOT_STARTED):
        self._state = initial
        self._lock = threading.Lock()

    @property
    def state(self) -> LifecycleState:
        return self._state

    def can_transition(self, target: LifecycleState) -> bool:
        return target in _TRANSITIONS[self._state]

    def transition(self, target: LifecycleState) -> LifecycleState:
        """Move to ``target`` and return the previous state.

        Raises:
            InvalidTransitionError: If the move is not allowed from the
                current state
        """
        with self._lock:
            previous = self._state
            if target not in _TRANSITIONS[previous]:
                raise InvalidTransitionError(
                    f"Cannot move from {previous.value} to {target.value}",
                    details={"from": previous.value, "to": target.value},
                )
            self._state = target

        logger.debug(
            "Lifecycle transition", previous=previous.value, state=target.value
        )
        return previous
