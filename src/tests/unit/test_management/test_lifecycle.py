"""Tests for lifecycle states and outcomes."""

import threading

import pytest

from server_lifecycle.management.exceptions import (
    EarlyExitError,
    InvalidTransitionError,
)
from server_lifecycle.management.lifecycle import (
    FailureCause,
    LifecycleOutcome,
    LifecycleState,
    LifecycleStateMachine,
)


class TestLifecycleStateMachine:
    """Test the LifecycleStateMachine class."""

    def test_initial_state(self):
        assert LifecycleStateMachine().state == LifecycleState.NOT_STARTED

    def test_happy_path(self):
        """The normal start/stop path is allowed."""
        machine = LifecycleStateMachine()

        for target in (
            LifecycleState.STARTING,
            LifecycleState.STARTED,
            LifecycleState.STOPPING,
            LifecycleState.STOPPED,
        ):
            machine.transition(target)

        assert machine.state == LifecycleState.STOPPED

    def test_transition_returns_previous_state(self):
        machine = LifecycleStateMachine()

        assert machine.transition(LifecycleState.STARTING) == LifecycleState.NOT_STARTED

    @pytest.mark.parametrize(
        "initial, target",
        [
            (LifecycleState.NOT_STARTED, LifecycleState.STARTED),
            (LifecycleState.NOT_STARTED, LifecycleState.STOPPING),
            (LifecycleState.STARTED, LifecycleState.STARTING),
            (LifecycleState.STARTED, LifecycleState.STOPPED),
            (LifecycleState.STOPPED, LifecycleState.STARTING),
            (LifecycleState.STOP_FAILED, LifecycleState.STOPPING),
        ],
    )
    def test_invalid_transitions(self, initial, target):
        """Transitions outside the lifecycle are rejected."""
        machine = LifecycleStateMachine(initial)

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(target)

        assert machine.state == initial
        assert exc_info.value.details == {"from": initial.value, "to": target.value}

    def test_cancellation_path(self):
        """A start can be abandoned through STOPPING."""
        machine = LifecycleStateMachine(LifecycleState.STARTING)

        assert machine.can_transition(LifecycleState.STOPPING)
        machine.transition(LifecycleState.STOPPING)
        machine.transition(LifecycleState.STOP_FAILED)

        assert not machine.can_transition(LifecycleState.STOPPED)

    def test_concurrent_transitions_single_winner(self):
        """Only one of several racing transitions can win."""
        machine = LifecycleStateMachine(LifecycleState.STARTING)
        results = []

        def attempt(target):
            try:
                machine.transition(target)
                results.append(target)
            except InvalidTransitionError:
                pass

        threads = [
            threading.Thread(target=attempt, args=(target,))
            for target in (LifecycleState.STARTED, LifecycleState.START_FAILED) * 4
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 1
        assert machine.state == results[0]


class TestLifecycleOutcome:
    """Test the LifecycleOutcome class."""

    def test_success(self):
        outcome = LifecycleOutcome(LifecycleState.STOPPED, exit_code=0)

        assert outcome.succeeded
        outcome.raise_for_failure()

    def test_failure_to_dict(self):
        """Failures serialize with their cause and message."""
        outcome = LifecycleOutcome(
            LifecycleState.START_FAILED,
            cause=FailureCause.EARLY_EXIT,
            exit_code=1,
            elapsed=1.23456,
            polls=2,
            error=EarlyExitError(1),
        )

        assert not outcome.succeeded
        assert outcome.to_dict() == {
            "state": "start_failed",
            "cause": "early_exit",
            "exit_code": 1,
            "elapsed": 1.235,
            "polls": 2,
            "error": "Server process exited with code 1 before it started",
        }
