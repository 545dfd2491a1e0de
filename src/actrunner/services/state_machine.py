"""Runner state machine logic for managing valid lifecycle transitions."""
from typing import Set, Dict
from actrunner.core.enums import RunnerState
from actrunner.core.exceptions import InvalidStateTransitionError


class RunnerStateMachine:
    """
    Defines valid lifecycle transitions for a runner service.

    State Diagram:
        UNREGISTERED → IDLE → EXECUTING → IDLE (loop)
             SHUTTING_DOWN (from any non-terminal) → TERMINATED
    """

    TRANSITIONS: Dict[RunnerState, Set[RunnerState]] = {
        RunnerState.UNREGISTERED: {RunnerState.IDLE, RunnerState.SHUTTING_DOWN},
        RunnerState.IDLE: {RunnerState.EXECUTING, RunnerState.SHUTTING_DOWN},
        RunnerState.EXECUTING: {RunnerState.IDLE, RunnerState.SHUTTING_DOWN},
        RunnerState.SHUTTING_DOWN: {RunnerState.TERMINATED},
        RunnerState.TERMINATED: set(),  # Terminal state
    }

    TERMINAL_STATES = {RunnerState.TERMINATED}

    def __init__(self, initial: RunnerState = RunnerState.UNREGISTERED):
        self.state = initial

    @classmethod
    def can_transition(cls, from_state: RunnerState, to_state: RunnerState) -> bool:
        """
        Check if transition from from_state to to_state is valid.

        Args:
            from_state: Current runner state
            to_state: Desired runner state

        Returns:
            bool: True if transition is valid, False otherwise
        """
        return to_state in cls.TRANSITIONS.get(from_state, set())

    @classmethod
    def validate_transition(cls, from_state: RunnerState, to_state: RunnerState) -> None:
        """
        Validate state transition and raise exception if invalid.

        Raises:
            InvalidStateTransitionError: If transition is not valid
        """
        if not cls.can_transition(from_state, to_state):
            raise InvalidStateTransitionError(
                f"Invalid state transition: {from_state} -> {to_state}"
            )

    @classmethod
    def is_terminal(cls, state: RunnerState) -> bool:
        return state in cls.TERMINAL_STATES

    def transition(self, to_state: RunnerState) -> RunnerState:
        """
        Move to a new state after validating the transition.

        Args:
            to_state: Desired runner state

        Returns:
            RunnerState: The previous state
        """
        self.validate_transition(self.state, to_state)
        previous, self.state = self.state, to_state
        return previous
