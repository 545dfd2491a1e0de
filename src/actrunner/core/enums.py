"""Core enumerations for the actrunner agent."""
from enum import Enum


class RunnerState(str, Enum):
    """
    Runner service lifecycle states.

    State flow:
        UNREGISTERED → IDLE → EXECUTING → IDLE (loop)
        SHUTTING_DOWN (from any non-terminal state) → TERMINATED
    """

    UNREGISTERED = "unregistered"
    IDLE = "idle"
    EXECUTING = "executing"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value


class StepStatus(str, Enum):
    """
    Final status of a single job step.

    - SUCCEEDED: Process exited with status 0
    - FAILED: Non-zero exit, or the step could not be started
    - TIMED_OUT: Process exceeded its timeout and was killed
    - CANCELLED: Killed (or never started) because the job was cancelled
    - SKIPPED: Never started because an earlier step failed
    """

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value


class JobOutcome(str, Enum):
    """Overall outcome of a job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        """Return string representation of the enum value."""
        return self.value
