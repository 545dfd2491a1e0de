"""Custom exceptions for actrunner."""


class RunnerException(Exception):
    """Base exception for all actrunner-specific exceptions."""

    pass


class AuthError(RunnerException):
    """Raised when the controller rejects a token or runner credential."""

    pass


class NetworkError(RunnerException):
    """Raised on transient controller failures (unreachable, 5xx, throttled)."""

    pass


class ControllerError(RunnerException):
    """Raised when the controller answers with an unexpected response."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class PollExhaustedError(RunnerException):
    """Raised when job polling keeps failing past the retry ceiling."""

    pass


class StepTimeoutError(RunnerException, TimeoutError):
    """Raised when a step process exceeds its timeout."""

    pass


class ReportError(RunnerException):
    """Raised when a step outcome or job result cannot be delivered."""

    pass


class RunnerConfigError(RunnerException):
    """Raised when local runner state or configuration is unusable."""

    pass


class NotRegisteredError(RunnerConfigError):
    """Raised when an operation needs a runner identity and none is stored."""

    pass


class InvalidStateTransitionError(RunnerException):
    """Raised when attempting an invalid runner state transition."""

    pass
