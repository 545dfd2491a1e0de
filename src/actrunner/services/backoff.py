"""Exponential backoff calculations for controller retries."""
import random


class Backoff:
    """
    Exponential backoff with a cap and random jitter.

    delay(n) = min(base * 2^n, max_delay) plus up to ``jitter`` fraction
    of that delay, never exceeding max_delay.
    """

    def __init__(self, base_delay: float = 1.0, max_delay: float = 60.0, jitter: float = 0.1):
        """
        Initialize backoff policy.

        Args:
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound for any delay in seconds
            jitter: Fraction of the delay added at random (0 disables)
        """
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if jitter < 0:
            raise ValueError("Backoff jitter must be non-negative")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.attempt = 0

    def delay_for(self, attempt: int) -> float:
        """
        Calculate the delay for a given attempt number.

        Args:
            attempt: Zero-based attempt number

        Returns:
            float: Delay in seconds
        """
        # Exponential backoff: base_delay * 2^attempt, capped at max_delay
        delay = min(self.base_delay * (2 ** min(attempt, 62)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return min(delay, self.max_delay)

    def next_delay(self) -> float:
        """Return the delay for the current attempt and advance."""
        delay = self.delay_for(self.attempt)
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0
