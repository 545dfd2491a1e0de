"""Job poller: waits for job assignments routed to this runner's labels."""
import asyncio
import logging
from typing import Optional
from actrunner.config import get_settings
from actrunner.controller.client import ControllerClient
from actrunner.core.exceptions import ControllerError, NetworkError, PollExhaustedError
from actrunner.observability.metrics import record_poll_failure
from actrunner.schemas.identity import RunnerIdentity
from actrunner.schemas.job import JobAssignment
from actrunner.services.backoff import Backoff

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Long-polls the controller for the next job.

    Empty polls and transient network failures are followed by an
    exponential backoff wait. Only consecutive failed requests count
    toward the retry ceiling; a received job resets both counters.
    ``stop()`` interrupts a pending request or wait immediately.
    """

    def __init__(
        self,
        client: ControllerClient,
        backoff: Optional[Backoff] = None,
        max_retries: Optional[int] = None,
        wait_seconds: Optional[float] = None,
    ):
        """
        Initialize job poller.

        Args:
            client: Controller client
            backoff: Backoff policy between attempts
            max_retries: Consecutive failed requests tolerated
            wait_seconds: Long-poll hold requested from the controller
        """
        settings = get_settings()
        self.client = client
        self.backoff = backoff or Backoff(
            base_delay=settings.POLL_BACKOFF_BASE,
            max_delay=settings.POLL_BACKOFF_MAX,
            jitter=settings.POLL_BACKOFF_JITTER,
        )
        self.max_retries = max_retries if max_retries is not None else settings.POLL_MAX_RETRIES
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.POLL_WAIT_SECONDS
        self.consecutive_failures = 0
        self._stop_event = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Interrupt any blocked ``next()`` call."""
        self._stop_event.set()

    async def next(self, identity: RunnerIdentity) -> Optional[JobAssignment]:
        """
        Block until a job for this runner is available.

        Args:
            identity: Registered runner identity

        Returns:
            Optional[JobAssignment]: The job, or None when stopped

        Raises:
            AuthError: If the controller rejects the runner credential
            PollExhaustedError: If failed requests exceed the retry ceiling
        """
        while not self.stopped:
            try:
                assignment = await self._poll_once(identity)
            except (NetworkError, ControllerError) as e:
                self.consecutive_failures += 1
                record_poll_failure()
                if self.consecutive_failures > self.max_retries:
                    raise PollExhaustedError(
                        f"Polling failed {self.consecutive_failures} times in a row: {e}"
                    ) from e
                logger.warning(
                    f"Poll failed ({self.consecutive_failures}/{self.max_retries}): {e}"
                )
            else:
                if self.stopped:
                    return None

                self.consecutive_failures = 0
                if assignment is not None:
                    if self._accepts(identity, assignment):
                        self.backoff.reset()
                        logger.info(f"Received job {assignment.job_id}")
                        return assignment
                    logger.warning(
                        f"Ignoring job {assignment.job_id}: requires labels "
                        f"{sorted(assignment.labels - identity.labels)} this runner lacks"
                    )

            await self._wait(self.backoff.next_delay())

        return None

    async def _poll_once(self, identity: RunnerIdentity) -> Optional[JobAssignment]:
        """Run one poll request, abandoning it if the poller is stopped."""
        poll_task = asyncio.create_task(self.client.poll(identity, self.wait_seconds))
        stop_task = asyncio.create_task(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {poll_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            poll_task.cancel()
            raise
        finally:
            stop_task.cancel()

        if poll_task not in done:
            poll_task.cancel()
            try:
                await poll_task
            except (asyncio.CancelledError, NetworkError, ControllerError):
                pass
            return None
        return poll_task.result()

    async def _wait(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless stopped first."""
        logger.debug(f"Next poll in {delay:.2f}s")
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass  # Normal timeout, poll again

    @staticmethod
    def _accepts(identity: RunnerIdentity, assignment: JobAssignment) -> bool:
        return assignment.labels <= identity.labels
