"""Status reporter: delivers step outcomes and job results to the controller."""
import asyncio
import logging
from typing import AsyncIterable, Awaitable, Callable, Optional
from actrunner.config import get_settings
from actrunner.controller.client import ControllerClient
from actrunner.core.exceptions import AuthError, ControllerError, NetworkError, ReportError
from actrunner.observability.metrics import record_report_failure
from actrunner.schemas.identity import RunnerIdentity
from actrunner.schemas.job import JobResult, StepOutcome
from actrunner.services.backoff import Backoff

logger = logging.getLogger(__name__)


class StatusReporter:
    """
    Reports job progress and outcome back to the controller.

    Every request is retried on NetworkError with exponential backoff.
    When retries run out, or the controller rejects the runner, a
    ReportError is raised; the local result stays final regardless.
    """

    def __init__(
        self,
        client: ControllerClient,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ):
        """
        Initialize status reporter.

        Args:
            client: Controller client
            max_retries: Retries per request on network failures
            base_delay: Initial retry delay in seconds
        """
        settings = get_settings()
        self.client = client
        self.max_retries = max_retries if max_retries is not None else settings.REPORT_MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else settings.REPORT_BACKOFF_BASE

    async def report(
        self,
        identity: RunnerIdentity,
        job_id: str,
        outcomes: AsyncIterable[StepOutcome],
    ) -> int:
        """
        Ack each step outcome to the controller as it arrives.

        Args:
            identity: Registered runner identity
            job_id: Job the outcomes belong to
            outcomes: Stream of step outcomes

        Returns:
            int: Number of outcomes delivered

        Raises:
            ReportError: On unrecoverable delivery failure
        """
        delivered = 0
        async for outcome in outcomes:
            await self._send(
                f"step {outcome.index} of job {job_id}",
                lambda: self.client.report_step(identity, job_id, outcome),
            )
            delivered += 1
        logger.debug(f"Reported {delivered} step outcomes for job {job_id}")
        return delivered

    async def complete(self, identity: RunnerIdentity, result: JobResult) -> None:
        """
        Send the final job result.

        Raises:
            ReportError: On unrecoverable delivery failure
            ValueError: If the result is not finalized
        """
        if not result.is_final:
            raise ValueError(f"Result for job {result.job_id} is not final")
        await self._send(
            f"result of job {result.job_id}",
            lambda: self.client.complete(identity, result),
        )
        logger.info(f"Reported job {result.job_id} as {result.outcome}")

    async def _send(self, what: str, request: Callable[[], Awaitable[None]]) -> None:
        backoff = Backoff(base_delay=self.base_delay, max_delay=self.base_delay * 2 ** 6)
        attempt = 0
        while True:
            try:
                await request()
                return
            except (AuthError, ControllerError) as e:
                record_report_failure()
                raise ReportError(f"Controller rejected {what}: {e}") from e
            except NetworkError as e:
                record_report_failure()
                attempt += 1
                if attempt > self.max_retries:
                    raise ReportError(
                        f"Giving up on {what} after {attempt} attempts: {e}"
                    ) from e
                delay = backoff.next_delay()
                logger.warning(
                    f"Reporting {what} failed ({attempt}/{self.max_retries}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)
