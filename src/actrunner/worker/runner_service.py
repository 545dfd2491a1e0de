"""Runner service: registration-aware poll → execute → report loop."""
import asyncio
import logging
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from actrunner.config import get_settings
from actrunner.controller.client import ControllerClient
from actrunner.core.enums import JobOutcome, RunnerState
from actrunner.core.exceptions import NotRegisteredError, ReportError
from actrunner.observability.metrics import init_runner_info, record_job, set_runner_state
from actrunner.repositories.job_record_repository import JobRecordRepository
from actrunner.schemas.identity import RunnerIdentity
from actrunner.schemas.job import JobAssignment, JobResult
from actrunner.services.job_poller import JobPoller
from actrunner.services.state_machine import RunnerStateMachine
from actrunner.services.status_reporter import StatusReporter
from actrunner.worker.job_executor import JobExecutor

logger = logging.getLogger(__name__)

# Marks the end of a job's step outcome stream
_END_OF_JOB = None


class RunnerService:
    """
    Top-level runner lifecycle.

    Runs at most one job at a time. Reporting of job N continues in the
    background while polling for job N+1, and is awaited before job N+1
    starts executing. ``stop()`` interrupts a blocked poll at once and gives
    an executing job ``shutdown_grace`` seconds before it is cancelled.
    """

    def __init__(
        self,
        client: ControllerClient,
        identity: Optional[RunnerIdentity] = None,
        identity_loader: Optional[Callable[[], Optional[RunnerIdentity]]] = None,
        executor: Optional[JobExecutor] = None,
        poller: Optional[JobPoller] = None,
        reporter: Optional[StatusReporter] = None,
        session_factory: Optional[sessionmaker] = None,
        shutdown_grace: Optional[float] = None,
        max_jobs: Optional[int] = None,
    ):
        """
        Initialize runner service.

        Args:
            client: Controller client shared by poller and reporter
            identity: Registered identity (loaded via identity_loader if omitted)
            identity_loader: Callable returning the stored identity
            executor: Job executor
            poller: Job poller
            reporter: Status reporter
            session_factory: Session factory for local job history (None disables)
            shutdown_grace: Seconds an in-flight job may run after stop()
            max_jobs: Stop after this many jobs (None runs forever)
        """
        settings = get_settings()
        self.client = client
        self.identity = identity
        self.identity_loader = identity_loader
        self.executor = executor or JobExecutor()
        self.poller = poller or JobPoller(client)
        self.reporter = reporter or StatusReporter(client)
        self.session_factory = session_factory
        self.shutdown_grace = (
            settings.RUNNER_SHUTDOWN_GRACE if shutdown_grace is None else shutdown_grace
        )
        self.max_jobs = max_jobs

        self.state_machine = RunnerStateMachine()
        set_runner_state(self.state_machine.state)

        # Metrics
        self.jobs_processed = 0
        self.jobs_succeeded = 0
        self.jobs_failed = 0
        self.jobs_cancelled = 0
        self.current_job_id: Optional[str] = None
        self.last_result: Optional[JobResult] = None

        self._stop_event = asyncio.Event()
        self._report_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> RunnerState:
        return self.state_machine.state

    @property
    def is_running(self) -> bool:
        return self.state in (RunnerState.IDLE, RunnerState.EXECUTING)

    async def start(self) -> None:
        """
        Run the service until stopped.

        Raises:
            NotRegisteredError: If no identity is available
            AuthError: If the controller rejects the runner credential
            PollExhaustedError: If polling keeps failing
        """
        if self.identity is None and self.identity_loader is not None:
            self.identity = self.identity_loader()
        if self.identity is None:
            raise NotRegisteredError("Runner is not configured, run 'actrunner configure' first")

        self._transition(RunnerState.IDLE)
        init_runner_info(
            get_settings().APP_VERSION, self.identity.id, self.identity.name, self.identity.labels
        )
        logger.info(f"Runner {self.identity.name} ({self.identity.id}) listening for jobs")

        try:
            await self._poll_loop()
        finally:
            await self._shutdown()

    def stop(self) -> None:
        """Request a graceful shutdown. Safe to call more than once."""
        if self._stop_event.is_set():
            return
        logger.info("Shutdown requested")
        self._stop_event.set()
        self.poller.stop()

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            assignment = await self.poller.next(self.identity)
            if assignment is None:
                break

            await self._run_job(assignment)

            if self.max_jobs is not None and self.jobs_processed >= self.max_jobs:
                logger.info(f"Processed {self.jobs_processed} job(s), stopping")
                self.stop()

    async def _run_job(self, assignment: JobAssignment) -> Optional[JobResult]:
        """Execute one job and hand its outcomes to the reporter."""
        # Never execute while the previous job is still being reported
        await self._await_report()
        if self._stop_event.is_set():
            logger.info(f"Shutdown requested, not starting job {assignment.job_id}")
            return None

        self._transition(RunnerState.EXECUTING)
        self.current_job_id = assignment.job_id
        result = JobResult(job_id=assignment.job_id)
        outcomes: asyncio.Queue = asyncio.Queue()
        self._report_task = asyncio.create_task(self._report(result, outcomes))

        cancelled, error = False, None
        try:
            cancelled = await self._supervise(
                asyncio.create_task(self._execute(assignment, result, outcomes))
            )
        except Exception as e:
            logger.error(f"Job {assignment.job_id} aborted by runner error: {e}", exc_info=True)
            error = f"{type(e).__name__}: {e}"

        outcome = result.finalize(cancelled=cancelled, error=error)
        self._record(result)
        try:
            await asyncio.to_thread(self._store_result, result)
        finally:
            outcomes.put_nowait(_END_OF_JOB)
        logger.info(f"Job {assignment.job_id} finished: {outcome}")

        self.current_job_id = None
        self.last_result = result
        if self.state == RunnerState.EXECUTING:
            self._transition(RunnerState.IDLE)
        return result

    async def _execute(
        self, assignment: JobAssignment, result: JobResult, outcomes: asyncio.Queue
    ) -> None:
        async for outcome in self.executor.run(assignment):
            result.add(outcome)
            outcomes.put_nowait(outcome)

    async def _supervise(self, exec_task: asyncio.Task) -> bool:
        """
        Wait for execution, enforcing the shutdown grace period.

        Returns:
            bool: True if the job had to be cancelled
        """
        stop_task = asyncio.create_task(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {exec_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stop_task.cancel()

        if exec_task in done:
            exec_task.result()
            return False

        self._transition(RunnerState.SHUTTING_DOWN)
        logger.warning(
            f"Waiting up to {self.shutdown_grace}s for job {self.current_job_id} to finish"
        )
        try:
            await asyncio.wait_for(asyncio.shield(exec_task), timeout=self.shutdown_grace)
            return False
        except asyncio.TimeoutError:
            logger.warning(f"Grace period expired, cancelling job {self.current_job_id}")
            self.executor.cancel()
            await exec_task
            return True

    async def _report(self, result: JobResult, outcomes: asyncio.Queue) -> None:
        """Drain step outcomes to the controller, then send the final result."""
        identity = self.identity
        error: Optional[str] = None
        try:
            await self.reporter.report(identity, result.job_id, self._drain(outcomes))
        except ReportError as e:
            error = str(e)
            logger.warning(f"Step outcomes of job {result.job_id} not delivered: {e}")
            # The job keeps running locally; wait for its end of stream
            while await outcomes.get() is not _END_OF_JOB:
                pass

        try:
            await self.reporter.complete(identity, result)
        except ReportError as e:
            error = error or str(e)
            logger.warning(f"Outcome of job {result.job_id} is unknown to the controller: {e}")

        await asyncio.to_thread(self._mark_reported, result.job_id, error)

    @staticmethod
    async def _drain(outcomes: asyncio.Queue):
        while True:
            outcome = await outcomes.get()
            if outcome is _END_OF_JOB:
                return
            yield outcome

    async def _await_report(self) -> None:
        if self._report_task is None:
            return
        task, self._report_task = self._report_task, None
        try:
            await task
        except Exception as e:
            logger.error(f"Error while reporting job: {e}", exc_info=True)

    def _record(self, result: JobResult) -> None:
        """Update counters and metrics for a finished job."""
        self.jobs_processed += 1
        if result.outcome == JobOutcome.SUCCEEDED:
            self.jobs_succeeded += 1
        elif result.outcome == JobOutcome.CANCELLED:
            self.jobs_cancelled += 1
        else:
            self.jobs_failed += 1

        duration = (result.completed_at - result.started_at).total_seconds()
        record_job(result.outcome, duration)

    def _store_result(self, result: JobResult) -> None:
        if self.session_factory is None:
            return
        try:
            with self.session_factory() as session:
                JobRecordRepository(session).create_from_result(result, runner_id=self.identity.id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store job {result.job_id} in history: {e}")

    def _mark_reported(self, job_id: str, error: Optional[str]) -> None:
        if self.session_factory is None:
            return
        try:
            with self.session_factory() as session:
                JobRecordRepository(session).mark_reported(job_id, error)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to update report status of job {job_id}: {e}")

    async def _shutdown(self) -> None:
        if self.state != RunnerState.SHUTTING_DOWN:
            self._transition(RunnerState.SHUTTING_DOWN)
        self.poller.stop()
        await self._await_report()
        self._transition(RunnerState.TERMINATED)
        logger.info(
            f"Runner stopped after {self.jobs_processed} job(s) "
            f"({self.jobs_succeeded} succeeded, {self.jobs_failed} failed, "
            f"{self.jobs_cancelled} cancelled)"
        )

    def _transition(self, state: RunnerState) -> None:
        previous = self.state_machine.transition(state)
        set_runner_state(state)
        logger.debug(f"Runner state {previous} -> {state}")
