"""Job executor for running job steps as child processes."""
import asyncio
import codecs
import logging
import os
import re
import shutil
import signal
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Deque, Dict, Mapping, Optional
from actrunner.config import get_settings
from actrunner.core.enums import StepStatus
from actrunner.core.exceptions import StepTimeoutError
from actrunner.observability.metrics import record_step
from actrunner.schemas.job import JobAssignment, Step, StepOutcome
from actrunner.worker.log_buffer import LogBuffer

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class JobExecutor:
    """
    Executes the steps of one job at a time, strictly in order.

    Each step runs as a shell command in its own process group inside the
    job workspace. A step that fails halts the job unless it is marked
    continue-on-error; a step that overruns its timeout is killed.
    """

    # Job IDs remembered to refuse re-running a consumed assignment
    CONSUMED_HISTORY = 1000

    def __init__(
        self,
        work_dir: Optional[Path] = None,
        base_env: Optional[Mapping[str, str]] = None,
        clean_workspace: Optional[bool] = None,
        kill_grace: Optional[float] = None,
        max_log_bytes: Optional[int] = None,
    ):
        """
        Initialize job executor.

        Args:
            work_dir: Directory under which job workspaces are created
            base_env: Runner base environment (defaults to os.environ)
            clean_workspace: Remove the workspace after each job
            kill_grace: Seconds between SIGTERM and SIGKILL
            max_log_bytes: Output kept per step
        """
        settings = get_settings()
        self.work_dir = Path(work_dir or settings.work_dir)
        self.base_env: Dict[str, str] = dict(os.environ if base_env is None else base_env)
        self.clean_workspace = (
            settings.RUNNER_CLEAN_WORKSPACE if clean_workspace is None else clean_workspace
        )
        self.kill_grace = settings.RUNNER_KILL_GRACE if kill_grace is None else kill_grace
        self.max_log_bytes = max_log_bytes or settings.RUNNER_MAX_LOG_BYTES

        self.log_buffer: Optional[LogBuffer] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._consumed: Deque[str] = deque(maxlen=self.CONSUMED_HISTORY)

    @property
    def is_running(self) -> bool:
        return self._cancel_event is not None

    def cancel(self) -> None:
        """
        Cancel the job currently running.

        Kills the active step; it and all remaining steps end CANCELLED.
        """
        if self._cancel_event is not None:
            logger.warning("Cancelling running job")
            self._cancel_event.set()

    def workspace_for(self, job_id: str) -> Path:
        return self.work_dir / _UNSAFE_PATH_CHARS.sub("_", job_id)

    async def run(self, assignment: JobAssignment) -> AsyncIterator[StepOutcome]:
        """
        Execute a job, yielding one outcome per step as it finishes.

        The sequence is finite and cannot be restarted: every assignment is
        consumed once.

        Args:
            assignment: Job to execute

        Yields:
            StepOutcome: Outcome of each step, in declared order

        Raises:
            RuntimeError: If the assignment was already run, or another job is running
        """
        if assignment.job_id in self._consumed:
            raise RuntimeError(f"Job {assignment.job_id} was already executed")
        if self.is_running:
            raise RuntimeError("Executor is already running a job")
        self._consumed.append(assignment.job_id)

        self._cancel_event = asyncio.Event()
        self.log_buffer = LogBuffer(self.max_log_bytes)
        workspace = self._prepare_workspace(assignment.job_id)
        env = self._build_env(assignment, workspace)

        logger.info(
            f"Executing job {assignment.job_id} ({len(assignment.steps)} steps) in {workspace}"
        )
        halted: Optional[StepStatus] = None
        try:
            for index, step in enumerate(assignment.steps):
                if halted is None and self._cancel_event.is_set():
                    halted = StepStatus.CANCELLED

                if halted is not None:
                    outcome = self._not_run(index, step, halted)
                else:
                    outcome = await self._run_step(index, step, workspace, {**env, **step.env})
                    if outcome.status == StepStatus.CANCELLED:
                        halted = StepStatus.CANCELLED
                    elif outcome.is_failure:
                        logger.info(
                            f"Step {index} of job {assignment.job_id} ended {outcome.status}, "
                            f"skipping remaining steps"
                        )
                        halted = StepStatus.SKIPPED

                record_step(outcome.status, outcome.duration)
                yield outcome
        finally:
            self._cancel_event = None
            if self.clean_workspace:
                shutil.rmtree(workspace, ignore_errors=True)

    async def _run_step(
        self, index: int, step: Step, workspace: Path, env: Dict[str, str]
    ) -> StepOutcome:
        """Run one step and build its outcome."""
        started_at = datetime.now(timezone.utc)
        cwd = self._resolve_cwd(workspace, step)
        if not cwd.is_dir():
            return self._outcome(
                index,
                step,
                StepStatus.FAILED,
                started_at=started_at,
                error=FileNotFoundError(f"Working directory does not exist: {cwd}"),
            )

        logger.info(f"Step {index} [{step.display_name}] starting (timeout {step.timeout}s)")
        status: StepStatus
        error: Optional[BaseException] = None
        exit_code: Optional[int] = None
        try:
            async with self._child_process(step.command, cwd, env) as proc:
                pump = asyncio.create_task(self._pump_output(proc, index))
                exited = asyncio.create_task(proc.wait())
                cancelled = asyncio.create_task(self._cancel_event.wait())
                try:
                    done, _ = await asyncio.wait(
                        {exited, cancelled},
                        timeout=step.timeout,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    cancelled.cancel()

                if exited in done:
                    exit_code = proc.returncode
                    status = StepStatus.SUCCEEDED if exit_code == 0 else StepStatus.FAILED
                elif cancelled in done:
                    status = StepStatus.CANCELLED
                else:
                    status = StepStatus.TIMED_OUT
                    error = StepTimeoutError(
                        f"Step exceeded its timeout of {step.timeout} seconds"
                    )
            # The process group is gone now, so the pipe drains quickly
            await self._finish_pump(pump)
        except OSError as e:
            status, error = StepStatus.FAILED, e

        outcome = self._outcome(
            index, step, status, started_at=started_at, exit_code=exit_code, error=error
        )
        logger.info(
            f"Step {index} [{step.display_name}] {status}"
            + (f" (exit code {exit_code})" if exit_code is not None else "")
        )
        return outcome

    @asynccontextmanager
    async def _child_process(self, command: str, cwd: Path, env: Dict[str, str]):
        """
        Spawn a step process and guarantee its termination.

        The process leads its own process group; on every exit path the
        whole group is sent SIGTERM and, after ``kill_grace``, SIGKILL.
        """
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(cwd),
            env=env,
            start_new_session=True,
        )
        try:
            yield proc
        finally:
            await self._terminate(proc)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            self._signal_group(proc.pid, signal.SIGTERM)
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.kill_grace)
            except asyncio.TimeoutError:
                logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
                self._signal_group(proc.pid, signal.SIGKILL)
                await proc.wait()
        # Leftover background children of the step
        self._signal_group(proc.pid, signal.SIGKILL)

    @staticmethod
    def _signal_group(pgid: int, sig: int) -> None:
        try:
            os.killpg(pgid, sig)
        except (ProcessLookupError, PermissionError):
            pass

    async def _pump_output(self, proc: asyncio.subprocess.Process, index: int) -> None:
        """
        Copy merged stdout/stderr into the log buffer line by line.

        An unterminated line keeps only its last ``max_log_bytes`` characters
        while it grows.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        cut = False
        while True:
            chunk = await proc.stdout.read(65536)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = pending.split("\n")
            for line in lines:
                self._emit(index, line, truncated=cut)
                cut = False
            if len(pending) > self.max_log_bytes:
                pending = pending[-self.max_log_bytes:]
                cut = True
        pending += decoder.decode(b"", final=True)
        if pending:
            self._emit(index, pending, truncated=cut)

    def _emit(self, index: int, line: str, truncated: bool = False) -> None:
        line = line.rstrip("\r")
        self.log_buffer.write(index, line, truncated=truncated)
        logger.debug(f"[step {index}] {line[:200]}")

    async def _finish_pump(self, pump: asyncio.Task) -> None:
        try:
            await asyncio.wait_for(pump, timeout=self.kill_grace)
        except asyncio.TimeoutError:
            logger.warning("Step output did not close in time, dropping the rest")

    def _outcome(
        self,
        index: int,
        step: Step,
        status: StepStatus,
        started_at: Optional[datetime] = None,
        exit_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> StepOutcome:
        error_type = None
        if isinstance(error, TimeoutError):
            error_type = "TimeoutError"
        elif error is not None:
            error_type = type(error).__name__
        return StepOutcome(
            index=index,
            name=step.display_name,
            status=status,
            exit_code=exit_code,
            output=self.log_buffer.text(index) if self.log_buffer else "",
            error_type=error_type,
            error_message=str(error) if error is not None else None,
            continue_on_error=step.continue_on_error,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

    def _not_run(self, index: int, step: Step, status: StepStatus) -> StepOutcome:
        return StepOutcome(
            index=index,
            name=step.display_name,
            status=status,
            continue_on_error=step.continue_on_error,
        )

    def _prepare_workspace(self, job_id: str) -> Path:
        workspace = self.workspace_for(job_id)
        if workspace.exists():
            shutil.rmtree(workspace)
        workspace.mkdir(parents=True)
        return workspace

    @staticmethod
    def _resolve_cwd(workspace: Path, step: Step) -> Path:
        if not step.working_directory:
            return workspace
        return workspace / step.working_directory

    def _build_env(self, assignment: JobAssignment, workspace: Path) -> Dict[str, str]:
        """Runner base environment, overlaid by runner variables and the job env."""
        return {
            **self.base_env,
            "CI": "true",
            "ACTRUNNER_JOB_ID": assignment.job_id,
            "ACTRUNNER_WORKSPACE": str(workspace),
            **assignment.env,
        }
