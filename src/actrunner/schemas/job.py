"""Pydantic schemas for jobs, steps and their results."""
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator
from actrunner.core.enums import JobOutcome, StepStatus
from actrunner.schemas.identity import normalize_labels


class Step(BaseModel):
    """A single shell command inside a job."""

    command: str = Field(..., min_length=1, description="Shell command line")
    name: Optional[str] = Field(default=None, description="Display name (defaults to the command)")
    working_directory: Optional[str] = Field(
        default=None, description="Directory relative to the job workspace"
    )
    timeout: float = Field(default=3600.0, gt=0, description="Timeout in seconds")
    env: Dict[str, str] = Field(default_factory=dict, description="Step environment")
    continue_on_error: bool = Field(default=False, description="Keep going if this step fails")

    model_config = {"frozen": True}

    @property
    def display_name(self) -> str:
        return self.name or self.command


class JobAssignment(BaseModel):
    """
    A job dispatched by the controller to this runner.

    Consumed exactly once by the executor.
    """

    job_id: str = Field(..., min_length=1)
    steps: Tuple[Step, ...] = Field(default_factory=tuple)
    env: Dict[str, str] = Field(default_factory=dict)
    labels: FrozenSet[str] = Field(default_factory=frozenset, description="Labels the job requires")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "job_id": "build-42",
                    "labels": ["self-hosted", "riscv64"],
                    "env": {"CI": "true"},
                    "steps": [
                        {"name": "checkout", "command": "git clone $REPO src", "timeout": 300},
                        {"name": "build", "command": "make", "working_directory": "src"},
                    ],
                }
            ]
        },
    }

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value):
        return normalize_labels(value)


class StepOutcome(BaseModel):
    """Result of running (or not running) one step."""

    index: int = Field(..., ge=0)
    name: str
    status: StepStatus
    exit_code: Optional[int] = None
    output: str = ""
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    continue_on_error: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_failure(self) -> bool:
        """True when the step counts against the job outcome."""
        failed = self.status in (StepStatus.FAILED, StepStatus.TIMED_OUT)
        return failed and not self.continue_on_error

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class JobResult(BaseModel):
    """
    Accumulated result of a job.

    Built incrementally while steps run, finalized exactly once, then
    reported and discarded.
    """

    job_id: str
    steps: List[StepOutcome] = Field(default_factory=list)
    outcome: Optional[JobOutcome] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_final(self):
        if self.outcome is not None and self.completed_at is None:
            raise ValueError("a finalized result needs completed_at")
        return self

    @property
    def is_final(self) -> bool:
        return self.outcome is not None

    def add(self, outcome: StepOutcome) -> None:
        """
        Append a step outcome.

        Raises:
            RuntimeError: If the result is already finalized
        """
        if self.is_final:
            raise RuntimeError(f"Result for job {self.job_id} is already final")
        self.steps.append(outcome)

    def finalize(self, cancelled: bool = False, error: Optional[str] = None) -> JobOutcome:
        """
        Compute and freeze the overall outcome.

        Args:
            cancelled: Force the outcome to CANCELLED
            error: Runner-side error that aborted the job (forces FAILED)

        Returns:
            JobOutcome: The final outcome

        Raises:
            RuntimeError: If called more than once
        """
        if self.is_final:
            raise RuntimeError(f"Result for job {self.job_id} is already final")

        self.error = error
        if cancelled or any(s.status == StepStatus.CANCELLED for s in self.steps):
            outcome = JobOutcome.CANCELLED
        elif error is not None or any(s.is_failure for s in self.steps):
            outcome = JobOutcome.FAILED
        else:
            outcome = JobOutcome.SUCCEEDED

        self.completed_at = datetime.now(timezone.utc)
        self.outcome = outcome
        return outcome
