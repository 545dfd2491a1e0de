"""Pydantic schemas for the runner status API."""
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel
from actrunner.core.enums import JobOutcome, RunnerState


class RunnerStats(BaseModel):
    """Job counters of the running service."""

    processed: int
    succeeded: int
    failed: int
    cancelled: int


class HealthData(BaseModel):
    """Health check data model."""

    status: str
    state: RunnerState
    runner_id: Optional[str] = None
    runner_name: Optional[str] = None
    labels: List[str] = []
    current_job_id: Optional[str] = None
    jobs: RunnerStats
    history: str


class JobRecordResponse(BaseModel):
    """A job from the local history."""

    job_id: str
    runner_id: Optional[str]
    outcome: JobOutcome
    step_count: int
    steps: List[Dict[str, Any]]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    reported: bool
    report_error: Optional[str]

    model_config = {
        "from_attributes": True,  # Pydantic v2: allow ORM model conversion
    }


class JobHistoryData(BaseModel):
    """Recent jobs plus per-outcome totals."""

    jobs: List[JobRecordResponse]
    totals: Dict[str, int]
