"""Job record model: local bookkeeping of executed jobs."""
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Text,
    DateTime,
    JSON,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column
from actrunner.core.database import Base
from actrunner.core.enums import JobOutcome
from actrunner.models.base import TimestampMixin


class JobRecord(Base, TimestampMixin):
    """
    A job this runner executed.

    Written once the job result is final, whether or not the controller
    acknowledged it, so the local history always reflects what ran.
    """

    __tablename__ = "job_records"

    job_id: Mapped[str] = mapped_column(String(255), primary_key=True, nullable=False)
    runner_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    outcome: Mapped[JobOutcome] = mapped_column(
        SQLEnum(JobOutcome, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )

    # Per-step outcomes as serialized StepOutcome dicts (output trimmed)
    steps: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    step_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    # Controller delivery
    reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    report_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<JobRecord(job_id={self.job_id}, outcome={self.outcome}, reported={self.reported})>"
