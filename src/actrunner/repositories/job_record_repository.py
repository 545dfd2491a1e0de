"""Job record repository for local history operations."""
from typing import Optional, List, Dict
from datetime import datetime, timedelta, timezone
from sqlalchemy import func
from sqlalchemy.orm import Session
from actrunner.core.enums import JobOutcome
from actrunner.models.job_record import JobRecord
from actrunner.schemas.job import JobResult

# Output kept per step in the history; the full log lives only in the report
HISTORY_OUTPUT_CHARS = 4096


class JobRecordRepository:
    """Repository for JobRecord database operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def create_from_result(self, result: JobResult, runner_id: Optional[str] = None) -> JobRecord:
        """
        Store a finalized job result, replacing any earlier record of the job.

        Args:
            result: Finalized job result
            runner_id: Runner that executed the job

        Returns:
            JobRecord: Stored record

        Raises:
            ValueError: If the result is not final
        """
        if not result.is_final:
            raise ValueError(f"Result for job {result.job_id} is not final")

        steps = []
        for outcome in result.steps:
            data = outcome.model_dump(mode="json")
            data["output"] = data["output"][-HISTORY_OUTPUT_CHARS:]
            steps.append(data)

        record = self.get_by_id(result.job_id) or JobRecord(job_id=result.job_id)
        record.runner_id = runner_id
        record.outcome = result.outcome
        record.steps = steps
        record.step_count = len(steps)
        record.started_at = result.started_at
        record.completed_at = result.completed_at

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_by_id(self, job_id: str) -> Optional[JobRecord]:
        """
        Retrieve a record by job ID.

        Args:
            job_id: Job identifier

        Returns:
            Optional[JobRecord]: Record or None if not found
        """
        return self.db.query(JobRecord).filter(JobRecord.job_id == job_id).first()

    def mark_reported(self, job_id: str, error: Optional[str] = None) -> JobRecord:
        """
        Record whether the controller received the job result.

        Args:
            job_id: Job identifier
            error: Delivery error, None when delivered

        Returns:
            JobRecord: Updated record

        Raises:
            ValueError: If record not found
        """
        record = self.get_by_id(job_id)
        if not record:
            raise ValueError(f"Job record {job_id} not found")

        record.reported = error is None
        record.report_error = error
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_recent(self, limit: int = 20, outcome: Optional[JobOutcome] = None) -> List[JobRecord]:
        """
        Get the most recently completed jobs.

        Args:
            limit: Maximum number of records
            outcome: Optional outcome filter

        Returns:
            List[JobRecord]: Records, newest first
        """
        query = self.db.query(JobRecord)
        if outcome is not None:
            query = query.filter(JobRecord.outcome == outcome)
        return query.order_by(JobRecord.completed_at.desc()).limit(limit).all()

    def get_unreported(self) -> List[JobRecord]:
        """Get records the controller never acknowledged."""
        return self.db.query(JobRecord).filter(JobRecord.reported.is_(False)).all()

    def count_by_outcome(self) -> Dict[str, int]:
        """
        Count records per outcome.

        Returns:
            Dict[str, int]: Outcome value -> count (all outcomes present)
        """
        counts = {outcome.value: 0 for outcome in JobOutcome}
        rows = (
            self.db.query(JobRecord.outcome, func.count(JobRecord.job_id))
            .group_by(JobRecord.outcome)
            .all()
        )
        for outcome, count in rows:
            counts[JobOutcome(outcome).value] = count
        return counts

    def delete_older_than(self, max_age_seconds: int) -> int:
        """
        Delete records completed longer ago than the threshold.

        Args:
            max_age_seconds: Age after which records are removed

        Returns:
            int: Number of records deleted
        """
        threshold = datetime.now(timezone.utc) - timedelta(seconds=max_age_seconds)
        deleted = (
            self.db.query(JobRecord)
            .filter(JobRecord.completed_at.isnot(None), JobRecord.completed_at < threshold)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
