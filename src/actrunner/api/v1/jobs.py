"""Local job history API endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from actrunner.api.deps import get_db
from actrunner.api.schemas.response import StandardResponse, ResponseCodes
from actrunner.api.schemas.status import JobHistoryData, JobRecordResponse
from actrunner.core.enums import JobOutcome
from actrunner.repositories.job_record_repository import JobRecordRepository

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=StandardResponse[JobHistoryData])
def list_jobs(
    limit: int = Query(default=20, ge=1, le=500),
    outcome: Optional[JobOutcome] = None,
    db: Session = Depends(get_db),
) -> StandardResponse[JobHistoryData]:
    """
    List recently executed jobs, newest first.

    Args:
        limit: Maximum number of jobs
        outcome: Optional outcome filter
    """
    repo = JobRecordRepository(db)
    records = repo.get_recent(limit=limit, outcome=outcome)

    return StandardResponse(
        data=JobHistoryData(
            jobs=[JobRecordResponse.model_validate(r) for r in records],
            totals=repo.count_by_outcome(),
        ),
        code=ResponseCodes.JOBS_RETRIEVED,
        httpStatus="OK",
        description=f"Retrieved {len(records)} jobs",
    )


@router.get("/{job_id}", response_model=StandardResponse[JobRecordResponse])
def get_job(job_id: str, db: Session = Depends(get_db)) -> StandardResponse[JobRecordResponse]:
    """
    Get one job from the local history.

    Raises:
        HTTPException: 404 if the job is unknown
    """
    record = JobRecordRepository(db).get_by_id(job_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )

    return StandardResponse(
        data=JobRecordResponse.model_validate(record),
        code=ResponseCodes.JOB_RETRIEVED,
        httpStatus="OK",
        description="Job retrieved successfully",
    )
