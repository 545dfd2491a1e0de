"""Health check API endpoint."""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from actrunner.api.deps import get_runner_service
from actrunner.api.schemas.response import StandardResponse, ResponseCodes
from actrunner.api.schemas.status import HealthData, RunnerStats
from actrunner.core.enums import RunnerState
from actrunner.worker.runner_service import RunnerService

router = APIRouter()


def _history_status(request: Request) -> str:
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        return "disabled"
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
        return "connected"
    except SQLAlchemyError:
        return "disconnected"


@router.get("/health", response_model=StandardResponse[HealthData])
def health_check(
    request: Request,
    service: Optional[RunnerService] = Depends(get_runner_service),
) -> StandardResponse[HealthData]:
    """
    Health check endpoint.

    Returns:
        StandardResponse: Runner state, identity, job counters and history status
    """
    history = _history_status(request)

    if service is None:
        state = RunnerState.UNREGISTERED
        stats = RunnerStats(processed=0, succeeded=0, failed=0, cancelled=0)
        identity = None
        current_job_id = None
    else:
        state = service.state
        stats = RunnerStats(
            processed=service.jobs_processed,
            succeeded=service.jobs_succeeded,
            failed=service.jobs_failed,
            cancelled=service.jobs_cancelled,
        )
        identity = service.identity
        current_job_id = service.current_job_id

    overall_status = "healthy"
    if state not in (RunnerState.IDLE, RunnerState.EXECUTING) or history == "disconnected":
        overall_status = "unhealthy"

    health_data = HealthData(
        status=overall_status,
        state=state,
        runner_id=identity.id if identity else None,
        runner_name=identity.name if identity else None,
        labels=sorted(identity.labels) if identity else [],
        current_job_id=current_job_id,
        jobs=stats,
        history=history,
    )

    return StandardResponse(
        data=health_data,
        code=ResponseCodes.HEALTH_OK,
        httpStatus="OK",
        description="Health check completed successfully",
    )
