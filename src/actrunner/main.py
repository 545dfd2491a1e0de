"""FastAPI application factory for the local runner status API."""
from typing import Optional
from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker
from actrunner.config import get_settings
from actrunner.api.v1 import health, jobs, metrics
from actrunner.worker.runner_service import RunnerService

API_V1_PREFIX = "/api/v1"


def create_app(
    runner_service: Optional[RunnerService] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    """
    Create and configure the status API application.

    Args:
        runner_service: Service whose state is reported
        session_factory: Session factory of the local job history

    Returns:
        FastAPI: Configured FastAPI application
    """
    settings = get_settings()
    app = FastAPI(
        title=f"{settings.APP_NAME} status",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
    )
    app.state.runner_service = runner_service
    app.state.session_factory = session_factory

    # Include routers
    app.include_router(health.router, prefix=API_V1_PREFIX, tags=["health"])
    app.include_router(jobs.router, prefix=API_V1_PREFIX)
    app.include_router(metrics.router, prefix=API_V1_PREFIX)

    return app
