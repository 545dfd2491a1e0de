"""API dependencies for FastAPI."""
from typing import Generator, Optional
from fastapi import HTTPException, Request
from sqlalchemy.orm import Session
from actrunner.worker.runner_service import RunnerService


def get_runner_service(request: Request) -> Optional[RunnerService]:
    """
    Dependency to get the runner service the app reports on.

    Returns:
        Optional[RunnerService]: Service, or None when the app runs standalone
    """
    return getattr(request.app.state, "runner_service", None)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency to get a history database session.

    Yields:
        Session: SQLAlchemy database session

    Raises:
        HTTPException: If no history database is configured
    """
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        raise HTTPException(status_code=503, detail="Job history not available")

    db = session_factory()
    try:
        yield db
    finally:
        db.close()
