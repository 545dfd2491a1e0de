"""Fixtures for API tests."""
import pytest
from fastapi.testclient import TestClient
from actrunner.core.enums import RunnerState
from actrunner.main import create_app
from actrunner.worker.runner_service import RunnerService


@pytest.fixture
def runner_service(controller, identity):
    """
    Runner service in the IDLE state, not polling.

    Args:
        controller: In-memory controller from root conftest
        identity: Runner identity from root conftest

    Returns:
        RunnerService: Service the status API reports on
    """
    service = RunnerService(controller, identity=identity)
    service.state_machine.transition(RunnerState.IDLE)
    return service


@pytest.fixture
def client(runner_service, session_factory):
    """
    Create FastAPI test client bound to a runner service and history database.

    Returns:
        TestClient: FastAPI test client
    """
    app = create_app(runner_service=runner_service, session_factory=session_factory)

    with TestClient(app) as test_client:
        yield test_client
