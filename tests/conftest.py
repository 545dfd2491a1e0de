"""Shared pytest fixtures for all tests."""
import pytest
from actrunner.config import get_settings
from actrunner.core.database import close_db, create_db_engine, init_db


@pytest.fixture(autouse=True)
def runner_env(tmp_path, monkeypatch):
    """
    Point all runner state at a temporary directory.

    Clears the cached settings before and after each test so environment
    changes made by a test never leak into the next one.
    """
    state_dir = tmp_path / "state"
    monkeypatch.setenv("RUNNER_STATE_DIR", str(state_dir))
    monkeypatch.setenv("RUNNER_WORK_DIR", str(tmp_path / "work"))
    monkeypatch.setenv("RUNNER_KILL_GRACE", "1")
    monkeypatch.setenv("STATUS_PORT", "0")
    get_settings.cache_clear()

    yield state_dir

    get_settings.cache_clear()
    close_db()


@pytest.fixture
def work_dir(tmp_path):
    """Directory for job workspaces."""
    path = tmp_path / "work"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def history_engine(tmp_path):
    """
    Create a SQLite history database for a test.

    Tables are created on setup and the engine disposed on teardown.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'history.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(history_engine):
    """Session factory bound to the test history database."""
    return init_db(history_engine)


@pytest.fixture
def db_session(session_factory):
    """A history database session, closed after the test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def identity():
    """A registered runner identity."""
    from actrunner.schemas.identity import RunnerIdentity

    return RunnerIdentity(
        id="runner-1",
        name="test-runner",
        labels={"self-hosted", "linux", "riscv64"},
        credential="secret-credential",
        url="http://controller.test",
    )


@pytest.fixture
def controller(identity):
    """In-memory controller that already knows the ``identity`` runner."""
    from tests.factories.fake_controller import FakeController

    fake = FakeController()
    fake.add_runner(identity)
    return fake
