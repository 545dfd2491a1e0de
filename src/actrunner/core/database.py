"""Database connection and session management for local job history."""
from pathlib import Path
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from actrunner.config import get_settings

# Base class for declarative models
Base = declarative_base()

# Engine and session factory (singletons, created on first use)
_engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite parent directories are created and the connection is made
    usable from worker threads.

    Args:
        url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        Engine: Database engine
    """
    parsed = make_url(url)
    connect_args = {}
    if parsed.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)


def init_db(engine: Engine) -> sessionmaker:
    """
    Create tables and return a session factory bound to the engine.

    Args:
        engine: Database engine

    Returns:
        sessionmaker: Session factory
    """
    # Import models to register them with Base
    from actrunner.models.job_record import JobRecord  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session_factory() -> sessionmaker:
    """
    Get the session factory for the configured history database.

    Returns:
        sessionmaker: Singleton session factory
    """
    global _engine, SessionLocal
    if SessionLocal is None:
        settings = get_settings()
        _engine = create_db_engine(settings.history_url, echo=settings.DEBUG)
        SessionLocal = init_db(_engine)
    return SessionLocal


def close_db() -> None:
    """Dispose of the engine and clear the singletons."""
    global _engine, SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal = None

