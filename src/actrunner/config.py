"""Configuration management for actrunner."""
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runner settings loaded from environment variables.

    All settings can be overridden via environment variables or a
    ``.env`` file in the working directory.
    """

    # Application
    APP_NAME: str = "actrunner"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Local state
    RUNNER_STATE_DIR: Path = Path.home() / ".actrunner"
    RUNNER_WORK_DIR: Optional[Path] = None  # Defaults to <state dir>/_work
    RUNNER_HISTORY_URL: Optional[str] = None  # Defaults to sqlite in state dir
    RUNNER_CLEAN_WORKSPACE: bool = True
    RUNNER_MAX_LOG_BYTES: int = 1024 * 1024  # Per step
    RUNNER_DEFAULT_LABELS: bool = True

    # Shutdown
    RUNNER_SHUTDOWN_GRACE: float = 30.0  # Seconds an in-flight job may keep running
    RUNNER_KILL_GRACE: float = 5.0  # Seconds between SIGTERM and SIGKILL of a step

    # Job polling
    POLL_WAIT_SECONDS: float = 30.0  # Server-side long-poll hold
    POLL_BACKOFF_BASE: float = 1.0
    POLL_BACKOFF_MAX: float = 60.0
    POLL_BACKOFF_JITTER: float = 0.1  # Fraction of the delay added at random
    POLL_MAX_RETRIES: int = 20  # Consecutive network failures before giving up

    # Status reporting
    REPORT_MAX_RETRIES: int = 5
    REPORT_BACKOFF_BASE: float = 0.5

    # Controller HTTP client
    CONTROLLER_TIMEOUT: float = 10.0

    # Local status API (0 disables)
    STATUS_HOST: str = "127.0.0.1"
    STATUS_PORT: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def work_dir(self) -> Path:
        """Directory under which per-job workspaces are created."""
        return self.RUNNER_WORK_DIR or self.RUNNER_STATE_DIR / "_work"

    @property
    def identity_file(self) -> Path:
        """Location of the persisted runner identity."""
        return self.RUNNER_STATE_DIR / ".runner"

    @property
    def history_url(self) -> str:
        """SQLAlchemy URL of the local job history database."""
        if self.RUNNER_HISTORY_URL:
            return self.RUNNER_HISTORY_URL
        return f"sqlite:///{self.RUNNER_STATE_DIR / 'history.db'}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Singleton settings instance
    """
    return Settings()
