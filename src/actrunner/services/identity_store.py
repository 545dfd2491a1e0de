"""Durable storage of the runner identity for restart recovery."""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from actrunner.core.exceptions import RunnerConfigError
from actrunner.schemas.identity import RunnerIdentity

logger = logging.getLogger(__name__)


class IdentityStore:
    """
    Persists the runner identity and credential to a local file.

    The file is written atomically and is readable only by the owning user.
    """

    FILE_MODE = 0o600

    def __init__(self, path: Path):
        """
        Initialize identity store.

        Args:
            path: Location of the identity file
        """
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, identity: RunnerIdentity) -> None:
        """
        Write the identity, replacing any previous one.

        Args:
            identity: Identity to persist
        """
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        fd, tmp_name = tempfile.mkstemp(prefix=".runner-", dir=self.path.parent)
        try:
            os.fchmod(fd, self.FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(identity.model_dump_json(indent=2))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(f"Saved runner identity {identity.id} to {self.path}")

    def load(self) -> Optional[RunnerIdentity]:
        """
        Read the stored identity.

        Returns:
            Optional[RunnerIdentity]: Stored identity or None if absent

        Raises:
            RunnerConfigError: If the file exists but cannot be parsed
        """
        if not self.exists():
            return None

        mode = self.path.stat().st_mode & 0o777
        if mode & 0o077:
            logger.warning(
                f"Identity file {self.path} is accessible by other users "
                f"(mode {oct(mode)}), tightening to {oct(self.FILE_MODE)}"
            )
            os.chmod(self.path, self.FILE_MODE)

        try:
            return RunnerIdentity.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RunnerConfigError(f"Corrupt runner identity file {self.path}: {e}") from e

    def clear(self) -> bool:
        """
        Delete the stored identity.

        Returns:
            bool: True if a file was removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Removed runner identity file {self.path}")
        return True
