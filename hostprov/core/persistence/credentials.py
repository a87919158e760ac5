"""
Credential store — the one place generated secrets are written.

The file is created exactly once, with mode 0600 and O_EXCL so that a
concurrent or repeated run can never overwrite credentials the host is
already using. Later runs only load it.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.secrets.generator import generate_credentials

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_FILE = "credentials.json"
FILE_MODE = 0o600
DIR_MODE = 0o700


class CredentialError(Exception):
    """Raised when an existing credentials file cannot be read."""


def default_credentials_path(state_dir: Path) -> Path:
    return state_dir / DEFAULT_CREDENTIALS_FILE


def ensure_state_dir(path: Path) -> Path:
    """Create the state directory if needed and restrict it to mode 0700."""
    path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    # mkdir leaves an existing directory's mode alone
    os.chmod(path, DIR_MODE)
    return path


class CredentialStore:
    """Write-once credential file."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> CredentialRecord:
        """Load the stored record.

        Raises:
            CredentialError: If the file is missing or unreadable.
        """
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return CredentialRecord.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise CredentialError(f"Cannot load credentials from {self._path}: {e}") from e

    def create(self, record: CredentialRecord) -> None:
        """Write the record to a new file.

        Raises:
            FileExistsError: If the file already exists.
        """
        self._path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        content = json.dumps(record.to_file_dict(), indent=2) + "\n"

        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        # umask may have narrowed the mode; make it exact
        os.chmod(self._path, FILE_MODE)
        logger.info("Credentials written to %s", self._path)

    def load_or_create(self, config: DesiredConfig) -> tuple[CredentialRecord, bool]:
        """Return the stored record, generating it on first use.

        Returns:
            (record, created). ``created`` is True only on the run that
            generated the values, the only run that should display them.
        """
        if self.exists():
            logger.debug("Using existing credentials from %s", self._path)
            record = self.load()
            if (
                config.admin_password is not None
                and config.admin_password.get_secret_value() != record.admin_password.get_secret_value()
            ):
                logger.warning(
                    "Stored credentials in %s take precedence; ignoring the configured admin password",
                    self._path,
                )
            return record, False

        record = generate_credentials(config.admin_user, config.admin_password)
        self.create(record)
        return record, True
