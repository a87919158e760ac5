"""
CredentialRecord — generated secrets for one host.

Written once to a protected file, then only ever loaded. Values are
``SecretStr`` so repr, logging and JSON dumps show them masked; the
plaintext form is produced only by ``to_file_dict`` for the credentials
file itself.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, SecretStr


class CredentialRecord(BaseModel):
    """Secrets the operator needs to keep."""

    admin_user: str = "admin"
    admin_password: SecretStr
    db_password: SecretStr
    mysql_root_password: SecretStr
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_file_dict(self) -> dict[str, Any]:
        """Plaintext mapping, for the credentials file only."""
        return {
            "admin_user": self.admin_user,
            "admin_password": self.admin_password.get_secret_value(),
            "db_password": self.db_password.get_secret_value(),
            "mysql_root_password": self.mysql_root_password.get_secret_value(),
            "created_at": self.created_at,
        }
