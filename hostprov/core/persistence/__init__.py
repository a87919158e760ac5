"""Persistence — apply log, state record and credential store."""

from hostprov.core.persistence.apply_log import ApplyLog, ApplyRecord, default_log_path
from hostprov.core.persistence.credentials import (
    CredentialError,
    CredentialStore,
    default_credentials_path,
    ensure_state_dir,
)
from hostprov.core.persistence.state_file import (
    default_state_path,
    load_state,
    record_run,
    save_state,
)

__all__ = [
    "ApplyLog",
    "ApplyRecord",
    "CredentialError",
    "CredentialStore",
    "default_credentials_path",
    "default_log_path",
    "default_state_path",
    "ensure_state_dir",
    "load_state",
    "record_run",
    "save_state",
]
