"""
Secrets generator — random credentials for a fresh host.

Values come from the operating system's CSPRNG via ``secrets`` and
nothing else: no hostname, no timestamp, no counter.
"""

from __future__ import annotations

import logging
import secrets

from pydantic import SecretStr

from hostprov.core.models.credentials import CredentialRecord

logger = logging.getLogger(__name__)

MIN_ENTROPY_BYTES = 16
DEFAULT_BYTES = 32


def generate(nbytes: int = DEFAULT_BYTES) -> str:
    """Return a URL-safe random secret with ``nbytes`` bytes of entropy.

    Raises:
        ValueError: If ``nbytes`` is below MIN_ENTROPY_BYTES.
    """
    if nbytes < MIN_ENTROPY_BYTES:
        raise ValueError(
            f"Refusing to generate a secret with {nbytes} bytes of entropy "
            f"(minimum {MIN_ENTROPY_BYTES})"
        )
    return secrets.token_urlsafe(nbytes)


def generate_credentials(
    admin_user: str = "admin",
    admin_password: SecretStr | str | None = None,
    nbytes: int = DEFAULT_BYTES,
) -> CredentialRecord:
    """Generate a full credential set.

    An operator-supplied admin password is kept; every other value is
    generated.
    """
    if isinstance(admin_password, str):
        admin_password = SecretStr(admin_password)
    record = CredentialRecord(
        admin_user=admin_user,
        admin_password=admin_password or SecretStr(generate(nbytes)),
        db_password=SecretStr(generate(nbytes)),
        mysql_root_password=SecretStr(generate(nbytes)),
    )
    logger.debug("Generated credentials for admin user '%s'", admin_user)
    return record
