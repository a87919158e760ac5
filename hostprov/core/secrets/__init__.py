"""Random credential generation."""

from hostprov.core.secrets.generator import (
    DEFAULT_BYTES,
    MIN_ENTROPY_BYTES,
    generate,
    generate_credentials,
)

__all__ = ["DEFAULT_BYTES", "MIN_ENTROPY_BYTES", "generate", "generate_credentials"]
