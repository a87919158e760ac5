"""Certificate adapters."""

from hostprov.adapters.tls.certbot import CertbotAdapter

__all__ = ["CertbotAdapter"]
