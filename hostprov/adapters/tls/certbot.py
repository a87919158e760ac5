"""Certbot adapter — Let's Encrypt certificates through the Apache plugin."""

from __future__ import annotations

import logging

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class CertbotAdapter(CommandAdapter):
    """Issue a certificate and install it in an SSL vhost.

    The port-80 vhost is ours: it carries the HTTPS redirect itself, so
    certbot runs with ``--no-redirect`` and leaves that file untouched.

    Action params:
        operation (str): issue
        domain (str): Certificate name.
        email (str): Registration contact.
    """

    tool = "certbot"
    operations = frozenset({"issue"})
    required_params = {"issue": ("domain", "email")}

    @property
    def name(self) -> str:
        return "certbot"

    def _op_issue(self, context: ExecutionContext) -> Receipt:
        domain = context.param("domain")
        logger.info("Requesting certificate for %s", domain)
        return self.run_receipt(
            context,
            [
                "certbot", "--apache",
                "-d", domain,
                "--agree-tos",
                "-m", context.param("email"),
                "--non-interactive",
                "--no-redirect",
            ],
        )
