"""
Step catalogs — the steps each profile declares.

``build_steps`` dispatches on ``config.profile``.
"""

from __future__ import annotations

from hostprov.core.catalog.containers import build_containers_steps
from hostprov.core.catalog.nextcloud import build_nextcloud_steps
from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import HostFact
from hostprov.core.models.step import Step


def build_steps(
    config: DesiredConfig,
    facts: HostFact,
    credentials: CredentialRecord | None = None,
) -> list[Step]:
    """Applicable steps for the configured profile."""
    if config.profile == "nextcloud":
        return build_nextcloud_steps(config, credentials)
    if config.profile == "containers":
        return build_containers_steps(config, facts)
    raise PlanError(f"Unknown profile '{config.profile}'")


__all__ = ["build_steps"]
