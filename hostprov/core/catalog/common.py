"""Helpers shared by the step catalogs."""

from __future__ import annotations

from typing import Any

from pydantic import SecretStr

from hostprov.core.models.action import Action
from hostprov.core.models.credentials import CredentialRecord


def actions(step_id: str, *specs: tuple[str, dict[str, Any]]) -> tuple[Action, ...]:
    """Number ``(adapter, params)`` pairs as ``<step id>:<n>`` actions."""
    return tuple(
        Action(id=f"{step_id}:{n}", adapter=adapter, params=params, for_step=step_id)
        for n, (adapter, params) in enumerate(specs, start=1)
    )


def secret(credentials: CredentialRecord | None, field: str) -> SecretStr:
    """A credential value; empty when planning without credentials."""
    if credentials is None:
        return SecretStr("")
    return getattr(credentials, field)
