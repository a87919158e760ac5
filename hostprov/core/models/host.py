"""
HostFact — read-only snapshot of observed host state.

Facts are tri-state: True (observed present), False (observed absent)
and None (unknown: the probe could not tell, e.g. the tool it needs is
not installed yet). Keys are namespaced strings such as
``pkg:apache2`` or ``db:nextcloud``; see ``core.probe.facts`` for the
full list.

A snapshot is immutable. Re-probing produces a new snapshot via
``merged()``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

FactValue = bool | None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class HostFact(BaseModel):
    """Snapshot of facts taken at one point in time."""

    model_config = ConfigDict(frozen=True)

    os_id: str = ""
    os_version: str = ""
    codename: str = ""
    arch: str = ""
    facts: dict[str, FactValue] = Field(default_factory=dict)
    probed_at: str = Field(default_factory=_now_iso)

    def get(self, key: str) -> FactValue:
        """Value of a fact; keys never probed count as unknown."""
        return self.facts.get(key)

    def merged(self, updates: Mapping[str, FactValue] | HostFact) -> HostFact:
        """Return a new snapshot with ``updates`` overriding existing facts."""
        if isinstance(updates, HostFact):
            values = dict(updates.facts)
            os_fields = {
                name: getattr(updates, name) or getattr(self, name)
                for name in ("os_id", "os_version", "codename", "arch")
            }
        else:
            values = dict(updates)
            os_fields = {}
        facts = {**self.facts, **values}
        return self.model_copy(update={"facts": facts, "probed_at": _now_iso(), **os_fields})

    def unknown(self) -> list[str]:
        """Keys whose value could not be determined."""
        return sorted(k for k, v in self.facts.items() if v is None)


@dataclass(frozen=True)
class Condition:
    """A conjunction of facts that must all be True.

    ``evaluate`` returns False as soon as any fact is observed absent,
    None if none are absent but some are unknown, and True otherwise.
    A condition with no facts cannot be checked and evaluates to None.
    """

    facts: tuple[str, ...] = ()
    reason: str = ""

    @classmethod
    def of(cls, *keys: str, reason: str = "") -> Condition:
        return cls(facts=tuple(keys), reason=reason)

    @classmethod
    def all_of(cls, keys: Iterable[str], reason: str = "") -> Condition:
        return cls(facts=tuple(keys), reason=reason)

    def evaluate(self, host: HostFact) -> FactValue:
        if not self.facts:
            return None
        values = [host.get(key) for key in self.facts]
        if any(v is False for v in values):
            return False
        if any(v is None for v in values):
            return None
        return True

    def unmet(self, host: HostFact) -> list[str]:
        """Facts observed absent."""
        return [key for key in self.facts if host.get(key) is False]

    def unknown(self, host: HostFact) -> list[str]:
        """Facts that could not be determined."""
        return [key for key in self.facts if host.get(key) is None]
