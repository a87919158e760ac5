"""
Step model — one idempotent unit of provisioning.

A Step declares what it checks (``check``), what it does (``actions``),
how it recovers from failure (``policy``) and what must hold afterwards
(``verify``). Steps are frozen dataclasses and compare by value, so two
plans built from the same inputs are equal.

Ordering is explicit: ``phase`` gives the coarse order
(packages before configuration before app install before certificates)
and ``requires`` names hard dependencies on other steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Literal

from hostprov.core.models.action import Action
from hostprov.core.models.host import Condition


class Phase(IntEnum):
    """Coarse provisioning phases, in execution order."""

    PACKAGES = 10
    REPOSITORIES = 20
    STORAGE = 30
    DATABASE = 40
    WEBAPP = 50
    WEBSERVER = 60
    TLS = 70
    SERVICES = 80


@dataclass(frozen=True)
class RecoveryPolicy:
    """What the executor does when a step fails.

    ``retries`` extra attempts are made with exponential backoff
    (``backoff`` seconds doubling per attempt, capped at ``max_delay``).
    When attempts are exhausted, ``on_exhausted`` decides: "abort" halts
    the run with a non-zero exit code, "skip" logs a warning and
    continues.
    """

    retries: int = 0
    backoff: float = 2.0
    max_delay: float = 60.0
    on_exhausted: Literal["skip", "abort"] = "abort"

    @classmethod
    def abort(cls, retries: int = 0, backoff: float = 2.0) -> RecoveryPolicy:
        return cls(retries=retries, backoff=backoff, on_exhausted="abort")

    @classmethod
    def skip(cls, retries: int = 0, backoff: float = 2.0) -> RecoveryPolicy:
        return cls(retries=retries, backoff=backoff, on_exhausted="skip")

    @property
    def required(self) -> bool:
        return self.on_exhausted == "abort"

    @property
    def label(self) -> str:
        if self.retries:
            return f"retry-{self.retries}/{self.on_exhausted}"
        return self.on_exhausted


@dataclass(frozen=True)
class Step:
    """A declared provisioning step.

    Attributes:
        id: Stable dotted identifier (``packages.database``).
        description: One line for humans.
        phase: Coarse ordering bucket.
        actions: External operations, run in order.
        check: Facts that, when all True, mean the step is already done.
        verify: Postcondition re-probed after the actions (default: check).
        gate: Applicability condition; False marks the step skipped.
        requires: Ids of steps that must come first.
        triggers: When set, the step runs only if one of these applied.
        policy: Failure handling.
        destructive: Re-probe ``check`` right before acting.
        finalizer: Still runs after an abort (if its triggers applied).
        timeout: Per-action timeout in seconds.
    """

    id: str
    description: str
    phase: Phase
    actions: tuple[Action, ...] = ()
    check: Condition = field(default_factory=Condition)
    verify: Condition | None = None
    gate: Condition | None = None
    requires: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    policy: RecoveryPolicy = field(default_factory=RecoveryPolicy)
    destructive: bool = False
    finalizer: bool = False
    timeout: int = 600

    @property
    def postcondition(self) -> Condition:
        return self.verify if self.verify is not None else self.check

    def fact_keys(self) -> list[str]:
        """Every fact this step reads, in declaration order."""
        keys: list[str] = list(self.check.facts)
        if self.verify is not None:
            keys.extend(self.verify.facts)
        if self.gate is not None:
            keys.extend(self.gate.facts)
        return list(dict.fromkeys(keys))


@dataclass(frozen=True)
class PlannedStep:
    """A step with the planner's decision attached.

    ``disposition`` is "run" or "skip". Skipped steps stay in the plan so
    the apply log is a complete audit trail. ``unknown`` lists check
    facts the probe could not determine (the step is still attempted).
    """

    step: Step
    disposition: Literal["run", "skip"]
    reason: str = ""
    unknown: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.step.id

    def to_dict(self) -> dict:
        return {
            "id": self.step.id,
            "description": self.step.description,
            "phase": self.step.phase.name.lower(),
            "disposition": self.disposition,
            "reason": self.reason,
            "policy": self.step.policy.label,
            "requires": list(self.step.requires),
            "unknown": list(self.unknown),
        }
