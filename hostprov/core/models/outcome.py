"""
Outcome models — what happened to each step in a run.

StepOutcome is the per-step record; PlanResult collects them for one
run and derives the process exit code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

StepStatus = Literal["applied", "skipped", "failed"]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StepOutcome(BaseModel):
    """Result of executing (or skipping) one planned step."""

    step_id: str
    status: StepStatus
    message: str = ""
    attempts: int = 0
    duration_ms: int = 0
    error_kind: str | None = None   # ActionFailed, PostconditionUnmet, ...
    output: str = ""                # captured command output, failures only
    required: bool = True
    finished_at: str = Field(default_factory=_now_iso)

    @property
    def applied(self) -> bool:
        return self.status == "applied"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


@dataclass
class PlanResult:
    """Ordered outcomes of one run."""

    run_id: str = ""
    profile: str = ""
    outcomes: list[StepOutcome] = field(default_factory=list)
    aborted_at: str | None = None
    not_attempted: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now_iso)
    ended_at: str = ""

    @property
    def applied(self) -> int:
        return sum(1 for o in self.outcomes if o.applied)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def required_failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.failed and o.required]

    @property
    def exit_code(self) -> int:
        """0 when every required step applied or was already satisfied."""
        return 1 if self.required_failures else 0

    @property
    def status(self) -> str:
        if self.required_failures:
            return "failed"
        if self.failed:
            return "degraded"
        return "ok"

    def outcome(self, step_id: str) -> StepOutcome | None:
        for o in self.outcomes:
            if o.step_id == step_id:
                return o
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "profile": self.profile,
            "status": self.status,
            "exit_code": self.exit_code,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "aborted_at": self.aborted_at,
            "not_attempted": list(self.not_attempted),
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }
