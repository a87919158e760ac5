"""
ProvisionState — the state record for a host.

Serialized to ``<state_dir>/state.json`` after every run. It summarizes
the last run and the last known status of every step; the apply log
keeps the full history.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepState(BaseModel):
    """Last known status of one step."""

    status: str = ""               # applied, skipped, failed
    at: str = ""
    attempts: int = 0
    message: str = ""


class RunRecord(BaseModel):
    """Summary of the last run."""

    run_id: str = ""
    profile: str = ""
    started_at: str = ""
    ended_at: str = ""
    status: str = ""               # ok, degraded, failed, interrupted
    exit_code: int = 0
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    aborted_at: str | None = None


class ProvisionState(BaseModel):
    """Root state model — serialized to state.json."""

    schema_version: int = 1

    hostname: str = ""
    profile: str = ""

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    last_run: RunRecord = Field(default_factory=RunRecord)
    steps: dict[str, StepState] = Field(default_factory=dict)

    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def set_step_state(self, step_id: str, **kwargs: Any) -> None:
        """Update or create a step state entry."""
        if step_id in self.steps:
            for key, value in kwargs.items():
                setattr(self.steps[step_id], key, value)
        else:
            self.steps[step_id] = StepState(**kwargs)
