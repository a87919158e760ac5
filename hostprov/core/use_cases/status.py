"""
Status use case — last run from the state record, recent apply log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hostprov.core.models.state import ProvisionState
from hostprov.core.persistence.apply_log import ApplyLog, ApplyRecord, default_log_path
from hostprov.core.persistence.state_file import default_state_path, load_state


@dataclass
class StatusResult:
    """State record summary plus the records of the last run."""

    state: ProvisionState
    state_path: Path
    last_run_records: list[ApplyRecord] = field(default_factory=list)

    @property
    def provisioned(self) -> bool:
        return bool(self.state.last_run.run_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state_file": str(self.state_path),
            "hostname": self.state.hostname,
            "profile": self.state.profile,
            "updated_at": self.state.updated_at,
            "last_run": self.state.last_run.model_dump(mode="json"),
            "steps": {k: v.model_dump(mode="json") for k, v in self.state.steps.items()},
        }


def get_status(state_dir: Path) -> StatusResult:
    state_path = default_state_path(state_dir)
    state = load_state(state_path)
    result = StatusResult(state=state, state_path=state_path)
    if state.last_run.run_id:
        result.last_run_records = ApplyLog(default_log_path(state_dir)).read_run(state.last_run.run_id)
    return result


def recent_records(state_dir: Path, n: int = 20) -> list[ApplyRecord]:
    return ApplyLog(default_log_path(state_dir)).read_recent(n)
