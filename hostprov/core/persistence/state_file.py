"""
State file persistence — atomic read/write for ProvisionState.

State is stored as JSON in ``<state_dir>/state.json``. Writes go to a
temp file in the same directory and are then renamed over the target.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from hostprov.core.models.outcome import PlanResult
from hostprov.core.models.state import ProvisionState, RunRecord

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "state.json"


def default_state_path(state_dir: Path) -> Path:
    """Get the state file path inside a state directory."""
    return state_dir / DEFAULT_STATE_FILE


def load_state(path: Path) -> ProvisionState:
    """Load provisioning state from a JSON file.

    Returns:
        ProvisionState. A missing or corrupt file gives a fresh state.
    """
    if not path.is_file():
        logger.info("No state file at %s, starting fresh", path)
        return ProvisionState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = ProvisionState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s, starting fresh", path, e)
        return ProvisionState()
    except (OSError, ValidationError) as e:
        logger.warning("Cannot load state from %s: %s, starting fresh", path, e)
        return ProvisionState()


def save_state(state: ProvisionState, path: Path) -> None:
    """Save provisioning state (atomic write)."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
        logger.debug("State saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise


def record_run(state: ProvisionState, result: PlanResult, hostname: str) -> ProvisionState:
    """Fold a run's outcomes into the state record."""
    state.hostname = hostname
    state.profile = result.profile
    state.last_run = RunRecord(
        run_id=result.run_id,
        profile=result.profile,
        started_at=result.started_at,
        ended_at=result.ended_at,
        status=result.status,
        exit_code=result.exit_code,
        applied=result.applied,
        skipped=result.skipped,
        failed=result.failed,
        aborted_at=result.aborted_at,
    )
    for outcome in result.outcomes:
        state.set_step_state(
            outcome.step_id,
            status=outcome.status,
            at=outcome.finished_at,
            attempts=outcome.attempts,
            message=outcome.message,
        )
    return state
