"""
Apply log — append-only record of every step outcome.

One NDJSON line per step per run, written as the step finishes, so an
interrupted run still leaves a trail of what was applied. Entries are
never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from hostprov.core.models.outcome import StepOutcome

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "apply.ndjson"


class ApplyRecord(BaseModel):
    """A single apply log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    profile: str = ""

    step_id: str = ""
    status: str = ""               # applied, skipped, failed
    message: str = ""
    attempts: int = 0
    duration_ms: int = 0
    error_kind: str | None = None

    @classmethod
    def from_outcome(cls, outcome: StepOutcome, run_id: str, profile: str) -> ApplyRecord:
        return cls(
            run_id=run_id,
            profile=profile,
            step_id=outcome.step_id,
            status=outcome.status,
            message=outcome.message,
            attempts=outcome.attempts,
            duration_ms=outcome.duration_ms,
            error_kind=outcome.error_kind,
        )


def default_log_path(state_dir: Path) -> Path:
    return state_dir / DEFAULT_LOG_FILE


class ApplyLog:
    """Append-only apply log writer.

    Each call to ``append()`` writes one JSON line. The file is created
    if it doesn't exist.
    """

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: ApplyRecord) -> None:
        """Append one record.

        Raises:
            OSError: If the log cannot be written. A run that cannot
                record what it did must not carry on silently.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)

        data = record.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)
        logger.debug("Apply record written: %s/%s=%s", record.run_id, record.step_id, record.status)

    def read_all(self) -> list[ApplyRecord]:
        """Read all records, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        records = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        records.append(ApplyRecord.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt apply record at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read apply log: %s", e)

        return records

    def read_recent(self, n: int = 20) -> list[ApplyRecord]:
        """Read the most recent N records."""
        if n <= 0:
            return []
        return self.read_all()[-n:]

    def read_run(self, run_id: str) -> list[ApplyRecord]:
        """All records of one run."""
        return [r for r in self.read_all() if r.run_id == run_id]

    def entry_count(self) -> int:
        """Count records without parsing them."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
