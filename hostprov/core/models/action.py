"""
Action and Receipt models — the adapter contract.

A step wraps one or more Actions. Each Action names the adapter that
performs it and carries that adapter's params. Adapters answer with a
Receipt and never raise: a failed command is a Receipt with
status='failed', not an exception.

Secret params are carried as ``pydantic.SecretStr`` so that dumping an
Action (logs, JSON output) never reveals them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """One external operation requested by a step."""

    id: str                         # "<step id>:<n>"
    adapter: str                    # which adapter handles this
    params: dict[str, Any] = Field(default_factory=dict)
    for_step: str | None = None

    def secret_values(self) -> list[str]:
        """Plaintext values of all SecretStr params (for log redaction)."""
        found: list[str] = []
        for value in self.params.values():
            if isinstance(value, SecretStr):
                found.append(value.get_secret_value())
            elif isinstance(value, (list, tuple)):
                found.extend(v.get_secret_value() for v in value if isinstance(v, SecretStr))
        return [v for v in found if v]


class Receipt(BaseModel):
    """Outcome of a single adapter call.

    ``output`` holds captured stdout; ``error`` holds stderr or a
    description of what went wrong. ``metadata`` carries adapter-specific
    detail such as the return code or ``dependency_missing``.
    """

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def dependency_missing(self) -> bool:
        """True when the adapter's underlying tool is not installed."""
        return bool(self.metadata.get("dependency_missing"))

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def missing_dependency(cls, adapter: str, action_id: str, tool: str) -> Receipt:
        """Create a failure receipt for an absent external tool."""
        return cls.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Required tool '{tool}' is not installed",
            metadata={"dependency_missing": True, "tool": tool},
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
