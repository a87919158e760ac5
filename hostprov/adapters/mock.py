"""
Mock adapter — universal test double for all adapter operations.

Used by ``apply --mock`` and the test suite to exercise plans without
touching the host. Configurable to return success, failure, or custom
responses per action.
"""

from __future__ import annotations

from hostprov.adapters.base import Adapter, ExecutionContext
from hostprov.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter.

    By default, returns success for everything. ``set_failure`` and
    ``set_response`` configure individual action ids; a failure can be
    limited to the first ``times`` calls to model a transient error.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._remaining: dict[str, int] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, step_id: str) -> list[ExecutionContext]:
        """Calls made on behalf of one step."""
        return [c for c in self._call_log if c.action.for_step == step_id]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt, times: int | None = None) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = receipt
        if times is not None:
            self._remaining[action_id] = times

    def set_failure(self, action_id: str, error: str = "Mock failure", times: int | None = None) -> None:
        """Configure a specific action to fail (optionally only ``times`` times)."""
        self.set_response(
            action_id,
            Receipt.failure(adapter=self._name, action_id=action_id, error=error),
            times=times,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        if action_id in self._responses:
            remaining = self._remaining.get(action_id)
            if remaining is None:
                return self._responses[action_id]
            if remaining > 0:
                self._remaining[action_id] = remaining - 1
                return self._responses[action_id]

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._remaining.clear()
