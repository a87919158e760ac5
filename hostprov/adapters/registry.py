"""
Adapter registry — the executor's only way to reach an adapter.

Every action names an adapter (``apt``, ``mysql``, ``docker`` ...). The
registry resolves it, checks the adapter's tool is installed, validates
the action's params and runs it. Whatever happens, the caller gets a
Receipt back.

In mock mode every action goes to one mock adapter (or succeeds with a
placeholder receipt when none is given), so a whole profile can run
without touching the host.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from hostprov.adapters.base import Adapter, ExecutionContext
from hostprov.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters by name, plus mock-mode routing."""

    def __init__(self, mock_mode: bool = False, mock_adapter: Adapter | None = None):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter %s (tool: %s)", adapter.name, adapter.tool or "-")

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Whether each adapter's external tool is installed."""
        return {
            name: {
                "available": self._is_available(adapter),
                "tool": adapter.tool,
                "type": type(adapter).__name__,
            }
            for name, adapter in self._adapters.items()
        }

    # ── Dispatch ────────────────────────────────────────────────

    def execute_action(self, action: Action, timeout: int = 600, dry_run: bool = False) -> Receipt:
        """Run one action and describe what happened.

        Never raises: an unknown adapter, a missing tool, invalid params
        and adapter exceptions all come back as failed receipts.
        """
        start = time.monotonic()
        context = ExecutionContext(action=action, dry_run=dry_run, timeout=timeout, params=action.params)

        if self._mock_mode and self._mock_adapter is None:
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.id} executed",
                metadata={"mock": True, "dry_run": dry_run},
            )

        adapter = self._mock_adapter if self._mock_mode else self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(action.adapter, action.id, f"No adapter registered for '{action.adapter}'")

        if not self._is_available(adapter):
            return Receipt.missing_dependency(action.adapter, action.id, adapter.tool or adapter.name)

        receipt = self._validated(adapter, context)
        if receipt is None:
            if dry_run:
                receipt = Receipt.skip(
                    adapter=action.adapter,
                    action_id=action.id,
                    reason=f"[dry-run] Would execute {action.adapter}:{action.id}",
                    metadata={"dry_run": True},
                )
            else:
                receipt = self._run(adapter, context)

        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        return receipt

    @staticmethod
    def _is_available(adapter: Adapter) -> bool:
        try:
            return adapter.is_available()
        except Exception as e:
            logger.warning("Availability check for %s raised: %s", adapter.name, e)
            return False

    @staticmethod
    def _validated(adapter: Adapter, context: ExecutionContext) -> Receipt | None:
        """A failure receipt when the params are rejected, else None."""
        action = context.action
        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(action.adapter, action.id, f"Validation error: {e}")
        if not is_valid:
            return Receipt.failure(action.adapter, action.id, f"Validation failed: {error_msg}")
        return None

    @staticmethod
    def _run(adapter: Adapter, context: ExecutionContext) -> Receipt:
        action = context.action
        try:
            return adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised while running %s: %s", action.adapter, action.id, e)
            return Receipt.failure(action.adapter, action.id, f"Unexpected error: {e}")
