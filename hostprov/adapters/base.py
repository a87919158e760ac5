"""
Adapter base — the protocol contract between the executor and host tools.

The executor only talks to adapters through this protocol (via the
registry), never directly to apt, mysql, occ or docker.

``CommandAdapter`` is the common base for adapters that wrap a CLI
tool: it runs argv through the shared command runner and turns the
result into a Receipt.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, Field, SecretStr

from hostprov.core.models.action import Action, Receipt
from hostprov.core.runner import CommandResult, CommandRunner, format_argv, run_command


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    dry_run: bool = False
    timeout: int = 600
    params: dict[str, Any] = Field(default_factory=dict)

    def param(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def secret(self, key: str) -> str:
        """Plaintext of a secret param (empty when absent)."""
        return reveal(self.params.get(key))

    def secrets(self) -> list[str]:
        """All secret plaintexts, for redaction."""
        return self.action.secret_values()


def reveal(value: Any) -> str:
    """Unwrap a SecretStr; plain values pass through as strings."""
    if value is None:
        return ""
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return str(value)


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions; failures are captured in the Receipt.

    To create a new adapter:
        1. Subclass Adapter (or CommandAdapter)
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    #: External tool whose absence makes the adapter unavailable.
    tool: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'apt', 'mysql', 'occ')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is installed.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class CommandAdapter(Adapter):
    """Adapter backed by an external CLI tool.

    Subclasses declare ``tool`` and ``operations`` and implement one
    ``_op_<operation>`` method per operation returning a Receipt.
    """

    operations: frozenset[str] = frozenset()
    required_params: dict[str, tuple[str, ...]] = {}

    def __init__(
        self,
        runner: CommandRunner = run_command,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._runner = runner
        self._which = which

    def is_available(self) -> bool:
        return not self.tool or self._which(self.tool) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.param("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"
        if operation not in self.operations:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self.operations))}"
        for key in self.required_params.get(operation, ()):
            if not context.param(key):
                return False, f"Missing required param: '{key}' for {operation}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.param("operation")
        handler = getattr(self, f"_op_{operation}")
        try:
            return handler(context)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"{operation} failed: {e}",
            )

    def run(
        self,
        context: ExecutionContext,
        argv: Sequence[str],
        *,
        input_text: str | None = None,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        return self._runner(
            list(argv),
            timeout=context.timeout,
            input_text=input_text,
            env_overrides=env,
            cwd=cwd,
            redact_values=context.secrets(),
        )

    def receipt(
        self,
        context: ExecutionContext,
        argv: Sequence[str],
        result: CommandResult,
        output: str | None = None,
    ) -> Receipt:
        """Translate a command result into a Receipt."""
        command = format_argv(argv, context.secrets())
        if result.not_found:
            return Receipt.missing_dependency(self.name, context.action.id, argv[0])
        metadata = {"command": command, "return_code": result.returncode}
        if result.ok:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=result.stdout.strip() if output is None else output,
                duration_ms=result.elapsed_ms,
                metadata=metadata,
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=result.stderr.strip() or f"Command exited with code {result.returncode}",
            output=result.stdout.strip(),
            duration_ms=result.elapsed_ms,
            metadata=metadata,
        )

    def run_receipt(self, context: ExecutionContext, argv: Sequence[str], **kwargs: Any) -> Receipt:
        """Run ``argv`` and return its receipt."""
        return self.receipt(context, argv, self.run(context, argv, **kwargs))
