"""
Shell command adapter — run one command as argv.

Commands never go through a shell. Steps that need a pipeline express
it as separate actions or as a file written by the filesystem adapter.
"""

from __future__ import annotations

import logging

from hostprov.adapters.base import CommandAdapter, ExecutionContext, reveal
from hostprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(CommandAdapter):
    """Execute a command and capture output.

    Action params:
        argv (list[str]): Command and arguments (SecretStr items allowed).
        stdin (str | SecretStr): Data written to the command's stdin.
        user (str): Run as this user via ``sudo -u``.
        env (dict): Extra environment variables.
        cwd (str): Working directory.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        # individual binaries are reported missing by the runner
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.param("argv")
        if not argv or not isinstance(argv, (list, tuple)):
            return False, "Missing required param: 'argv' (non-empty list)"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = [reveal(part) for part in context.param("argv")]
        user = context.param("user")
        if user:
            argv = ["sudo", "-u", user, *argv]
        stdin = context.param("stdin")
        try:
            return self.run_receipt(
                context,
                argv,
                input_text=reveal(stdin) if stdin is not None else None,
                env=context.param("env"),
                cwd=context.param("cwd"),
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
            )
