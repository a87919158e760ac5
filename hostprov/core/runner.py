"""
Command runner — the single place where ``subprocess.run`` is called.

Both the fact probe (read-only queries) and the adapters (actions) go
through ``run_command``. It never raises: a missing binary comes back
as return code 127 with ``not_found`` set, a timeout as -1 with
``timed_out`` set.

Secrets must never reach the log. Callers pass them in ``redact_values`` and
they are masked in the logged command line; passwords that a tool can
read from the environment or stdin should be passed that way instead
of in argv.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_MAX_OUTPUT = 4000
_MASK = "******"


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    not_found: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., CommandResult]


def redact(text: str, secrets: Sequence[str]) -> str:
    """Mask every secret value in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, _MASK)
    return text


def format_argv(argv: Sequence[str], secrets: Sequence[str] = ()) -> str:
    """Shell-quoted, redacted rendering of a command line for logs."""
    return redact(" ".join(shlex.quote(a) for a in argv), secrets)


def run_command(
    argv: Sequence[str],
    *,
    timeout: int = 600,
    input_text: str | None = None,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
    redact_values: Sequence[str] = (),
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        argv: Command and arguments. Never passed through a shell.
        timeout: Seconds before the command is killed.
        input_text: Data written to stdin (SQL, passwords).
        env_overrides: Extra environment variables.
        cwd: Working directory.
        redact_values: Secrets to mask in log lines and captured output.

    Returns:
        CommandResult with trimmed stdout/stderr.
    """
    shown = format_argv(argv, redact_values)
    logger.debug("Running: %s", shown)

    env = None
    if env_overrides:
        env = os.environ.copy()
        env.update(env_overrides)

    start = time.monotonic()
    try:
        result = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
            env=env,
            cwd=cwd,
            check=False,
        )
    except FileNotFoundError:
        logger.debug("Command not found: %s", argv[0] if argv else "")
        return CommandResult(
            returncode=127,
            stderr=f"{argv[0] if argv else ''}: command not found",
            not_found=True,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %ss: %s", timeout, shown)
        return CommandResult(
            returncode=-1,
            stderr=f"Command timed out after {timeout}s",
            elapsed_ms=int((time.monotonic() - start) * 1000),
            timed_out=True,
        )
    except OSError as e:
        logger.warning("Cannot run %s: %s", shown, e)
        return CommandResult(returncode=126, stderr=str(e))

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = redact(result.stdout[-_MAX_OUTPUT:] if result.stdout else "", redact_values)
    stderr = redact(result.stderr[-_MAX_OUTPUT:] if result.stderr else "", redact_values)
    if result.returncode != 0:
        logger.debug("Exit %d after %dms: %s", result.returncode, elapsed_ms, shown)
    return CommandResult(
        returncode=result.returncode,
        stdout=stdout,
        stderr=stderr,
        elapsed_ms=elapsed_ms,
    )
