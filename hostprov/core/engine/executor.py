"""
Step executor — runs a plan step by step.

For each planned step the executor:
    1. Skips it when the planner said so (no adapter calls)
    2. Skips triggered steps whose triggers did not apply in this run
    3. Re-probes destructive steps right before acting
    4. Dispatches the step's actions through the adapter registry
    5. Re-probes the postcondition; False means the step failed even
       when every command exited 0
    6. Retries with exponential backoff per the step's recovery policy
    7. Appends the outcome to the apply log

A required step that exhausts its retries aborts the run: later steps
are not attempted and leave no log records. Finalizer steps (for
example "maintenance mode off") still run after an abort.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from hostprov.adapters.registry import AdapterRegistry
from hostprov.core.errors import (
    ActionFailed,
    FatalDependencyMissing,
    PostconditionUnmet,
    PreconditionUnknown,
    ProvisionError,
)
from hostprov.core.models.host import HostFact
from hostprov.core.models.outcome import PlanResult, StepOutcome
from hostprov.core.models.step import PlannedStep, Step
from hostprov.core.persistence.apply_log import ApplyLog, ApplyRecord
from hostprov.core.reliability.retry import policy_delay

logger = logging.getLogger(__name__)

DRY_RUN_MESSAGE = "[dry-run] would apply"


class FactSource(Protocol):
    """Anything that can re-probe facts into a snapshot."""

    def refresh(self, snapshot: HostFact, keys: Sequence[str]) -> HostFact: ...


def generate_run_id() -> str:
    """Unique run id: ``run-YYYYmmdd-HHMMSS-xxxxxx``."""
    stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{stamp}-{secrets.token_hex(3)}"


@dataclass
class StepExecutor:
    """Executes planned steps against the host through adapters.

    Attributes:
        registry: Adapter dispatch.
        probe: Source of fresh facts for re-checks and postconditions.
            None disables both (mock runs).
        facts: Current snapshot; updated as steps re-probe.
        apply_log: Where outcomes are recorded (None = not recorded).
        verify_postconditions: Re-probe ``verify`` facts after acting.
        sleep: Called with the backoff delay between attempts.
    """

    registry: AdapterRegistry
    probe: FactSource | None
    facts: HostFact
    apply_log: ApplyLog | None = None
    run_id: str = field(default_factory=generate_run_id)
    profile: str = ""
    dry_run: bool = False
    verify_postconditions: bool = True
    jitter: bool = True
    sleep: Callable[[float], None] = time.sleep
    on_outcome: Callable[[StepOutcome], None] | None = None
    _applied: set[str] = field(default_factory=set, init=False, repr=False)

    # ── Whole plan ──────────────────────────────────────────────

    def run(self, planned_steps: Sequence[PlannedStep]) -> PlanResult:
        """Execute every planned step in order."""
        result = PlanResult(run_id=self.run_id, profile=self.profile)
        self._applied = set()
        logger.info("Run %s: %d steps (dry_run=%s)", self.run_id, len(planned_steps), self.dry_run)

        for planned in planned_steps:
            if result.aborted_at is not None and not planned.step.finalizer:
                result.not_attempted.append(planned.id)
                continue

            outcome = self.execute(planned)
            result.outcomes.append(outcome)
            self._record(outcome)

            if outcome.failed and outcome.required and result.aborted_at is None:
                result.aborted_at = planned.id
                logger.error("Aborting run at required step %s: %s", planned.id, outcome.message)

        result.ended_at = datetime.now(UTC).isoformat()
        logger.info(
            "Run %s finished: %d applied, %d skipped, %d failed",
            self.run_id, result.applied, result.skipped, result.failed,
        )
        return result

    # ── Single step ─────────────────────────────────────────────

    def execute(self, planned: PlannedStep) -> StepOutcome:
        """Execute one planned step and return its outcome."""
        step = planned.step
        start = time.monotonic()

        if planned.disposition == "skip":
            return self._skipped(step, planned.reason)

        if self.dry_run:
            return self._skipped(step, DRY_RUN_MESSAGE)

        if step.triggers and not any(t in self._applied for t in step.triggers):
            return self._skipped(step, "nothing changed")

        if step.destructive and self.probe is not None and step.check.facts:
            self.facts = self.probe.refresh(self.facts, step.check.facts)
            if step.check.evaluate(self.facts) is True:
                return self._skipped(step, "already satisfied (re-checked)")

        if planned.unknown:
            logger.warning(
                "%s",
                PreconditionUnknown(step.id, f"state unknown ({', '.join(planned.unknown)}), attempting"),
            )

        policy = step.policy
        max_attempts = policy.retries + 1
        error: ProvisionError | None = None
        attempt = 0

        for attempt in range(1, max_attempts + 1):
            try:
                self._attempt(step)
            except FatalDependencyMissing as e:
                error = e
                logger.error("%s", e)
                break
            except (ActionFailed, PostconditionUnmet) as e:
                error = e
                if attempt < max_attempts:
                    delay = policy_delay(policy, attempt, jitter=self.jitter)
                    logger.warning(
                        "Step %s attempt %d/%d failed (%s), retrying in %.1fs",
                        step.id, attempt, max_attempts, e.message, delay,
                    )
                    self.sleep(delay)
                continue
            else:
                self._applied.add(step.id)
                message = "applied" if attempt == 1 else f"applied after {attempt} attempts"
                logger.info("Step %s %s", step.id, message)
                return StepOutcome(
                    step_id=step.id,
                    status="applied",
                    message=message,
                    attempts=attempt,
                    duration_ms=_elapsed(start),
                    required=policy.required,
                )

        assert error is not None
        if policy.required:
            logger.error("Step %s failed after %d attempt(s): %s", step.id, attempt, error.message)
        else:
            logger.warning("Step %s failed after %d attempt(s), continuing: %s", step.id, attempt, error.message)
        return StepOutcome(
            step_id=step.id,
            status="failed",
            message=error.message,
            attempts=attempt,
            duration_ms=_elapsed(start),
            error_kind=type(error).__name__,
            output=error.output,
            required=policy.required,
        )

    def _attempt(self, step: Step) -> None:
        """Run all actions once, then check the postcondition.

        Raises:
            FatalDependencyMissing: An adapter's tool is not installed.
            ActionFailed: An action's command failed.
            PostconditionUnmet: Actions succeeded but the host disagrees.
        """
        for action in step.actions:
            receipt = self.registry.execute_action(action, timeout=step.timeout)
            if receipt.dependency_missing:
                raise FatalDependencyMissing(step.id, receipt.error or "dependency missing")
            if receipt.failed:
                raise ActionFailed(
                    step.id,
                    f"{action.adapter} action {action.id} failed: {receipt.error}",
                    output="\n".join(part for part in (receipt.output, receipt.error or "") if part),
                )

        postcondition = step.postcondition
        if not self.verify_postconditions or self.probe is None or not postcondition.facts:
            return
        self.facts = self.probe.refresh(self.facts, postcondition.facts)
        if postcondition.evaluate(self.facts) is False:
            raise PostconditionUnmet(
                step.id,
                f"postcondition not met: {', '.join(postcondition.unmet(self.facts))}",
            )

    # ── Helpers ─────────────────────────────────────────────────

    def _skipped(self, step: Step, reason: str) -> StepOutcome:
        logger.info("Step %s skipped: %s", step.id, reason)
        return StepOutcome(
            step_id=step.id,
            status="skipped",
            message=reason,
            required=step.policy.required,
        )

    def _record(self, outcome: StepOutcome) -> None:
        if self.apply_log is not None:
            self.apply_log.append(ApplyRecord.from_outcome(outcome, self.run_id, self.profile))
        if self.on_outcome is not None:
            self.on_outcome(outcome)


def _elapsed(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
