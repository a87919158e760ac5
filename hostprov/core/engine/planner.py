"""
Step planner — orders the profile's steps and decides which must run.

Planning is pure: no I/O, no subprocess. Given the same config and the
same fact snapshot it returns an identical plan.

Ordering is a stable topological sort (Kahn's algorithm). Edges come
from ``requires`` and ``triggers``; among ready steps the lowest phase
wins, then declaration order. A requirement always beats phase
order: a package step that needs a repository added first waits for it.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Sequence

from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import HostFact
from hostprov.core.models.step import PlannedStep, Step

logger = logging.getLogger(__name__)


def validate_steps(steps: Sequence[Step]) -> list[str]:
    """Check the step graph.

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    by_id: dict[str, Step] = {}

    for step in steps:
        if step.id in by_id:
            errors.append(f"Duplicate step ID: {step.id}")
        by_id[step.id] = step

    for step in steps:
        for dep in step.requires:
            if dep not in by_id:
                errors.append(f"Step '{step.id}' depends on unknown step '{dep}'")
        for trigger in step.triggers:
            if trigger not in by_id:
                errors.append(f"Step '{step.id}' is triggered by unknown step '{trigger}'")

    return errors


def order_steps(steps: Sequence[Step]) -> list[Step]:
    """Stable topological order of ``steps``.

    Raises:
        PlanError: On duplicate ids, unknown dependencies or a cycle.
    """
    errors = validate_steps(steps)
    if errors:
        raise PlanError("; ".join(errors))

    index = {step.id: i for i, step in enumerate(steps)}
    in_degree: dict[str, int] = {step.id: 0 for step in steps}
    # dep → steps that wait on it
    adj: dict[str, list[str]] = {step.id: [] for step in steps}
    for step in steps:
        for dep in dict.fromkeys(step.requires + step.triggers):
            in_degree[step.id] += 1
            adj[dep].append(step.id)

    ready = [(step.phase, index[step.id]) for step in steps if in_degree[step.id] == 0]
    heapq.heapify(ready)

    ordered: list[Step] = []
    while ready:
        _, i = heapq.heappop(ready)
        node = steps[i]
        ordered.append(node)
        for successor in adj[node.id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, (steps[index[successor]].phase, index[successor]))

    if len(ordered) < len(steps):
        stuck = sorted(sid for sid, deg in in_degree.items() if deg > 0)
        raise PlanError(f"Dependency cycle detected between steps: {', '.join(stuck)}")

    return ordered


def required_facts(steps: Sequence[Step]) -> list[str]:
    """Every fact key the steps read, deduplicated, in step order."""
    keys: list[str] = []
    for step in steps:
        keys.extend(step.fact_keys())
    return list(dict.fromkeys(keys))


def decide(step: Step, facts: HostFact, decided: dict[str, PlannedStep]) -> PlannedStep:
    """Disposition of one step given the snapshot and earlier decisions."""
    if step.gate is not None and step.gate.evaluate(facts) is False:
        reason = step.gate.reason or f"not applicable: {', '.join(step.gate.unmet(facts))}"
        return PlannedStep(step, "skip", reason)

    if step.check.evaluate(facts) is True:
        return PlannedStep(step, "skip", "already satisfied")

    if step.triggers and all(decided[t].disposition == "skip" for t in step.triggers):
        return PlannedStep(step, "skip", "nothing changed")

    unknown = tuple(step.check.unknown(facts))
    unmet = step.check.unmet(facts)
    if unmet:
        reason = f"missing: {', '.join(unmet)}"
    elif unknown:
        reason = f"state unknown: {', '.join(unknown)}"
    elif step.triggers:
        reason = "triggered"
    else:
        reason = "no precondition"
    return PlannedStep(step, "run", reason, unknown)


def plan(
    config: DesiredConfig,
    facts: HostFact,
    credentials: CredentialRecord | None = None,
    steps: Sequence[Step] | None = None,
) -> list[PlannedStep]:
    """Build the ordered plan for ``config`` against a fact snapshot.

    Args:
        config: Desired host configuration.
        facts: Snapshot covering ``required_facts(steps)``.
        credentials: Secrets the step actions need (may be None when
            only planning for display).
        steps: Explicit step list; defaults to the profile's catalog.

    Returns:
        Every applicable step, in execution order, with a disposition.

    Raises:
        PlanError: If the step graph is invalid.
    """
    if steps is None:
        from hostprov.core.catalog import build_steps

        steps = build_steps(config, facts, credentials)

    decided: dict[str, PlannedStep] = {}
    planned: list[PlannedStep] = []
    for step in order_steps(steps):
        entry = decide(step, facts, decided)
        decided[step.id] = entry
        planned.append(entry)
        logger.debug("Plan %s: %s (%s)", step.id, entry.disposition, entry.reason)

    to_run = sum(1 for p in planned if p.disposition == "run")
    logger.info("Planned %d steps for profile '%s': %d to run", len(planned), config.profile, to_run)
    return planned
