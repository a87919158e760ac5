"""
Tests for the step planner — ordering, dispositions, determinism.
"""

import pytest

from hostprov.core.engine.planner import order_steps, plan, required_facts, validate_steps
from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import Condition, HostFact
from hostprov.core.models.step import Phase, Step


def _step(step_id, phase=Phase.PACKAGES, **kwargs):
    return Step(id=step_id, description=step_id, phase=phase, **kwargs)


# ── Ordering ─────────────────────────────────────────────────────────


class TestOrderSteps:
    def test_phase_then_declaration_order(self):
        steps = [
            _step("web", Phase.WEBSERVER),
            _step("pkg.b", Phase.PACKAGES),
            _step("pkg.a", Phase.PACKAGES),
            _step("db", Phase.DATABASE),
        ]
        assert [s.id for s in order_steps(steps)] == ["pkg.b", "pkg.a", "db", "web"]

    def test_requirement_beats_phase(self):
        steps = [
            _step("packages.php", Phase.PACKAGES, requires=("repositories.php",)),
            _step("repositories.php", Phase.REPOSITORIES),
            _step("packages.web", Phase.PACKAGES),
        ]
        ids = [s.id for s in order_steps(steps)]
        assert ids.index("repositories.php") < ids.index("packages.php")
        assert ids[0] == "packages.web"

    def test_triggers_order_like_requires(self):
        steps = [
            _step("restart", Phase.PACKAGES, triggers=("config",)),
            _step("config", Phase.WEBSERVER),
        ]
        assert [s.id for s in order_steps(steps)] == ["config", "restart"]

    def test_cycle_detected(self):
        steps = [_step("a", requires=("b",)), _step("b", requires=("a",))]
        with pytest.raises(PlanError, match="cycle"):
            order_steps(steps)

    def test_unknown_dependency(self):
        errors = validate_steps([_step("a", requires=("ghost",))])
        assert errors == ["Step 'a' depends on unknown step 'ghost'"]

    def test_duplicate_id(self):
        with pytest.raises(PlanError, match="Duplicate step ID: a"):
            order_steps([_step("a"), _step("a")])


class TestRequiredFacts:
    def test_deduplicated_in_order(self):
        steps = [
            _step("a", check=Condition.of("pkg:x", "pkg:y")),
            _step("b", check=Condition.of("pkg:y"), gate=Condition.of("dns:d")),
        ]
        assert required_facts(steps) == ["pkg:x", "pkg:y", "dns:d"]


# ── Dispositions ─────────────────────────────────────────────────────


class TestPlan:
    def _plan(self, steps, facts):
        return {p.id: p for p in plan(DesiredConfig(), HostFact(facts=facts), steps=steps)}

    def test_satisfied_check_is_skipped(self):
        result = self._plan([_step("a", check=Condition.of("pkg:x"))], {"pkg:x": True})
        assert result["a"].disposition == "skip"
        assert result["a"].reason == "already satisfied"

    def test_missing_fact_runs(self):
        result = self._plan([_step("a", check=Condition.of("pkg:x"))], {"pkg:x": False})
        assert result["a"].disposition == "run"
        assert result["a"].reason == "missing: pkg:x"

    def test_unknown_fact_runs_and_is_reported(self):
        result = self._plan([_step("a", check=Condition.of("pkg:x"))], {})
        assert result["a"].disposition == "run"
        assert result["a"].unknown == ("pkg:x",)

    def test_no_precondition_always_runs(self):
        result = self._plan([_step("a")], {})
        assert result["a"].disposition == "run"
        assert result["a"].reason == "no precondition"

    def test_gate_false_skips_with_reason(self):
        step = _step(
            "tls",
            Phase.TLS,
            check=Condition.of("cert:d"),
            gate=Condition.of("dns:d", reason="d does not resolve"),
        )
        result = self._plan([step], {"dns:d": False, "cert:d": False})
        assert result["tls"].disposition == "skip"
        assert result["tls"].reason == "d does not resolve"

    def test_triggered_step_skipped_when_triggers_skip(self):
        steps = [
            _step("config", check=Condition.of("file:x")),
            _step("restart", Phase.SERVICES, triggers=("config",)),
        ]
        result = self._plan(steps, {"file:x": True})
        assert result["restart"].disposition == "skip"
        assert result["restart"].reason == "nothing changed"

    def test_triggered_step_runs_when_a_trigger_runs(self):
        steps = [
            _step("config", check=Condition.of("file:x")),
            _step("restart", Phase.SERVICES, triggers=("config",)),
        ]
        result = self._plan(steps, {"file:x": False})
        assert result["restart"].disposition == "run"
        assert result["restart"].reason == "triggered"


class TestPlanDeterminism:
    def test_same_inputs_same_plan(self, nextcloud_config, credentials):
        facts = HostFact(facts={"pkg:wget": True, "pkg:apache2": False})
        first = plan(nextcloud_config, facts, credentials)
        second = plan(nextcloud_config, facts, credentials)
        assert first == second
        assert [p.id for p in first] == [p.id for p in second]

    def test_catalog_plan_is_valid(self, nextcloud_config, ubuntu_facts):
        planned = plan(nextcloud_config, ubuntu_facts)
        ids = [p.id for p in planned]
        assert ids[0] == "packages.base"
        assert ids.index("database.create") < ids.index("nextcloud.install")
        assert ids.index("nextcloud.install") < ids.index("nextcloud.cron")
        assert ids[-2:] == ["services.restart", "nextcloud.db-maintenance"]
