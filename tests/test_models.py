"""
Tests for core data models — facts, conditions, steps, outcomes, config.
"""

import pytest
from pydantic import SecretStr, ValidationError

from hostprov.core.models.action import Action, Receipt
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import Condition, HostFact
from hostprov.core.models.outcome import PlanResult, StepOutcome
from hostprov.core.models.step import Phase, PlannedStep, RecoveryPolicy, Step

# ── HostFact / Condition ─────────────────────────────────────────────


class TestHostFact:
    def test_unchecked_key_is_unknown(self):
        assert HostFact().get("pkg:apache2") is None

    def test_merged_returns_new_snapshot(self):
        a = HostFact(facts={"pkg:a": False})
        b = a.merged({"pkg:a": True, "pkg:b": None})
        assert a.get("pkg:a") is False
        assert b.get("pkg:a") is True
        assert b.unknown() == ["pkg:b"]

    def test_merged_keeps_os_info(self):
        a = HostFact(os_id="ubuntu", codename="jammy", arch="amd64")
        b = a.merged(HostFact(facts={"pkg:a": True}))
        assert b.codename == "jammy"
        assert b.arch == "amd64"

    def test_frozen(self):
        with pytest.raises(ValidationError):
            HostFact().os_id = "debian"


class TestCondition:
    def test_all_true(self):
        facts = HostFact(facts={"a": True, "b": True})
        assert Condition.of("a", "b").evaluate(facts) is True

    def test_false_wins_over_unknown(self):
        facts = HostFact(facts={"a": None, "b": False})
        assert Condition.of("a", "b").evaluate(facts) is False

    def test_unknown(self):
        facts = HostFact(facts={"a": True, "b": None})
        cond = Condition.of("a", "b")
        assert cond.evaluate(facts) is None
        assert cond.unknown(facts) == ["b"]
        assert cond.unmet(facts) == []

    def test_empty_condition_cannot_be_checked(self):
        assert Condition().evaluate(HostFact()) is None


# ── Steps ────────────────────────────────────────────────────────────


class TestRecoveryPolicy:
    def test_default_is_abort_without_retries(self):
        policy = RecoveryPolicy()
        assert policy.required
        assert policy.label == "abort"

    def test_skip_label(self):
        policy = RecoveryPolicy.skip(retries=2)
        assert not policy.required
        assert policy.label == "retry-2/skip"


class TestStep:
    def test_postcondition_defaults_to_check(self):
        step = Step(id="s", description="", phase=Phase.PACKAGES, check=Condition.of("pkg:a"))
        assert step.postcondition.facts == ("pkg:a",)

    def test_fact_keys_deduplicated(self):
        step = Step(
            id="s",
            description="",
            phase=Phase.TLS,
            check=Condition.of("cert:x"),
            verify=Condition.of("cert:x"),
            gate=Condition.of("dns:x"),
        )
        assert step.fact_keys() == ["cert:x", "dns:x"]

    def test_phases_ordered(self):
        assert Phase.PACKAGES < Phase.DATABASE < Phase.WEBAPP < Phase.TLS < Phase.SERVICES

    def test_planned_step_to_dict(self):
        step = Step(id="packages.base", description="Base", phase=Phase.PACKAGES)
        d = PlannedStep(step, "run", "missing: pkg:curl").to_dict()
        assert d["id"] == "packages.base"
        assert d["phase"] == "packages"
        assert d["disposition"] == "run"


# ── Actions ──────────────────────────────────────────────────────────


class TestAction:
    def test_secret_values(self):
        action = Action(
            id="x:1",
            adapter="occ",
            params={"password": SecretStr("s3cret"), "args": ["a", SecretStr("p2")], "plain": "v"},
        )
        assert sorted(action.secret_values()) == ["p2", "s3cret"]

    def test_dump_masks_secrets(self):
        action = Action(id="x:1", adapter="mysql", params={"password": SecretStr("s3cret")})
        assert "s3cret" not in str(action.model_dump())


class TestReceipt:
    def test_success(self):
        r = Receipt.success("apt", "a:1", output="done")
        assert r.ok and not r.failed

    def test_missing_dependency(self):
        r = Receipt.missing_dependency("mysql", "a:1", "mysql")
        assert r.failed
        assert r.dependency_missing
        assert "mysql" in r.error


# ── Outcomes ─────────────────────────────────────────────────────────


class TestPlanResult:
    def test_exit_code_ok(self):
        result = PlanResult(outcomes=[
            StepOutcome(step_id="a", status="applied"),
            StepOutcome(step_id="b", status="skipped"),
        ])
        assert result.exit_code == 0
        assert result.status == "ok"

    def test_optional_failure_is_degraded(self):
        result = PlanResult(outcomes=[StepOutcome(step_id="a", status="failed", required=False)])
        assert result.exit_code == 0
        assert result.status == "degraded"

    def test_required_failure(self):
        result = PlanResult(outcomes=[StepOutcome(step_id="a", status="failed")])
        assert result.exit_code == 1
        assert result.status == "failed"
        assert result.to_dict()["failed"] == 1


# ── DesiredConfig ────────────────────────────────────────────────────


class TestDesiredConfig:
    def test_defaults(self):
        config = DesiredConfig()
        assert config.profile == "nextcloud"
        assert config.hostname == "localhost"
        assert config.nextcloud_version == "28.0.3"
        assert config.storage.mount_point == "/mnt/files"
        assert not config.tls_requested

    def test_domain_requires_email(self):
        with pytest.raises(ValidationError, match="email"):
            DesiredConfig(domain="cloud.example.org")

    def test_localhost_domain_is_not_tls(self):
        assert not DesiredConfig(domain="localhost").tls_requested

    def test_nfs_requires_account_and_container(self):
        with pytest.raises(ValidationError, match="storage.account"):
            DesiredConfig(storage={"backend": "nfs", "account": "acct"})

    def test_nfs_fstab_line(self):
        config = DesiredConfig(storage={"backend": "nfs", "account": "acct", "container": "data"})
        assert config.storage.fstab_line.startswith("acct.blob.core.windows.net:/acct/data /mnt/files nfs ")

    def test_unknown_profile_rejected(self):
        with pytest.raises(ValidationError):
            DesiredConfig(profile="kubernetes")

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            DesiredConfig(hostnmae="typo")

    def test_trusted_domains(self):
        config = DesiredConfig(hostname="cloud01", domain="cloud.example.org", email="ops@example.org")
        assert config.trusted_domains == ["localhost", "cloud01", "cloud.example.org"]

    def test_admin_password_masked(self):
        config = DesiredConfig(admin_password="hunter22")
        assert "hunter22" not in repr(config)

    def test_db_name_pattern(self):
        with pytest.raises(ValidationError):
            DesiredConfig(db_name="next;cloud")
