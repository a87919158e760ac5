"""
Tests for use cases — provision, status and backup, end to end against
a scripted probe and the mock adapter.
"""

import stat
from pathlib import Path

from conftest import RecordingAdapter, ScriptedHostProbe

from hostprov.adapters.registry import AdapterRegistry
from hostprov.core.catalog import build_steps
from hostprov.core.models.action import Receipt
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import HostFact
from hostprov.core.persistence.apply_log import ApplyLog, default_log_path
from hostprov.core.persistence.credentials import CredentialStore, default_credentials_path
from hostprov.core.persistence.state_file import default_state_path
from hostprov.core.use_cases.backup import run_backup
from hostprov.core.use_cases.provision import ProvisionResult, inspect_host, run_provision
from hostprov.core.use_cases.status import get_status, recent_records


def _harness(config):
    """Probe, recording adapter and registry wired so actions satisfy their postconditions."""
    probe = ScriptedHostProbe()
    steps = build_steps(config, probe.probe(), None)
    adapter = RecordingAdapter(probe, {s.id: s.postcondition.facts for s in steps})
    registry = AdapterRegistry(mock_mode=True, mock_adapter=adapter)
    return probe, adapter, registry


def _run(config, probe, registry, **kwargs):
    return run_provision(
        config,
        registry=registry,
        probe_factory=lambda c, cr: probe,
        sleep=lambda s: None,
        **kwargs,
    )


# ── Provision ────────────────────────────────────────────────────────


class TestInspectHost:
    def test_plans_against_host_facts(self, nextcloud_config):
        probe = ScriptedHostProbe({"pkg:wget": True})
        result = inspect_host(nextcloud_config, probe_factory=lambda c, cr: probe)
        assert result.error is None
        assert result.snapshot.get("pkg:apache2") is False
        assert result.planned[0].id == "packages.base"

    def test_plan_error_reported(self, containers_config):
        class NoArch(ScriptedHostProbe):
            def probe(self, keys=()):
                return HostFact()

        result = inspect_host(containers_config, probe_factory=lambda c, cr: NoArch())
        assert "architecture" in result.error
        assert result.exit_code == 1


class TestRunProvision:
    def test_fresh_host(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        result = _run(nextcloud_config, probe, registry)

        assert result.exit_code == 0
        assert result.credentials_created
        assert result.result.applied > 0
        assert CredentialStore(default_credentials_path(tmp_state_dir)).exists()
        assert default_state_path(tmp_state_dir).is_file()
        records = ApplyLog(default_log_path(tmp_state_dir)).read_all()
        assert len(records) == len(result.planned)

    def test_second_run_changes_nothing(self, nextcloud_config):
        probe, adapter, registry = _harness(nextcloud_config)
        first = _run(nextcloud_config, probe, registry)
        adapter.reset()
        second = _run(nextcloud_config, probe, registry)

        assert second.exit_code == 0
        assert not second.credentials_created
        assert second.result.applied == 0
        assert adapter.call_count == 0
        assert second.credentials.db_password == first.credentials.db_password

    def test_generated_credentials_reported_once(self, nextcloud_config):
        probe, adapter, registry = _harness(nextcloud_config)
        first = _run(nextcloud_config, probe, registry).to_dict()
        second = _run(nextcloud_config, probe, registry).to_dict()

        stored = CredentialStore(default_credentials_path(Path(nextcloud_config.state_dir))).load()
        assert first["credentials"]["db_password"] == stored.db_password.get_secret_value()
        assert "credentials" not in second

    def test_credentials_reported_when_run_errors(self, nextcloud_config, credentials):
        result = ProvisionResult(
            config=nextcloud_config,
            credentials=credentials,
            credentials_created=True,
            credentials_path=Path("/var/lib/hostprov/credentials.json"),
            error="Dependency cycle detected between steps: a, b",
        )
        data = result.to_dict()
        assert data["error"].startswith("Dependency cycle")
        assert data["credentials"]["admin_password"] == credentials.admin_password.get_secret_value()
        assert data["credentials_file"] == "/var/lib/hostprov/credentials.json"

    def test_dry_run_persists_nothing(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        result = _run(nextcloud_config, probe, registry, dry_run=True)

        assert result.exit_code == 0
        assert adapter.call_count == 0
        assert list(tmp_state_dir.iterdir()) == []

    def test_database_package_failure_aborts(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        adapter.set_failure("packages.database:1", "E: Unable to fetch some archives")
        result = _run(nextcloud_config, probe, registry)

        assert result.exit_code == 1
        assert result.result.aborted_at == "packages.database"
        assert result.result.outcome("packages.database").attempts == nextcloud_config.retries + 1
        logged = [r.step_id for r in ApplyLog(default_log_path(tmp_state_dir)).read_all()]
        assert logged[-1] == "packages.database"
        assert "database.create" not in logged
        assert not adapter.calls_for("nextcloud.install")

    def test_containers_reports_portainer_ip(self, containers_config):
        probe, adapter, registry = _harness(containers_config)
        adapter.set_response(
            "summary:portainer-ip",
            Receipt.success("docker", "summary:portainer-ip", output="172.18.0.2\n"),
        )
        result = _run(containers_config, probe, registry)
        assert result.exit_code == 0
        assert result.portainer_ip == "172.18.0.2"
        assert result.to_dict()["portainer_ip"] == "172.18.0.2"

    def test_mock_mode_stores_no_credentials(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        result = _run(nextcloud_config, probe, registry, mock_mode=True)
        assert result.exit_code == 0
        assert not default_credentials_path(tmp_state_dir).exists()

    def test_mock_mode_restricts_state_dir(self, nextcloud_config, tmp_state_dir):
        tmp_state_dir.chmod(0o755)
        probe, adapter, registry = _harness(nextcloud_config)
        _run(nextcloud_config, probe, registry, mock_mode=True)
        assert stat.S_IMODE(tmp_state_dir.stat().st_mode) == 0o700
        assert default_log_path(tmp_state_dir).is_file()


# ── Status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_never_provisioned(self, tmp_state_dir):
        result = get_status(tmp_state_dir)
        assert not result.provisioned
        assert result.last_run_records == []

    def test_after_run(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        run = _run(nextcloud_config, probe, registry)
        result = get_status(tmp_state_dir)
        assert result.provisioned
        assert result.state.last_run.run_id == run.result.run_id
        assert result.state.hostname == "cloud01"
        assert len(result.last_run_records) == len(run.planned)
        assert result.to_dict()["last_run"]["status"] == "ok"

    def test_recent_records(self, nextcloud_config, tmp_state_dir):
        probe, adapter, registry = _harness(nextcloud_config)
        _run(nextcloud_config, probe, registry)
        assert len(recent_records(tmp_state_dir, 3)) == 3


# ── Backup ───────────────────────────────────────────────────────────


class TestBackup:
    def test_requires_credentials(self, nextcloud_config, tmp_path):
        result = run_backup(nextcloud_config, str(tmp_path / "backup"))
        assert result.exit_code == 1
        assert "provision the host first" in result.error

    def test_create(self, nextcloud_config, credentials, tmp_state_dir, tmp_path, mock_registry, mock_adapter):
        CredentialStore(default_credentials_path(tmp_state_dir)).create(credentials)
        result = run_backup(nextcloud_config, str(tmp_path / "backup"), registry=mock_registry)

        assert result.exit_code == 0
        assert result.result.profile == "backup"
        assert result.result.outcome("backup.maintenance-off").applied
        dump = mock_adapter.calls_for("backup.database")[0]
        assert dump.params["path"] == str(Path(tmp_path / "backup").resolve() / "nextcloud-db.sql")

    def test_failure_still_leaves_maintenance(self, nextcloud_config, credentials, tmp_state_dir, tmp_path,
                                              mock_registry, mock_adapter):
        CredentialStore(default_credentials_path(tmp_state_dir)).create(credentials)
        mock_adapter.set_failure("backup.database:1", "mysqldump: Got error: 1045")
        result = run_backup(nextcloud_config, str(tmp_path / "backup"), registry=mock_registry)

        assert result.exit_code == 1
        assert result.result.outcome("backup.maintenance-off").applied
        assert "backup.data" in result.result.not_attempted

    def test_restore(self, nextcloud_config, credentials, tmp_state_dir, tmp_path, mock_registry):
        CredentialStore(default_credentials_path(tmp_state_dir)).create(credentials)
        result = run_backup(nextcloud_config, str(tmp_path), "restore", registry=mock_registry)
        assert result.exit_code == 0
        assert result.result.outcome("restore.fingerprint").applied

    def test_creates_state_dir_with_mode_700(self, credentials, tmp_path, monkeypatch, mock_registry):
        state_dir = tmp_path / "fresh-state"
        config = DesiredConfig(profile="nextcloud", hostname="cloud01", state_dir=str(state_dir))
        monkeypatch.setattr("hostprov.core.use_cases.backup.existing_credentials", lambda c: credentials)

        result = run_backup(config, str(tmp_path / "backup"), registry=mock_registry)
        assert result.exit_code == 0
        assert stat.S_IMODE(state_dir.stat().st_mode) == 0o700
        assert ApplyLog(default_log_path(state_dir)).read_all()
