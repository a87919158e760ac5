"""
Tests for CLI commands — global options, plan, apply, status, log and backup.

The host probe is replaced with a scripted one and ``apply`` runs in
mock mode, so nothing here touches the machine running the tests.
"""

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner
from conftest import ScriptedHostProbe

from hostprov.main import cli


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def scripted_probe(monkeypatch):
    monkeypatch.setattr(
        "hostprov.core.use_cases.provision.HostProbe",
        lambda config, credentials=None: ScriptedHostProbe(),
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    state_dir = tmp_path / "state"
    path = tmp_path / "hostprov.yml"
    path.write_text(
        "hostprov:\n"
        "  profile: nextcloud\n"
        "  hostname: cloud01\n"
        f"  state_dir: {state_dir}\n"
    )
    return path


def invoke(*args: str):
    return CliRunner().invoke(cli, list(args))


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = invoke("--help")
        assert result.exit_code == 0
        assert "provision a Nextcloud or container host" in result.output
        for command in ("probe", "plan", "apply", "status", "log", "backup"):
            assert command in result.output

    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        result = invoke("--config", str(tmp_path / "nope.yml"), "plan")
        assert result.exit_code == 2
        assert "Config file not found" in result.output

    def test_domain_without_email_is_usage_error(self, config_file: Path):
        result = invoke("--config", str(config_file), "plan", "--domain", "cloud.example.org")
        assert result.exit_code == 2
        assert "email is required" in result.output


class TestFactsAndPlan:
    """Tests for the read-only commands."""

    def test_facts_json(self, config_file: Path):
        result = invoke("-q", "--config", str(config_file), "probe", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["os_id"] == "ubuntu"
        assert data["codename"] == "jammy"
        assert data["facts"]

    def test_facts_text(self, config_file: Path):
        result = invoke("-q", "--config", str(config_file), "probe")
        assert result.exit_code == 0
        assert "cloud01" in result.output
        assert "✗" in result.output

    def test_plan_json(self, config_file: Path):
        result = invoke("-q", "--config", str(config_file), "plan", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["profile"] == "nextcloud"
        assert data["hostname"] == "cloud01"
        assert data["plan"]
        assert all(entry["disposition"] in ("run", "skip") for entry in data["plan"])

    def test_plan_override_profile(self, config_file: Path):
        result = invoke(
            "-q", "--config", str(config_file), "plan", "--json",
            "--profile", "containers", "--target-user", "deploy",
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["profile"] == "containers"

    def test_plan_does_not_write_state(self, config_file: Path, tmp_path: Path):
        invoke("-q", "--config", str(config_file), "plan")
        assert not (tmp_path / "state" / "credentials.json").exists()


class TestApplyCommand:
    """Tests for apply in mock mode."""

    def test_apply_mock(self, config_file: Path):
        result = invoke("--config", str(config_file), "apply", "--mock")
        assert result.exit_code == 0
        assert "Provisioning cloud01" in result.output
        assert "Host is in the desired state" in result.output

    def test_apply_mock_json(self, config_file: Path):
        result = invoke("-q", "--config", str(config_file), "apply", "--mock", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["result"]["status"] == "ok"
        assert "credentials_file" not in data

    def test_apply_error_still_shows_new_credentials(self, config_file: Path, monkeypatch, credentials):
        from hostprov.core.use_cases.provision import ProvisionResult

        def failing_run(config, **kwargs):
            return ProvisionResult(
                config=config,
                credentials=credentials,
                credentials_created=True,
                credentials_path=Path(config.state_dir) / "credentials.json",
                error="Dependency cycle detected between steps: a, b",
            )

        monkeypatch.setattr("hostprov.core.use_cases.provision.run_provision", failing_run)
        result = invoke("-q", "--config", str(config_file), "apply")
        assert result.exit_code == 1
        assert credentials.db_password.get_secret_value() in result.output
        assert "Dependency cycle" in result.output


class TestStatusAndLog:
    """Tests for status and log before and after a run."""

    def test_status_before_any_run(self, config_file: Path):
        result = invoke("--config", str(config_file), "status")
        assert result.exit_code == 0
        assert "No runs recorded" in result.output

    def test_status_after_apply(self, config_file: Path):
        invoke("-q", "--config", str(config_file), "apply", "--mock")

        result = invoke("--config", str(config_file), "status", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["hostname"] == "cloud01"
        assert data["profile"] == "nextcloud"
        assert data["last_run"]["status"] == "ok"

        text = invoke("--config", str(config_file), "status")
        assert "Last run" in text.output

    def test_log_empty(self, config_file: Path):
        result = invoke("--config", str(config_file), "log")
        assert result.exit_code == 0
        assert "No apply-log records" in result.output

    def test_log_json_after_apply(self, config_file: Path):
        invoke("-q", "--config", str(config_file), "apply", "--mock")

        result = invoke("--config", str(config_file), "log", "-n", "5", "--json")
        assert result.exit_code == 0
        records = json.loads(result.output)
        assert 0 < len(records) <= 5
        assert len({r["run_id"] for r in records}) == 1


class TestBackupCommands:
    """Tests for backup create/restore."""

    def test_create_without_credentials(self, config_file: Path, tmp_path: Path):
        result = invoke("--config", str(config_file), "backup", "create", str(tmp_path / "bk"))
        assert result.exit_code == 1
        assert "provision the host first" in result.output

    def test_restore_requires_existing_source(self, config_file: Path, tmp_path: Path):
        result = invoke("--config", str(config_file), "backup", "restore", str(tmp_path / "missing"))
        assert result.exit_code == 2

    def test_create_mock(self, config_file: Path, tmp_path: Path):
        result = invoke("-q", "--config", str(config_file), "backup", "create",
                        str(tmp_path / "bk"), "--mock", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["result"]["status"] == "ok"
