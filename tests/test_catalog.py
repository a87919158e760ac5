"""
Tests for the step catalogs and config rendering.
"""

import pytest
import yaml

from hostprov.core.catalog import build_steps
from hostprov.core.catalog.backup import DB_DUMP, build_backup_steps, build_restore_steps
from hostprov.core.catalog.containers import SOURCE_FILE, build_containers_steps, docker_source_line
from hostprov.core.catalog.nextcloud import build_nextcloud_steps, php_packages, service_names
from hostprov.core.catalog.templates import (
    nextcloud_cron,
    nextcloud_vhost,
    portainer_compose,
    render_ini,
    sha256_digest,
)
from hostprov.core.engine.planner import order_steps, validate_steps
from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import HostFact


def _ids(steps):
    return [s.id for s in steps]


# ── Nextcloud ────────────────────────────────────────────────────────


class TestNextcloudSteps:
    def test_graph_valid(self, nextcloud_config, credentials):
        steps = build_nextcloud_steps(nextcloud_config, credentials)
        assert validate_steps(steps) == []
        assert len(order_steps(steps)) == len(steps)

    def test_default_php_has_no_ppa(self, nextcloud_config):
        assert "repositories.php" not in _ids(build_nextcloud_steps(nextcloud_config))

    def test_other_php_adds_ppa_before_packages(self):
        steps = build_nextcloud_steps(DesiredConfig(php_version="8.2"))
        ordered = _ids(order_steps(steps))
        assert ordered.index("repositories.php") < ordered.index("packages.php")
        php = next(s for s in steps if s.id == "packages.php")
        assert "pkg:php8.2-redis" in php.check.facts

    def test_local_storage(self, nextcloud_config):
        ids = _ids(build_nextcloud_steps(nextcloud_config))
        assert "storage.local-dir" in ids and "storage.link" in ids
        assert "storage.fstab" not in ids and "packages.nfs" not in ids

    def test_nfs_storage(self):
        config = DesiredConfig(storage={"backend": "nfs", "account": "acct", "container": "data"})
        steps = build_nextcloud_steps(config)
        ids = _ids(steps)
        assert {"packages.nfs", "storage.fstab", "storage.mount"} <= set(ids)
        assert "storage.link" not in ids
        install = next(s for s in steps if s.id == "nextcloud.install")
        assert "storage.mount" in install.requires

    def test_tls_gated_on_dns(self):
        config = DesiredConfig(domain="cloud.example.org", email="ops@example.org")
        tls = next(s for s in build_nextcloud_steps(config) if s.id == "tls.certificate")
        assert tls.gate.facts == ("dns:cloud.example.org",)
        assert not tls.policy.required

    def test_no_redis(self):
        ids = _ids(build_nextcloud_steps(DesiredConfig(redis=False)))
        assert "packages.redis" not in ids
        assert "nextcloud.caching" not in ids

    def test_secrets_not_in_plan_dump(self, nextcloud_config, credentials):
        steps = build_nextcloud_steps(nextcloud_config, credentials)
        dumped = repr([a.model_dump() for s in steps for a in s.actions])
        for value in (credentials.db_password, credentials.admin_password, credentials.mysql_root_password):
            assert value.get_secret_value() not in dumped

    def test_install_is_destructive(self, nextcloud_config):
        install = next(s for s in build_nextcloud_steps(nextcloud_config) if s.id == "nextcloud.install")
        assert install.destructive
        assert install.check.facts == ("nextcloud:installed",)

    def test_restart_triggers_exist(self, nextcloud_config):
        steps = build_nextcloud_steps(nextcloud_config)
        restart = next(s for s in steps if s.id == "services.restart")
        assert set(restart.triggers) <= set(_ids(steps))
        assert "php.settings" in restart.triggers

    def test_packages_retry_and_abort(self, nextcloud_config):
        db = next(s for s in build_nextcloud_steps(nextcloud_config) if s.id == "packages.database")
        assert db.policy.retries == nextcloud_config.retries
        assert db.policy.required

    def test_helpers(self, nextcloud_config):
        assert "libapache2-mod-php8.1" in php_packages("8.1")
        assert service_names(nextcloud_config) == ["redis-server", "mariadb", "php8.1-fpm", "apache2"]


# ── Containers ───────────────────────────────────────────────────────


class TestContainersSteps:
    def test_needs_arch_and_codename(self, containers_config):
        with pytest.raises(PlanError, match="architecture"):
            build_containers_steps(containers_config, HostFact())

    def test_order(self, containers_config, ubuntu_facts):
        ordered = _ids(order_steps(build_containers_steps(containers_config, ubuntu_facts)))
        assert ordered.index("repositories.docker") < ordered.index("packages.docker")
        assert ordered.index("docker.network") < ordered.index("compose.up.portainer")
        assert "docker.user-group" in ordered

    def test_no_target_user(self, ubuntu_facts):
        config = DesiredConfig(profile="containers")
        assert "docker.user-group" not in _ids(build_containers_steps(config, ubuntu_facts))

    def test_source_line(self, containers_config):
        line = docker_source_line(containers_config, "amd64", "jammy")
        assert line == (
            "deb [arch=amd64 signed-by=/etc/apt/keyrings/docker.asc] "
            "https://download.docker.com/linux/ubuntu jammy stable\n"
        )

    def test_source_step_checks_digest(self, containers_config, ubuntu_facts):
        step = next(s for s in build_containers_steps(containers_config, ubuntu_facts)
                    if s.id == "repositories.docker")
        assert step.check.facts[0].startswith(f"digest:{SOURCE_FILE}=")

    def test_dispatch(self, containers_config, ubuntu_facts):
        assert _ids(build_steps(containers_config, ubuntu_facts))[0] == "packages.prerequisites"


# ── Backup ───────────────────────────────────────────────────────────


class TestBackupSteps:
    def test_backup_order(self, nextcloud_config, credentials):
        ordered = _ids(order_steps(build_backup_steps(nextcloud_config, credentials, "/srv/backup")))
        assert ordered.index("backup.maintenance-on") < ordered.index("backup.database")
        assert ordered[-1] == "backup.maintenance-off"

    def test_maintenance_off_is_finalizer(self, nextcloud_config, credentials):
        off = next(s for s in build_backup_steps(nextcloud_config, credentials, "/srv/backup")
                   if s.id == "backup.maintenance-off")
        assert off.finalizer
        assert off.triggers == ("backup.maintenance-on",)

    def test_dump_path(self, nextcloud_config, credentials):
        dump = next(s for s in build_backup_steps(nextcloud_config, credentials, "/srv/backup")
                    if s.id == "backup.database")
        assert dump.actions[0].params["path"] == f"/srv/backup/{DB_DUMP}"

    def test_restore_ends_with_fingerprint(self, nextcloud_config, credentials):
        ordered = _ids(order_steps(build_restore_steps(nextcloud_config, credentials, "/srv/backup")))
        assert ordered[0] == "restore.maintenance-on"
        assert ordered.index("restore.maintenance-off") < ordered.index("restore.fingerprint")

    def test_no_preconditions(self, nextcloud_config, credentials):
        steps = build_backup_steps(nextcloud_config, credentials, "/srv/backup")
        assert all(not s.check.facts for s in steps)


# ── Templates ────────────────────────────────────────────────────────


class TestTemplates:
    def test_vhost(self):
        vhost = nextcloud_vhost(DesiredConfig(hostname="cloud01"))
        assert "ServerName cloud01" in vhost
        assert "DocumentRoot /var/www/html/nextcloud" in vhost
        assert 'Header always set Strict-Transport-Security' in vhost

    def test_vhost_uses_domain(self):
        vhost = nextcloud_vhost(DesiredConfig(domain="cloud.example.org", email="ops@example.org"))
        assert "ServerName cloud.example.org" in vhost

    def test_vhost_redirects_once_certificate_exists(self):
        vhost = nextcloud_vhost(DesiredConfig(domain="cloud.example.org", email="ops@example.org"))
        assert "<IfFile /etc/letsencrypt/live/cloud.example.org/fullchain.pem>" in vhost
        assert "RewriteRule ^ https://%{SERVER_NAME}%{REQUEST_URI} [END,NE,R=permanent]" in vhost
        assert "acme-challenge" in vhost

    def test_vhost_without_tls_has_no_redirect(self, nextcloud_config):
        assert "RewriteEngine" not in nextcloud_vhost(nextcloud_config)

    def test_cron(self, nextcloud_config):
        assert nextcloud_cron(nextcloud_config) == "*/5 * * * * www-data php -f /var/www/html/nextcloud/cron.php\n"

    def test_ini(self):
        assert render_ini({"memory_limit": "512M"}) == "memory_limit = 512M\n"

    def test_compose_valid_yaml(self):
        content = portainer_compose("proxy_network")
        data = yaml.safe_load(content)
        assert data["networks"] == {"proxy_network": {"external": True}}
        assert data["services"]["portainer"]["container_name"] == "portainer"
        assert "portainer_data" in data["volumes"]

    def test_rendering_deterministic(self, nextcloud_config):
        assert sha256_digest(nextcloud_vhost(nextcloud_config)) == sha256_digest(nextcloud_vhost(nextcloud_config))
