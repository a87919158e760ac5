"""
Nextcloud profile — Apache, MariaDB, PHP, Redis and Nextcloud itself.

``build_nextcloud_steps`` returns only the steps that apply to the
configuration: no PPA step for the distribution's PHP, no certificate
step without a public domain, NFS or local storage steps but never
both, no caching step without Redis.
"""

from __future__ import annotations

from pathlib import PurePosixPath

from pydantic import SecretStr

from hostprov.adapters.database.mysql import quote
from hostprov.core.catalog.common import actions, secret
from hostprov.core.catalog.templates import (
    PHP_SETTINGS,
    digest_fact,
    nextcloud_cron,
    nextcloud_vhost,
    render_ini,
)
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import Condition
from hostprov.core.models.step import Phase, RecoveryPolicy, Step

BASE_PACKAGES = (
    "wget", "curl", "unzip", "software-properties-common", "apt-transport-https",
    "gnupg", "lsb-release", "ca-certificates",
)
PHP_EXTENSIONS = (
    "cli", "common", "imap", "redis", "xml", "zip", "mbstring", "curl", "gd",
    "mysql", "intl", "bcmath", "gmp", "imagick", "bz2", "fpm", "ldap", "apcu",
)
CERTBOT_PACKAGES = ("certbot", "python3-certbot-apache", "ssl-cert")
APACHE_MODULES = ("rewrite", "headers", "env", "dir", "mime", "ssl")
PHP_PPA = "ppa:ondrej/php"
DOWNLOAD_URL = "https://download.nextcloud.com/server/releases/nextcloud-{version}.zip"

SITE_NAME = "nextcloud"
DEFAULT_SITE = "000-default"
SITE_CONF = f"/etc/apache2/sites-available/{SITE_NAME}.conf"
CRON_FILE = "/etc/cron.d/nextcloud"
PHP_INI_NAME = "99-nextcloud.ini"

MEMCACHE_SETTINGS = (
    ("memcache.local", "\\OC\\Memcache\\APCu"),
    ("memcache.distributed", "\\OC\\Memcache\\Redis"),
    ("memcache.locking", "\\OC\\Memcache\\Redis"),
    ("redis/host", "localhost"),
    ("redis/port", "6379"),
)

# steps whose changes only take effect after a service restart
RESTART_TRIGGERS = (
    "packages.php",
    "nextcloud.caching",
    "apache.vhost",
    "apache.modules",
    "apache.site",
    "php.settings",
)


def php_packages(version: str) -> list[str]:
    """php<ver>, its extensions and the Apache module."""
    return [
        f"php{version}",
        *(f"php{version}-{ext}" for ext in PHP_EXTENSIONS),
        f"libapache2-mod-php{version}",
    ]


def service_names(config: DesiredConfig) -> list[str]:
    """Services restarted after configuration changes, in restart order."""
    names = ["redis-server"] if config.redis else []
    return [*names, "mariadb", f"php{config.php_version}-fpm", "apache2"]


def create_database_sql(config: DesiredConfig, db_password: str) -> str:
    db, user = config.db_name, config.db_user
    return (
        f"CREATE DATABASE IF NOT EXISTS {db} CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci;\n"
        f"CREATE USER IF NOT EXISTS '{user}'@'localhost' IDENTIFIED BY {quote(db_password)};\n"
        f"GRANT ALL PRIVILEGES ON {db}.* TO '{user}'@'localhost';\n"
        "FLUSH PRIVILEGES;\n"
    )


def _pkg_step(
    step_id: str,
    description: str,
    packages: list[str] | tuple[str, ...],
    config: DesiredConfig,
    requires: tuple[str, ...] = ("packages.base",),
) -> Step:
    return Step(
        id=step_id,
        description=description,
        phase=Phase.PACKAGES,
        actions=actions(step_id, ("apt", {
            "operation": "install",
            "packages": list(packages),
            "noninteractive": config.noninteractive,
        })),
        check=Condition.all_of(f"pkg:{p}" for p in packages),
        requires=requires,
        policy=RecoveryPolicy.abort(retries=config.retries),
        timeout=config.timeouts.network,
    )


def _occ(config: DesiredConfig, *args: str | SecretStr) -> tuple[str, dict]:
    return ("occ", {
        "operation": "run",
        "args": list(args),
        "web_root": config.web_root,
        "web_user": config.web_user,
    })


# ── Packages ────────────────────────────────────────────────────


def package_steps(config: DesiredConfig) -> list[Step]:
    steps = [_pkg_step("packages.base", "Base tools", BASE_PACKAGES, config, requires=())]

    php_requires: tuple[str, ...] = ("packages.base",)
    if not config.default_php:
        steps.append(Step(
            id="repositories.php",
            description=f"PHP {config.php_version} repository ({PHP_PPA})",
            phase=Phase.REPOSITORIES,
            actions=actions("repositories.php", ("apt", {
                "operation": "add_repository",
                "repository": PHP_PPA,
                "noninteractive": config.noninteractive,
            })),
            check=Condition.of("apt_source:ondrej/php"),
            requires=("packages.base",),
            policy=RecoveryPolicy.abort(retries=config.retries),
            timeout=config.timeouts.network,
        ))
        php_requires = ("packages.base", "repositories.php")

    if config.redis:
        steps.append(_pkg_step("packages.redis", "Redis server", ["redis-server"], config))
    steps.append(_pkg_step("packages.database", "MariaDB server", ["mariadb-server"], config))
    steps.append(_pkg_step("packages.webserver", "Apache web server", ["apache2"], config))
    steps.append(_pkg_step(
        "packages.php", f"PHP {config.php_version} and extensions",
        php_packages(config.php_version), config, requires=php_requires,
    ))
    if config.tls_requested:
        steps.append(_pkg_step("packages.certbot", "Certbot for Apache", CERTBOT_PACKAGES, config))
    if config.storage.backend == "nfs":
        steps.append(_pkg_step("packages.nfs", "NFS client", ["nfs-common"], config))
    return steps


# ── Storage ─────────────────────────────────────────────────────


def storage_steps(config: DesiredConfig) -> tuple[list[Step], str]:
    """Data directory steps and the id of the one the install waits for."""
    storage = config.storage
    mount_point = storage.mount_point

    if storage.backend == "nfs":
        return [
            Step(
                id="storage.fstab",
                description=f"fstab entry for {storage.nfs_source}",
                phase=Phase.STORAGE,
                actions=actions("storage.fstab", ("filesystem", {
                    "operation": "append_line",
                    "path": "/etc/fstab",
                    "line": storage.fstab_line,
                })),
                check=Condition.of(f"fstab:{mount_point}"),
                requires=("packages.nfs",),
            ),
            Step(
                id="storage.mount",
                description=f"Mount {mount_point}",
                phase=Phase.STORAGE,
                actions=actions(
                    "storage.mount",
                    ("filesystem", {"operation": "mkdir", "path": mount_point}),
                    ("mount", {"operation": "mount", "mount_point": mount_point}),
                ),
                check=Condition.of(f"mount:{mount_point}"),
                requires=("storage.fstab",),
                policy=RecoveryPolicy.abort(retries=3),
                timeout=config.timeouts.network,
            ),
        ], "storage.mount"

    return [
        Step(
            id="storage.local-dir",
            description=f"Local data directory {storage.local_dir}",
            phase=Phase.STORAGE,
            actions=actions("storage.local-dir", ("filesystem", {
                "operation": "mkdir",
                "path": storage.local_dir,
                "mode": 0o750,
                "owner": config.web_user,
                "group": config.web_user,
            })),
            check=Condition.of(f"dir:{storage.local_dir}", f"owner:{storage.local_dir}={config.web_user}"),
            requires=("packages.webserver",),
        ),
        Step(
            id="storage.link",
            description=f"Link {mount_point} to {storage.local_dir}",
            phase=Phase.STORAGE,
            actions=actions("storage.link", ("filesystem", {
                "operation": "symlink",
                "path": mount_point,
                "target": storage.local_dir,
            })),
            check=Condition.of(f"link:{mount_point}={storage.local_dir}"),
            requires=("storage.local-dir",),
            destructive=True,
        ),
    ], "storage.link"


# ── Database ────────────────────────────────────────────────────


def database_steps(config: DesiredConfig, credentials: CredentialRecord | None) -> list[Step]:
    root_password = secret(credentials, "mysql_root_password")
    db_password = secret(credentials, "db_password").get_secret_value()
    return [
        Step(
            id="database.root-password",
            description="Set the database root password",
            phase=Phase.DATABASE,
            actions=actions("database.root-password", ("mysql", {
                "operation": "set_root_password",
                "password": root_password,
            })),
            check=Condition.of("mysql:root_login"),
            requires=("packages.database",),
            destructive=True,
        ),
        Step(
            id="database.create",
            description=f"Database '{config.db_name}' and user '{config.db_user}'",
            phase=Phase.DATABASE,
            actions=actions("database.create", ("mysql", {
                "operation": "sql",
                "statements": SecretStr(create_database_sql(config, db_password)),
                "root_password": root_password,
            })),
            check=Condition.of(f"db:{config.db_name}", f"dbuser:{config.db_user}"),
            requires=("database.root-password",),
        ),
    ]


# ── Nextcloud ───────────────────────────────────────────────────


def webapp_steps(
    config: DesiredConfig,
    credentials: CredentialRecord | None,
    storage_step: str,
) -> list[Step]:
    web_root = PurePosixPath(config.web_root)
    parent = str(web_root.parent)
    archive = f"/tmp/nextcloud-{config.nextcloud_version}.zip"
    url = DOWNLOAD_URL.format(version=config.nextcloud_version)

    download = [
        ("filesystem", {"operation": "mkdir", "path": parent}),
        ("shell", {"argv": ["wget", "-q", "-O", archive, url]}),
        ("shell", {"argv": ["unzip", "-q", "-o", archive, "-d", parent]}),
    ]
    if web_root.name != "nextcloud":
        download.append(("shell", {"argv": ["mv", f"{parent}/nextcloud", str(web_root)]}))
    download.append(("filesystem", {"operation": "remove", "path": archive}))

    steps = [
        Step(
            id="nextcloud.download",
            description=f"Download Nextcloud {config.nextcloud_version}",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.download", *download),
            check=Condition.of(f"file:{web_root}/occ"),
            requires=("packages.base",),
            policy=RecoveryPolicy.abort(retries=config.retries),
            timeout=config.timeouts.network,
        ),
        Step(
            id="nextcloud.permissions",
            description=f"Give {config.web_user} ownership of {web_root}",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.permissions", ("filesystem", {
                "operation": "chown",
                "path": str(web_root),
                "owner": config.web_user,
                "group": config.web_user,
                "recursive": True,
            })),
            check=Condition.of(
                f"owner:{web_root}={config.web_user}",
                f"owner:{web_root}/config={config.web_user}",
            ),
            requires=("nextcloud.download", "packages.webserver"),
        ),
        Step(
            id="nextcloud.install",
            description="Run the Nextcloud installer",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.install", _occ(
                config,
                "maintenance:install",
                "--database", "mysql",
                "--database-name", config.db_name,
                "--database-user", config.db_user,
                "--database-pass", secret(credentials, "db_password"),
                "--admin-user", config.admin_user,
                "--admin-pass", secret(credentials, "admin_password"),
                "--data-dir", config.storage.mount_point,
            )),
            check=Condition.of("nextcloud:installed"),
            requires=("nextcloud.permissions", "database.create", "packages.php", storage_step),
            destructive=True,
            timeout=config.timeouts.network,
        ),
        Step(
            id="nextcloud.trusted-domains",
            description="Trusted domains",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.trusted-domains", *(
                _occ(config, "config:system:set", "trusted_domains", str(i), f"--value={domain}")
                for i, domain in enumerate(config.trusted_domains)
            )),
            check=Condition.all_of(f"occ_trusted:{d}" for d in config.trusted_domains),
            requires=("nextcloud.install",),
        ),
    ]

    if config.apps:
        steps.append(Step(
            id="nextcloud.apps",
            description=f"Enable apps: {', '.join(config.apps)}",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.apps", *(_occ(config, "app:enable", app) for app in config.apps)),
            check=Condition.all_of(f"occ_app:{app}" for app in config.apps),
            requires=("nextcloud.install",),
            policy=RecoveryPolicy.skip(retries=1),
        ))

    steps.append(Step(
        id="nextcloud.background-jobs",
        description="Run background jobs from cron",
        phase=Phase.WEBAPP,
        actions=actions("nextcloud.background-jobs", _occ(config, "background:cron")),
        check=Condition.of("occ_appconfig:core:backgroundjobs_mode=cron"),
        requires=("nextcloud.install",),
    ))

    if config.redis:
        steps.append(Step(
            id="nextcloud.caching",
            description="APCu local cache, Redis distributed cache and locking",
            phase=Phase.WEBAPP,
            actions=actions("nextcloud.caching", *(
                _occ(config, "config:system:set", *key.split("/"), f"--value={value}",
                     *(["--type=integer"] if key == "redis/port" else []))
                for key, value in MEMCACHE_SETTINGS
            )),
            check=Condition.all_of(f"occ_system:{key}={value}" for key, value in MEMCACHE_SETTINGS),
            requires=("nextcloud.install", "packages.redis"),
        ))

    cron = nextcloud_cron(config)
    steps.append(Step(
        id="nextcloud.cron",
        description=f"Cron entry {CRON_FILE}",
        phase=Phase.WEBAPP,
        actions=actions("nextcloud.cron", ("filesystem", {
            "operation": "write", "path": CRON_FILE, "content": cron, "mode": 0o644,
        })),
        check=Condition.of(digest_fact(CRON_FILE, cron)),
        requires=("nextcloud.install",),
    ))
    return steps


# ── Web server, PHP, TLS ────────────────────────────────────────


def webserver_steps(config: DesiredConfig) -> list[Step]:
    vhost = nextcloud_vhost(config)
    ini = render_ini(PHP_SETTINGS)
    ini_paths = [
        f"/etc/php/{config.php_version}/{sapi}/conf.d/{PHP_INI_NAME}" for sapi in ("apache2", "fpm")
    ]
    return [
        Step(
            id="apache.vhost",
            description=f"Virtual host for {config.public_name}",
            phase=Phase.WEBSERVER,
            actions=actions("apache.vhost", ("filesystem", {
                "operation": "write", "path": SITE_CONF, "content": vhost, "mode": 0o644,
            })),
            check=Condition.of(digest_fact(SITE_CONF, vhost)),
            requires=("packages.webserver",),
        ),
        Step(
            id="apache.modules",
            description=f"Apache modules: {' '.join(APACHE_MODULES)}",
            phase=Phase.WEBSERVER,
            actions=actions("apache.modules", ("shell", {"argv": ["a2enmod", *APACHE_MODULES]})),
            check=Condition.all_of(f"apache_mod:{mod}" for mod in APACHE_MODULES),
            requires=("packages.webserver",),
        ),
        Step(
            id="apache.site",
            description=f"Enable {SITE_NAME}, disable {DEFAULT_SITE}",
            phase=Phase.WEBSERVER,
            actions=actions(
                "apache.site",
                ("shell", {"argv": ["a2ensite", f"{SITE_NAME}.conf"]}),
                ("shell", {"argv": ["a2dissite", f"{DEFAULT_SITE}.conf"]}),
            ),
            check=Condition.of(f"apache_site:{SITE_NAME}", f"apache_site_off:{DEFAULT_SITE}"),
            requires=("apache.vhost", "apache.modules"),
            destructive=True,
        ),
        Step(
            id="php.settings",
            description=f"PHP settings {PHP_INI_NAME} (apache2 and fpm)",
            phase=Phase.WEBSERVER,
            actions=actions("php.settings", *(
                ("filesystem", {"operation": "write", "path": path, "content": ini, "mode": 0o644})
                for path in ini_paths
            )),
            check=Condition.all_of(digest_fact(path, ini) for path in ini_paths),
            requires=("packages.php",),
        ),
    ]


def tls_step(config: DesiredConfig) -> Step:
    domain = config.domain
    return Step(
        id="tls.certificate",
        description=f"Let's Encrypt certificate for {domain}",
        phase=Phase.TLS,
        actions=actions("tls.certificate", ("certbot", {
            "operation": "issue", "domain": domain, "email": config.email,
        })),
        check=Condition.of(f"cert:{domain}"),
        gate=Condition.of(f"dns:{domain}", reason=f"{domain} does not resolve"),
        requires=("apache.site", "packages.certbot"),
        policy=RecoveryPolicy.skip(retries=2),
        timeout=config.timeouts.network,
    )


# ── Services ────────────────────────────────────────────────────


def service_steps(config: DesiredConfig, present: set[str]) -> list[Step]:
    restart_triggers = tuple(t for t in RESTART_TRIGGERS if t in present)
    return [
        Step(
            id="services.restart",
            description=f"Restart {', '.join(service_names(config))}",
            phase=Phase.SERVICES,
            actions=actions("services.restart", *(
                ("shell", {"argv": ["systemctl", "restart", name]}) for name in service_names(config)
            )),
            triggers=restart_triggers,
            policy=RecoveryPolicy.skip(retries=1),
        ),
        Step(
            id="nextcloud.db-maintenance",
            description="Add missing indices, convert filecache to bigint",
            phase=Phase.SERVICES,
            actions=actions(
                "nextcloud.db-maintenance",
                _occ(config, "db:add-missing-indices"),
                _occ(config, "db:convert-filecache-bigint", "--no-interaction"),
            ),
            requires=("services.restart",),
            triggers=("nextcloud.install", "nextcloud.download"),
            policy=RecoveryPolicy.skip(),
            timeout=config.timeouts.network,
        ),
    ]


def build_nextcloud_steps(config: DesiredConfig, credentials: CredentialRecord | None = None) -> list[Step]:
    """Every applicable Nextcloud step, in declaration order."""
    steps = package_steps(config)
    storage, storage_step = storage_steps(config)
    steps += storage
    steps += database_steps(config, credentials)
    steps += webapp_steps(config, credentials, storage_step)
    steps += webserver_steps(config)
    if config.tls_requested:
        steps.append(tls_step(config))
    steps += service_steps(config, {s.id for s in steps})
    return steps
