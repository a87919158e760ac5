"""
Fact probe — read-only observation of host state.

``HostProbe.probe(keys)`` answers each namespaced fact key with True
(present), False (absent) or None (unknown) and returns an immutable
HostFact snapshot. The probe never changes the host: it reads files
under ``root`` and runs query commands (``dpkg-query``, ``mountpoint``,
``mysql -e SELECT``, ``occ config:*:get``, ``docker network inspect``,
``openssl x509 -checkend``) through the shared command runner.

A missing tool, a timeout, an unknown namespace or any unexpected
error yields None. Probing is best-effort by contract; the planner
treats unknown as "attempt the step".

Both ``runner`` and ``root`` are injectable, so tests run against a
temporary directory and a scripted runner.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import shutil
import socket
from collections.abc import Callable, Iterable
from pathlib import Path

from hostprov.core.catalog.templates import certificate_path
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import FactValue, HostFact
from hostprov.core.runner import CommandResult, CommandRunner, run_command

logger = logging.getLogger(__name__)

_INSTALLED_RE = re.compile(r"""['"]installed['"]\s*=>\s*true""")


def split_value(argument: str) -> tuple[str, str]:
    """Split ``<subject>=<expected>`` on the last '='."""
    subject, sep, expected = argument.rpartition("=")
    if not sep:
        raise ValueError(f"Fact argument '{argument}' needs '=<value>'")
    return subject, expected


def occ_argv(config: DesiredConfig, *args: str) -> list[str]:
    """Command line for ``php occ`` run as the web server user."""
    return ["sudo", "-u", config.web_user, "php", f"{config.web_root}/occ", *args]


class HostProbe:
    """Answers fact keys about one host."""

    def __init__(
        self,
        config: DesiredConfig,
        runner: CommandRunner = run_command,
        root: Path = Path("/"),
        credentials: CredentialRecord | None = None,
        resolver: Callable[[str], str] = socket.gethostbyname,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.config = config
        self.credentials = credentials
        self._runner = runner
        self._root = Path(root)
        self._resolver = resolver
        self._which = which
        self._occ_apps: dict[str, bool] | None = None

        self._handlers: dict[str, Callable[[str], FactValue]] = {
            "pkg": self._pkg,
            "cmd": self._cmd,
            "file": lambda arg: self.path(arg).is_file(),
            "dir": lambda arg: self.path(arg).is_dir(),
            "digest": self._digest,
            "link": self._link,
            "fstab": self._fstab,
            "mount": self._mount,
            "owner": self._owner,
            "group": self._group,
            "apt_source": self._apt_source,
            "db": self._db,
            "dbuser": self._dbuser,
            "mysql": self._mysql_fact,
            "nextcloud": self._nextcloud,
            "occ_system": self._occ_system,
            "occ_trusted": self._occ_trusted,
            "occ_app": self._occ_app,
            "occ_appconfig": self._occ_appconfig,
            "apache_mod": self._apache_mod,
            "apache_site": self._apache_site_enabled,
            "apache_site_off": self._apache_site_off,
            "cert": self._cert,
            "dns": self._dns,
            "docker_network": self._docker_network,
            "compose_running": self._compose_running,
        }

    # ── Public API ──────────────────────────────────────────────

    def probe(self, keys: Iterable[str] = ()) -> HostFact:
        """Snapshot of OS facts plus every requested key."""
        self._occ_apps = None
        os_info = self.os_info()
        facts = {key: self.fact(key) for key in dict.fromkeys(keys)}
        unknown = sum(1 for v in facts.values() if v is None)
        logger.info("Probed %d facts (%d unknown)", len(facts), unknown)
        return HostFact(facts=facts, **os_info)

    def refresh(self, snapshot: HostFact, keys: Iterable[str]) -> HostFact:
        """Re-probe ``keys`` and merge them into ``snapshot``."""
        self._occ_apps = None
        updates = {key: self.fact(key) for key in dict.fromkeys(keys)}
        logger.debug("Refreshed facts: %s", updates)
        return snapshot.merged(updates)

    def fact(self, key: str) -> FactValue:
        """Evaluate a single fact key."""
        namespace, sep, argument = key.partition(":")
        handler = self._handlers.get(namespace)
        if not sep or handler is None:
            logger.warning("Unknown fact key '%s'", key)
            return None
        try:
            return handler(argument)
        except Exception as e:
            logger.warning("Probe of '%s' failed: %s", key, e)
            return None

    def os_info(self) -> dict[str, str]:
        """Distribution id, version, codename and dpkg architecture."""
        info = {"os_id": "", "os_version": "", "codename": "", "arch": ""}
        release = self.path("/etc/os-release")
        if release.is_file():
            values = parse_os_release(release.read_text(encoding="utf-8"))
            info["os_id"] = values.get("ID", "")
            info["os_version"] = values.get("VERSION_ID", "")
            info["codename"] = values.get("VERSION_CODENAME") or values.get("UBUNTU_CODENAME", "")

        result = self._run(["dpkg", "--print-architecture"])
        if result.ok:
            info["arch"] = result.stdout.strip()
        return info

    def path(self, path: str) -> Path:
        """Host path under the probe root."""
        return self._root / path.lstrip("/")

    # ── Command helpers ─────────────────────────────────────────

    def _run(self, argv: list[str], **kwargs) -> CommandResult:
        return self._runner(argv, timeout=self.config.timeouts.probe, **kwargs)

    @staticmethod
    def _tri(result: CommandResult) -> FactValue:
        """rc 0 → True, tool missing or timed out → None, else False."""
        if result.not_found or result.timed_out:
            return None
        return result.ok

    def _mysql(self, sql: str, *, tcp: bool = False) -> CommandResult:
        argv = ["mysql", "-u", "root", "-N", "-B"]
        if tcp:
            argv += ["--protocol=TCP", "-h", "127.0.0.1"]
        argv += ["-e", sql]
        env = None
        secrets: tuple[str, ...] = ()
        if self.credentials is not None:
            password = self.credentials.mysql_root_password.get_secret_value()
            env = {"MYSQL_PWD": password}
            secrets = (password,)
        return self._run(argv, env_overrides=env, redact_values=secrets)

    def _occ(self, *args: str) -> CommandResult | None:
        """Run a read-only occ command; None when Nextcloud is not unpacked."""
        if not self.path(f"{self.config.web_root}/occ").is_file():
            return None
        return self._run(occ_argv(self.config, *args))

    # ── Packages, commands, files ───────────────────────────────

    def _pkg(self, name: str) -> FactValue:
        result = self._run(["dpkg-query", "-W", "-f=${Status}", name])
        if result.not_found or result.timed_out:
            return None
        return "install ok installed" in result.stdout

    def _cmd(self, name: str) -> FactValue:
        return self._which(name) is not None

    def _digest(self, argument: str) -> FactValue:
        file_path, expected = split_value(argument)
        target = self.path(file_path)
        if not target.is_file():
            return False
        return hashlib.sha256(target.read_bytes()).hexdigest() == expected

    def _link(self, argument: str) -> FactValue:
        link_path, target = split_value(argument)
        link = self.path(link_path)
        if not link.is_symlink():
            return False
        return str(link.readlink()) == target

    def _owner(self, argument: str) -> FactValue:
        file_path, user = split_value(argument)
        target = self.path(file_path)
        if not target.exists():
            return False
        return target.owner() == user

    def _group(self, argument: str) -> FactValue:
        user, group = split_value(argument)
        result = self._run(["id", "-nG", user])
        if result.not_found or result.timed_out:
            return None
        if not result.ok:
            return False
        return group in result.stdout.split()

    def _apt_source(self, fragment: str) -> FactValue:
        candidates = [self.path("/etc/apt/sources.list")]
        sources_d = self.path("/etc/apt/sources.list.d")
        if sources_d.is_dir():
            candidates.extend(sorted(sources_d.iterdir()))
        for candidate in candidates:
            if candidate.is_file() and fragment in candidate.read_text(encoding="utf-8", errors="replace"):
                return True
        return False

    # ── Storage ─────────────────────────────────────────────────

    def _fstab(self, mount_point: str) -> FactValue:
        fstab = self.path("/etc/fstab")
        if not fstab.is_file():
            return False
        for line in fstab.read_text(encoding="utf-8").splitlines():
            fields = line.split()
            if fields and not fields[0].startswith("#") and len(fields) >= 2 and fields[1] == mount_point:
                return True
        return False

    def _mount(self, mount_point: str) -> FactValue:
        return self._tri(self._run(["mountpoint", "-q", mount_point]))

    # ── Database ────────────────────────────────────────────────

    def _db(self, name: str) -> FactValue:
        result = self._mysql(f"SHOW DATABASES LIKE '{name}'")
        if not result.ok:
            return None
        return result.stdout.strip() == name

    def _dbuser(self, name: str) -> FactValue:
        result = self._mysql(f"SELECT User FROM mysql.user WHERE User = '{name}'")
        if not result.ok:
            return None
        return name in result.stdout.split()

    def _mysql_fact(self, argument: str) -> FactValue:
        if argument != "root_login":
            raise ValueError(f"unknown mysql fact '{argument}'")
        if self.credentials is None:
            return None
        # TCP forces password auth; the unix socket would let root in regardless
        return self._tri(self._mysql("SELECT 1", tcp=True))

    # ── Nextcloud ───────────────────────────────────────────────

    def _nextcloud(self, argument: str) -> FactValue:
        if argument != "installed":
            raise ValueError(f"unknown nextcloud fact '{argument}'")
        config_php = self.path(f"{self.config.web_root}/config/config.php")
        if not config_php.is_file():
            return False
        return bool(_INSTALLED_RE.search(config_php.read_text(encoding="utf-8", errors="replace")))

    def _occ_system(self, argument: str) -> FactValue:
        key, expected = split_value(argument)
        result = self._occ("config:system:get", *key.split("/"))
        if result is None:
            return False
        if result.not_found or result.timed_out:
            return None
        return result.ok and result.stdout.strip() == expected

    def _occ_trusted(self, domain: str) -> FactValue:
        result = self._occ("config:system:get", "trusted_domains")
        if result is None:
            return False
        if result.not_found or result.timed_out:
            return None
        return result.ok and domain in result.stdout.split()

    def _occ_app(self, name: str) -> FactValue:
        if self._occ_apps is None:
            result = self._occ("app:list", "--output=json")
            if result is None:
                return False
            if not result.ok:
                return None if (result.not_found or result.timed_out) else False
            listing = json.loads(result.stdout)
            self._occ_apps = {app: True for app in listing.get("enabled", {})}
        return self._occ_apps.get(name, False)

    def _occ_appconfig(self, argument: str) -> FactValue:
        subject, expected = split_value(argument)
        app, sep, key = subject.partition(":")
        if not sep:
            raise ValueError(f"occ_appconfig needs '<app>:<key>=<value>', got '{argument}'")
        result = self._occ("config:app:get", app, key)
        if result is None:
            return False
        if result.not_found or result.timed_out:
            return None
        return result.ok and result.stdout.strip() == expected

    # ── Apache and TLS ──────────────────────────────────────────

    def _apache_mod(self, module: str) -> FactValue:
        return self.path(f"/etc/apache2/mods-enabled/{module}.load").exists()

    def _apache_site_enabled(self, site: str) -> FactValue:
        return self.path(f"/etc/apache2/sites-enabled/{site}.conf").exists()

    def _apache_site_off(self, site: str) -> FactValue:
        return not self._apache_site_enabled(site)

    def _cert(self, domain: str) -> FactValue:
        fullchain = self.path(certificate_path(domain))
        if not fullchain.is_file():
            return False
        return self._tri(
            self._run(["openssl", "x509", "-checkend", "0", "-noout", "-in", str(fullchain)])
        )

    def _dns(self, domain: str) -> FactValue:
        try:
            self._resolver(domain)
        except OSError:
            return False
        return True

    # ── Docker ──────────────────────────────────────────────────

    def _docker_network(self, name: str) -> FactValue:
        return self._tri(self._run(["docker", "network", "inspect", name]))

    def _compose_running(self, compose_file: str) -> FactValue:
        if not self.path(compose_file).is_file():
            return False
        result = self._run(["docker", "compose", "-f", compose_file, "ps", "-q", "--status", "running"])
        if result.not_found or result.timed_out:
            return None
        return result.ok and bool(result.stdout.strip())


def parse_os_release(text: str) -> dict[str, str]:
    """Parse /etc/os-release ``KEY=value`` lines."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key and not key.startswith("#"):
            values[key] = value.strip().strip('"').strip("'")
    return values


def probe(
    config: DesiredConfig,
    keys: Iterable[str],
    credentials: CredentialRecord | None = None,
) -> HostFact:
    """Probe the local host for ``keys``."""
    return HostProbe(config, credentials=credentials).probe(keys)
