"""
DesiredConfig — the single immutable description of the target host.

Loaded once (YAML file + CLI overrides) and passed explicitly into the
probe, the planner and the executor. Nothing else holds provisioning
settings.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class StorageConfig(BaseModel):
    """Where Nextcloud keeps user data."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["local", "nfs"] = "local"
    account: str = ""              # Azure storage account (nfs)
    container: str = ""            # Azure blob container (nfs)
    mount_point: str = "/mnt/files"
    local_dir: str = "/var/nextcloud-data"
    nfs_options: str = "defaults,sec=sys,vers=3,nolock,proto=tcp,nofail,_netdev"

    @property
    def nfs_source(self) -> str:
        return f"{self.account}.blob.core.windows.net:/{self.account}/{self.container}"

    @property
    def fstab_line(self) -> str:
        return f"{self.nfs_source} {self.mount_point} nfs {self.nfs_options} 0 0"


class ContainersConfig(BaseModel):
    """Docker host with NGINX Proxy Manager and Portainer."""

    model_config = ConfigDict(frozen=True)

    target_user: str = ""          # added to the docker group
    public_ip: str = ""
    compose_dir: str = "/opt/docker-compose"
    network: str = "proxy_network"
    docker_repo: str = "https://download.docker.com/linux/ubuntu"


class TimeoutConfig(BaseModel):
    """Per-action timeouts in seconds."""

    model_config = ConfigDict(frozen=True)

    command: int = Field(default=600, gt=0)
    network: int = Field(default=900, gt=0)
    probe: int = Field(default=15, gt=0)


class DesiredConfig(BaseModel):
    """Desired end state of the host."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    profile: Literal["nextcloud", "containers"] = "nextcloud"

    # ── Identity ─────────────────────────────────────────────────
    hostname: str = "localhost"
    domain: str = ""               # public FQDN; enables TLS when set
    email: str = ""                # contact for certificate issuance

    # ── Nextcloud ────────────────────────────────────────────────
    admin_user: str = "admin"
    admin_password: SecretStr | None = None   # None = auto-generate
    nextcloud_version: str = "28.0.3"
    php_version: str = "8.1"
    web_root: str = "/var/www/html/nextcloud"
    web_user: str = "www-data"
    db_name: str = Field(default="nextcloud", pattern=r"^[A-Za-z0-9_]+$")
    db_user: str = Field(default="nextcloud", pattern=r"^[A-Za-z0-9_]+$")
    redis: bool = True
    apps: tuple[str, ...] = ("admin_audit", "encryption")
    storage: StorageConfig = Field(default_factory=StorageConfig)

    # ── Containers ───────────────────────────────────────────────
    containers: ContainersConfig = Field(default_factory=ContainersConfig)

    # ── Execution ────────────────────────────────────────────────
    noninteractive: bool = True
    retries: int = Field(default=3, ge=0)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    state_dir: str = "/var/lib/hostprov"

    @model_validator(mode="after")
    def _check_requirements(self) -> DesiredConfig:
        if self.tls_requested and not self.email:
            raise ValueError("email is required when a domain is set (certificate issuance)")
        if self.storage.backend == "nfs" and not (self.storage.account and self.storage.container):
            raise ValueError("storage.account and storage.container are required for nfs storage")
        return self

    @property
    def tls_requested(self) -> bool:
        return bool(self.domain) and self.domain != "localhost"

    @property
    def public_name(self) -> str:
        return self.domain or self.hostname

    @property
    def trusted_domains(self) -> list[str]:
        domains = ["localhost", self.hostname]
        if self.domain:
            domains.append(self.domain)
        return list(dict.fromkeys(domains))

    @property
    def default_php(self) -> bool:
        """The distribution's PHP; other versions come from the ondrej PPA."""
        return self.php_version == "8.1"
