"""
Config file rendering — vhost, php.ini overrides, cron and Compose files.

Everything is rendered from structured values, never by pasting user
input into a shell heredoc. Output is deterministic: the same inputs
produce byte-identical files, so a file's sha256 digest doubles as the
"already configured" fact.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

import yaml

from hostprov.core.models.config import DesiredConfig

# ── Apache ──────────────────────────────────────────────────────

SECURITY_HEADERS: tuple[tuple[str, str], ...] = (
    ("Strict-Transport-Security", "max-age=15552000; includeSubDomains"),
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "SAMEORIGIN"),
    ("X-XSS-Protection", "1; mode=block"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
)


@dataclass(frozen=True)
class ApacheVirtualHost:
    """A name-based virtual host serving one document root."""

    server_name: str
    document_root: str
    port: int = 80
    headers: tuple[tuple[str, str], ...] = SECURITY_HEADERS
    options: tuple[str, ...] = ("FollowSymlinks", "MultiViews")
    # Path of the certificate that switches the HTTPS redirect on
    redirect_when: str | None = None

    def render(self) -> str:
        lines = [
            f"<VirtualHost *:{self.port}>",
            f"    ServerName {self.server_name}",
            f"    DocumentRoot {self.document_root}",
            "",
        ]
        if self.redirect_when:
            lines += [
                f"    <IfFile {self.redirect_when}>",
                "        RewriteEngine on",
                "        RewriteCond %{REQUEST_URI} !^/\\.well-known/acme-challenge/",
                f"        RewriteCond %{{SERVER_NAME}} ={self.server_name}",
                "        RewriteRule ^ https://%{SERVER_NAME}%{REQUEST_URI} [END,NE,R=permanent]",
                "    </IfFile>",
                "",
            ]
        lines += [
            f"    <Directory {self.document_root}/>",
            "        Require all granted",
            f"        Options {' '.join(self.options)}",
            "        AllowOverride All",
            "",
            "        <IfModule mod_dav.c>",
            "            Dav off",
            "        </IfModule>",
            "",
            "        <IfModule mod_headers.c>",
        ]
        for name, value in self.headers:
            lines.append(f'            Header always set {name} "{value}"')
        lines += [
            "        </IfModule>",
            "    </Directory>",
            "",
            f"    ErrorLog ${{APACHE_LOG_DIR}}/{self.server_name}.error.log",
            f"    CustomLog ${{APACHE_LOG_DIR}}/{self.server_name}.access.log combined",
            "</VirtualHost>",
        ]
        return "\n".join(lines) + "\n"


def certificate_path(domain: str) -> str:
    return f"/etc/letsencrypt/live/{domain}/fullchain.pem"


def nextcloud_vhost(config: DesiredConfig) -> str:
    """Port-80 vhost for Nextcloud.

    With TLS requested it redirects to HTTPS once the certificate exists,
    so certbot never has to edit this file.
    """
    return ApacheVirtualHost(
        server_name=config.public_name,
        document_root=config.web_root,
        redirect_when=certificate_path(config.public_name) if config.tls_requested else None,
    ).render()


# ── PHP ─────────────────────────────────────────────────────────

PHP_SETTINGS: dict[str, str] = {
    "memory_limit": "512M",
    "upload_max_filesize": "10G",
    "post_max_size": "10G",
    "max_execution_time": "300",
    "max_input_time": "300",
    "date.timezone": "UTC",
    "opcache.enable": "1",
    "opcache.interned_strings_buffer": "8",
    "opcache.max_accelerated_files": "10000",
    "opcache.memory_consumption": "128",
    "opcache.save_comments": "1",
    "opcache.revalidate_freq": "1",
}


def render_ini(settings: dict[str, str]) -> str:
    return "".join(f"{key} = {value}\n" for key, value in settings.items())


# ── Cron ────────────────────────────────────────────────────────


def nextcloud_cron(config: DesiredConfig) -> str:
    """/etc/cron.d entry running Nextcloud background jobs every 5 minutes."""
    return f"*/5 * * * * {config.web_user} php -f {config.web_root}/cron.php\n"


# ── Compose ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ComposeService:
    """One service of a Compose project on an external network."""

    name: str
    image: str
    ports: tuple[str, ...] = ()
    volumes: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    container_name: str | None = None
    restart: str = "unless-stopped"

    def to_dict(self, network: str) -> dict[str, Any]:
        spec: dict[str, Any] = {"image": self.image}
        if self.container_name:
            spec["container_name"] = self.container_name
        spec["restart"] = self.restart
        if self.ports:
            spec["ports"] = list(self.ports)
        if self.environment:
            spec["environment"] = dict(self.environment)
        if self.volumes:
            spec["volumes"] = list(self.volumes)
        spec["networks"] = [network]
        return spec


def render_compose(
    services: list[ComposeService],
    network: str,
    named_volumes: tuple[str, ...] = (),
) -> str:
    """Serialize a Compose project joined to an existing external network."""
    compose: dict[str, Any] = {
        "services": {svc.name: svc.to_dict(network) for svc in services},
        "networks": {network: {"external": True}},
    }
    if named_volumes:
        compose["volumes"] = {name: {} for name in named_volumes}

    content = "# Generated by hostprov\n"
    content += yaml.safe_dump(compose, default_flow_style=False, sort_keys=False)
    return content


def nginx_manager_compose(network: str) -> str:
    return render_compose(
        [
            ComposeService(
                name="app",
                image="jc21/nginx-proxy-manager:latest",
                ports=("80:80", "443:443", "81:81"),
                environment={"DISABLE_IPV6": "true"},
                volumes=("./data:/data", "./letsencrypt:/etc/letsencrypt"),
            )
        ],
        network,
    )


def portainer_compose(network: str) -> str:
    return render_compose(
        [
            ComposeService(
                name="portainer",
                image="portainer/portainer-ce:latest",
                container_name="portainer",
                ports=("9000:9000", "8000:8000"),
                volumes=(
                    "/var/run/docker.sock:/var/run/docker.sock",
                    "portainer_data:/data",
                ),
            )
        ],
        network,
        named_volumes=("portainer_data",),
    )


# ── Digests ─────────────────────────────────────────────────────


def sha256_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def digest_fact(path: str, content: str) -> str:
    """Fact key that holds when ``path`` has exactly ``content``."""
    return f"digest:{path}={sha256_digest(content)}"
