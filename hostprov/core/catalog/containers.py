"""
Containers profile — Docker Engine, a shared network, NGINX Proxy
Manager and Portainer.

The apt source line needs the host's dpkg architecture and release
codename, so this catalog reads them from the fact snapshot.
"""

from __future__ import annotations

from hostprov.core.catalog.common import actions
from hostprov.core.catalog.templates import digest_fact, nginx_manager_compose, portainer_compose
from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import Condition, HostFact
from hostprov.core.models.step import Phase, RecoveryPolicy, Step

PREREQUISITES = ("ca-certificates", "curl", "gnupg", "lsb-release")
DOCKER_PACKAGES = (
    "docker-ce", "docker-ce-cli", "containerd.io", "docker-buildx-plugin", "docker-compose-plugin",
)
KEYRING_DIR = "/etc/apt/keyrings"
KEY_FILE = f"{KEYRING_DIR}/docker.asc"
SOURCE_FILE = "/etc/apt/sources.list.d/docker.list"

# stack name → compose renderer
STACKS = {
    "nginx-manager": nginx_manager_compose,
    "portainer": portainer_compose,
}
PORTAINER_CONTAINER = "portainer"


def docker_source_line(config: DesiredConfig, arch: str, codename: str) -> str:
    repo = config.containers.docker_repo
    return f"deb [arch={arch} signed-by={KEY_FILE}] {repo} {codename} stable\n"


def compose_file(config: DesiredConfig, stack: str) -> str:
    return f"{config.containers.compose_dir}/{stack}/docker-compose.yml"


def build_containers_steps(config: DesiredConfig, facts: HostFact) -> list[Step]:
    """Every applicable containers step, in declaration order.

    Raises:
        PlanError: If the snapshot lacks the architecture or codename.
    """
    if not facts.arch or not facts.codename:
        raise PlanError(
            "Cannot plan the Docker repository: host architecture or release codename unknown "
            f"(arch={facts.arch!r}, codename={facts.codename!r})"
        )

    network = config.containers.network
    source = docker_source_line(config, facts.arch, facts.codename)
    install = {"operation": "install", "noninteractive": config.noninteractive}

    steps = [
        Step(
            id="packages.prerequisites",
            description="Prerequisites for the Docker repository",
            phase=Phase.PACKAGES,
            actions=actions("packages.prerequisites", ("apt", {**install, "packages": list(PREREQUISITES)})),
            check=Condition.all_of(f"pkg:{p}" for p in PREREQUISITES),
            policy=RecoveryPolicy.abort(retries=config.retries),
            timeout=config.timeouts.network,
        ),
        Step(
            id="repositories.docker-key",
            description=f"Docker signing key {KEY_FILE}",
            phase=Phase.REPOSITORIES,
            actions=actions(
                "repositories.docker-key",
                ("filesystem", {"operation": "mkdir", "path": KEYRING_DIR, "mode": 0o755}),
                ("shell", {"argv": ["curl", "-fsSL", f"{config.containers.docker_repo}/gpg", "-o", KEY_FILE]}),
                ("filesystem", {"operation": "chmod", "path": KEY_FILE, "mode": 0o644}),
            ),
            check=Condition.of(f"file:{KEY_FILE}"),
            requires=("packages.prerequisites",),
            policy=RecoveryPolicy.abort(retries=3),
            timeout=config.timeouts.network,
        ),
        Step(
            id="repositories.docker",
            description=f"Docker apt source ({facts.arch}, {facts.codename})",
            phase=Phase.REPOSITORIES,
            actions=actions("repositories.docker", ("filesystem", {
                "operation": "write", "path": SOURCE_FILE, "content": source, "mode": 0o644,
            })),
            check=Condition.of(digest_fact(SOURCE_FILE, source)),
            requires=("repositories.docker-key",),
        ),
        Step(
            id="packages.docker",
            description="Docker Engine and Compose plugin",
            phase=Phase.PACKAGES,
            actions=actions("packages.docker", ("apt", {**install, "packages": list(DOCKER_PACKAGES)})),
            check=Condition.all_of(f"pkg:{p}" for p in DOCKER_PACKAGES),
            requires=("repositories.docker",),
            policy=RecoveryPolicy.abort(retries=config.retries),
            timeout=config.timeouts.network,
        ),
    ]

    user = config.containers.target_user
    if user:
        steps.append(Step(
            id="docker.user-group",
            description=f"Add {user} to the docker group",
            phase=Phase.SERVICES,
            actions=actions("docker.user-group", ("shell", {"argv": ["usermod", "-aG", "docker", user]})),
            check=Condition.of(f"group:{user}=docker"),
            requires=("packages.docker",),
        ))

    for stack, render in STACKS.items():
        path = compose_file(config, stack)
        content = render(network)
        steps.append(Step(
            id=f"compose.{stack}",
            description=f"Compose file for {stack}",
            phase=Phase.WEBAPP,
            actions=actions(f"compose.{stack}", ("filesystem", {
                "operation": "write", "path": path, "content": content, "mode": 0o644,
            })),
            check=Condition.of(digest_fact(path, content)),
        ))

    steps.append(Step(
        id="docker.network",
        description=f"Docker network {network}",
        phase=Phase.SERVICES,
        actions=actions("docker.network", ("docker", {"operation": "network_create", "network": network})),
        check=Condition.of(f"docker_network:{network}"),
        requires=("packages.docker",),
    ))

    for stack in STACKS:
        path = compose_file(config, stack)
        steps.append(Step(
            id=f"compose.up.{stack}",
            description=f"Start {stack}",
            phase=Phase.SERVICES,
            actions=actions(f"compose.up.{stack}", ("docker", {"operation": "compose_up", "file": path})),
            check=Condition.of(f"compose_running:{path}"),
            requires=("docker.network", f"compose.{stack}"),
            policy=RecoveryPolicy.abort(retries=2),
            timeout=config.timeouts.network,
        ))

    return steps
