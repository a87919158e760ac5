"""
Docker adapter — networks, Compose stacks and container inspection.
"""

from __future__ import annotations

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt

IP_FORMAT = "{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}"


class DockerAdapter(CommandAdapter):
    """Docker CLI operations.

    Action params:
        operation (str): network_create, compose_up, container_ip.
        network (str): Network name (network_create).
        file (str): Compose file (compose_up).
        container (str): Container name (container_ip).
    """

    tool = "docker"
    operations = frozenset({"network_create", "compose_up", "container_ip"})
    required_params = {
        "network_create": ("network",),
        "compose_up": ("file",),
        "container_ip": ("container",),
    }

    @property
    def name(self) -> str:
        return "docker"

    def _op_network_create(self, context: ExecutionContext) -> Receipt:
        network = context.param("network")
        argv = ["docker", "network", "create", network]
        result = self.run(context, argv)
        if not result.ok and "already exists" in result.stderr:
            return Receipt.skip(self.name, context.action.id, reason=f"Network {network} already exists")
        return self.receipt(context, argv, result)

    def _op_compose_up(self, context: ExecutionContext) -> Receipt:
        return self.run_receipt(context, ["docker", "compose", "-f", context.param("file"), "up", "-d"])

    def _op_container_ip(self, context: ExecutionContext) -> Receipt:
        return self.run_receipt(
            context,
            ["docker", "inspect", "-f", IP_FORMAT, context.param("container")],
        )
