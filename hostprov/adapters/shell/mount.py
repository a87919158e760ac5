"""Mount adapter — activate an fstab entry."""

from __future__ import annotations

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt


class MountAdapter(CommandAdapter):
    """Mount a mount point already declared in /etc/fstab.

    Action params:
        operation (str): mount
        mount_point (str): Path listed in fstab.
    """

    tool = "mount"
    operations = frozenset({"mount"})
    required_params = {"mount": ("mount_point",)}

    @property
    def name(self) -> str:
        return "mount"

    def _op_mount(self, context: ExecutionContext) -> Receipt:
        return self.run_receipt(context, ["mount", context.param("mount_point")])
