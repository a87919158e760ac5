"""
Nextcloud ``occ`` adapter.

Runs ``php occ <args>`` as the web server user from the web root. Secret
arguments (``--admin-pass``) are SecretStr values inside ``args``; they
are unwrapped only when the command line is built and masked in logs.
"""

from __future__ import annotations

from hostprov.adapters.base import CommandAdapter, ExecutionContext, reveal
from hostprov.core.models.action import Receipt


class OccAdapter(CommandAdapter):
    """Run Nextcloud's occ console.

    Action params:
        operation (str): run
        args (list): occ arguments.
        web_root (str): Nextcloud install directory.
        web_user (str): User that owns the install (default www-data).
    """

    tool = "php"
    operations = frozenset({"run"})
    required_params = {"run": ("args", "web_root")}

    @property
    def name(self) -> str:
        return "occ"

    def _op_run(self, context: ExecutionContext) -> Receipt:
        web_root = context.param("web_root")
        argv = [
            "sudo", "-u", context.param("web_user", "www-data"),
            "php", f"{web_root}/occ",
            *(reveal(arg) for arg in context.param("args")),
        ]
        return self.run_receipt(context, argv, cwd=web_root)
