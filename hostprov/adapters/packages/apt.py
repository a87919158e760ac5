"""
APT adapter — Debian package installation.

``DEBIAN_FRONTEND=noninteractive`` is set unless the action asks for an
interactive install, so configuration prompts never block a run.
"""

from __future__ import annotations

import logging

from hostprov.adapters.base import CommandAdapter, ExecutionContext
from hostprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class AptAdapter(CommandAdapter):
    """Install packages and manage repositories with apt-get.

    Action params:
        operation (str): install, update, add_repository.
        packages (list[str]): Package names (install).
        repository (str): PPA or deb line (add_repository).
        noninteractive (bool): Default True.
    """

    tool = "apt-get"
    operations = frozenset({"install", "update", "add_repository"})
    required_params = {"install": ("packages",), "add_repository": ("repository",)}

    @property
    def name(self) -> str:
        return "apt"

    @staticmethod
    def _env(context: ExecutionContext) -> dict[str, str] | None:
        if context.param("noninteractive", True):
            return {"DEBIAN_FRONTEND": "noninteractive"}
        return None

    def _op_update(self, context: ExecutionContext) -> Receipt:
        return self.run_receipt(context, ["apt-get", "update"], env=self._env(context))

    def _op_install(self, context: ExecutionContext) -> Receipt:
        packages = list(context.param("packages"))
        logger.info("Installing %d packages: %s", len(packages), " ".join(packages))
        update = self.run(context, ["apt-get", "update"], env=self._env(context))
        if not update.ok:
            return self.receipt(context, ["apt-get", "update"], update)
        return self.run_receipt(
            context,
            ["apt-get", "install", "-y", *packages],
            env=self._env(context),
        )

    def _op_add_repository(self, context: ExecutionContext) -> Receipt:
        repository = context.param("repository")
        return self.run_receipt(
            context,
            ["add-apt-repository", "-y", repository],
            env=self._env(context),
        )
