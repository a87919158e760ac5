"""
Provision use case — the vertical slice from config to persisted state.

    load credentials → probe host → build steps → probe facts → plan
    → execute → persist apply log and state → summary

``inspect_host`` stops after planning (``probe`` and ``plan`` commands);
``run_provision`` goes all the way (``apply``).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hostprov.adapters.registry import AdapterRegistry
from hostprov.core.catalog import build_steps
from hostprov.core.catalog.containers import PORTAINER_CONTAINER
from hostprov.core.engine.executor import StepExecutor, generate_run_id
from hostprov.core.engine.planner import plan, required_facts
from hostprov.core.errors import PlanError
from hostprov.core.models.action import Action
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.host import HostFact
from hostprov.core.models.outcome import PlanResult, StepOutcome
from hostprov.core.models.step import PlannedStep
from hostprov.core.persistence.apply_log import ApplyLog, default_log_path
from hostprov.core.persistence.credentials import (
    CredentialError,
    CredentialStore,
    default_credentials_path,
    ensure_state_dir,
)
from hostprov.core.persistence.state_file import default_state_path, load_state, record_run, save_state
from hostprov.core.probe.facts import HostProbe
from hostprov.core.secrets.generator import generate_credentials

logger = logging.getLogger(__name__)

ProbeFactory = Callable[[DesiredConfig, CredentialRecord | None], HostProbe]


def default_probe_factory(config: DesiredConfig, credentials: CredentialRecord | None) -> HostProbe:
    return HostProbe(config, credentials=credentials)


@dataclass
class ProvisionResult:
    """Everything the CLI needs to report on a provisioning run."""

    config: DesiredConfig | None = None
    snapshot: HostFact | None = None
    planned: list[PlannedStep] = field(default_factory=list)
    result: PlanResult | None = None
    credentials: CredentialRecord | None = None
    credentials_created: bool = False
    credentials_path: Path | None = None
    portainer_ip: str | None = None
    dry_run: bool = False
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        if self.result is not None:
            return self.result.exit_code
        return 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.error:
            data["error"] = self.error
        else:
            if self.config is not None:
                data["profile"] = self.config.profile
                data["hostname"] = self.config.hostname
            data["dry_run"] = self.dry_run
            data["plan"] = [p.to_dict() for p in self.planned]
            if self.result is not None:
                data["result"] = self.result.to_dict()
            if self.portainer_ip:
                data["portainer_ip"] = self.portainer_ip
        # Freshly generated secrets are reported once, even when the run failed
        if self.credentials_created and self.credentials is not None:
            data["credentials"] = self.credentials.to_file_dict()
            data["credentials_file"] = str(self.credentials_path)
        return data


# ── Registry ────────────────────────────────────────────────────


def build_registry(mock_mode: bool = False) -> AdapterRegistry:
    """Registry with every host adapter registered."""
    from hostprov.adapters.containers.docker import DockerAdapter
    from hostprov.adapters.database.mysql import MySQLAdapter
    from hostprov.adapters.packages.apt import AptAdapter
    from hostprov.adapters.shell.command import ShellCommandAdapter
    from hostprov.adapters.shell.filesystem import FilesystemAdapter
    from hostprov.adapters.shell.mount import MountAdapter
    from hostprov.adapters.tls.certbot import CertbotAdapter
    from hostprov.adapters.webapp.occ import OccAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    for adapter in (
        ShellCommandAdapter(),
        FilesystemAdapter(),
        MountAdapter(),
        AptAdapter(),
        MySQLAdapter(),
        OccAdapter(),
        CertbotAdapter(),
        DockerAdapter(),
    ):
        registry.register(adapter)
    return registry


# ── Credentials ─────────────────────────────────────────────────


def existing_credentials(config: DesiredConfig) -> CredentialRecord | None:
    """Stored credentials, or None when there are none (or they can't be read)."""
    store = CredentialStore(default_credentials_path(Path(config.state_dir)))
    try:
        if not store.exists():
            return None
        return store.load()
    except (CredentialError, OSError) as e:
        logger.warning("Ignoring unreadable credentials: %s", e)
        return None


# ── Inspect ─────────────────────────────────────────────────────


def inspect_host(
    config: DesiredConfig,
    credentials: CredentialRecord | None = None,
    probe_factory: ProbeFactory = default_probe_factory,
) -> ProvisionResult:
    """Probe the host and plan, without changing anything."""
    result = ProvisionResult(config=config, credentials=credentials)
    probe = probe_factory(config, credentials)
    try:
        os_snapshot = probe.probe()
        steps = build_steps(config, os_snapshot, credentials)
        result.snapshot = os_snapshot.merged(probe.probe(required_facts(steps)))
        result.planned = plan(config, result.snapshot, credentials, steps=steps)
    except PlanError as e:
        result.error = str(e)
    return result


# ── Apply ───────────────────────────────────────────────────────


def run_provision(
    config: DesiredConfig,
    *,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    probe_factory: ProbeFactory = default_probe_factory,
    sleep: Callable[[float], None] = time.sleep,
    on_outcome: Callable[[StepOutcome], None] | None = None,
) -> ProvisionResult:
    """Bring the host to the desired state.

    Args:
        config: Desired host configuration.
        dry_run: Plan and report, change nothing, persist nothing.
        mock_mode: Route every action to the mock adapter. Credentials
            are not stored; the apply log and state are.
        registry: Pre-configured adapter registry (tests).
        probe_factory: Builds the fact probe.
        sleep: Backoff sleep between retries.
        on_outcome: Called after each step (progress output).

    Returns:
        ProvisionResult; ``exit_code`` is 0 unless a required step failed.
    """
    state_dir = Path(config.state_dir)
    cred_path = default_credentials_path(state_dir)
    simulate = dry_run or mock_mode

    # ── Credentials ──────────────────────────────────────────────
    created = False
    try:
        if not dry_run:
            ensure_state_dir(state_dir)
        if simulate:
            credentials = existing_credentials(config) or generate_credentials(
                config.admin_user, config.admin_password
            )
        else:
            credentials, created = CredentialStore(cred_path).load_or_create(config)
    except (CredentialError, OSError) as e:
        return ProvisionResult(config=config, error=f"Cannot prepare credentials: {e}")

    # ── Probe + plan ─────────────────────────────────────────────
    result = inspect_host(config, credentials, probe_factory)
    result.dry_run = dry_run
    result.credentials_created = created
    result.credentials_path = cred_path
    if result.error:
        return result

    # ── Execute ──────────────────────────────────────────────────
    if registry is None:
        registry = build_registry(mock_mode=mock_mode)

    apply_log = None if dry_run else ApplyLog(default_log_path(state_dir))
    executor = StepExecutor(
        registry=registry,
        probe=None if mock_mode else probe_factory(config, credentials),
        facts=result.snapshot or HostFact(),
        apply_log=apply_log,
        run_id=generate_run_id(),
        profile=config.profile,
        dry_run=dry_run,
        verify_postconditions=not mock_mode,
        sleep=sleep,
        on_outcome=on_outcome,
    )
    result.result = executor.run(result.planned)

    # ── Persist state ────────────────────────────────────────────
    if not dry_run:
        state_path = default_state_path(state_dir)
        state = record_run(load_state(state_path), result.result, config.hostname)
        save_state(state, state_path)

    if config.profile == "containers" and not simulate and result.result.exit_code == 0:
        result.portainer_ip = container_ip(registry, PORTAINER_CONTAINER, config.timeouts.probe)

    return result


def container_ip(registry: AdapterRegistry, container: str, timeout: int) -> str | None:
    """IP address of a running container, or None."""
    receipt = registry.execute_action(
        Action(
            id=f"summary:{container}-ip",
            adapter="docker",
            params={"operation": "container_ip", "container": container},
        ),
        timeout=timeout,
    )
    if receipt.ok and receipt.output.strip():
        return receipt.output.strip()
    logger.warning("Could not determine IP of container %s: %s", container, receipt.error)
    return None
