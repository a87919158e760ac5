"""
Backup use case — run the backup or restore plan for a Nextcloud host.

Both plans go through the same executor, apply log and exit codes as a
provisioning run. They need the stored credentials (the database root
password); without them the run is refused.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Literal

from hostprov.adapters.registry import AdapterRegistry
from hostprov.core.catalog.backup import build_backup_steps, build_restore_steps
from hostprov.core.engine.executor import StepExecutor, generate_run_id
from hostprov.core.engine.planner import plan
from hostprov.core.errors import PlanError
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.host import HostFact
from hostprov.core.models.outcome import StepOutcome
from hostprov.core.persistence.apply_log import ApplyLog, default_log_path
from hostprov.core.persistence.credentials import ensure_state_dir
from hostprov.core.use_cases.provision import ProvisionResult, build_registry, existing_credentials

logger = logging.getLogger(__name__)


def run_backup(
    config: DesiredConfig,
    location: str,
    mode: Literal["create", "restore"] = "create",
    *,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_outcome: Callable[[StepOutcome], None] | None = None,
) -> ProvisionResult:
    """Create a backup in ``location`` or restore from it."""
    credentials = existing_credentials(config)
    if credentials is None and not mock_mode:
        return ProvisionResult(
            config=config,
            error=f"No credentials found in {config.state_dir}; provision the host first",
        )

    location = str(Path(location).resolve())
    if mode == "create":
        steps = build_backup_steps(config, credentials, location)
    else:
        steps = build_restore_steps(config, credentials, location)

    facts = HostFact()
    result = ProvisionResult(config=config, credentials=credentials)
    try:
        result.planned = plan(config, facts, credentials, steps=steps)
    except PlanError as e:
        result.error = str(e)
        return result

    try:
        state_dir = ensure_state_dir(Path(config.state_dir))
    except OSError as e:
        result.error = f"Cannot prepare state directory: {e}"
        return result

    if registry is None:
        registry = build_registry(mock_mode=mock_mode)

    profile = "backup" if mode == "create" else "restore"
    executor = StepExecutor(
        registry=registry,
        probe=None,
        facts=facts,
        apply_log=ApplyLog(default_log_path(state_dir)),
        run_id=generate_run_id(),
        profile=profile,
        sleep=sleep,
        on_outcome=on_outcome,
    )
    logger.info("Starting %s at %s", profile, location)
    result.result = executor.run(result.planned)
    return result
