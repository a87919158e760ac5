"""
Backup and restore plans for a provisioned Nextcloud host.

These steps carry no precondition facts: every run performs them. The
"maintenance off" step is a finalizer triggered by "maintenance on", so
it still runs when a step in between aborts, and only if maintenance
mode was actually switched on.
"""

from __future__ import annotations

from hostprov.core.catalog.common import actions, secret
from hostprov.core.models.config import DesiredConfig
from hostprov.core.models.credentials import CredentialRecord
from hostprov.core.models.step import Phase, RecoveryPolicy, Step

DB_DUMP = "nextcloud-db.sql"
CONFIG_ARCHIVE = "nextcloud-config.tar.gz"
DATA_ARCHIVE = "nextcloud-data.tar.gz"


def _occ(config: DesiredConfig, *args: str) -> tuple[str, dict]:
    return ("occ", {
        "operation": "run", "args": list(args),
        "web_root": config.web_root, "web_user": config.web_user,
    })


def _maintenance(config: DesiredConfig, prefix: str) -> tuple[Step, Step]:
    on = Step(
        id=f"{prefix}.maintenance-on",
        description="Enable maintenance mode",
        phase=Phase.WEBAPP,
        actions=actions(f"{prefix}.maintenance-on", _occ(config, "maintenance:mode", "--on")),
    )
    off = Step(
        id=f"{prefix}.maintenance-off",
        description="Disable maintenance mode",
        phase=Phase.SERVICES,
        actions=actions(f"{prefix}.maintenance-off", _occ(config, "maintenance:mode", "--off")),
        triggers=(on.id,),
        finalizer=True,
        policy=RecoveryPolicy.abort(retries=2),
    )
    return on, off


def build_backup_steps(config: DesiredConfig, credentials: CredentialRecord | None, dest: str) -> list[Step]:
    """Maintenance on, database dump, config and data archives, maintenance off."""
    on, off = _maintenance(config, "backup")
    data_dir = config.storage.mount_point
    return [
        on,
        Step(
            id="backup.prepare",
            description=f"Backup directory {dest}",
            phase=Phase.STORAGE,
            actions=actions("backup.prepare", ("filesystem", {"operation": "mkdir", "path": dest, "mode": 0o700})),
        ),
        Step(
            id="backup.database",
            description=f"Dump database {config.db_name}",
            phase=Phase.DATABASE,
            actions=actions("backup.database", ("mysql", {
                "operation": "dump",
                "database": config.db_name,
                "path": f"{dest}/{DB_DUMP}",
                "root_password": secret(credentials, "mysql_root_password"),
            })),
            requires=(on.id, "backup.prepare"),
            timeout=config.timeouts.network,
        ),
        Step(
            id="backup.config",
            description="Archive the Nextcloud config directory",
            phase=Phase.WEBAPP,
            actions=actions("backup.config", ("shell", {"argv": [
                "tar", "-czf", f"{dest}/{CONFIG_ARCHIVE}", "-C", config.web_root, "config",
            ]})),
            requires=(on.id, "backup.prepare"),
        ),
        Step(
            id="backup.data",
            description=f"Archive the data directory {data_dir}",
            phase=Phase.WEBAPP,
            actions=actions("backup.data", ("shell", {"argv": [
                "tar", "-czf", f"{dest}/{DATA_ARCHIVE}", "-C", data_dir, ".",
            ]})),
            requires=(on.id, "backup.prepare"),
            timeout=config.timeouts.network,
        ),
        off,
    ]


def build_restore_steps(config: DesiredConfig, credentials: CredentialRecord | None, source: str) -> list[Step]:
    """Maintenance on, load SQL, unpack archives, maintenance off, data fingerprint."""
    on, off = _maintenance(config, "restore")
    data_dir = config.storage.mount_point
    return [
        on,
        Step(
            id="restore.database",
            description=f"Load database {config.db_name}",
            phase=Phase.DATABASE,
            actions=actions("restore.database", ("mysql", {
                "operation": "load",
                "database": config.db_name,
                "path": f"{source}/{DB_DUMP}",
                "root_password": secret(credentials, "mysql_root_password"),
            })),
            requires=(on.id,),
            timeout=config.timeouts.network,
        ),
        Step(
            id="restore.config",
            description="Unpack the Nextcloud config directory",
            phase=Phase.WEBAPP,
            actions=actions("restore.config", ("shell", {"argv": [
                "tar", "-xzf", f"{source}/{CONFIG_ARCHIVE}", "-C", config.web_root,
            ]})),
            requires=(on.id,),
        ),
        Step(
            id="restore.data",
            description=f"Unpack the data directory into {data_dir}",
            phase=Phase.WEBAPP,
            actions=actions("restore.data", ("shell", {"argv": [
                "tar", "-xzf", f"{source}/{DATA_ARCHIVE}", "-C", data_dir,
            ]})),
            requires=(on.id,),
            timeout=config.timeouts.network,
        ),
        off,
        Step(
            id="restore.fingerprint",
            description="Update the data fingerprint so clients resync",
            phase=Phase.SERVICES,
            actions=actions("restore.fingerprint", _occ(config, "maintenance:data-fingerprint")),
            requires=(off.id,),
            policy=RecoveryPolicy.skip(),
        ),
    ]
