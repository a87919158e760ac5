"""
CLI commands for Backup & Restore.

Thin wrappers over ``hostprov.core.use_cases.backup``. Only the
nextcloud profile has anything to back up.
"""

from __future__ import annotations

import json
import sys
from typing import Literal

import click


@click.group()
def backup() -> None:
    """Backup & Restore — database dump plus config and data archives."""


def _run(ctx: click.Context, location: str, mode: Literal["create", "restore"], mock: bool, as_json: bool) -> None:
    from hostprov.core.use_cases.backup import run_backup
    from hostprov.main import load_or_exit
    from hostprov.ui.cli.output import echo_progress, echo_summary

    config = load_or_exit(ctx, {"profile": "nextcloud"})
    quiet = ctx.obj.get("quiet", False)
    result = run_backup(
        config,
        location,
        mode,
        mock_mode=mock,
        on_outcome=None if as_json or quiet else echo_progress,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.result is not None  # guaranteed after error check above
    echo_summary(result.result)
    click.echo()
    sys.exit(result.exit_code)


@backup.command()
@click.argument("dest", type=click.Path(file_okay=False))
@click.option("--mock", is_flag=True, help="Route every action to the mock adapter.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(ctx: click.Context, dest: str, mock: bool, as_json: bool) -> None:
    """Back up the Nextcloud database, config and data into DEST.

    Maintenance mode is on for the duration and switched off again
    even when a backup step fails.

    Examples:

        hostprov backup create /srv/backups/2024-06-01
    """
    _run(ctx, dest, "create", mock, as_json)


@backup.command()
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@click.option("--mock", is_flag=True, help="Route every action to the mock adapter.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def restore(ctx: click.Context, source: str, mock: bool, as_json: bool) -> None:
    """Restore a backup made by ``backup create`` from SOURCE."""
    _run(ctx, source, "restore", mock, as_json)
