"""
hostprov — CLI entrypoint.

Usage:
    hostprov --help
    hostprov plan --profile nextcloud --domain cloud.example.org --email ops@example.org
    hostprov apply --profile containers --target-user deploy
    hostprov status
"""

from __future__ import annotations

import functools
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from hostprov import __version__
from hostprov.core.observability.logging_config import setup_logging

if TYPE_CHECKING:
    from hostprov.core.models.config import DesiredConfig

EXIT_USAGE = 2

# CLI option name → dotted config key
_OVERRIDES = {
    "profile": "profile",
    "hostname": "hostname",
    "domain": "domain",
    "email": "email",
    "admin_user": "admin_user",
    "admin_password": "admin_password",
    "storage": "storage.backend",
    "storage_account": "storage.account",
    "storage_container": "storage.container",
    "nextcloud_version": "nextcloud_version",
    "php_version": "php_version",
    "state_dir": "state_dir",
    "noninteractive": "noninteractive",
    "target_user": "containers.target_user",
    "public_ip": "containers.public_ip",
}


@click.group()
@click.version_option(version=__version__, prog_name="hostprov")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hostprov.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """hostprov — provision a Nextcloud or container host, idempotently."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None  # HOSTPROV_LOG_LEVEL, then WARNING

    setup_logging(level=level)


# ── Shared options ──────────────────────────────────────────────


def provisioning_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Add the desired-state flags; they land in ``overrides``."""
    options = [
        click.option("--profile", type=click.Choice(["nextcloud", "containers"]), default=None,
                     help="What to provision."),
        click.option("--hostname", default=None, help="Host name (default: localhost)."),
        click.option("--domain", default=None, help="Public domain; enables TLS."),
        click.option("--email", default=None, help="Contact email for the TLS certificate."),
        click.option("--admin-user", default=None, help="Nextcloud admin user."),
        click.option("--admin-password", default=None, help="Nextcloud admin password (omit to generate)."),
        click.option("--storage", type=click.Choice(["local", "nfs"]), default=None,
                     help="Data storage backend."),
        click.option("--storage-account", default=None, help="Azure storage account (nfs)."),
        click.option("--storage-container", default=None, help="Azure blob container (nfs)."),
        click.option("--nextcloud-version", default=None, help="Nextcloud release to install."),
        click.option("--php-version", default=None, help="PHP version."),
        click.option("--state-dir", default=None, help="Where state, log and credentials live."),
        click.option("--noninteractive/--interactive", "noninteractive", default=None,
                     help="Whether package tools may prompt (default: noninteractive)."),
        click.option("--target-user", default=None, help="User added to the docker group."),
        click.option("--public-ip", default=None, help="Public IP shown in the access hints."),
    ]

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        kwargs["overrides"] = {dotted: kwargs.pop(name, None) for name, dotted in _OVERRIDES.items()}
        return fn(*args, **kwargs)

    for option in reversed(options):
        wrapper = option(wrapper)
    return wrapper


def load_or_exit(ctx: click.Context, overrides: dict[str, Any] | None = None) -> DesiredConfig:
    """Load the config; report and exit 2 when it is invalid."""
    from hostprov.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"), overrides)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_USAGE)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@provisioning_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def probe(ctx: click.Context, as_json: bool, overrides: dict[str, Any]) -> None:
    """Show the host facts the current plan depends on."""
    from hostprov.core.use_cases.provision import existing_credentials, inspect_host

    config = load_or_exit(ctx, overrides)
    result = inspect_host(config, existing_credentials(config))

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    snapshot = result.snapshot
    assert snapshot is not None  # guaranteed after error check above

    if as_json:
        click.echo(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return

    click.secho(f"\n🔍 {config.hostname} ({snapshot.os_id} {snapshot.os_version}, "
                f"{snapshot.codename or '?'}, {snapshot.arch or '?'})", fg="cyan", bold=True)
    for key, value in sorted(snapshot.facts.items()):
        if value is True:
            click.secho(f"   ✓ {key}", fg="green")
        elif value is False:
            click.echo(f"   ✗ {key}")
        else:
            click.secho(f"   ? {key}", fg="yellow")
    click.echo()


@cli.command()
@provisioning_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool, overrides: dict[str, Any]) -> None:
    """Show the ordered steps and which of them would run."""
    from hostprov.core.use_cases.provision import existing_credentials, inspect_host
    from hostprov.ui.cli.output import echo_plan

    config = load_or_exit(ctx, overrides)
    result = inspect_host(config, existing_credentials(config))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    echo_plan(result.planned)


@cli.command()
@provisioning_options
@click.option("--dry-run", is_flag=True, help="Plan and report; change nothing.")
@click.option("--mock", is_flag=True, help="Route every action to the mock adapter.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(
    ctx: click.Context,
    dry_run: bool,
    mock: bool,
    as_json: bool,
    overrides: dict[str, Any],
) -> None:
    """Bring the host to the desired state."""
    from hostprov.core.use_cases.provision import run_provision
    from hostprov.ui.cli.output import echo_access, echo_credentials, echo_progress, echo_summary

    config = load_or_exit(ctx, overrides)
    quiet = ctx.obj.get("quiet", False)

    if not as_json and not quiet:
        mode = " (dry run)" if dry_run else " (mock)" if mock else ""
        click.secho(f"\n🚀 Provisioning {config.hostname} as '{config.profile}'{mode}", fg="cyan", bold=True)

    result = run_provision(
        config,
        dry_run=dry_run,
        mock_mode=mock,
        on_outcome=None if as_json or quiet else echo_progress,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        echo_credentials(result)
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.result is not None  # guaranteed after error check above
    echo_summary(result.result)
    echo_credentials(result)
    echo_access(result)
    click.echo()
    sys.exit(result.exit_code)


@cli.command()
@click.option("--state-dir", default=None, help="Where state, log and credentials live.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, state_dir: str | None, as_json: bool) -> None:
    """Show the last run from the state record."""
    from hostprov.core.use_cases.status import get_status

    config = load_or_exit(ctx, {"state_dir": state_dir})
    result = get_status(Path(config.state_dir))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.provisioned:
        click.secho(f"No runs recorded in {result.state_path}", fg="yellow")
        return

    run = result.state.last_run
    click.secho(f"\n📋 {result.state.hostname} ({result.state.profile})", fg="cyan", bold=True)
    status_color = {"ok": "green", "degraded": "yellow", "failed": "red"}.get(run.status, "white")
    click.echo(f"   Last run: {run.run_id}: ", nl=False)
    click.secho(run.status, fg=status_color)
    click.echo(f"   Ended:    {run.ended_at}")
    click.echo(f"   Applied: {run.applied}   Skipped: {run.skipped}   Failed: {run.failed}")
    if run.aborted_at:
        click.secho(f"   Aborted at {run.aborted_at}", fg="red")

    failed = [r for r in result.last_run_records if r.status == "failed"]
    for record in failed:
        click.secho(f"   ❌ {record.step_id}: {record.message}", fg="red")
    click.echo()


@cli.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of records.")
@click.option("--state-dir", default=None, help="Where state, log and credentials live.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def log(ctx: click.Context, count: int, state_dir: str | None, as_json: bool) -> None:
    """Show the most recent apply-log records."""
    from hostprov.core.use_cases.status import recent_records

    config = load_or_exit(ctx, {"state_dir": state_dir})
    records = recent_records(Path(config.state_dir), count)

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return

    if not records:
        click.secho("No apply-log records", fg="yellow")
        return

    for r in records:
        color = {"applied": "green", "failed": "red"}.get(r.status)
        click.secho(f"{r.timestamp}  {r.run_id}  {r.status:<8} {r.step_id}  {r.message}", fg=color)


# ── Sub-groups ──────────────────────────────────────────────────

from hostprov.ui.cli.backup import backup  # noqa: E402

cli.add_command(backup)


if __name__ == "__main__":
    cli()
