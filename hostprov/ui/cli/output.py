"""
Human-readable rendering shared by the CLI commands.
"""

from __future__ import annotations

import click

from hostprov.core.models.outcome import PlanResult, StepOutcome
from hostprov.core.models.step import PlannedStep
from hostprov.core.use_cases.provision import ProvisionResult

_MARKERS = {"applied": "✅", "skipped": "⏭️ ", "failed": "❌"}
_COLORS = {"applied": "green", "skipped": None, "failed": "red"}


def echo_progress(outcome: StepOutcome) -> None:
    """One line per finished step, while the run is in progress."""
    marker = _MARKERS.get(outcome.status, "•")
    click.secho(f"   {marker} {outcome.step_id}: {outcome.message}", fg=_COLORS.get(outcome.status))


def echo_plan(planned: list[PlannedStep]) -> None:
    to_run = sum(1 for p in planned if p.disposition == "run")
    click.secho(f"\n📋 Plan: {len(planned)} steps, {to_run} to run", fg="cyan", bold=True)
    for p in planned:
        if p.disposition == "run":
            click.secho(f"   ▶ {p.id}", fg="yellow", nl=False)
        else:
            click.echo(f"   · {p.id}", nl=False)
        click.echo(f"  ({p.reason})")
    click.echo()


def echo_summary(result: PlanResult) -> None:
    """Summary table: every step, then totals and the failed output."""
    click.secho(f"\n📊 Summary ({result.run_id})", fg="cyan", bold=True)
    width = max((len(o.step_id) for o in result.outcomes), default=0)
    for o in result.outcomes:
        marker = _MARKERS.get(o.status, "•")
        attempts = f" [{o.attempts}x]" if o.attempts > 1 else ""
        click.secho(
            f"   {marker} {o.step_id.ljust(width)}  {o.status:<8} {o.message}{attempts}",
            fg=_COLORS.get(o.status),
        )
    for step_id in result.not_attempted:
        click.echo(f"   ⏸  {step_id.ljust(width)}  not attempted")

    click.echo()
    click.echo(f"   Applied: {result.applied}   Skipped: {result.skipped}   Failed: {result.failed}")

    for o in result.outcomes:
        if o.failed and o.output:
            click.echo()
            click.secho(f"   Output of {o.step_id} ({o.error_kind}):", fg="red")
            for line in o.output.splitlines()[-20:]:
                click.echo(f"     {line}")

    click.echo()
    if result.aborted_at:
        click.secho(f"❌ Aborted at required step {result.aborted_at}", fg="red", bold=True)
    elif result.failed:
        click.secho("⚠️  Completed with optional failures", fg="yellow", bold=True)
    else:
        click.secho("✅ Host is in the desired state", fg="green", bold=True)


def echo_credentials(result: ProvisionResult) -> None:
    """Generated secrets, shown once right after they are created."""
    creds = result.credentials
    if creds is None or not result.credentials_created:
        return
    click.echo()
    click.secho("🔑 Generated credentials (shown once):", fg="yellow", bold=True)
    click.echo(f"   Admin user:          {creds.admin_user}")
    click.echo(f"   Admin password:      {creds.admin_password.get_secret_value()}")
    click.echo(f"   Database password:   {creds.db_password.get_secret_value()}")
    click.echo(f"   MySQL root password: {creds.mysql_root_password.get_secret_value()}")
    click.echo(f"   Stored in {result.credentials_path} (mode 600)")


def echo_access(result: ProvisionResult) -> None:
    """Where to reach what was just provisioned."""
    config = result.config
    if config is None or result.result is None or result.result.exit_code != 0:
        return

    click.echo()
    if config.profile == "nextcloud":
        scheme = "https" if config.tls_requested else "http"
        click.secho("🌐 Nextcloud:", fg="cyan", bold=True)
        click.echo(f"   {scheme}://{config.public_name}/")
        return

    public_ip = config.containers.public_ip
    click.secho("🌐 Access:", fg="cyan", bold=True)
    if public_ip:
        click.echo(f"   NGINX Proxy Manager admin: http://{public_ip}:81")
        click.echo(f"   Portainer:                 http://{public_ip}:9000")
    else:
        click.echo("   NGINX Proxy Manager admin: http://<server-ip>:81")
    if result.portainer_ip:
        click.echo(f"   Portainer container IP:    {result.portainer_ip}")
        click.echo(f"   Proxy Portainer via NPM to http://{result.portainer_ip}:9000")
