"""
Check CLI Commands

Commands for managing checks and viewing uptime from the terminal.
All commands operate on the JSON-persisted store the API also serves.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flowpulse.config import Settings, get_settings
from flowpulse.heartbeat.models import CheckStatus
from flowpulse.heartbeat.store import CheckStore, StoreError
from flowpulse.notify.slack import is_valid_slack_webhook
from flowpulse.reporting import daily_uptime, list_incidents, summarize_uptime
from flowpulse.reporting.uptime import window_start

logger = structlog.get_logger(__name__)
console = Console()

DEFAULT_STORE_PATH = Path.home() / ".flowpulse" / "store.json"

app = typer.Typer(
    name="checks",
    help="Manage monitored checks",
    no_args_is_help=True,
)

owners_app = typer.Typer(
    name="owners",
    help="Manage owner notification emails",
    no_args_is_help=True,
)


def resolve_settings() -> Settings:
    """Settings with a store path filled in for CLI use."""
    settings = get_settings()
    if settings.store_path:
        return settings
    return settings.model_copy(update={"store_path": str(DEFAULT_STORE_PATH)})


def _open_store() -> CheckStore:
    settings = resolve_settings()
    try:
        return CheckStore(
            persist_path=settings.store_path,
            run_retention_days=settings.run_retention_days,
        )
    except StoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _format_age(when: datetime | None) -> str:
    if when is None:
        return "[dim]never[/dim]"
    seconds = int((datetime.now(timezone.utc) - when).total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def _status_label(status: CheckStatus) -> str:
    return {
        CheckStatus.UP: "[green]●[/green] up",
        CheckStatus.DOWN: "[red]✗[/red] down",
    }[status]


@app.command("create")
def create_check(
    name: Annotated[str, typer.Argument(help="Check name")],
    owner: Annotated[str, typer.Option("--owner", "-o", help="Owner id")],
    interval: Annotated[
        int,
        typer.Option("--interval", "-i", min=1, help="Expected ping interval in minutes"),
    ] = 5,
    grace: Annotated[
        int,
        typer.Option("--grace", "-g", min=0, help="Grace period in minutes"),
    ] = 0,
    slack_webhook: Annotated[
        str,
        typer.Option(help="Slack Incoming Webhook URL"),
    ] = "",
) -> None:
    """
    Create a check and print its ping URL.

    Example:
        flowpulse checks create "Nightly CRM sync" --owner alice -i 60 -g 10
    """
    if slack_webhook and not is_valid_slack_webhook(slack_webhook):
        console.print("[red]Invalid Slack webhook URL. Expected https://hooks.slack.com/services/...[/red]")
        raise typer.Exit(1)

    async def _create():
        store = _open_store()
        try:
            return await store.create_check(
                name=name.strip(),
                owner_id=owner,
                interval_minutes=interval,
                grace_period_minutes=grace,
                slack_webhook_url=slack_webhook or None,
            )
        except StoreError as e:
            console.print(f"[red]Failed to create check: {e}[/red]")
            raise typer.Exit(1)

    check = asyncio.run(_create())
    settings = resolve_settings()

    console.print(Panel(
        f"[green]✓ Check created successfully[/green]\n\n"
        f"[cyan]ID:[/cyan] {check.id}\n"
        f"[cyan]Name:[/cyan] {check.name}\n"
        f"[cyan]Interval:[/cyan] {check.interval_minutes}m (+{check.grace_period_minutes}m grace)\n"
        f"[cyan]Slack:[/cyan] {'yes' if check.slack_webhook_url else 'no'}\n\n"
        f"[cyan]Ping URL:[/cyan] {settings.ping_url(check.heartbeat_token)}",
        title="New Check",
        border_style="green",
    ))


@app.command("list")
def list_checks(
    owner: Annotated[str, typer.Option("--owner", "-o", help="Filter by owner id")] = "",
) -> None:
    """List checks with their current status."""
    async def _list():
        return await _open_store().list_checks(owner_id=owner or None)

    checks = asyncio.run(_list())
    if not checks:
        console.print("[dim]No checks found.[/dim]")
        return

    table = Table(title="Checks", border_style="cyan")
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Owner", style="dim")
    table.add_column("Status", justify="center")
    table.add_column("Interval")
    table.add_column("Last Ping")

    for check in checks:
        table.add_row(
            check.id[:12],
            check.name[:30],
            check.owner_id,
            _status_label(check.status),
            f"{check.interval_minutes}m +{check.grace_period_minutes}m",
            _format_age(check.last_pinged_at),
        )

    console.print(table)


@app.command("show")
def show_check(
    check_id: Annotated[str, typer.Argument(help="Check ID")],
) -> None:
    """Show a check, its ping URL, and its latest runs."""
    async def _show():
        store = _open_store()
        check = await store.get_check(check_id)
        runs = await store.list_runs(check_id) if check else []
        return check, runs

    check, runs = asyncio.run(_show())
    if check is None:
        console.print(f"[red]Check not found: {check_id}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[cyan]Name:[/cyan] {check.name}\n"
        f"[cyan]Owner:[/cyan] {check.owner_id}\n"
        f"[cyan]Status:[/cyan] {_status_label(check.status)}\n"
        f"[cyan]Last ping:[/cyan] {_format_age(check.last_pinged_at)}\n"
        f"[cyan]Ping URL:[/cyan] {resolve_settings().ping_url(check.heartbeat_token)}",
        title=f"Check {check.id}",
        border_style="cyan",
    ))

    if runs:
        table = Table(title="Recent Runs", border_style="dim")
        table.add_column("Time", style="dim")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Error")

        for run in runs[-10:][::-1]:
            table.add_row(
                run.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                run.status.value,
                f"{run.duration_ms}ms" if run.duration_ms is not None else "-",
                (run.error_message or "")[:50],
            )
        console.print(table)


@app.command("delete")
def delete_check(
    check_id: Annotated[str, typer.Argument(help="Check ID")],
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete a check and all of its runs."""
    if not force:
        typer.confirm(f"Delete check {check_id} and its run history?", abort=True)

    async def _delete():
        return await _open_store().delete_check(check_id)

    if not asyncio.run(_delete()):
        console.print(f"[red]Check not found: {check_id}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Deleted check {check_id}[/green]")


@app.command("uptime")
def show_uptime(
    check_id: Annotated[str, typer.Argument(help="Check ID")],
    days: Annotated[int, typer.Option("--days", "-d", min=1, max=90, help="Window in days")] = 7,
) -> None:
    """
    Show uptime statistics computed from run history.

    Example: flowpulse checks uptime <id> --days 30
    """
    now = datetime.now(timezone.utc)

    async def _load():
        store = _open_store()
        check = await store.get_check(check_id)
        runs = await store.list_runs(check_id, since=window_start(now, days)) if check else []
        return check, runs

    check, runs = asyncio.run(_load())
    if check is None:
        console.print(f"[red]Check not found: {check_id}[/red]")
        raise typer.Exit(1)

    summary = summarize_uptime(check, runs)
    color = "green" if summary.uptime_percentage >= 99 else "yellow" if summary.uptime_percentage >= 95 else "red"

    console.print(Panel(
        f"[bold {color}]{summary.uptime_percentage:.2f}%[/bold {color}] uptime over {days} days\n\n"
        f"[cyan]Total runs:[/cyan] {summary.total_runs}\n"
        f"[cyan]Successful:[/cyan] {summary.successful_runs}\n"
        f"[cyan]Failed:[/cyan] {summary.failed_runs}",
        title=check.name,
        border_style=color,
    ))

    table = Table(title="Daily Uptime", border_style="dim")
    table.add_column("Day", style="dim")
    table.add_column("Runs", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Uptime", justify="right")
    for bucket in daily_uptime(runs, now, days):
        table.add_row(
            bucket.day.isoformat(),
            str(bucket.total),
            str(bucket.failed),
            f"{bucket.uptime:.2f}%",
        )
    console.print(table)

    incidents = list_incidents(runs)
    if incidents:
        console.print(f"\n[bold]Incidents ({len(incidents)})[/bold]")
        for incident in incidents[:10]:
            console.print(
                f"  [red]•[/red] {incident.created_at:%Y-%m-%d %H:%M} "
                f"{incident.status.value} {incident.error_message or ''}"
            )


@owners_app.command("add")
def add_owner(
    owner_id: Annotated[str, typer.Argument(help="Owner id")],
    email: Annotated[str, typer.Argument(help="Notification email")],
) -> None:
    """Set the email that receives failure alerts for an owner's checks."""
    async def _add():
        await _open_store().register_owner(owner_id, email)

    asyncio.run(_add())
    console.print(f"[green]✓ Alerts for {owner_id} go to {email}[/green]")
