"""
Notifier CLI entry point.

Commands:
    notifier run          — Run the poller and the control API
    notifier process-now  — Run one due-check pass and exit
    notifier send ID      — Send one notification immediately
    notifier status       — Show active notifications and their next send
    notifier config       — Show current configuration
    notifier version      — Show version
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from notifier.core.config import NotifierConfig, get_notifier_home
from notifier.core.errors import NotifierError

app = typer.Typer(
    name="notifier",
    help="Notifier — scheduled Telegram notifications for the org chart portal.",
    add_completion=False,
)

console = Console()

_OUTCOME_STYLE = {
    "fired": "green",
    "partial": "yellow",
    "failed": "red",
    "invalid": "red",
    "expired": "dim",
}


def _load_config(verbose: bool) -> NotifierConfig:
    from notifier.middleware.logging import setup_logging

    try:
        config = NotifierConfig.load()
    except NotifierError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    setup_logging(
        log_dir=config.get_log_dir(),
        console_level=logging.DEBUG if verbose else config.logging.console_level,
    )
    return config


def _results_table(results) -> Table:
    table = Table(title="Fired notifications", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Outcome")
    table.add_column("Delivered", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Errors", style="dim")
    for r in results:
        style = _OUTCOME_STYLE.get(r.outcome.value, "")
        table.add_row(
            r.record_id,
            r.record_name,
            f"[{style}]{r.outcome.value}[/{style}]" if style else r.outcome.value,
            str(r.delivered),
            str(r.failed),
            "; ".join(r.errors),
        )
    return table


@app.command()
def run(
    host: str = typer.Option(None, "--host", help="Override API host"),
    port: int = typer.Option(None, "--port", "-p", help="Override API port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run the notification poller with its control API."""
    import uvicorn

    from notifier.api.app import create_service_app
    from notifier.service import build_service

    config = _load_config(verbose)
    service = build_service(config)
    console.print(
        Panel(
            f"Polling every [bold]{config.scheduler.poll_interval}s[/bold]\n"
            f"Store: {config.get_db_path()}\n"
            f"Channels: {', '.join(service.router.channel_names)}",
            title="Notification service",
            border_style="cyan",
        )
    )
    uvicorn.run(
        create_service_app(service),
        host=host or config.api.host,
        port=port or config.api.port,
        log_level="debug" if verbose else "info",
    )


@app.command("process-now")
def process_now(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run a single due-check pass over all active notifications."""
    config = _load_config(verbose)
    results = asyncio.run(_process_now(config))
    if not results:
        console.print("[dim]Nothing was due.[/dim]")
        return
    console.print(_results_table(results))


async def _process_now(config: NotifierConfig):
    from notifier.service import build_service

    service = build_service(config)
    await service.store.initialize()
    try:
        return await service.lifecycle.process_now()
    except NotifierError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    finally:
        await service.store.close()


@app.command()
def send(
    notification_id: str = typer.Argument(..., help="Notification id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Send one notification right now, ignoring its schedule."""
    config = _load_config(verbose)
    result = asyncio.run(_send(config, notification_id))
    console.print(_results_table([result]))
    if result.outcome.value not in ("fired", "partial"):
        raise typer.Exit(1)


async def _send(config: NotifierConfig, notification_id: str):
    from notifier.service import build_service

    service = build_service(config)
    await service.store.initialize()
    try:
        return await service.manual.fire_now(notification_id)
    except NotifierError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    finally:
        await service.store.close()


@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Show active notifications and when they are due next."""
    config = _load_config(verbose)
    records, total, chats = asyncio.run(_status(config))

    console.print(f"[bold]Notifications:[/bold] {len(records)} active / {total} total")
    console.print(f"[bold]Active chats:[/bold] {chats}")
    if not records:
        return
    table = Table(show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Schedule")
    table.add_column("Last sent", style="dim")
    table.add_column("Next send")
    for r in records:
        table.add_row(
            r.id,
            r.name,
            r.rule.description,
            r.last_fired_at.strftime("%Y-%m-%d %H:%M") if r.last_fired_at else "never",
            r.next_send_at.strftime("%Y-%m-%d %H:%M") if r.next_send_at else "—",
        )
    console.print(table)


async def _status(config: NotifierConfig):
    from notifier.store.sqlite import SQLiteNotificationStore

    store = SQLiteNotificationStore(config.get_db_path())
    try:
        await store.initialize()
        return (
            await store.list_active(),
            await store.count_notifications(),
            await store.count_chats(),
        )
    except NotifierError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    finally:
        await store.close()


@app.command()
def version() -> None:
    """Show notifier version."""
    from notifier import __version__
    console.print(f"notifier v{__version__}")


@app.command()
def config() -> None:
    """Show current configuration."""
    config_path = get_notifier_home() / "config.toml"

    console.print(Panel("[bold]Notifier Configuration[/bold]", border_style="cyan"))
    console.print(f"[bold]Config file:[/bold] {config_path}")
    if not config_path.exists():
        console.print("[dim]Not found, using defaults and NOTIFIER_* variables[/dim]")

    try:
        loaded = NotifierConfig.load()
    except NotifierError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    shown = loaded.model_dump()
    if shown["telegram"]["token"]:
        shown["telegram"]["token"] = "***"
    for section, values in shown.items():
        console.print(f"[bold]{section}[/bold]")
        for key, value in values.items():
            console.print(f"  {key} = {value!r}")


if __name__ == "__main__":
    app()
