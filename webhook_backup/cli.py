"""CLI for the webhook backup service (Typer + Rich)."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from webhook_backup.config import get_settings
from webhook_backup.config._loader import find_config_file
from webhook_backup.config.job import BackupJobConfig
from webhook_backup.config.logging import get_logger, init_logging
from webhook_backup.errors import ConfigError
from webhook_backup.orchestrator import RunReport
from webhook_backup.service import run_once, serve as serve_forever
from webhook_backup.sizes import format_size

app = typer.Typer(
    name="webhook-backup",
    help="Dump a MySQL database on a timer and post it to a Discord webhook.",
    no_args_is_help=True,
)
console = Console()
logger = get_logger("webhook_backup")


def _load_config() -> BackupJobConfig:
    """Load settings (after .env) and resolve the job config, exiting on bad config."""
    load_dotenv()
    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]Error:[/] Invalid configuration:\n{e}")
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    init_logging(settings.logging.level, force=True)
    try:
        return BackupJobConfig.from_settings(settings)
    except ConfigError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)


def _report_panel(report: RunReport) -> Panel:
    lines = [
        f"[bold]Run:[/]        {report.run_id}",
        f"[bold]Outcome:[/]    {report.outcome.value if report.outcome else 'unknown'}",
        f"[bold]Dump size:[/]  {format_size(report.original_size)}",
    ]
    if report.final_size:
        status = "Compressed (.gz)" if report.compressed else "Original"
        lines.append(f"[bold]Sent size:[/]  {format_size(report.final_size)} ({status})")
    if report.attempts:
        lines.append(f"[bold]Attempts:[/]   {report.attempts}")
    if report.error:
        lines.append(f"[bold]Error:[/]      [red]{report.error}[/]")
    leftovers = [r.path for r in report.cleanup if not r.ok]
    if leftovers:
        lines.append(f"[bold]Not removed:[/] [yellow]{', '.join(leftovers)}[/]")

    title = "[green]Backup Complete[/]" if report.succeeded else "[red]Backup Failed[/]"
    return Panel("\n".join(lines), title=title)


# ── backup run ──────────────────────────────────────────────────────────


@app.command()
def run() -> None:
    """Run a single backup now."""
    config = _load_config()
    report = asyncio.run(run_once(config))
    console.print(_report_panel(report))
    if not report.succeeded:
        raise typer.Exit(1)


# ── backup serve ────────────────────────────────────────────────────────


@app.command()
def serve(
    interval: Annotated[
        Optional[int], typer.Option("--interval", "-i", min=1, help="Minutes between backups (default from config)")
    ] = None,
    now: Annotated[bool, typer.Option("--now", help="Run a backup immediately on start")] = False,
) -> None:
    """Run as a long-lived process that backs up on a fixed interval."""
    config = _load_config()
    if interval is not None:
        config = replace(config, interval_minutes=interval)

    console.print(f"Backing up [bold]{config.connection.database}[/] every {config.interval_minutes} min")
    if config.health_port:
        console.print(f"Health server on port {config.health_port}")

    try:
        asyncio.run(serve_forever(config, run_immediately=now))
    except KeyboardInterrupt:
        logger.info("Shutting down")


# ── backup status ───────────────────────────────────────────────────────


@app.command()
def status() -> None:
    """Show the resolved configuration with credentials masked."""
    config = _load_config()
    t = config.timings
    config_file = find_config_file()

    lines = [
        f"[bold]Config file:[/]    {config_file or '[dim]none (environment only)[/]'}",
        f"[bold]Database:[/]       {config.connection.masked()}",
        f"[bold]Webhook:[/]        {config.masked_webhook}",
        f"[bold]Interval:[/]       {config.interval_minutes} min",
        f"[bold]Size limit:[/]     {format_size(config.size_limit)}",
        f"[bold]Compression:[/]    gzip level {config.compression_level}",
        f"[bold]Work dir:[/]       {config.work_dir.resolve()}",
        f"[bold]Embed color:[/]    {config.embed_color}",
        "",
        f"[bold]Upload settle:[/]  {t.upload_settle:g}s",
        f"[bold]Retry backoff:[/]  {t.retry_backoff:g}s",
        f"[bold]Send timeout:[/]   {t.send_timeout:g}s",
        f"[bold]Health port:[/]    {config.health_port or '[dim]disabled[/]'}",
    ]
    console.print(Panel("\n".join(lines), title="Backup Service Status"))
