"""Wiring: build a fresh orchestrator per tick and run the long-lived service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from webhook_backup.config.job import BackupJobConfig
from webhook_backup.database import MysqldumpProvider
from webhook_backup.health import backup_state, record_report, record_skip, start_health_server
from webhook_backup.notify import DiscordWebhookTransport, NotificationSender
from webhook_backup.orchestrator import BackupOrchestrator, RunReport
from webhook_backup.scheduler import IntervalScheduler

logger = logging.getLogger(__name__)


def build_orchestrator(config: BackupJobConfig) -> BackupOrchestrator:
    """Create an orchestrator with a brand new transport client."""
    t = config.timings
    transport = DiscordWebhookTransport(config.webhook_id, config.webhook_token, timeout=t.send_timeout)
    return BackupOrchestrator(
        config=config,
        provider=MysqldumpProvider(binary=config.mysqldump_path, timeout=t.dump_timeout),
        sender=NotificationSender(transport, retry_backoff=t.retry_backoff),
    )


async def run_once(config: BackupJobConfig) -> RunReport:
    """Run a single backup now."""
    backup_state["state"] = "running"
    report = await build_orchestrator(config).run()
    record_report(report)
    return report


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if exc is not None:
        logger.error(f"[UNHANDLED] {message}", exc_info=exc)
    else:
        logger.error(f"[UNHANDLED] {message}")


def install_exception_handler(loop: asyncio.AbstractEventLoop | None = None) -> None:
    """Log stray task exceptions instead of letting them surface as crashes."""
    (loop or asyncio.get_running_loop()).set_exception_handler(_log_unhandled)


def make_scheduler(config: BackupJobConfig, run_immediately: bool = False) -> IntervalScheduler:
    def on_error(exc: BaseException) -> None:
        backup_state["state"] = "error"
        backup_state["last_error"] = str(exc)

    return IntervalScheduler(
        interval=config.interval_seconds,
        job=lambda: run_once(config),
        on_skip=record_skip,
        on_error=on_error,
        run_immediately=run_immediately,
    )


async def serve(config: BackupJobConfig, run_immediately: bool = False) -> None:
    """Run backups every ``config.interval_minutes`` until cancelled."""
    install_exception_handler()

    if config.health_port:
        start_health_server(config.health_port)
    backup_state["state"] = "ready"

    scheduler = make_scheduler(config, run_immediately=run_immediately)
    logger.info(f"[ONLINE] Watching {config.connection.database} every {config.interval_minutes} min")
    await scheduler.run_forever()
