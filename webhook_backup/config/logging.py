"""
Console logging setup with tag-colored output.

Usage:
    from webhook_backup.config.logging import get_logger
    logger = get_logger("orchestrator")
    logger.info("Starting database backup...")
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",
}

# Colors for the leading component of a logger name
TAG_COLORS = {
    "orchestrator": "\033[94m",  # Blue
    "database": "\033[95m",  # Magenta
    "compress": "\033[35m",  # Dim magenta
    "notify": "\033[93m",  # Yellow
    "reaper": "\033[96m",  # Cyan
    "scheduler": "\033[92m",  # Green
    "health": "\033[97m",  # White
    "webhook_backup": "\033[37m",
}

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("discord", "discord.http", "discord.webhook", "aiohttp", "asyncio")


class ColoredConsoleFormatter(logging.Formatter):
    """Formatter that adds colors and a short ``[tag]`` for the logger name."""

    def format(self, record: logging.LogRecord) -> str:
        level_color = COLORS.get(record.levelname, "")
        reset = COLORS["RESET"]

        tag = record.name.removeprefix("webhook_backup.") or record.name
        tag_color = TAG_COLORS.get(tag.split(".")[0], "\033[37m")

        timestamp = datetime.now().strftime("%H:%M:%S")
        level_str = f"{level_color}{record.levelname:8}{reset}"
        tag_str = f"{tag_color}[{tag}]{reset}"

        msg = f"{timestamp} {level_str} {tag_str} {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


_initialized = False


def _get_console_level(level: str | int | None = None) -> int:
    """Resolve the console level from the argument or LOG_LEVEL env var."""
    if isinstance(level, int):
        return level
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, level_name, logging.INFO)


def init_logging(console_level: str | int | None = None, force: bool = False) -> None:
    """Install the colored console handler on the root logger."""
    global _initialized

    if _initialized and not force:
        return

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_get_console_level(console_level))
    console_handler.setFormatter(ColoredConsoleFormatter())

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name, initializing logging on first use."""
    if not _initialized:
        init_logging()
    return logging.getLogger(name)
