"""Immutable per-process job configuration."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from webhook_backup.config._settings import DEFAULT_SIZE_LIMIT
from webhook_backup.errors import ConfigError

if TYPE_CHECKING:
    from webhook_backup.config._settings import BackupSettings

# Run ids are the first 12 hex digits of a uuid4
RUN_ID_LENGTH = 12
_RUN_ID_GLOB = "[0-9a-f]" * RUN_ID_LENGTH

WEBHOOK_PREFIXES = (
    "https://discord.com/api/webhooks/",
    "https://discordapp.com/api/webhooks/",
    "https://ptb.discord.com/api/webhooks/",
    "https://canary.discord.com/api/webhooks/",
)


def new_run_id() -> str:
    return uuid.uuid4().hex[:RUN_ID_LENGTH]


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Where and how to reach the database being dumped."""

    host: str
    user: str
    password: str
    database: str
    port: int = 3306

    def masked(self) -> str:
        """Return a display string with the password hidden."""
        secret = ":****" if self.password else ""
        return f"mysql://{self.user}{secret}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class Timings:
    """Settle delays, backoff and timeouts, in seconds."""

    pre_cleanup_settle: float = 1.0
    upload_settle: float = 5.0
    post_send_delay: float = 2.0
    retry_backoff: float = 15.0
    delete_attempts: int = 3
    delete_retry_delay: float = 1.0
    send_timeout: float = 120.0
    dump_timeout: float = 600.0


def parse_webhook_url(url: str) -> tuple[int, str]:
    """Split a Discord webhook URL into ``(webhook_id, token)``.

    Raises:
        ConfigError: If the URL doesn't start with a known webhook prefix or
            lacks an id/token pair.
    """
    url = url.strip()
    for prefix in WEBHOOK_PREFIXES:
        if url.startswith(prefix):
            rest = url[len(prefix) :]
            break
    else:
        raise ConfigError("Webhook URL must start with https://discord.com/api/webhooks/")

    parts = rest.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ConfigError("Webhook URL is missing the id/token part")

    webhook_id, token = parts[0], parts[1].split("?")[0]
    if not webhook_id.isdigit():
        raise ConfigError(f"Webhook id must be numeric, got {webhook_id!r}")
    return int(webhook_id), token


@dataclass(frozen=True)
class BackupJobConfig:
    """Settings for the backup job, resolved once at startup."""

    connection: ConnectionDescriptor
    webhook_id: int
    webhook_token: str
    interval_minutes: int = 30
    embed_color: str = "GREEN"
    embed_username: str = "SQL Backup"
    size_limit: int = DEFAULT_SIZE_LIMIT
    compression_level: int = 9
    work_dir: Path = field(default_factory=lambda: Path("."))
    dump_basename: str = "dump"
    mysqldump_path: str = "mysqldump"
    health_port: int = 8080
    timings: Timings = field(default_factory=Timings)

    def __post_init__(self) -> None:
        if self.interval_minutes < 1:
            raise ConfigError(f"interval_minutes must be >= 1, got {self.interval_minutes}")
        if self.size_limit <= 0:
            raise ConfigError(f"size_limit must be positive, got {self.size_limit}")

    @classmethod
    def from_settings(cls, s: BackupSettings) -> BackupJobConfig:
        """Build the job config from loaded settings."""
        if not s.webhook_url:
            raise ConfigError("webhook_url is not configured")
        if not s.connection.database:
            raise ConfigError("connection.database is not configured")

        webhook_id, token = parse_webhook_url(s.webhook_url)
        t = s.timing
        return cls(
            connection=ConnectionDescriptor(
                host=s.connection.host,
                user=s.connection.user,
                password=s.connection.password,
                database=s.connection.database,
                port=s.connection.port,
            ),
            webhook_id=webhook_id,
            webhook_token=token,
            interval_minutes=s.interval_minutes,
            embed_color=s.embed.color,
            embed_username=s.embed.username,
            size_limit=s.size_limit,
            compression_level=s.compression_level,
            work_dir=Path(s.work_dir),
            dump_basename=s.dump_basename,
            mysqldump_path=s.mysqldump_path,
            health_port=s.health_port,
            timings=Timings(
                pre_cleanup_settle=t.pre_cleanup_settle,
                upload_settle=t.upload_settle,
                post_send_delay=t.post_send_delay,
                retry_backoff=t.retry_backoff,
                delete_attempts=t.delete_attempts,
                delete_retry_delay=t.delete_retry_delay,
                send_timeout=t.send_timeout,
                dump_timeout=t.dump_timeout,
            ),
        )

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    @property
    def masked_webhook(self) -> str:
        return f"{WEBHOOK_PREFIXES[0]}{self.webhook_id}/****"

    def artifact_paths(self, run_id: str) -> tuple[Path, Path]:
        """Return ``(dump_path, compressed_path)`` for a run."""
        dump = self.work_dir / f"{self.dump_basename}_{run_id}.sql"
        return dump, dump.with_name(dump.name + ".gz")

    @property
    def stale_patterns(self) -> tuple[str, str]:
        """Glob patterns matching artifacts left behind by earlier runs.

        Only names carrying a generated run id match, so other files in
        ``work_dir`` such as ``dump_production.sql`` are left alone.
        """
        stem = f"{self.dump_basename}_{_RUN_ID_GLOB}"
        return f"{stem}.sql", f"{stem}.sql.gz"
