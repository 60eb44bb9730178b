"""Backup notifications: payload, Discord webhook transport and retrying sender."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Protocol

import aiohttp
import discord

from webhook_backup.errors import TransportFailure
from webhook_backup.sizes import format_size

logger = logging.getLogger(__name__)

# Substrings in an error message that mark it as worth one retry
TRANSIENT_MARKERS = ("timeout", "timed out", "aborted")


@dataclass
class BackupPayload:
    """Everything the transport needs to post one backup."""

    title: str
    color: str
    description: str
    attachment_path: Path
    username: str = "SQL Backup"
    compressed: bool = False


def build_payload(
    database: str,
    attachment_path: Path,
    size: int,
    compressed: bool,
    color: str = "GREEN",
    username: str = "SQL Backup",
    now: datetime | None = None,
) -> BackupPayload:
    """Build the notification for a finished dump."""
    now = now or datetime.now(timezone.utc)
    status = "Compressed (.gz)" if compressed else "Original"
    description = (
        f"Database backup saved on <t:{int(now.timestamp())}>\n"
        f"**File Size:** {format_size(size)}\n"
        f"**Status:** {status}"
    )
    return BackupPayload(
        title=f"SQL BACKUP | {database}",
        color=color,
        description=description,
        attachment_path=Path(attachment_path),
        username=username,
        compressed=compressed,
    )


def resolve_color(value: str) -> discord.Color:
    """Turn ``"GREEN"``, ``"dark_blue"``, ``"#57F287"`` or ``"0x57F287"`` into a Color."""
    name = value.strip().lower().replace(" ", "_")
    if name and not name.startswith("_"):
        factory = getattr(discord.Color, name, None)
        if callable(factory):
            try:
                color = factory()
            except TypeError:
                color = None
            if isinstance(color, discord.Color):
                return color
    try:
        return discord.Color.from_str(value.strip())
    except ValueError:
        logger.warning(f"Unknown embed color {value!r}, using default")
        return discord.Color.default()


def is_transient(exc: BaseException) -> bool:
    """True for timeout/abort-style failures that deserve one retry."""
    if isinstance(exc, TransportFailure):
        return exc.transient
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerDisconnectedError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


class Transport(Protocol):
    async def send(self, payload: BackupPayload) -> None: ...


class DiscordWebhookTransport:
    """Posts the payload as an embed with the backup attached to a Discord webhook.

    A fresh HTTP session is opened for every send.
    """

    def __init__(self, webhook_id: int, token: str, timeout: float = 120.0) -> None:
        self.webhook_id = webhook_id
        self.token = token
        self.timeout = timeout

    def build_embed(self, payload: BackupPayload) -> discord.Embed:
        return discord.Embed(
            title=payload.title,
            description=payload.description,
            color=resolve_color(payload.color),
        )

    async def send(self, payload: BackupPayload) -> None:
        embed = self.build_embed(payload)
        file = discord.File(str(payload.attachment_path), filename=payload.attachment_path.name)
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                webhook = discord.Webhook.partial(self.webhook_id, self.token, session=session)
                await webhook.send(username=payload.username, embed=embed, file=file, wait=True)
        finally:
            file.close()


class DeliveryStatus(str, Enum):
    SENT = "sent"
    SENT_ON_RETRY = "sent_on_retry"
    FAILED = "failed"
    ABORTED_TOO_LARGE = "aborted_too_large"


@dataclass
class DeliveryResult:
    status: DeliveryStatus
    attempts: int
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status in (DeliveryStatus.SENT, DeliveryStatus.SENT_ON_RETRY)


class NotificationSender:
    """Sends a payload, retrying exactly once after a backoff on transient failure."""

    def __init__(
        self,
        transport: Transport,
        retry_backoff: float = 15.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.retry_backoff = retry_backoff
        self._sleep = sleep

    async def send(
        self,
        payload: BackupPayload,
        recheck: Callable[[], bool] | None = None,
        on_retry: Callable[[], None] | None = None,
    ) -> DeliveryResult:
        """Send ``payload``.

        Args:
            payload: The notification to post
            recheck: Called after the backoff, before resending. Returning False
                aborts the retry with ``ABORTED_TOO_LARGE``.
            on_retry: Called once when a retry is scheduled

        Returns:
            DeliveryResult describing what happened. Never raises for
            transport errors.
        """
        try:
            await self.transport.send(payload)
            logger.info("Backup sent to Discord")
            return DeliveryResult(DeliveryStatus.SENT, attempts=1)
        except Exception as e:
            if not is_transient(e):
                logger.error(f"Webhook error: {e}")
                return DeliveryResult(DeliveryStatus.FAILED, attempts=1, error=str(e))
            logger.warning(f"Webhook error (transient): {e}")

        if on_retry is not None:
            on_retry()
        logger.info(f"Attempting to resend webhook in {self.retry_backoff:g}s...")
        await self._sleep(self.retry_backoff)

        if recheck is not None and not recheck():
            logger.error("Retry aborted: file too large for Discord")
            return DeliveryResult(DeliveryStatus.ABORTED_TOO_LARGE, attempts=1, error="file too large on retry")

        try:
            await self.transport.send(payload)
            logger.info("Backup sent on retry")
            return DeliveryResult(DeliveryStatus.SENT_ON_RETRY, attempts=2)
        except Exception as e:
            logger.error(f"Retry failed: {e}")
            return DeliveryResult(DeliveryStatus.FAILED, attempts=2, error=str(e))
