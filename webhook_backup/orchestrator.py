"""Backup lifecycle orchestration.

One call to :meth:`BackupOrchestrator.run` walks a single backup from start
to finish:

    IDLE -> PRE_CLEANUP -> DUMPING -> SIZING -> (COMPRESSING) ->
    AWAITING_UPLOAD -> UPLOADING -> (RETRYING) -> CLEANUP -> IDLE

Every failure is caught at the run boundary and turned into a RunOutcome.
Cleanup of the run's artifacts happens on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from webhook_backup.compress import compress
from webhook_backup.config.job import new_run_id
from webhook_backup.errors import CompressionFailure, DumpFailure, SizeLimitExceeded
from webhook_backup.notify import DeliveryStatus, NotificationSender, build_payload
from webhook_backup.reaper import DeleteResult, FileReaper
from webhook_backup.sizes import format_size, size_of

if TYPE_CHECKING:
    from webhook_backup.config.job import BackupJobConfig
    from webhook_backup.database import DumpProvider

logger = logging.getLogger(__name__)

Compressor = Callable[[Path, Path, int], Awaitable[None]]


class RunState(str, Enum):
    IDLE = "idle"
    PRE_CLEANUP = "pre_cleanup"
    DUMPING = "dumping"
    SIZING = "sizing"
    COMPRESSING = "compressing"
    AWAITING_UPLOAD = "awaiting_upload"
    UPLOADING = "uploading"
    RETRYING = "retrying"
    CLEANUP = "cleanup"


class RunOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    SUCCEEDED_ON_RETRY = "succeeded_on_retry"
    FAILED_TOO_LARGE = "failed_too_large"
    FAILED_DUMP = "failed_dump"
    FAILED_TRANSPORT = "failed_transport"
    FAILED_COMPRESSION = "failed_compression"
    FAILED_UNEXPECTED = "failed_unexpected"

    @property
    def succeeded(self) -> bool:
        return self in (RunOutcome.SUCCEEDED, RunOutcome.SUCCEEDED_ON_RETRY)


@dataclass
class DumpArtifact:
    """The on-disk dump for one run, plus its gzip variant once one is produced."""

    path: Path
    compressed_path: Path | None = None
    _size: int | None = field(default=None, repr=False)

    @property
    def size(self) -> int:
        if self._size is None:
            self._size = size_of(self.path)
        return self._size


@dataclass
class UploadCandidate:
    """Whichever artifact is small enough to send."""

    path: Path
    size: int
    compressed: bool = False


@dataclass
class RunReport:
    """What happened during one run. Kept in memory only."""

    run_id: str
    outcome: RunOutcome | None = None
    states: list[RunState] = field(default_factory=list)
    original_size: int = 0
    final_size: int = 0
    compressed: bool = False
    attempts: int = 0
    error: str | None = None
    cleanup: list[DeleteResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.succeeded

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()


class BackupOrchestrator:
    """Runs one backup: dump, size check, optional gzip, upload with one retry, cleanup."""

    def __init__(
        self,
        config: BackupJobConfig,
        provider: DumpProvider,
        sender: NotificationSender,
        reaper: FileReaper | None = None,
        compressor: Compressor = compress,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.provider = provider
        self.sender = sender
        self.reaper = reaper or FileReaper(
            attempts=config.timings.delete_attempts,
            retry_delay=config.timings.delete_retry_delay,
            sleep=sleep,
        )
        self.compressor = compressor
        self._sleep = sleep
        self.state = RunState.IDLE
        self._handle: Any | None = None

    def _enter(self, state: RunState, report: RunReport) -> None:
        self.state = state
        report.states.append(state)
        logger.debug(f"[{report.run_id}] -> {state.value}")

    async def run(self, run_id: str | None = None) -> RunReport:
        """Run one backup and return its report. Never raises for backup failures."""
        report = RunReport(run_id=run_id or new_run_id())
        dump_path, gz_path = self.config.artifact_paths(report.run_id)
        artifact = DumpArtifact(path=dump_path)
        self._handle = None

        logger.info(f"[{report.run_id}] Starting database backup...")
        try:
            report.outcome = await self._run(artifact, gz_path, report)
        except Exception as e:
            logger.exception(f"[{report.run_id}] Backup run failed unexpectedly")
            report.outcome = RunOutcome.FAILED_UNEXPECTED
            report.error = str(e)
        finally:
            self._enter(RunState.CLEANUP, report)
            await self._cleanup(artifact, report)
            self._enter(RunState.IDLE, report)
            report.finished_at = datetime.now(timezone.utc)

        self._log_outcome(report)
        return report

    async def _run(self, artifact: DumpArtifact, gz_path: Path, report: RunReport) -> RunOutcome:
        cfg = self.config

        self._enter(RunState.PRE_CLEANUP, report)
        for pattern in cfg.stale_patterns:
            await self.reaper.collect_stale(cfg.work_dir, pattern)
        await self._sleep(cfg.timings.pre_cleanup_settle)

        self._enter(RunState.DUMPING, report)
        try:
            result = await self.provider.dump(cfg.connection, artifact.path)
        except DumpFailure as e:
            logger.error(f"[{report.run_id}] Database error: {e}")
            report.error = str(e)
            self._handle = e.handle
            return RunOutcome.FAILED_DUMP
        self._handle = result.handle
        artifact.path = Path(result.path)
        logger.info(f"[{report.run_id}] Database dump completed")

        self._enter(RunState.SIZING, report)
        report.original_size = artifact.size
        logger.info(f"[{report.run_id}] Original dump size: {format_size(artifact.size)}")

        if artifact.size <= cfg.size_limit:
            candidate = UploadCandidate(path=artifact.path, size=artifact.size)
        else:
            self._enter(RunState.COMPRESSING, report)
            logger.info(f"[{report.run_id}] File too large, attempting compression...")
            artifact.compressed_path = gz_path
            try:
                await self.compressor(artifact.path, gz_path, cfg.compression_level)
            except CompressionFailure as e:
                logger.error(f"[{report.run_id}] Compression error: {e}")
                report.error = str(e)
                return RunOutcome.FAILED_COMPRESSION

            compressed_size = size_of(gz_path)
            logger.info(f"[{report.run_id}] Compressed size: {format_size(compressed_size)}")
            if compressed_size > cfg.size_limit:
                err = SizeLimitExceeded(compressed_size, cfg.size_limit)
                logger.error(f"[{report.run_id}] File still too large after compression: {err}")
                report.error = str(err)
                report.final_size = compressed_size
                return RunOutcome.FAILED_TOO_LARGE
            candidate = UploadCandidate(path=gz_path, size=compressed_size, compressed=True)

        report.final_size = candidate.size
        report.compressed = candidate.compressed

        self._enter(RunState.AWAITING_UPLOAD, report)
        await self._settle(cfg.timings.upload_settle)
        payload = build_payload(
            database=cfg.connection.database,
            attachment_path=candidate.path,
            size=candidate.size,
            compressed=candidate.compressed,
            color=cfg.embed_color,
            username=cfg.embed_username,
        )

        self._enter(RunState.UPLOADING, report)
        logger.info(f"[{report.run_id}] Uploading {format_size(candidate.size)} file to Discord...")

        def recheck() -> bool:
            current = size_of(candidate.path)
            if current > cfg.size_limit:
                logger.error(f"[{report.run_id}] File now {format_size(current)}, over the limit")
                return False
            return True

        delivery = await self.sender.send(
            payload,
            recheck=recheck,
            on_retry=lambda: self._enter(RunState.RETRYING, report),
        )
        report.attempts = delivery.attempts
        report.error = delivery.error

        if delivery.status == DeliveryStatus.ABORTED_TOO_LARGE:
            return RunOutcome.FAILED_TOO_LARGE
        if not delivery.delivered:
            return RunOutcome.FAILED_TRANSPORT

        # The transport may still be reading the file
        await self._sleep(cfg.timings.post_send_delay)
        if delivery.status == DeliveryStatus.SENT_ON_RETRY:
            return RunOutcome.SUCCEEDED_ON_RETRY
        return RunOutcome.SUCCEEDED

    async def _settle(self, delay: float) -> None:
        """Wait for the dump handle to confirm release, or for ``delay`` seconds."""
        wait_released = getattr(self._handle, "wait_released", None)
        if wait_released is None:
            await self._sleep(delay)
            return
        try:
            await asyncio.wait_for(wait_released(), timeout=delay)
        except asyncio.TimeoutError:
            logger.warning(f"Dump handle not released after {delay:g}s, continuing")

    async def _cleanup(self, artifact: DumpArtifact, report: RunReport) -> None:
        if self._handle is not None:
            try:
                await self._handle.close()
            except Exception as e:
                logger.warning(f"[{report.run_id}] Failed to close dump connection: {e}")
            self._handle = None

        paths = [artifact.path]
        if artifact.compressed_path is not None:
            paths.append(artifact.compressed_path)
        report.cleanup = await self.reaper.cleanup_known_paths(paths)

    def _log_outcome(self, report: RunReport) -> None:
        outcome = report.outcome
        failed_deletes = [r.path for r in report.cleanup if not r.ok]
        if failed_deletes:
            logger.warning(f"[{report.run_id}] Could not remove: {', '.join(failed_deletes)}")

        summary = f"[{report.run_id}] Backup {outcome.value} in {report.duration:.1f}s"
        if report.final_size:
            summary += f" ({format_size(report.final_size)}{', compressed' if report.compressed else ''})"
        if outcome.succeeded:
            logger.info(summary)
        else:
            logger.error(f"{summary}: {report.error or 'no details'}")
