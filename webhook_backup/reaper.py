"""Best-effort deletion of backup artifacts.

``mysqldump`` and filesystem layers can hold a handle on the dump briefly after
they report completion, so a delete may fail with a permission/sharing error
for a short while. Deletion therefore retries a bounded number of times with a
delay between attempts and reports the result instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    """Outcome of deleting one path."""

    path: str
    ok: bool
    attempts: int = 0
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class FileReaper:
    """Deletes files with a bounded retry loop. Never raises."""

    def __init__(
        self,
        attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def delete(self, path: str | os.PathLike) -> DeleteResult:
        p = Path(path)
        if not p.exists():
            return DeleteResult(path=str(p), ok=True)

        last_error: str | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                os.chmod(p, stat.S_IWRITE | stat.S_IREAD)
            except OSError:
                pass

            try:
                p.unlink()
                logger.debug(f"Deleted {p}")
                return DeleteResult(path=str(p), ok=True, attempts=attempt)
            except FileNotFoundError:
                return DeleteResult(path=str(p), ok=True, attempts=attempt)
            except OSError as e:
                last_error = str(e)
                logger.warning(f"Delete attempt {attempt}/{self.attempts} failed for {p}: {e}")

            if attempt < self.attempts:
                await self._sleep(self.retry_delay)

        logger.error(f"Giving up on deleting {p} after {self.attempts} attempts: {last_error}")
        return DeleteResult(path=str(p), ok=False, attempts=self.attempts, error=last_error)

    async def cleanup_known_paths(self, paths: Iterable[str | os.PathLike]) -> list[DeleteResult]:
        """Delete each of ``paths`` in order."""
        return [await self.delete(path) for path in paths]

    async def collect_stale(self, directory: str | os.PathLike, pattern: str) -> list[DeleteResult]:
        """Delete leftovers from earlier runs matching ``pattern`` in ``directory``."""
        d = Path(directory)
        if not d.is_dir():
            return []

        stale = sorted(p for p in d.glob(pattern) if p.is_file())
        if stale:
            logger.info(f"Removing {len(stale)} stale artifact(s) from {d}")
        return await self.cleanup_known_paths(stale)
