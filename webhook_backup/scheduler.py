"""Recurring interval scheduler with a single-slot run guard.

Each tick starts the job as its own task so a slow run never delays the timer.
If the previous run is still in flight when a tick fires, the tick is skipped
and logged rather than letting two runs race on the same work directory.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class IntervalScheduler:
    """Runs ``job`` every ``interval`` seconds, never more than one at a time."""

    def __init__(
        self,
        interval: float,
        job: Callable[[], Awaitable[Any]],
        on_skip: Callable[[], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        run_immediately: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._job = job
        self._on_skip = on_skip
        self._on_error = on_error
        self._run_immediately = run_immediately
        self._sleep = sleep

        self._current: asyncio.Task[None] | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def busy(self) -> bool:
        """True while a run is in flight."""
        return self._current is not None and not self._current.done()

    @property
    def current(self) -> asyncio.Task[None] | None:
        return self._current

    def tick(self) -> asyncio.Task[None] | None:
        """Start a run unless one is already in flight. Returns the run task, if started."""
        if self.busy:
            logger.warning("Previous backup still running, skipping this tick")
            if self._on_skip is not None:
                self._on_skip()
            return None

        self._current = asyncio.create_task(self._guarded())
        return self._current

    async def _guarded(self) -> None:
        try:
            await self._job()
        except Exception as e:
            logger.exception("Scheduled backup failed")
            if self._on_error is not None:
                self._on_error(e)

    async def _scheduler_loop(self) -> None:
        if self._run_immediately:
            self.tick()
        while self._running:
            await self._sleep(self.interval)
            if self._running:
                self.tick()

    async def start(self) -> None:
        """Start the timer loop in the background."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Scheduler started (every {self.interval / 60:g} min)")

    async def stop(self) -> None:
        """Stop the timer and cancel any in-flight run."""
        self._running = False

        for task in (self._loop_task, self._current):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._current = None

        logger.info("Scheduler stopped")

    async def run_forever(self) -> None:
        """Start the scheduler and block until it is stopped or cancelled."""
        await self.start()
        try:
            if self._loop_task is not None:
                await self._loop_task
        finally:
            await self.stop()
