"""Periodic background task used to monitor running experiments."""

import asyncio
from typing import Awaitable, Callable, Optional

from ..observability import LoggerMixin


class PeriodicTask(LoggerMixin):
    """Runs an async callback at a fixed interval until stopped.

    Ticks never overlap: ``run_once`` returns immediately while a tick is in
    progress, and ticks that fall due while a slow tick is still running are
    skipped rather than queued.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        name: str = "periodic-task",
        run_immediately: bool = False,
    ):
        """Initialize the periodic task.

        Args:
            callback: Coroutine function invoked on every tick.
            interval: Seconds between ticks.
            name: Name used in logs.
            run_immediately: Whether the first tick runs on start instead of
                after one interval.
        """
        if interval <= 0:
            raise ValueError("Interval must be positive")

        self.callback = callback
        self.interval = interval
        self.name = name
        self.run_immediately = run_immediately

        self.tick_count = 0
        self.error_count = 0
        self.skipped_count = 0

        # asyncio primitives are created inside the running loop, not here.
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._tick_lock: Optional[asyncio.Lock] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start ticking in the background."""
        if self.is_running:
            return

        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        self.logger.info("Started periodic task", task=self.name, interval=self.interval)

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop ticking, cancelling an in-flight tick after ``timeout`` seconds."""
        if self._task is None:
            return

        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None
        self.logger.info("Stopped periodic task", task=self.name, ticks=self.tick_count)

    async def run_once(self) -> bool:
        """Run a single tick now.

        Returns:
            False if a tick was already in progress and this one was skipped.
        """
        if self._tick_lock is None:
            self._tick_lock = asyncio.Lock()

        if self._tick_lock.locked():
            self.skipped_count += 1
            self.logger.warning("Skipping tick, previous tick still running", task=self.name)
            return False

        async with self._tick_lock:
            self.tick_count += 1
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.error_count += 1
                self.logger.exception("Periodic task tick failed", task=self.name)
        return True

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + (0 if self.run_immediately else self.interval)

        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=max(0.0, next_run - loop.time())
                )
                break
            except asyncio.TimeoutError:
                pass

            await self.run_once()

            next_run += self.interval
            now = loop.time()
            if now > next_run:
                overdue = int((now - next_run) // self.interval) + 1
                next_run += overdue * self.interval
                self.skipped_count += overdue
                self.logger.warning("Skipped overdue ticks", task=self.name, skipped=overdue)
