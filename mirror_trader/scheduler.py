from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Optional

log = logging.getLogger(__name__)


class PeriodicTask:
    """Run a coroutine once immediately, then every ``interval_seconds``.

    Runs never overlap: the next run starts ``interval_seconds`` after the
    previous one started, or right after it finishes if it overran.
    ``stop()`` prevents future runs but leaves a run in progress alone.

    Usage:
        task = PeriodicTask(monitor.tick, 1.0, name="monitor")
        await task.start()
        ...
        task.stop()
        await task.wait_closed()
    """

    def __init__(
        self,
        func: Callable[[], Awaitable[None]],
        interval_seconds: float,
        *,
        name: str = "periodic",
    ) -> None:
        self._func = func
        self.interval_seconds = max(0.0, float(interval_seconds))
        self.name = name
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self._loop_task is not None:
            return
        self._stopped.clear()
        started = time.monotonic()
        await self._run_once()
        self._loop_task = asyncio.create_task(self._loop(started), name=self.name)

    async def _run_once(self) -> None:
        try:
            await self._func()
        except Exception:
            log.exception("%s run failed", self.name)

    async def _loop(self, last_start: float) -> None:
        while not self._stopped.is_set():
            delay = max(0.0, self.interval_seconds - (time.monotonic() - last_start))
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass
            last_start = time.monotonic()
            await self._run_once()

    def stop(self) -> None:
        self._stopped.set()

    async def wait_closed(self) -> None:
        """Wait for the loop to exit, including a run that was in progress."""
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)
