from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Background task that runs a coroutine function on a fixed interval."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        interval_seconds: float,
        run_immediately: bool = False,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = stop_event or asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._stop_event.clear()
            self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _tick(self) -> None:
        try:
            await self.func()
        except Exception:
            logger.exception("%s: periodic run failed", self.name)

    async def _run(self) -> None:
        if self.run_immediately:
            await self._tick()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self._tick()
