from __future__ import annotations

import asyncio
import logging
import signal
from typing import Dict, Optional

from ..config import AgentSettings
from ..errors import DeliveryError
from ..metrics.base import POLL_COUNT, Metric
from ..metrics.merge import merge
from ..metrics.system import Collector
from .reporter import Reporter
from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)


class Agent:
    """Samples the runtime on one timer and reports on another.

    The snapshot is shared between both timers under a lock. Gauges are
    replaced on every poll; ``PollCount`` accumulates the polls not yet
    acknowledged by the server and is reduced by what each successful report
    carried.
    """

    def __init__(
        self,
        settings: AgentSettings,
        collector: Optional[Collector] = None,
        reporter: Optional[Reporter] = None,
    ) -> None:
        self.settings = settings
        self.stop_event = asyncio.Event()
        self.collector = collector or Collector()
        self.reporter = reporter or Reporter(
            settings.server_url,
            key=settings.key,
            timeout=settings.request_timeout,
            stop_event=self.stop_event,
        )
        self._snapshot: Dict[str, Metric] = {}
        self._lock = asyncio.Lock()
        self._poll_task = PeriodicTask(
            "metric-poll",
            self.poll,
            settings.poll_interval,
            run_immediately=True,
            stop_event=self.stop_event,
        )
        self._report_task = PeriodicTask(
            "metric-report",
            self.report,
            settings.report_interval,
            stop_event=self.stop_event,
        )

    async def snapshot(self) -> Dict[str, Metric]:
        async with self._lock:
            return dict(self._snapshot)

    async def poll(self) -> None:
        fresh = self.collector.collect()
        async with self._lock:
            fresh[POLL_COUNT] = merge(self._snapshot.get(POLL_COUNT), fresh[POLL_COUNT])
            self._snapshot = fresh

    async def report(self) -> None:
        snapshot = await self.snapshot()
        if not snapshot:
            return
        try:
            await self.reporter.report(snapshot)
        except DeliveryError as exc:
            logger.error("failed to deliver metrics: %s", exc)
            return

        sent = snapshot.get(POLL_COUNT)
        if sent is None:
            return
        async with self._lock:
            pending = self._snapshot.get(POLL_COUNT)
            remaining = (pending.delta if pending is not None else 0) - sent.delta
            if remaining > 0:
                self._snapshot[POLL_COUNT] = Metric.counter(POLL_COUNT, remaining)
            else:
                self._snapshot.pop(POLL_COUNT, None)
        logger.info("metrics sent successfully (poll count %d)", self.collector.poll_count)

    def start(self) -> None:
        self._poll_task.start()
        self._report_task.start()

    async def stop(self) -> None:
        self.stop_event.set()
        await self._poll_task.stop()
        await self._report_task.stop()
        await self.reporter.aclose()

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.stop_event.set)
            except NotImplementedError:
                pass  # Windows

        logger.info(
            "agent started: server=%s poll=%ss report=%ss",
            self.settings.server_url,
            self.settings.poll_interval,
            self.settings.report_interval,
        )
        self.start()
        try:
            await self.stop_event.wait()
        finally:
            logger.info("received termination signal, shutting down")
            await self.stop()
