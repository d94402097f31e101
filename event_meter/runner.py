"""Asyncio driver that flushes the engine on a fixed cadence."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from event_meter.engine import MetricsEngine
from event_meter.sinks import MemorySink, deliver
from event_meter.stats import ServiceStats, default_stats

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class PeriodicFlusher:
    """
    Calls ``engine.flush()`` every ``tick_seconds`` and delivers the batch.

    Ticks are scheduled against a monotonic deadline (start + k * tick_seconds)
    and delivery runs in its own task, so a slow sink never stretches the
    period the estimators divide by.
    """

    def __init__(
        self,
        engine: MetricsEngine,
        sink: Any,
        *,
        latest: Optional[MemorySink] = None,
        stats: Optional[ServiceStats] = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.sink = sink
        self.latest = latest
        self.stats = stats or default_stats
        self.interval = engine.config.tick_seconds
        self._monotonic = monotonic
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._deliveries: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _tick(self) -> List[Record]:
        batch = self.engine.flush()
        self.stats.record_flush(len(batch))
        if self.latest is not None and self.latest is not self.sink:
            for record in batch:
                self.latest.store(record)
        return batch

    async def _deliver(self, batch: List[Record]) -> None:
        await deliver(batch, self.sink, self.stats)

    async def run_once(self) -> List[Record]:
        """Run one flush cycle and deliver its records before returning."""
        batch = self._tick()
        await self._deliver(batch)
        return batch

    def _schedule_delivery(self, batch: List[Record]) -> None:
        if not batch:
            return
        task = asyncio.create_task(self._deliver(batch))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _loop(self) -> None:
        start = self._monotonic()
        cycle = 0
        while True:
            cycle += 1
            deadline = start + cycle * self.interval
            delay = deadline - self._monotonic()
            if delay < -self.interval:
                missed = int(-delay // self.interval)
                logger.warning("periodic flush fell behind, skipping %d tick(s)", missed)
                cycle += missed
                deadline = start + cycle * self.interval
                delay = deadline - self._monotonic()
            await self._sleep(max(0.0, delay))
            try:
                batch = self._tick()
            except Exception as exc:
                logger.exception("outcome=flush_error error=%s", exc, extra={"error": str(exc)})
                continue
            self._schedule_delivery(batch)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("periodic flush started interval=%ss", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self._deliveries:
            _done, pending = await asyncio.wait(set(self._deliveries), timeout=self.interval)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("dropped %d undelivered snapshot batch(es) on stop", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("periodic flush stopped")
