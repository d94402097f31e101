"""Flush/clear cycle run once per tick over every registered meter."""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from event_meter.meter import MeterState
from event_meter.registry import MetricRegistry

logger = logging.getLogger(__name__)

SNAPSHOT_MESSAGE = "metric"


def _format_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


class FlushClearScheduler:
    """
    Advances per-key timers, ticks estimators and decides flush/clear per key.

    Each key is processed under its own lock, so producers marking other keys
    are never blocked by a cycle.
    """

    def __init__(
        self,
        *,
        tick_seconds: int,
        flush_interval: int,
        clear_interval: int = -1,
        host: Optional[str] = None,
        tags: Sequence[str] = (),
    ) -> None:
        self.tick_seconds = tick_seconds
        self.flush_interval = flush_interval
        self.clear_interval = clear_interval
        self.host = host or socket.gethostname()
        self.tags = list(tags)

    def should_flush(self, meter: MeterState) -> bool:
        return meter.seconds_since_flush >= self.flush_interval

    def should_clear(self, meter: MeterState) -> bool:
        return self.clear_interval > 0 and meter.seconds_since_clear >= self.clear_interval

    def build_snapshot(self, meter: MeterState, now: float) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "message": SNAPSHOT_MESSAGE,
            "name": meter.key,
            "count": meter.count,
        }
        for window, estimator in meter.rates.items():
            record[f"rate_{window}m"] = estimator.rate()
        record["host"] = self.host
        record["timestamp"] = _format_timestamp(now)
        if self.tags:
            record["tags"] = list(self.tags)
        return record

    def process(self, meter: MeterState, now: float) -> Optional[Dict[str, Any]]:
        """Run one cycle for a single meter; returns its snapshot if it flushed."""
        snapshot = None
        with meter.lock:
            meter.advance(self.tick_seconds)
            meter.tick()
            if self.should_flush(meter):
                snapshot = self.build_snapshot(meter, now)
                meter.seconds_since_flush = 0
            if self.should_clear(meter):
                meter.clear()
                logger.debug("meter=%s cleared", meter.key, extra={"meter": meter.key})
        return snapshot

    def peek(self, registry: MetricRegistry, now: float) -> List[Dict[str, Any]]:
        """Current record for every meter; timers and estimators are left untouched."""
        records: List[Dict[str, Any]] = []

        def _visit(meter: MeterState) -> None:
            with meter.lock:
                records.append(self.build_snapshot(meter, now))

        registry.for_each(_visit)
        return records

    def run_cycle(self, registry: MetricRegistry, now: float) -> List[Dict[str, Any]]:
        batch: List[Dict[str, Any]] = []

        def _visit(meter: MeterState) -> None:
            snapshot = self.process(meter, now)
            if snapshot is not None:
                batch.append(snapshot)

        registry.for_each(_visit)
        logger.debug("flush cycle meters=%d records=%d", len(registry), len(batch))
        return batch
