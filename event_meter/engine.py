"""
Metering engine façade.

Hosts call ``mark`` once per matched record and ``flush`` on a fixed cadence
of ``tick_seconds``. The engine performs no I/O and never schedules itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from event_meter.clock import Clock, default_clock
from event_meter.config import MeterConfig, default_config
from event_meter.registry import MetricRegistry
from event_meter.scheduler import FlushClearScheduler

logger = logging.getLogger(__name__)


class MetricsEngine:
    """Per-key meters with an ignore-older-than gate and periodic snapshots."""

    def __init__(
        self,
        config: MeterConfig | None = None,
        *,
        clock: Optional[Clock] = None,
        host: Optional[str] = None,
    ) -> None:
        self.config = (config or default_config).validate()
        self.clock = clock or default_clock
        self.registry = MetricRegistry(self.config.rates, self.config.tick_seconds)
        self.scheduler = FlushClearScheduler(
            tick_seconds=self.config.tick_seconds,
            flush_interval=self.config.flush_interval,
            clear_interval=self.config.clear_interval,
            host=host,
            tags=self.config.add_tag,
        )

    def is_too_old(self, event_time: Optional[float], now: float) -> bool:
        if not self.config.gate_enabled or event_time is None:
            return False
        return now - event_time > self.config.ignore_older_than

    def mark(self, key: str, event_time: Optional[float] = None, now: Optional[float] = None) -> bool:
        """
        Count one record for ``key``.

        Args:
            key: Resolved metric key.
            event_time: The record's timestamp in epoch seconds, if known.
            now: Current time; read from the engine clock when omitted.

        Returns:
            True if the record was counted, False if the age gate skipped it.
        """
        if now is None:
            now = self.clock.now()
        if self.is_too_old(event_time, now):
            logger.debug(
                "Skipping meter for old event meter=%s age=%.3f",
                key,
                now - event_time,
                extra={"meter": key},
            )
            return False
        self.registry.get_or_create(key).mark(1)
        return True

    def flush(self) -> List[Dict[str, Any]]:
        """Run one flush/clear cycle and return the snapshot records it produced."""
        return self.scheduler.run_cycle(self.registry, self.clock.now())

    def snapshot(self) -> List[Dict[str, Any]]:
        """Current count and rates for every key, without ticking or resetting anything."""
        return self.scheduler.peek(self.registry, self.clock.now())
