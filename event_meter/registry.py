"""Concurrent mapping from metric key to MeterState."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from event_meter.config import DEFAULT_TICK_SECONDS, VALID_RATES
from event_meter.meter import MeterState


class MetricRegistry:
    """
    Lazily-populated registry of meters.

    Lookups of existing keys take no lock. A miss takes the insertion lock,
    re-checks, and inserts, so racing first marks always resolve to a single
    MeterState. Keys are never removed.
    """

    def __init__(
        self,
        rates: Iterable[int] = VALID_RATES,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self._rates = tuple(rates)
        self._tick_seconds = tick_seconds
        self._meters: Dict[str, MeterState] = {}
        self._lock = Lock()

    def get_or_create(self, key: str) -> MeterState:
        meter = self._meters.get(key)
        if meter is not None:
            return meter
        with self._lock:
            meter = self._meters.get(key)
            if meter is None:
                meter = MeterState(key, self._rates, self._tick_seconds)
                self._meters[key] = meter
            return meter

    def get(self, key: str) -> Optional[MeterState]:
        return self._meters.get(key)

    def meters(self) -> List[MeterState]:
        """Point-in-time copy of the registered meters."""
        with self._lock:
            return list(self._meters.values())

    def for_each(self, fn: Callable[[MeterState], None]) -> None:
        """Call ``fn`` once per meter present when the call starts.

        The insertion lock is only held while copying, so producers keep
        marking (and inserting) while ``fn`` runs.
        """
        for meter in self.meters():
            fn(meter)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._meters)

    def __contains__(self, key: object) -> bool:
        return key in self._meters

    def __len__(self) -> int:
        return len(self._meters)
