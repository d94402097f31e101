"""Per-key meter state: total count, rate estimators and flush/clear timers."""

from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable

from event_meter.config import DEFAULT_TICK_SECONDS, VALID_RATES
from event_meter.ewma import DecayingRateEstimator


class MeterState:
    """
    Mutable state for one metric key.

    All mutation happens under ``lock``: producers hold it for a single mark,
    the scheduler holds it while it ticks, snapshots and clears this key.
    """

    def __init__(
        self,
        key: str,
        rates: Iterable[int] = VALID_RATES,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self._key = key
        self.lock = Lock()
        self.count = 0
        self.rates: Dict[int, DecayingRateEstimator] = {
            window: DecayingRateEstimator(window, tick_seconds) for window in sorted(set(rates))
        }
        self.seconds_since_flush = 0
        self.seconds_since_clear = 0

    @property
    def key(self) -> str:
        return self._key

    def mark(self, n: int = 1) -> None:
        with self.lock:
            self.count += n
            for estimator in self.rates.values():
                estimator.mark(n)

    def rate(self, window_minutes: int) -> float:
        estimator = self.rates.get(window_minutes)
        return estimator.rate() if estimator is not None else 0.0

    # The methods below expect the caller to hold ``lock``.

    def advance(self, seconds: float) -> None:
        self.seconds_since_flush += seconds
        self.seconds_since_clear += seconds

    def tick(self) -> None:
        for estimator in self.rates.values():
            estimator.tick()

    def clear(self) -> None:
        self.count = 0
        for estimator in self.rates.values():
            estimator.reset()
        self.seconds_since_clear = 0

    def __repr__(self) -> str:
        return f"MeterState(key={self._key!r}, count={self.count})"
