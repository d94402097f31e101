"""
Exponentially-decayed rate estimation, load-average style.

Marks only accumulate; the smoothed rate changes once per fixed tick, so
bursts between ticks cannot distort it.
"""

from __future__ import annotations

import math
from typing import Optional


class DecayingRateEstimator:
    """EWMA of events per second over a 1, 5 or 15 minute window."""

    def __init__(self, window_minutes: int, tick_seconds: float = 5) -> None:
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be positive, got {tick_seconds}")
        self.window_minutes = window_minutes
        self.tick_seconds = tick_seconds
        self.alpha = 1 - math.exp(-tick_seconds / (window_minutes * 60.0))
        self.uncounted = 0
        self.ewma: Optional[float] = None

    @property
    def initialized(self) -> bool:
        return self.ewma is not None

    def mark(self, n: int = 1) -> None:
        self.uncounted += n

    def tick(self) -> float:
        """
        Fold the marks accumulated since the last tick into the average.

        Returns:
            The instantaneous rate (events/second) observed over this tick.
        """
        instantaneous = self.uncounted / self.tick_seconds
        self.uncounted = 0
        if self.ewma is None:
            self.ewma = instantaneous
        else:
            self.ewma += self.alpha * (instantaneous - self.ewma)
        return instantaneous

    def rate(self) -> float:
        """Smoothed rate in events per second, 0.0 before the first tick."""
        return self.ewma if self.ewma is not None else 0.0

    def rate_per_minute(self) -> float:
        return self.rate() * 60

    def reset(self) -> None:
        self.uncounted = 0
        self.ewma = None

    def __repr__(self) -> str:
        return (
            f"DecayingRateEstimator(window_minutes={self.window_minutes}, "
            f"uncounted={self.uncounted}, ewma={self.ewma})"
        )
