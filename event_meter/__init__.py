"""
In-process event metering.

Counts records per dynamically-named key and keeps exponentially-decayed
1, 5 and 15 minute rates, emitting one snapshot record per key on a fixed
flush cadence. See DESIGN.md for details.
"""

from event_meter.config import ConfigurationError, MeterConfig
from event_meter.engine import MetricsEngine
from event_meter.ewma import DecayingRateEstimator
from event_meter.meter import MeterState
from event_meter.registry import MetricRegistry
from event_meter.scheduler import FlushClearScheduler

__all__ = [
    "ConfigurationError",
    "DecayingRateEstimator",
    "FlushClearScheduler",
    "MeterConfig",
    "MeterState",
    "MetricRegistry",
    "MetricsEngine",
]
