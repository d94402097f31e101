"""
Configuration helpers for the event meter.

This module centralizes the meter template, flush/clear cadence, the
ignore-older-than gate, sink selection and logging settings. Values are read
from the environment at import time; malformed values fall back to defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

VALID_RATES = (1, 5, 15)
VALID_SINKS = ("log", "http", "memory")

# Estimator tick cadence, also the minimum flush/clear granularity
DEFAULT_TICK_SECONDS = 5


class ConfigurationError(ValueError):
    """Raised when meter options are invalid. Never raised at runtime."""


def _load_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw:
        try:
            return int(raw)
        except ValueError:
            return default
    return default


def _load_float(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw:
        try:
            return float(raw)
        except ValueError:
            return default
    return default


def _load_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated env value, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_rates(raw: Optional[str]) -> Tuple[int, ...]:
    parts = _parse_list(raw)
    if not parts:
        return VALID_RATES
    try:
        return tuple(int(part) for part in parts)
    except ValueError:
        return VALID_RATES


DEFAULT_METER = os.getenv("EVENT_METER_TEMPLATE", "events")
DEFAULT_FLUSH_INTERVAL = _load_int("EVENT_METER_FLUSH_INTERVAL", 5)
DEFAULT_CLEAR_INTERVAL = _load_int("EVENT_METER_CLEAR_INTERVAL", -1)
DEFAULT_IGNORE_OLDER_THAN = _load_float("EVENT_METER_IGNORE_OLDER_THAN", 0.0)
DEFAULT_RATES = _parse_rates(os.getenv("EVENT_METER_RATES"))
DEFAULT_ADD_TAG = _parse_list(os.getenv("EVENT_METER_ADD_TAG"))
DEFAULT_SINK = os.getenv("EVENT_METER_SINK", "log")
DEFAULT_SINK_URL = os.getenv("EVENT_METER_SINK_URL")
DEFAULT_SINK_TIMEOUT = _load_float("EVENT_METER_HTTP_TIMEOUT", 10.0)
DEFAULT_AUTO_FLUSH = _load_bool("EVENT_METER_AUTO_FLUSH", True)
LOG_LEVEL = os.getenv("EVENT_METER_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("EVENT_METER_LOG_FORMAT", "json")  # json or plain

# Options accepted by MeterConfig.from_mapping, mirroring the filter plugin surface
PLUGIN_OPTIONS = (
    "meter",
    "flush_interval",
    "clear_interval",
    "ignore_older_than",
    "rates",
    "add_tag",
)


@dataclass(slots=True)
class MeterConfig:
    """Runtime configuration for the metering engine and its host service."""

    meter: str = DEFAULT_METER
    tick_seconds: int = DEFAULT_TICK_SECONDS
    flush_interval: int = DEFAULT_FLUSH_INTERVAL
    clear_interval: int = DEFAULT_CLEAR_INTERVAL
    ignore_older_than: float = DEFAULT_IGNORE_OLDER_THAN
    rates: Tuple[int, ...] = DEFAULT_RATES
    add_tag: List[str] = field(default_factory=lambda: list(DEFAULT_ADD_TAG))
    sink: str = DEFAULT_SINK
    sink_url: Optional[str] = DEFAULT_SINK_URL
    sink_timeout: float = DEFAULT_SINK_TIMEOUT
    auto_flush: bool = DEFAULT_AUTO_FLUSH
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT

    @property
    def clearing_enabled(self) -> bool:
        return self.clear_interval > 0

    @property
    def gate_enabled(self) -> bool:
        return self.ignore_older_than > 0

    def validate(self) -> "MeterConfig":
        """
        Check every option, raising ConfigurationError on the first problem.

        Returns:
            The config itself so callers can chain ``MeterConfig(...).validate()``.
        """
        if not isinstance(self.meter, str) or not self.meter.strip():
            raise ConfigurationError("meter must be a non-empty template string.")
        if self.tick_seconds <= 0:
            raise ConfigurationError(f"tick_seconds must be positive, got {self.tick_seconds}.")
        if self.flush_interval <= 0 or self.flush_interval % self.tick_seconds:
            raise ConfigurationError(
                f"flush_interval must be a positive multiple of {self.tick_seconds}s, "
                f"got {self.flush_interval}."
            )
        if self.clear_interval > 0 and self.clear_interval % self.tick_seconds:
            raise ConfigurationError(
                f"clear_interval must be -1 or a positive multiple of {self.tick_seconds}s, "
                f"got {self.clear_interval}."
            )
        if self.ignore_older_than < 0:
            raise ConfigurationError(
                f"ignore_older_than must be zero or positive, got {self.ignore_older_than}."
            )
        if not self.rates:
            raise ConfigurationError("rates must name at least one of 1, 5, 15.")
        invalid = [
            rate for rate in self.rates if isinstance(rate, bool) or not isinstance(rate, int)
        ] or sorted(set(self.rates) - set(VALID_RATES))
        if invalid:
            raise ConfigurationError(
                "Invalid rates configuration. possible rates are 1, 5, 15. "
                f"Rates: {list(self.rates)}."
            )
        if self.sink not in VALID_SINKS:
            raise ConfigurationError(f"sink must be one of {', '.join(VALID_SINKS)}, got {self.sink!r}.")
        if self.sink == "http" and not self.sink_url:
            raise ConfigurationError("sink_url is required when sink is 'http'.")
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any], **overrides: Any) -> "MeterConfig":
        """Build a validated config from a plugin-style options mapping."""
        unknown = sorted(set(options) - set(PLUGIN_OPTIONS))
        if unknown:
            raise ConfigurationError(f"Unknown meter options: {', '.join(unknown)}.")
        kwargs: Dict[str, Any] = dict(options)
        if "rates" in kwargs:
            kwargs["rates"] = tuple(
                int(rate) if isinstance(rate, str) and rate.strip().isdigit() else rate
                for rate in kwargs["rates"]
            )
        if "add_tag" in kwargs:
            tags = kwargs["add_tag"]
            kwargs["add_tag"] = [tags] if isinstance(tags, str) else list(tags)
        kwargs.update(overrides)
        return cls(**kwargs).validate()


default_config = MeterConfig()
