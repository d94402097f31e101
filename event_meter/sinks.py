"""
Destinations for snapshot records produced by a flush cycle.

The engine never performs I/O; the host hands each record to one of these.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, List, Optional

import httpx

from event_meter.config import MeterConfig, default_config

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class SinkError(Exception):
    """Base exception for snapshot delivery failures."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SinkUnreachableError(SinkError):
    """Raised when the downstream endpoint cannot be reached."""


class MemorySink:
    """Keeps the latest snapshot per metric name."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._latest: Dict[str, Record] = {}

    async def emit(self, record: Record) -> None:
        self.store(record)

    def store(self, record: Record) -> None:
        with self._lock:
            self._latest[record["name"]] = dict(record)

    def latest(self) -> Dict[str, Record]:
        with self._lock:
            return {name: dict(record) for name, record in self._latest.items()}

    def clear(self) -> None:
        with self._lock:
            self._latest.clear()

    async def aclose(self) -> None:
        return None


class LoggingSink:
    """Writes each snapshot to the log at INFO."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._logger = log or logging.getLogger("event_meter.snapshots")

    async def emit(self, record: Record) -> None:
        self._logger.info(
            "meter=%s count=%s",
            record.get("name"),
            record.get("count"),
            extra={"meter": record.get("name"), "snapshot": record},
        )

    async def aclose(self) -> None:
        return None


class HttpSink:
    """POSTs each snapshot as JSON to a downstream collector."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def emit(self, record: Record) -> None:
        client = await self._get_client()
        try:
            response = await client.post(self.url, json=record)
        except httpx.RequestError as exc:
            raise SinkUnreachableError(f"Sink unreachable: {exc.__class__.__name__}") from exc
        if response.status_code >= 400:
            raise SinkError(
                f"Sink rejected snapshot with HTTP {response.status_code}.",
                status_code=response.status_code,
            )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def build_sink(config: MeterConfig | None = None):
    """Create the sink named by ``config.sink``."""
    config = config or default_config
    if config.sink == "http":
        if not config.sink_url:
            raise ValueError("sink_url is required for the http sink")
        return HttpSink(config.sink_url, timeout=config.sink_timeout)
    if config.sink == "memory":
        return MemorySink()
    return LoggingSink()


async def deliver(records: List[Record], sink: Any, stats: Any = None) -> int:
    """
    Hand each record to ``sink``; any failure is logged and that record skipped.

    Returns:
        The number of records the sink accepted.
    """
    delivered = 0
    for record in records:
        try:
            await sink.emit(record)
        except SinkError as exc:
            logger.warning(
                "meter=%s outcome=sink_error error=%s",
                record.get("name"),
                exc,
                extra={"meter": record.get("name"), "error": str(exc)},
            )
            if stats is not None:
                stats.incr_sink_error()
            continue
        except Exception as exc:
            logger.exception(
                "meter=%s outcome=sink_failure error=%s",
                record.get("name"),
                exc,
                extra={"meter": record.get("name"), "error": str(exc)},
            )
            if stats is not None:
                stats.incr_sink_error()
            continue
        delivered += 1
    return delivered
