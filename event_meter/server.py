"""FastAPI application feeding inbound records to the metering engine."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from event_meter.config import default_config
from event_meter.engine import MetricsEngine
from event_meter.resolver import KeyResolver
from event_meter.runner import PeriodicFlusher
from event_meter.sinks import MemorySink, build_sink
from event_meter.stats import default_stats

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("meter", "request_id", "error", "snapshot"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload, default=str)


def configure_logging(log_level: str, log_format: str) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    if log_format.lower() == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(level=level)


configure_logging(default_config.log_level, default_config.log_format)

HEALTH_STATUS = {"status": "ok"}
APP_VERSION = "0.1.0"

engine = MetricsEngine(default_config)
resolver = KeyResolver(default_config.meter)
sink = build_sink(default_config)
latest_snapshots = sink if isinstance(sink, MemorySink) else MemorySink()
flusher = PeriodicFlusher(engine, sink, latest=latest_snapshots, stats=default_stats)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    if default_config.auto_flush:
        flusher.start()
    yield
    # Shutdown
    await flusher.stop()
    await sink.aclose()


app = FastAPI(
    title="Event Meter",
    description="Per-key event counts and decayed 1/5/15 minute rates.",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_stats.incr_request()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    logger.debug(
        "path=%s status=%s duration_ms=%.2f",
        request.url.path,
        response.status_code,
        duration_ms,
        extra={"request_id": request_id},
    )
    response.headers["X-Request-ID"] = request_id
    return response


def ingest_record(record: Dict[str, Any], now: Optional[float] = None) -> bool:
    """Resolve a record's key and mark it; returns False if the age gate skipped it."""
    key = resolver.resolve(record)
    accepted = engine.mark(key, resolver.event_time(record), now)
    default_stats.record_ingest(accepted=accepted)
    return accepted


def _error(status_code: int, message: str, request_id: Optional[str]) -> JSONResponse:
    logger.warning(
        "outcome=rejected error=%s request_id=%s",
        message,
        request_id,
        extra={"request_id": request_id, "error": message},
    )
    return JSONResponse(status_code=status_code, content={"error": message})


@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@app.post("/events")
async def ingest(request: Request) -> JSONResponse:
    """Count one record or a list of records."""
    request_id = getattr(request.state, "request_id", None)
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Body must be valid JSON.", request_id)

    records: List[Any] = payload if isinstance(payload, list) else [payload]
    if not all(isinstance(record, dict) for record in records):
        return _error(400, "Each record must be a JSON object.", request_id)

    now = engine.clock.now()
    accepted = sum(1 for record in records if ingest_record(record, now))
    return JSONResponse(content={"accepted": accepted, "skipped": len(records) - accepted})


@app.post("/flush")
async def flush_now() -> JSONResponse:
    """
    Return snapshot records now.

    While the periodic flusher owns the cadence this only reads current values;
    otherwise the caller is the driver and a full cycle runs.
    """
    if flusher.running:
        return JSONResponse(content={"records": engine.snapshot(), "cycle": False})
    records = await flusher.run_once()
    return JSONResponse(content={"records": records, "cycle": True})


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Latest snapshot record per metric name."""
    return JSONResponse(content=latest_snapshots.latest())


@app.get("/stats")
async def stats() -> JSONResponse:
    """Return in-process service counters."""
    return JSONResponse(content=default_stats.snapshot())


# Run with: uvicorn event_meter.server:app
