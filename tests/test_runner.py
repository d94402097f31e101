import asyncio

import pytest

from event_meter.config import MeterConfig
from event_meter.engine import MetricsEngine
from event_meter.runner import PeriodicFlusher
from event_meter.sinks import MemorySink
from event_meter.stats import ServiceStats


class RecordingSink:
    def __init__(self):
        self.records = []

    async def emit(self, record):
        self.records.append(record)

    async def aclose(self):
        return None


class BrokenSink:
    def __init__(self):
        self.calls = 0

    async def emit(self, record):
        self.calls += 1
        raise RuntimeError("downstream bug")

    async def aclose(self):
        return None


class BlockingSink(RecordingSink):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def emit(self, record):
        await self.release.wait()
        self.records.append(record)


class FakeTime:
    """Monotonic time that only moves when the flusher sleeps."""

    def __init__(self, lateness=0.0):
        self.now = 100.0
        self.lateness = lateness
        self.delays = []

    def monotonic(self):
        return self.now

    async def sleep(self, delay):
        self.delays.append(delay)
        self.now += delay + self.lateness
        await asyncio.sleep(0)


def _engine(clock):
    return MetricsEngine(MeterConfig(meter="hits", sink="memory"), clock=clock, host="h")


def _flusher(engine, sink, fake, stats):
    return PeriodicFlusher(engine, sink, stats=stats, monotonic=fake.monotonic, sleep=fake.sleep)


async def _wait_for(predicate, attempts=1000):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_run_once_delivers_and_records_stats(clock):
    engine = _engine(clock)
    sink = RecordingSink()
    latest = MemorySink()
    stats = ServiceStats()
    flusher = PeriodicFlusher(engine, sink, latest=latest, stats=stats)

    engine.mark("hits")
    engine.mark("misses")
    clock.advance(5)
    batch = await flusher.run_once()

    assert sorted(record["name"] for record in batch) == ["hits", "misses"]
    assert sink.records == batch
    assert set(latest.latest()) == {"hits", "misses"}
    snapshot = stats.snapshot()
    assert snapshot["flush_cycles"] == 1
    assert snapshot["snapshots_emitted"] == 2


@pytest.mark.asyncio
async def test_interval_is_tick_seconds(clock):
    flusher = PeriodicFlusher(_engine(clock), RecordingSink(), stats=ServiceStats())
    assert flusher.interval == 5


@pytest.mark.asyncio
async def test_start_and_stop_loop(clock):
    engine = _engine(clock)
    sink = RecordingSink()
    fake = FakeTime()
    flusher = _flusher(engine, sink, fake, ServiceStats())
    engine.mark("hits")
    flusher.start()
    assert flusher.running
    await _wait_for(lambda: sink.records)
    await flusher.stop()
    assert not flusher.running
    assert sink.records[0]["name"] == "hits"
    assert sink.records[0]["count"] == 1


@pytest.mark.asyncio
async def test_ticks_follow_fixed_deadlines_despite_late_wakeups(clock):
    fake = FakeTime(lateness=0.3)
    flusher = _flusher(_engine(clock), RecordingSink(), fake, ServiceStats())
    flusher.start()
    await _wait_for(lambda: len(fake.delays) >= 4)
    await flusher.stop()
    assert fake.delays[0] == pytest.approx(5.0)
    assert fake.delays[1:4] == [pytest.approx(4.7)] * 3


@pytest.mark.asyncio
async def test_slow_sink_does_not_delay_ticks(clock):
    engine = _engine(clock)
    engine.mark("hits")
    sink = BlockingSink()
    stats = ServiceStats()
    fake = FakeTime()
    flusher = _flusher(engine, sink, fake, stats)
    flusher.start()
    await _wait_for(lambda: stats.snapshot()["flush_cycles"] >= 3)
    assert sink.records == []
    assert fake.delays[:3] == [pytest.approx(5.0)] * 3
    sink.release.set()
    await flusher.stop()
    assert len(sink.records) >= 3


@pytest.mark.asyncio
async def test_loop_survives_sink_errors(clock):
    engine = _engine(clock)
    engine.mark("hits")
    sink = BrokenSink()
    stats = ServiceStats()
    flusher = _flusher(engine, sink, FakeTime(), stats)
    flusher.start()
    await _wait_for(lambda: sink.calls >= 3)
    assert flusher.running
    await flusher.stop()
    assert stats.snapshot()["sink_errors"] >= 3
    assert stats.snapshot()["flush_cycles"] >= 3


@pytest.mark.asyncio
async def test_loop_survives_flush_errors(clock, monkeypatch):
    engine = _engine(clock)
    real_flush = engine.flush
    calls = []

    def flaky_flush():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return real_flush()

    monkeypatch.setattr(engine, "flush", flaky_flush)
    stats = ServiceStats()
    flusher = _flusher(engine, RecordingSink(), FakeTime(), stats)
    flusher.start()
    await _wait_for(lambda: len(calls) >= 3)
    assert flusher.running
    await flusher.stop()
    assert stats.snapshot()["flush_cycles"] >= 2
