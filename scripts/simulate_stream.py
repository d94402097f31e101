"""Drive the engine with a synthetic record stream and print snapshot records."""

from __future__ import annotations

import json
import os
import random
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from event_meter.clock import ManualClock  # noqa: E402
from event_meter.config import MeterConfig  # noqa: E402
from event_meter.engine import MetricsEngine  # noqa: E402
from event_meter.resolver import KeyResolver  # noqa: E402

# Number of 5s ticks to simulate; override via env.
TICKS = int(os.getenv("SIM_TICKS", "24"))
# Mean records per tick.
RECORDS_PER_TICK = int(os.getenv("SIM_RECORDS_PER_TICK", "200"))
RESPONSE_CODES = (200, 200, 200, 200, 301, 404, 500)


def main() -> None:
    config = MeterConfig(
        meter="http_%{response}",
        flush_interval=10,
        clear_interval=60,
        sink="memory",
    )
    clock = ManualClock(start=1_700_000_000)
    engine = MetricsEngine(config, clock=clock, host="simulator")
    resolver = KeyResolver(config.meter)
    rng = random.Random(42)

    for _ in range(TICKS):
        for _ in range(rng.randint(RECORDS_PER_TICK // 2, RECORDS_PER_TICK * 3 // 2)):
            record = {"response": rng.choice(RESPONSE_CODES), "@timestamp": clock.now()}
            engine.mark(resolver.resolve(record), resolver.event_time(record))
        clock.advance(config.tick_seconds)
        for snapshot in engine.flush():
            print(json.dumps(snapshot))


if __name__ == "__main__":
    main()
