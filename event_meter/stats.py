"""In-process counters for the meter service itself (not the metered keys)."""

from __future__ import annotations

from threading import Lock
from typing import Dict


class ServiceStats:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._records_accepted = 0
        self._records_skipped = 0
        self._flush_cycles = 0
        self._snapshots_emitted = 0
        self._sink_errors = 0

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_ingest(self, *, accepted: bool) -> None:
        with self._lock:
            if accepted:
                self._records_accepted += 1
            else:
                self._records_skipped += 1

    def record_flush(self, emitted: int) -> None:
        with self._lock:
            self._flush_cycles += 1
            self._snapshots_emitted += emitted

    def incr_sink_error(self) -> None:
        with self._lock:
            self._sink_errors += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "requests": self._requests,
                "records_accepted": self._records_accepted,
                "records_skipped": self._records_skipped,
                "flush_cycles": self._flush_cycles,
                "snapshots_emitted": self._snapshots_emitted,
                "sink_errors": self._sink_errors,
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._records_accepted = 0
            self._records_skipped = 0
            self._flush_cycles = 0
            self._snapshots_emitted = 0
            self._sink_errors = 0


default_stats = ServiceStats()
