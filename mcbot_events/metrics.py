"""
Pipeline metrics.

Three tallies keyed by dotted names:
- counters: ``hub.emitted``, ``hub.filtered``, ``notifier.<channel>``
- errors: ``hub.listener``, ``hub.filter``, ``adapter.<signal>``, ``notifier.<transport>``
- drops: ``filter``, ``move_throttle``

plus latency samples per timed operation (``hub.emit``).
"""
from __future__ import annotations

import threading
import time
from collections import Counter, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterator, Optional

SAMPLE_WINDOW = 1000


@dataclass
class LatencyStats:
    """Running totals for one operation plus a window of recent samples."""
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    window: int = SAMPLE_WINDOW
    samples: Deque[float] = field(init=False)

    def __post_init__(self):
        self.samples = deque(maxlen=self.window)

    def record(self, ms: float) -> None:
        self.count += 1
        self.total_ms += ms
        self.min_ms = ms if self.min_ms is None else min(self.min_ms, ms)
        self.max_ms = max(self.max_ms, ms)
        self.samples.append(ms)

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile (0-100) over the sample window."""
        if not self.samples:
            return 0.0
        ordered = sorted(self.samples)
        rank = min(int(len(ordered) * p / 100), len(ordered) - 1)
        return ordered[rank]

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms or 0.0, 2),
            "max_ms": round(self.max_ms, 2),
            "p50_ms": round(self.percentile(50), 2),
            "p95_ms": round(self.percentile(95), 2),
        }


class MetricsCollector:
    """
    Side channel shared by the hub, the adapters and the notifier.

    Recording never raises and never blocks emission for long; one lock
    guards all tallies.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment("emitted", subsystem="hub")
        >>> metrics.record_error("hub", "listener")
        >>> metrics.summary()["totals"]["errors"]
        1
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._started = datetime.now()
        self._latencies: Dict[str, LatencyStats] = {}
        self._counters: Counter = Counter()
        self._errors: Counter = Counter()
        self._drops: Counter = Counter()

    # ---- recording ----

    def record_latency(self, operation: str, ms: float) -> None:
        with self._lock:
            stats = self._latencies.get(operation)
            if stats is None:
                stats = self._latencies[operation] = LatencyStats()
            stats.record(ms)

    @contextmanager
    def time_operation(self, operation: str) -> Iterator[None]:
        """Record the wall time spent inside the block under ``operation``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_latency(operation, (time.perf_counter() - start) * 1000)

    def increment(
        self,
        counter: str,
        n: int = 1,
        subsystem: Optional[str] = None,
    ) -> int:
        """Bump a counter (``subsystem.counter`` when a subsystem is given)."""
        key = f"{subsystem}.{counter}" if subsystem else counter
        with self._lock:
            self._counters[key] += n
            return self._counters[key]

    def record_error(self, subsystem: str, error_type: str = "unknown") -> None:
        with self._lock:
            self._errors[f"{subsystem}.{error_type}"] += 1

    def record_drop(self, stage: str) -> None:
        with self._lock:
            self._drops[stage] += 1

    # ---- queries ----

    def get_counter(self, counter: str) -> int:
        with self._lock:
            return self._counters[counter]

    def get_errors(self, key: str) -> int:
        with self._lock:
            return self._errors[key]

    def get_drops(self, stage: str) -> int:
        with self._lock:
            return self._drops[stage]

    def get_total_errors(self) -> int:
        with self._lock:
            return sum(self._errors.values())

    def get_total_drops(self) -> int:
        with self._lock:
            return sum(self._drops.values())

    def summary(self) -> Dict:
        """Snapshot of every tally, JSON-ready."""
        with self._lock:
            latencies = {op: stats.to_dict() for op, stats in self._latencies.items()}
            counters = dict(self._counters)
            errors = dict(self._errors)
            drops = dict(self._drops)
            started = self._started

        return {
            "uptime_seconds": round((datetime.now() - started).total_seconds(), 1),
            "latencies": latencies,
            "counters": counters,
            "errors": errors,
            "drops": drops,
            "totals": {
                "errors": sum(errors.values()),
                "drops": sum(drops.values()),
            },
        }

    def reset(self) -> None:
        with self._lock:
            self._latencies.clear()
            self._counters.clear()
            self._errors.clear()
            self._drops.clear()
            self._started = datetime.now()
