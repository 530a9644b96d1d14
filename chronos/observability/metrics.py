"""Lightweight in-process request metrics for Chronos.

Counters, a bounded latency ring buffer and a trailing one-minute request-rate
window. All mutation happens on the event loop, one call at a time, so no lock
is taken.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from chronos.utils.time import now_ms

RATE_WINDOW_MS = 60_000
DEFAULT_LATENCY_SAMPLES = 500


def _is_valid_sample(value: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


class LatencyRingBuffer:
    """Fixed-capacity buffer of duration samples; the oldest is overwritten once full."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = int(capacity)
        self._samples: list[float] = []
        self._cursor = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, sample: float) -> bool:
        if not _is_valid_sample(sample):
            return False
        if len(self._samples) < self._capacity:
            self._samples.append(float(sample))
        else:
            self._samples[self._cursor] = float(sample)
            self._cursor = (self._cursor + 1) % self._capacity
        return True

    def values(self) -> list[float]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


class RequestRateWindow:
    """Chronological request timestamps trimmed to a trailing window."""

    def __init__(self, window_ms: int = RATE_WINDOW_MS) -> None:
        self.window_ms = window_ms
        self._timestamps: deque[float] = deque()

    def add(self, now: float) -> None:
        self._timestamps.append(now)
        cutoff = now - self.window_ms
        while self._timestamps and self._timestamps[0] < cutoff:
            self._timestamps.popleft()

    def count_since(self, cutoff: float) -> int:
        return sum(1 for t in self._timestamps if t >= cutoff)

    def __len__(self) -> int:
        return len(self._timestamps)


@dataclass(frozen=True)
class LatencyStatistics:
    samples: int = 0
    avg_ms: Optional[float] = None
    min_ms: Optional[float] = None
    max_ms: Optional[float] = None
    p50_ms: Optional[float] = None
    p95_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "samples": self.samples,
            "avgMs": self.avg_ms,
            "minMs": self.min_ms,
            "maxMs": self.max_ms,
            "p50Ms": self.p50_ms,
            "p95Ms": self.p95_ms,
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    now: float
    total_requests: int
    in_flight: int
    last_request_at: Optional[float]
    rps_1m: float
    latency: LatencyStatistics

    def to_dict(self) -> dict:
        return {
            "now": self.now,
            "totalRequests": self.total_requests,
            "inFlight": self.in_flight,
            "lastRequestAt": self.last_request_at,
            "rps1m": self.rps_1m,
            "latency": self.latency.to_dict(),
        }


def percentile(sorted_values: list[float], rank: float) -> Optional[float]:
    """Exact percentile by index into an ascending list.

    ``rank`` is already scaled to the list, e.g. ``0.95 * (n - 1)``; it is
    clamped to ``[0, n - 1]`` and rounded down.
    """
    if not sorted_values:
        return None
    idx = max(0, min(len(sorted_values) - 1, math.floor(rank)))
    return sorted_values[idx]


def latency_statistics(samples: list[float]) -> LatencyStatistics:
    if not samples:
        return LatencyStatistics()

    total = 0.0
    low = math.inf
    high = -math.inf
    for value in samples:
        total += value
        low = min(low, value)
        high = max(high, value)

    ordered = sorted(samples)
    n = len(ordered)
    return LatencyStatistics(
        samples=n,
        avg_ms=total / n,
        min_ms=low,
        max_ms=high,
        p50_ms=percentile(ordered, 0.5 * (n - 1)),
        p95_ms=percentile(ordered, 0.95 * (n - 1)),
    )


class MetricsAggregator:
    """Request lifecycle tracking: in-flight/total counters, latency and rate.

    One instance lives for the whole process and is handed to the request
    middleware and the stats dashboard.
    """

    def __init__(
        self,
        latency_samples: int = DEFAULT_LATENCY_SAMPLES,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._clock = clock
        self.total_requests = 0
        self.in_flight = 0
        self.last_request_at: Optional[float] = None
        self._latency = LatencyRingBuffer(DEFAULT_LATENCY_SAMPLES)
        self._rate = RequestRateWindow()
        self.configure_latency_samples(latency_samples)

    @property
    def latency_capacity(self) -> int:
        return self._latency.capacity

    def configure_latency_samples(self, capacity: float) -> None:
        """Reset the latency buffer with a new capacity; invalid values are ignored."""
        if isinstance(capacity, bool) or not isinstance(capacity, (int, float)):
            return
        if not math.isfinite(capacity) or capacity <= 0:
            return
        size = math.floor(capacity)
        if size <= 0:
            return
        self._latency = LatencyRingBuffer(size)

    def on_request_start(self, now: Optional[float] = None) -> None:
        self.in_flight += 1
        self.last_request_at = self._clock() if now is None else now

    def on_request_finish(self, duration_ms: float, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        self.in_flight = max(0, self.in_flight - 1)
        self.total_requests += 1
        self._latency.add(duration_ms)
        self._rate.add(now)

    def latency_values(self) -> list[float]:
        return self._latency.values()

    def get_snapshot(self) -> MetricsSnapshot:
        now = self._clock()
        rps = self._rate.count_since(now - RATE_WINDOW_MS) / 60
        return MetricsSnapshot(
            now=now,
            total_requests=self.total_requests,
            in_flight=self.in_flight,
            last_request_at=self.last_request_at,
            rps_1m=rps,
            latency=latency_statistics(self._latency.values()),
        )
