"""Process-wide request metrics for the monitoring endpoints.

A single :class:`MetricsStore` is built by the bootstrap and handed to every
component that needs it.  All mutations and snapshot reads go through one
lock, so ``total == successful + failed`` holds after every completed call
and a snapshot never mixes values from two different points in time.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime


def format_uptime(seconds: float) -> str:
    """Render a duration compactly, e.g. ``1h2m3.5s`` or ``450ms``."""
    # Millisecond resolution; round first so carries reach minutes and hours.
    seconds = round(seconds, 3)
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{_trim(seconds * 1000)}ms"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return out + f"{_trim(secs)}s"


def _trim(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of every aggregate, taken under one lock hold."""

    total_requests: int
    successful_requests: int
    failed_requests: int
    average_latency_ms: float
    healthy: bool
    version: str
    started_at: datetime
    uptime_seconds: float
    taken_at: datetime

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests * 100

    @property
    def in_flight(self) -> int:
        """Calls counted in ``total_requests`` that have not resolved yet."""
        return self.total_requests - self.successful_requests - self.failed_requests

    @property
    def uptime(self) -> str:
        return format_uptime(self.uptime_seconds)


class MetricsStore:
    """Concurrency-safe request counters, smoothed latency and liveness flag."""

    def __init__(self, version: str = "v1", *, healthy: bool = True) -> None:
        self._lock = threading.Lock()
        self._total: int = 0
        self._successful: int = 0
        self._failed: int = 0
        self._average_latency_ms: float = 0.0
        self._healthy = healthy
        self._version = version
        self._started_at = datetime.now(UTC)
        self._started_mono = time.monotonic()

    @property
    def version(self) -> str:
        return self._version

    @property
    def started_at(self) -> datetime:
        return self._started_at

    def increment_total(self) -> None:
        """Count a unit of work that is about to start."""
        with self._lock:
            self._total += 1

    def record_success(self, duration_ms: float) -> None:
        """Resolve a started unit as successful.

        The average follows ``avg = (avg + d) / 2``: recent samples dominate
        and a sample taken ``k`` successes ago is weighted ``2**-k``.
        """
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be non-negative, got {duration_ms}")
        with self._lock:
            self._successful += 1
            self._average_latency_ms = (self._average_latency_ms + duration_ms) / 2

    def record_failure(self) -> None:
        """Resolve a started unit as failed.  Latency is left untouched."""
        with self._lock:
            self._failed += 1

    def set_healthy(self, healthy: bool) -> None:
        with self._lock:
            self._healthy = healthy

    def snapshot(self) -> MetricsSnapshot:
        """Return every aggregate as of a single instant."""
        with self._lock:
            total = self._total
            successful = self._successful
            failed = self._failed
            average = self._average_latency_ms
            healthy = self._healthy
            uptime = time.monotonic() - self._started_mono
            taken_at = datetime.now(UTC)
        return MetricsSnapshot(
            total_requests=total,
            successful_requests=successful,
            failed_requests=failed,
            average_latency_ms=average,
            healthy=healthy,
            version=self._version,
            started_at=self._started_at,
            uptime_seconds=uptime,
            taken_at=taken_at,
        )
