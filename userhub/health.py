"""Liveness evaluation.

Liveness answers "should this process be restarted".  It is driven only by
the explicit flag on :class:`~userhub.metrics.MetricsStore`, which an
operator or a fault-injection toggle flips.  Error rates and latencies never
change it, and it is unrelated to readiness.
"""

from __future__ import annotations

from dataclasses import dataclass

from userhub.logging import get_logger
from userhub.metrics import MetricsStore

log = get_logger("userhub.health")

STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class HealthReport:
    status: str
    version: str
    uptime: str
    uptime_seconds: float

    @property
    def healthy(self) -> bool:
        return self.status == STATUS_HEALTHY

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "version": self.version,
            "uptime": self.uptime,
            "uptime_seconds": round(self.uptime_seconds, 3),
        }


class HealthEvaluator:
    """Reads and toggles the liveness flag of a shared metrics store."""

    def __init__(self, metrics: MetricsStore) -> None:
        self._metrics = metrics

    def is_healthy(self) -> bool:
        return self._metrics.snapshot().healthy

    def status_report(self) -> HealthReport:
        snap = self._metrics.snapshot()
        return HealthReport(
            status=STATUS_HEALTHY if snap.healthy else STATUS_UNHEALTHY,
            version=snap.version,
            uptime=snap.uptime,
            uptime_seconds=snap.uptime_seconds,
        )

    def mark_healthy(self) -> None:
        self._metrics.set_healthy(True)
        log.info("liveness_changed", healthy=True)

    def mark_unhealthy(self) -> None:
        self._metrics.set_healthy(False)
        log.warning("liveness_changed", healthy=False)
