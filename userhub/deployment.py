"""Deployment info: a read-only projection of the metrics plus identity."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from userhub.metrics import MetricsStore


class DeploymentInfo(BaseModel):
    version: str
    environment: str
    healthy: bool
    uptime: str
    total_requests: int
    success_rate: float
    average_latency_ms: float
    timestamp: datetime


class DeploymentInfoAssembler:
    """Builds :class:`DeploymentInfo` from a single metrics snapshot."""

    def __init__(self, metrics: MetricsStore, environment: str) -> None:
        self._metrics = metrics
        self._environment = environment

    @property
    def environment(self) -> str:
        return self._environment

    def assemble(self) -> DeploymentInfo:
        snap = self._metrics.snapshot()
        return DeploymentInfo(
            version=snap.version,
            environment=self._environment,
            healthy=snap.healthy,
            uptime=snap.uptime,
            total_requests=snap.total_requests,
            success_rate=snap.success_rate,
            average_latency_ms=snap.average_latency_ms,
            timestamp=snap.taken_at,
        )
