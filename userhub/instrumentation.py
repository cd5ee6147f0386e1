"""Per-call instrumentation for business operations.

Every instrumented call is counted before it starts and resolves to exactly
one outcome: a success carrying its elapsed time, or a failure.

Usage::

    with instrumentation.track("add_user", write=True) as call:
        ...  # run the operation; call.mark_error() for handled failures

    users = await instrumentation.run(repo.list_users, name="list_users")
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from userhub.errors import InjectedFaultError
from userhub.logging import get_logger
from userhub.metrics import MetricsStore

log = get_logger("userhub.instrumentation")

T = TypeVar("T")


class InstrumentedCall:
    """Context manager for one unit of work; records its outcome on exit."""

    def __init__(self, metrics: MetricsStore, operation: str, *, inject_fault: bool = False) -> None:
        self._metrics = metrics
        self._operation = operation
        self._inject_fault = inject_fault
        self._start: float = 0.0
        self._error = False
        self.elapsed_ms: float | None = None

    @property
    def operation(self) -> str:
        return self._operation

    def mark_error(self) -> None:
        """Call inside the block to resolve a handled failure as failed."""
        self._error = True

    def __enter__(self) -> "InstrumentedCall":
        self._metrics.increment_total()
        if self._inject_fault:
            # __exit__ is not called when __enter__ raises, so resolve here.
            self._metrics.record_failure()
            log.warning("fault_injected", operation=self._operation)
            raise InjectedFaultError(self._operation)
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.elapsed_ms = (time.perf_counter() - self._start) * 1_000
        if exc_type is not None or self._error:
            self._metrics.record_failure()
            log.warning(
                "request_failed",
                operation=self._operation,
                duration_ms=round(self.elapsed_ms, 3),
                error=str(exc_val) if exc_val is not None else None,
            )
        else:
            self._metrics.record_success(self.elapsed_ms)


class RequestInstrumentation:
    """Wraps business operations with counting, timing and fault injection."""

    def __init__(self, metrics: MetricsStore, *, fault_mode: bool = False) -> None:
        self._metrics = metrics
        self.fault_mode = fault_mode

    @property
    def metrics(self) -> MetricsStore:
        return self._metrics

    def track(self, operation: str, *, write: bool = False) -> InstrumentedCall:
        """Return a context manager instrumenting one call of ``operation``.

        Write-path calls fail with :class:`InjectedFaultError` on entry while
        ``fault_mode`` is on, before the operation is attempted.
        """
        return InstrumentedCall(self._metrics, operation, inject_fault=write and self.fault_mode)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str | None = None,
        write: bool = False,
    ) -> T:
        """Await ``operation()`` inside :meth:`track` and return its result."""
        with self.track(name or getattr(operation, "__name__", "operation"), write=write):
            return await operation()
