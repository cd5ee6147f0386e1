"""Readiness probing of the write store and the read store.

Each store is pinged under its own deadline.  A deadline miss is reported the
same way as a refused connection; the probe never retries, that is left to
whoever polls ``/ready``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from userhub.logging import get_logger

log = get_logger("userhub.readiness")

DEFAULT_TIMEOUT = 2.0

CONNECTED = "connected"
UNREACHABLE = "unreachable"


def _positive(timeout: float) -> float:
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    return timeout


class StoreCheck(Protocol):
    """Anything that can confirm a backing store is answering."""

    name: str

    async def ping(self) -> None: ...


class EngineCheck:
    """Pings an SQLAlchemy engine with ``SELECT 1`` on a pooled connection."""

    def __init__(self, name: str, engine: AsyncEngine) -> None:
        self.name = name
        self._engine = engine

    async def ping(self) -> None:
        # Cancellation unwinds the ``async with`` and hands the
        # connection back to the pool.
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))


@dataclass(frozen=True)
class StoreStatus:
    store: str
    reachable: bool
    reason: str | None = None

    @property
    def label(self) -> str:
        return CONNECTED if self.reachable else UNREACHABLE


@dataclass(frozen=True)
class ReadinessResult:
    write: StoreStatus
    read: StoreStatus

    @property
    def ready(self) -> bool:
        return self.write.reachable and self.read.reachable

    @property
    def reasons(self) -> dict[str, str]:
        """Per-store failure reasons, keyed ``db_write`` / ``db_read``."""
        out: dict[str, str] = {}
        if not self.write.reachable:
            out["db_write"] = self.write.reason or UNREACHABLE
        if not self.read.reachable:
            out["db_read"] = self.read.reason or UNREACHABLE
        return out

    @property
    def error(self) -> str | None:
        """First failing store as a single message, write store first."""
        for status in (self.write, self.read):
            if not status.reachable:
                return f"{status.store} store unreachable: {status.reason}"
        return None


class ReadinessProbe:
    """Concurrent, deadline-bounded reachability checks of both stores."""

    def __init__(
        self,
        write_check: StoreCheck,
        read_check: StoreCheck,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._write_check = write_check
        self._read_check = read_check
        self._timeout = _positive(timeout)

    @property
    def timeout(self) -> float:
        return self._timeout

    async def check_readiness(self, timeout: float | None = None) -> ReadinessResult:
        """Ping both stores concurrently; each gets the full ``timeout``."""
        deadline = self._timeout if timeout is None else _positive(timeout)
        write, read = await asyncio.gather(
            self._check(self._write_check, deadline),
            self._check(self._read_check, deadline),
        )
        return ReadinessResult(write=write, read=read)

    async def _check(self, check: StoreCheck, timeout: float) -> StoreStatus:
        try:
            async with asyncio.timeout(timeout):
                await check.ping()
        except TimeoutError:
            reason = f"timed out after {timeout:g}s"
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        else:
            return StoreStatus(store=check.name, reachable=True)

        log.warning("store_unreachable", store=check.name, reason=reason)
        return StoreStatus(store=check.name, reachable=False, reason=reason)
