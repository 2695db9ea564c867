"""Periodic component loops for the oracle process.

Every component is a `run_once()` coroutine driven on its own interval by
one asyncio task. All loops observe a single shutdown event: a tick in
progress is allowed to finish, then the loop exits. A tick that raises
`OracleError` is logged and counted; `FatalError`, or too many transient
failures in a row, stops the whole runner.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from bitredict.oracle.utils.runtime import utcnow
from bitredict.shared.errors import FatalError, OracleError, TransientError

logger = logging.getLogger(__name__)

STALE_AFTER_INTERVALS = 3

Counters = Callable[[Any], Mapping[str, int]]


@dataclass
class ComponentStats:
    name: str
    interval_seconds: float
    started_at: datetime
    ticks: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_tick_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    counters: Dict[str, int] = field(default_factory=dict)

    def record_success(self, now: datetime, counts: Mapping[str, int]) -> None:
        self.ticks += 1
        self.consecutive_failures = 0
        self.last_tick_at = now
        for key, value in counts.items():
            self.counters[key] = self.counters.get(key, 0) + int(value)

    def record_failure(self, now: datetime, exc: BaseException) -> None:
        self.failures += 1
        self.consecutive_failures += 1
        self.last_error = f"{type(exc).__name__}: {exc}"
        self.last_error_at = now

    def is_stale(self, now: datetime) -> bool:
        """No successful tick within three intervals (counted from start until the first one)."""
        reference = self.last_tick_at or self.started_at
        return now - reference > timedelta(seconds=self.interval_seconds * STALE_AFTER_INTERVALS)

    def as_dict(self, now: datetime) -> Dict[str, Any]:
        return {
            "interval_seconds": self.interval_seconds,
            "ticks": self.ticks,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "stale": self.is_stale(now),
            "counters": dict(self.counters),
        }


@dataclass
class PeriodicComponent:
    name: str
    tick: Callable[[], Awaitable[Any]]
    interval_seconds: float
    counters: Optional[Counters] = None


class ComponentRunner:
    def __init__(
        self,
        components: Sequence[PeriodicComponent],
        *,
        shutdown: Optional[asyncio.Event] = None,
        fatal_after_failures: int = 20,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        names = [c.name for c in components]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate component names: {names}")
        self.components = list(components)
        self.shutdown = shutdown or asyncio.Event()
        self.fatal_after_failures = fatal_after_failures
        self._now = now_fn
        started = now_fn()
        self.stats: Dict[str, ComponentStats] = {
            c.name: ComponentStats(name=c.name, interval_seconds=c.interval_seconds, started_at=started)
            for c in self.components
        }
        self.fatal: Optional[FatalError] = None
        self._tasks: List[asyncio.Task] = []

    def snapshot(self) -> Dict[str, Any]:
        now = self._now()
        components = {name: stats.as_dict(now) for name, stats in self.stats.items()}
        healthy = self.fatal is None and not any(c["stale"] for c in components.values())
        return {
            "status": "ok" if healthy else "degraded",
            "checked_at": now.isoformat(),
            "components": components,
        }

    def is_healthy(self) -> bool:
        return self.snapshot()["status"] == "ok"

    async def run(self) -> None:
        """Run every component until shutdown. Raises FatalError if one escalated."""
        self._tasks = [
            asyncio.create_task(self._loop(component), name=f"oracle:{component.name}")
            for component in self.components
        ]
        logger.info({"runner_started": {"components": [c.name for c in self.components]}})
        try:
            await asyncio.gather(*self._tasks)
        finally:
            for task in self._tasks:
                if not task.done():
                    task.cancel()
        if self.fatal is not None:
            raise self.fatal

    def stop(self) -> None:
        self.shutdown.set()

    async def tick(self, component: PeriodicComponent) -> None:
        stats = self.stats[component.name]
        try:
            result = await component.tick()
        except FatalError:
            raise
        except OracleError as exc:
            stats.record_failure(self._now(), exc)
            logger.warning(
                {
                    "component_tick_failed": {
                        "component": component.name,
                        "error": str(exc),
                        "type": type(exc).__name__,
                        "consecutive_failures": stats.consecutive_failures,
                    }
                }
            )
            if isinstance(exc, TransientError) and stats.consecutive_failures >= self.fatal_after_failures:
                raise FatalError(
                    f"{component.name}: {stats.consecutive_failures} consecutive transient failures, last: {exc}"
                ) from exc
            return
        counts = component.counters(result) if component.counters and result is not None else {}
        stats.record_success(self._now(), counts)

    async def _loop(self, component: PeriodicComponent) -> None:
        while not self.shutdown.is_set():
            started = time.monotonic()
            try:
                await self.tick(component)
            except FatalError as exc:
                self.fatal = exc
                logger.critical({"component_fatal": {"component": component.name, "error": str(exc)}})
                self.shutdown.set()
                return
            elapsed = time.monotonic() - started
            try:
                await asyncio.wait_for(self.shutdown.wait(), timeout=max(0.0, component.interval_seconds - elapsed))
            except asyncio.TimeoutError:
                continue
        logger.info({"component_stopped": {"component": component.name}})


__all__ = [
    "STALE_AFTER_INTERVALS",
    "ComponentStats",
    "PeriodicComponent",
    "ComponentRunner",
]
