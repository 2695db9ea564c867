# assorted utils for oracle runtime

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from bitredict.shared.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_backoff_delay(current: float, *, factor: float, max_delay: float) -> float:
    """Compute next backoff delay with a cap."""
    if current <= 0:
        return max_delay
    return min(max_delay, current * factor)


def backoff_schedule(retries: int, *, base_delay: float, factor: float, max_delay: float) -> list[float]:
    """Delays slept before each retry, e.g. 3 retries from 2s -> [2, 4, 8]."""
    delays: list[float] = []
    delay = base_delay
    for _ in range(max(0, retries)):
        delays.append(min(delay, max_delay))
        delay = next_backoff_delay(delay, factor=factor, max_delay=max_delay)
    return delays


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay: float,
    factor: float = 2.0,
    max_delay: float = 60.0,
    retry_on: Tuple[Type[BaseException], ...] = (TransientError,),
    label: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run fn, retrying on retry_on with exponential backoff; re-raise when exhausted."""
    delays = backoff_schedule(retries, base_delay=base_delay, factor=factor, max_delay=max_delay)
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= len(delays):
                logger.warning({"retry_exhausted": {"label": label, "attempts": attempt + 1, "error": str(exc)}})
                raise
            delay = delays[attempt]
            attempt += 1
            logger.info({"retry_scheduled": {"label": label, "attempt": attempt, "delay_seconds": delay, "error": str(exc)}})
            await sleep(delay)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes from the database as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_due(last_run: Optional[datetime], now: datetime, interval_seconds: float) -> bool:
    if last_run is None:
        return True
    return (now - last_run).total_seconds() >= interval_seconds


__all__ = [
    "utcnow",
    "next_backoff_delay",
    "backoff_schedule",
    "retry_async",
    "ensure_utc",
    "is_due",
]
