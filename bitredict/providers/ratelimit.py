from __future__ import annotations

import asyncio
import time


class TokenBucket:
    """Per-client request budget, refilled continuously at rate_per_minute."""

    def __init__(self, rate_per_minute: int, *, time_fn=time.monotonic, sleep=asyncio.sleep) -> None:
        self.capacity = max(1, int(rate_per_minute))
        self.tokens = float(self.capacity)
        self.refill_rate_per_sec = float(rate_per_minute) / 60.0
        self.last_refill = time_fn()
        self._now = time_fn
        self._sleep = sleep
        self._lock = asyncio.Lock()

    def allow(self, n: int = 1) -> bool:
        self._refill()
        if self.tokens >= n:
            self.tokens -= n
            return True
        return False

    def wait_time(self, n: int = 1) -> float:
        self._refill()
        missing = n - self.tokens
        if missing <= 0:
            return 0.0
        return missing / self.refill_rate_per_sec

    async def acquire(self, n: int = 1) -> None:
        """Block until n tokens are available, then take them."""
        async with self._lock:
            while not self.allow(n):
                await self._sleep(max(self.wait_time(n), 0.01))

    def _refill(self) -> None:
        now = self._now()
        elapsed = max(0.0, now - self.last_refill)
        self.last_refill = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate_per_sec)


__all__ = ["TokenBucket"]
