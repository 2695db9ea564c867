from datetime import datetime, timedelta, timezone

import pytest

from bitredict.oracle.utils.runtime import backoff_schedule, ensure_utc, is_due, next_backoff_delay, retry_async
from bitredict.shared.errors import PermanentError, TransientError


class _Sleeps(list):
    async def __call__(self, delay):
        self.append(delay)


def test_next_backoff_delay_doubles_with_cap():
    assert next_backoff_delay(5.0, factor=2.0, max_delay=30.0) == 10.0
    assert next_backoff_delay(20.0, factor=2.0, max_delay=30.0) == 30.0


def test_next_backoff_delay_handles_non_positive():
    assert next_backoff_delay(0.0, factor=2.0, max_delay=30.0) == 30.0
    assert next_backoff_delay(-1.0, factor=2.0, max_delay=30.0) == 30.0


def test_backoff_schedule():
    assert backoff_schedule(3, base_delay=2.0, factor=2.0, max_delay=60.0) == [2.0, 4.0, 8.0]
    assert backoff_schedule(4, base_delay=2.0, factor=2.0, max_delay=5.0) == [2.0, 4.0, 5.0, 5.0]
    assert backoff_schedule(0, base_delay=2.0, factor=2.0, max_delay=60.0) == []


@pytest.mark.asyncio
async def test_retry_async_returns_after_transient_failures():
    sleeps = _Sleeps()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError("timeout")
        return "ok"

    assert await retry_async(flaky, retries=3, base_delay=2.0, sleep=sleeps) == "ok"
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_retry_async_reraises_when_exhausted():
    sleeps = _Sleeps()

    async def down():
        raise TransientError("503")

    with pytest.raises(TransientError):
        await retry_async(down, retries=3, base_delay=2.0, sleep=sleeps)
    assert sleeps == [2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_permanent_errors():
    sleeps = _Sleeps()

    async def broken():
        raise PermanentError("404")

    with pytest.raises(PermanentError):
        await retry_async(broken, retries=3, base_delay=2.0, sleep=sleeps)
    assert sleeps == []


def test_ensure_utc_and_is_due():
    naive = datetime(2025, 3, 1, 12, 0)
    assert ensure_utc(naive).tzinfo is timezone.utc
    aware = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_utc(aware) is aware

    assert is_due(None, aware, 60)
    assert is_due(aware - timedelta(seconds=60), aware, 60)
    assert not is_due(aware - timedelta(seconds=59), aware, 60)
