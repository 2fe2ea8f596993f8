"""Tests for the TokenBucket rate limiter (fake clock, fake sleep)."""

import asyncio

import pytest

from conftest import FakeClock
from dexa.exceptions import RateLimitWaitExceededError
from dexa.rater.limiter import TokenBucket


class RecordingSleep:
    """Async sleep that records delays and optionally advances the fake clock."""

    def __init__(self, clock: FakeClock, advance: bool = True) -> None:
        self.clock = clock
        self.advance = advance
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.advance:
            self.clock.advance(delay)


def test_allow_until_burst_exhausted(clock):
    bucket = TokenBucket(rate_per_second=1.0, burst=3, clock=clock)
    assert [bucket.allow() for _ in range(4)] == [True, True, True, False]


def test_tokens_refill_over_time(clock):
    bucket = TokenBucket(rate_per_second=1.0, burst=2, clock=clock)
    bucket.allow()
    bucket.allow()
    assert not bucket.allow()

    clock.advance(1.0)
    assert bucket.allow()
    assert not bucket.allow()


def test_refill_capped_at_burst(clock):
    bucket = TokenBucket(rate_per_second=10.0, burst=2, clock=clock)
    clock.advance(100)
    assert bucket.tokens == 2


def test_per_minute(clock):
    bucket = TokenBucket.per_minute(50, burst=1, clock=clock)
    assert bucket.allow()
    clock.advance(2)
    assert bucket.allow()


@pytest.mark.asyncio
async def test_wait_sleeps_for_next_token(clock):
    sleep = RecordingSleep(clock)
    bucket = TokenBucket(rate_per_second=0.5, burst=1, clock=clock, sleep=sleep)

    await bucket.acquire(timeout=10)
    await bucket.acquire(timeout=10)

    assert sleep.calls == [pytest.approx(2.0)]


@pytest.mark.asyncio
async def test_wait_fails_fast_beyond_timeout(clock):
    sleep = RecordingSleep(clock)
    bucket = TokenBucket(rate_per_second=0.1, burst=1, clock=clock, sleep=sleep)
    await bucket.acquire(timeout=1)

    with pytest.raises(RateLimitWaitExceededError):
        await bucket.acquire(timeout=1)
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_concurrent_callers_never_exceed_quota(clock):
    """More callers than the quota: some wait, the rest fail, none slip through early."""
    sleep = RecordingSleep(clock, advance=False)
    bucket = TokenBucket(rate_per_second=1.0, burst=2, clock=clock, sleep=sleep)

    results = await asyncio.gather(
        *(bucket.acquire(timeout=1.5) for _ in range(5)), return_exceptions=True
    )

    granted = [r for r in results if r is None]
    failed = [r for r in results if isinstance(r, RateLimitWaitExceededError)]
    # burst of 2 immediately, one more after waiting <= 1.5s, the rest rejected
    assert len(granted) == 3
    assert len(failed) == 2
    assert len(sleep.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_wait_returns_reservation(clock):
    bucket = TokenBucket(rate_per_second=1.0, burst=1, clock=clock)
    bucket.allow()

    task = asyncio.create_task(bucket.wait(timeout=5))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert bucket.tokens == pytest.approx(0.0)


def test_burst_must_be_positive():
    with pytest.raises(ValueError):
        TokenBucket(rate_per_second=1.0, burst=0)
