"""Token-bucket rate limiter guarding the CoinGecko request quota.

Tokens replenish continuously at a fixed rate up to ``burst``. A caller
that finds the bucket empty reserves the next token (the balance may go
negative) and sleeps until it is due, unless that would take longer than
its timeout, in which case it fails immediately with
RateLimitWaitExceededError instead of blocking.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from dexa.exceptions import RateLimitWaitExceededError
from dexa.logging import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """Shared token bucket. Safe for concurrent coroutines on one event loop.

    Args:
        rate_per_second: Replenishment rate in tokens per second.
        burst: Bucket capacity; also the initial token count.
        clock: Monotonic clock, injectable for tests.
        sleep: Async sleep, injectable for tests.
    """

    def __init__(
        self,
        rate_per_second: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self._rate = rate_per_second
        self._burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()

    @classmethod
    def per_minute(
        cls,
        calls_per_minute: int,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "TokenBucket":
        return cls(calls_per_minute / 60.0, burst, clock=clock, sleep=sleep)

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(float(self._burst), self._tokens + elapsed * self._rate)

    def allow(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    async def wait(self, timeout: float) -> None:
        """Block until a token is granted, at most ``timeout`` seconds.

        Raises:
            RateLimitWaitExceededError: The token would not be due in time.
        """
        # No await between refill and reservation: the update is atomic on the loop.
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return

        if self._rate <= 0:
            raise RateLimitWaitExceededError("rate limiter never replenishes")

        delay = (1 - self._tokens) / self._rate
        if delay > timeout:
            logger.warning(
                "rate_limit_wait_exceeded",
                delay_seconds=round(delay, 3),
                timeout_seconds=timeout,
            )
            raise RateLimitWaitExceededError(
                f"rate limit wait of {delay:.2f}s exceeds timeout of {timeout:.2f}s"
            )

        self._tokens -= 1
        logger.debug("rate_limit_waiting", delay_seconds=round(delay, 3))
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            # Give the reservation back so later callers are not delayed for nothing
            self._tokens += 1
            raise

    async def acquire(self, timeout: float) -> None:
        """allow() first, falling back to a bounded wait()."""
        if self.allow():
            return
        await self.wait(timeout)
