"""Bounded fire-and-forget fan-out of per-market fetch tasks.

spawn() schedules one task per market and returns immediately. At most
``max_concurrent`` tasks run their fetch at once; the rest wait on the
semaphore. A failing task is logged with its job and market id and never
affects its siblings or the caller.
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from dexa.logging import get_logger
from dexa.models import Market

logger = get_logger(__name__)


class MarketFetchPool:
    """Owns in-flight per-market tasks and the semaphore bounding them."""

    def __init__(self, max_concurrent: int = 20) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        job: str,
        market: Market,
        fetch: Callable[[Market], Awaitable[None]],
    ) -> asyncio.Task:  # type: ignore[type-arg]
        task = asyncio.create_task(self._run(job, market, fetch))
        # Strong reference until done, otherwise the loop may drop the task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        job: str,
        market: Market,
        fetch: Callable[[Market], Awaitable[None]],
    ) -> None:
        with structlog.contextvars.bound_contextvars(job=job, market_id=market.id):
            async with self._semaphore:
                try:
                    await fetch(market)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.error("market_fetch_failed", url=market.url, exc_info=True)

    async def drain(self) -> None:
        """Wait for every in-flight task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel in-flight tasks and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
