"""Periodic job scheduler.

Each registered job runs in its own asyncio task: optionally once right
away, then every ``interval`` seconds. A failing run is logged and the
loop keeps going. Jobs stay directly callable outside the scheduler.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from dexa.logging import get_logger

logger = get_logger(__name__)

PeriodicTask = Callable[[], Awaitable[object]]


@dataclass
class _Job:
    name: str
    interval: float
    task: PeriodicTask
    run_immediately: bool


class PeriodicScheduler:
    """Runs registered coroutine functions on fixed intervals."""

    def __init__(self) -> None:
        self._jobs: list[_Job] = []
        self._tasks: list[asyncio.Task] = []  # type: ignore[type-arg]
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def register_periodic(
        self,
        interval: float,
        task: PeriodicTask,
        run_immediately: bool = False,
        name: str | None = None,
    ) -> None:
        """Register ``task`` to run every ``interval`` seconds.

        Jobs registered while running start immediately.
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        job = _Job(
            name=name or getattr(task, "__name__", "job"),
            interval=interval,
            task=task,
            run_immediately=run_immediately,
        )
        self._jobs.append(job)
        if self._running:
            self._tasks.append(asyncio.create_task(self._loop(job)))

    async def start(self) -> None:
        if self._running:
            logger.warning("scheduler_already_running")
            return
        self._running = True
        self._tasks = [asyncio.create_task(self._loop(job)) for job in self._jobs]
        logger.info("scheduler_started", jobs=[job.name for job in self._jobs])

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("scheduler_stopped")

    async def _loop(self, job: _Job) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while self._running:
            await self._run_once(job)
            await asyncio.sleep(job.interval)

    async def _run_once(self, job: _Job) -> None:
        try:
            await job.task()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("scheduled_job_failed", job=job.name, exc_info=True)
