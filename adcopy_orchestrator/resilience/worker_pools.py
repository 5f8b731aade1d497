"""
Bounded Worker Pools

Background work is partitioned by workload class so a slow AI provider
cannot starve unrelated work:

    ai       heavy provider calls (ad copy generation jobs)
    media    lighter image processing
    general  everything else

Each pool caps concurrency with an asyncio.Semaphore and admits at most
``max_workers + queue_capacity`` outstanding tasks. Past that, ``submit``
raises PoolSaturatedError so callers see backpressure instead of an
unbounded backlog.

Reference Documents:
- Release It! (Nygard): Bulkheads
- Building Microservices (Newman): Backpressure and load shedding
"""

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from adcopy_orchestrator.core.exceptions import PoolSaturatedError
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import record_pool_rejection, set_pool_outstanding

if TYPE_CHECKING:
    from adcopy_orchestrator.core.config import Settings

logger = get_logger(__name__)

T = TypeVar("T")

POOL_AI = "ai"
POOL_MEDIA = "media"
POOL_GENERAL = "general"


@dataclass
class PoolStats:
    """Point-in-time view of a pool."""

    name: str
    max_workers: int
    queue_capacity: int
    running: int
    queued: int

    @property
    def outstanding(self) -> int:
        return self.running + self.queued


class BoundedWorkerPool:
    """
    Concurrency-limited task runner with a bounded queue.

    Tasks are passed as zero-argument coroutine factories, so a rejected
    submission never leaves an un-awaited coroutine behind.

    Example:
        >>> pool = BoundedWorkerPool("ai", max_workers=12, queue_capacity=50)
        >>> task = pool.submit(lambda: run_generation(job_id))
    """

    def __init__(self, name: str, max_workers: int, queue_capacity: int) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if queue_capacity < 0:
            raise ValueError("queue_capacity must not be negative")

        self._name = name
        self._max_workers = max_workers
        self._queue_capacity = queue_capacity
        self._semaphore = asyncio.Semaphore(max_workers)
        self._tasks: set[asyncio.Task] = set()
        self._running = 0
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._max_workers + self._queue_capacity

    def stats(self) -> PoolStats:
        return PoolStats(
            name=self._name,
            max_workers=self._max_workers,
            queue_capacity=self._queue_capacity,
            running=self._running,
            queued=len(self._tasks) - self._running,
        )

    def submit(self, work: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """
        Schedule ``work`` on the pool.

        Args:
            work: Zero-argument callable returning an awaitable.

        Returns:
            The task running the work.

        Raises:
            PoolSaturatedError: All workers busy and the queue is full, or
                the pool has been shut down.
        """
        if self._closed or len(self._tasks) >= self.capacity:
            record_pool_rejection(self._name)
            logger.warning(
                "worker_pool_rejected",
                pool=self._name,
                outstanding=len(self._tasks),
                closed=self._closed,
            )
            raise PoolSaturatedError(self._name, self.capacity)

        task = asyncio.create_task(self._run(work), name=f"{self._name}-worker")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        set_pool_outstanding(self._name, len(self._tasks))
        return task

    async def _run(self, work: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            self._running += 1
            try:
                return await work()
            finally:
                self._running -= 1

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        set_pool_outstanding(self._name, len(self._tasks))
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("worker_pool_task_failed", pool=self._name, error=str(error))

    async def shutdown(self, timeout: Optional[float] = 10.0) -> None:
        """
        Stop accepting work, wait for outstanding tasks, cancel stragglers.

        Args:
            timeout: Seconds to wait before cancelling; None waits forever.
        """
        self._closed = True
        if not self._tasks:
            return

        pending = set(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("worker_pool_cancelled_tasks", pool=self._name, cancelled=len(still_running))


class WorkerPools:
    """The three workload-class pools, created and shut down together."""

    def __init__(
        self,
        ai: BoundedWorkerPool,
        media: BoundedWorkerPool,
        general: BoundedWorkerPool,
    ) -> None:
        self.ai = ai
        self.media = media
        self.general = general

    @classmethod
    def from_settings(cls, settings: "Settings") -> "WorkerPools":
        return cls(
            ai=BoundedWorkerPool(POOL_AI, settings.ai_pool_workers, settings.ai_pool_queue_capacity),
            media=BoundedWorkerPool(POOL_MEDIA, settings.media_pool_workers, settings.media_pool_queue_capacity),
            general=BoundedWorkerPool(
                POOL_GENERAL, settings.general_pool_workers, settings.general_pool_queue_capacity
            ),
        )

    def all(self) -> list[BoundedWorkerPool]:
        return [self.ai, self.media, self.general]

    def stats(self) -> dict[str, PoolStats]:
        return {pool.name: pool.stats() for pool in self.all()}

    async def shutdown(self, timeout: Optional[float] = 10.0) -> None:
        await asyncio.gather(*(pool.shutdown(timeout) for pool in self.all()))
