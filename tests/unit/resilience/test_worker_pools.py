"""
Tests for BoundedWorkerPool and WorkerPools - bulkheads with backpressure.

Reference Documents:
- Release It! (Nygard): Bulkheads
"""

import asyncio

import pytest

from adcopy_orchestrator.core.config import Settings
from adcopy_orchestrator.core.exceptions import PoolSaturatedError
from adcopy_orchestrator.resilience.worker_pools import BoundedWorkerPool, WorkerPools


class TestBoundedWorkerPool:
    """Concurrency limit and queue capacity."""

    def test_invalid_sizes_rejected(self):
        """A pool needs at least one worker and a non-negative queue."""
        with pytest.raises(ValueError):
            BoundedWorkerPool("ai", max_workers=0, queue_capacity=1)
        with pytest.raises(ValueError):
            BoundedWorkerPool("ai", max_workers=1, queue_capacity=-1)

    @pytest.mark.asyncio
    async def test_submit_returns_result(self):
        """Submitted work runs and its result is available on the task."""
        pool = BoundedWorkerPool("general", max_workers=2, queue_capacity=2)

        async def work():
            return 42

        task = pool.submit(work)

        assert await task == 42

    @pytest.mark.asyncio
    async def test_saturated_pool_rejects(self):
        """Past workers + queue capacity, submit raises PoolSaturatedError."""
        pool = BoundedWorkerPool("ai", max_workers=1, queue_capacity=1)
        release = asyncio.Event()

        async def blocked():
            await release.wait()

        first = pool.submit(blocked)
        second = pool.submit(blocked)
        await asyncio.sleep(0)

        with pytest.raises(PoolSaturatedError) as exc_info:
            pool.submit(blocked)
        assert exc_info.value.pool_name == "ai"
        assert exc_info.value.capacity == 2

        stats = pool.stats()
        assert stats.running == 1
        assert stats.queued == 1
        assert stats.outstanding == 2

        release.set()
        await asyncio.gather(first, second)
        await asyncio.sleep(0)
        assert pool.stats().outstanding == 0

    @pytest.mark.asyncio
    async def test_concurrency_limited_to_max_workers(self):
        """No more than max_workers tasks run at once."""
        pool = BoundedWorkerPool("media", max_workers=2, queue_capacity=10)
        running = 0
        peak = 0

        async def work():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await asyncio.gather(*(pool.submit(work) for _ in range(6)))

        assert peak == 2

    @pytest.mark.asyncio
    async def test_failed_task_frees_slot(self):
        """A task that raises still releases its slot."""
        pool = BoundedWorkerPool("ai", max_workers=1, queue_capacity=0)

        async def boom():
            raise RuntimeError("provider exploded")

        task = pool.submit(boom)
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert pool.stats().outstanding == 0
        assert await pool.submit(lambda: asyncio.sleep(0, result="ok")) == "ok"

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_work(self):
        """A shut down pool accepts nothing."""
        pool = BoundedWorkerPool("general", max_workers=1, queue_capacity=1)
        await pool.shutdown()

        with pytest.raises(PoolSaturatedError):
            pool.submit(lambda: asyncio.sleep(0))

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stragglers(self):
        """Tasks still running after the timeout are cancelled."""
        pool = BoundedWorkerPool("ai", max_workers=1, queue_capacity=0)
        task = pool.submit(lambda: asyncio.sleep(10))

        await pool.shutdown(timeout=0.01)

        assert task.cancelled()


class TestWorkerPools:
    """The three workload-class pools."""

    def test_from_settings(self):
        """Pools are sized from settings."""
        pools = WorkerPools.from_settings(Settings())

        stats = pools.stats()
        assert set(stats) == {"ai", "media", "general"}
        assert stats["ai"].max_workers == 12
        assert pools.ai.capacity == 62
        assert pools.media.capacity == 31
        assert pools.general.capacity == 24

    @pytest.mark.asyncio
    async def test_pools_are_isolated(self):
        """A saturated ai pool does not block general work."""
        pools = WorkerPools(
            ai=BoundedWorkerPool("ai", 1, 0),
            media=BoundedWorkerPool("media", 1, 0),
            general=BoundedWorkerPool("general", 1, 0),
        )
        release = asyncio.Event()
        blocked = pools.ai.submit(release.wait)

        with pytest.raises(PoolSaturatedError):
            pools.ai.submit(release.wait)
        assert await pools.general.submit(lambda: asyncio.sleep(0, result="done")) == "done"

        release.set()
        await blocked
        await pools.shutdown()
