"""
Tests for SweepScheduler - the single periodic timer for background sweeps.
"""

import asyncio

import pytest

from adcopy_orchestrator.resilience.scheduler import SweepScheduler


class FakeTime:
    """Monotonic time source moved by hand."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class TestRegistration:
    """Sweep registration."""

    def test_duplicate_name_rejected(self):
        """Sweep names are unique."""
        scheduler = SweepScheduler()

        async def sweep():
            return None

        scheduler.register("dlq_retry", 300, sweep)

        with pytest.raises(ValueError):
            scheduler.register("dlq_retry", 60, sweep)
        assert scheduler.sweep_names() == ["dlq_retry"]


class TestRunPending:
    """Interval bookkeeping."""

    @pytest.mark.asyncio
    async def test_sweeps_run_on_their_own_intervals(self):
        """Each sweep runs when its interval has elapsed."""
        time = FakeTime()
        scheduler = SweepScheduler(time_source=time)
        calls = []

        async def fast():
            calls.append("fast")

        async def slow():
            calls.append("slow")

        scheduler.register("fast", 10, fast)
        scheduler.register("slow", 60, slow)

        assert await scheduler.run_pending() == []
        time.value += 10
        assert await scheduler.run_pending() == ["fast"]
        time.value += 50
        assert await scheduler.run_pending() == ["fast", "slow"]
        assert calls == ["fast", "fast", "slow"]

    @pytest.mark.asyncio
    async def test_run_immediately(self):
        """run_immediately sweeps on the first tick."""
        time = FakeTime()
        scheduler = SweepScheduler(time_source=time)

        async def sweep():
            return None

        scheduler.register("job_reconcile", 300, sweep, run_immediately=True)

        assert await scheduler.run_pending() == ["job_reconcile"]
        assert await scheduler.run_pending() == []

    @pytest.mark.asyncio
    async def test_failing_sweep_does_not_stop_others(self):
        """A sweep that raises is logged and the rest still run."""
        time = FakeTime()
        scheduler = SweepScheduler(time_source=time)
        calls = []

        async def broken():
            raise RuntimeError("store unreachable")

        async def healthy():
            calls.append("healthy")

        scheduler.register("broken", 5, broken, run_immediately=True)
        scheduler.register("healthy", 5, healthy, run_immediately=True)

        assert await scheduler.run_pending() == ["broken", "healthy"]
        assert calls == ["healthy"]

        time.value += 5
        assert await scheduler.run_pending() == ["broken", "healthy"]


class TestLifecycle:
    """start / stop of the ticker task."""

    @pytest.mark.asyncio
    async def test_start_runs_sweeps_and_stop_cancels(self):
        """The ticker runs due sweeps until stopped."""
        scheduler = SweepScheduler(tick_seconds=0.01)
        ran = asyncio.Event()

        async def sweep():
            ran.set()

        scheduler.register("dlq_cleanup", 3600, sweep, run_immediately=True)
        scheduler.start()
        scheduler.start()

        await asyncio.wait_for(ran.wait(), timeout=1.0)
        assert scheduler.running is True

        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Stopping an idle scheduler is a no-op."""
        await SweepScheduler().stop()
