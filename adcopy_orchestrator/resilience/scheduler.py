"""
Sweep Scheduler

One asyncio ticker task drives every periodic sweep (DLQ retries, DLQ
cleanup, job reconciliation). Each sweep has its own interval; a sweep that
raises is logged and tried again at its next interval.

There is no leader election: every instance runs its own scheduler, and
each registered sweep must be idempotent over shared state.
"""

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from adcopy_orchestrator.observability.logging import get_logger

logger = get_logger(__name__)

Sweep = Callable[[], Awaitable[Any]]


@dataclass
class _ScheduledSweep:
    name: str
    interval_seconds: float
    sweep: Sweep
    next_run: float
    runs: int = 0
    failures: int = 0


class SweepScheduler:
    """
    Single periodic timer for background sweeps.

    Example:
        >>> scheduler = SweepScheduler(tick_seconds=5)
        >>> scheduler.register("dlq_retry", 300, dlq.process_retry_queue)
        >>> scheduler.start()
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        tick_seconds: float = 5.0,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tick = tick_seconds
        self._time = time_source
        self._sweeps: dict[str, _ScheduledSweep] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def register(
        self,
        name: str,
        interval_seconds: float,
        sweep: Sweep,
        run_immediately: bool = False,
    ) -> None:
        """
        Add a sweep.

        Args:
            name: Unique sweep name (used in logs).
            interval_seconds: Time between runs.
            sweep: Coroutine function to call.
            run_immediately: Run on the first tick instead of after one interval.
        """
        if name in self._sweeps:
            raise ValueError(f"Sweep already registered: {name}")
        first_run = self._time() if run_immediately else self._time() + interval_seconds
        self._sweeps[name] = _ScheduledSweep(name, interval_seconds, sweep, first_run)

    def sweep_names(self) -> list[str]:
        return list(self._sweeps)

    async def run_pending(self) -> list[str]:
        """
        Run every sweep that is due, one after another.

        Returns:
            Names of the sweeps that ran.
        """
        ran: list[str] = []
        for scheduled in self._sweeps.values():
            now = self._time()
            if scheduled.next_run > now:
                continue

            scheduled.next_run = now + scheduled.interval_seconds
            scheduled.runs += 1
            ran.append(scheduled.name)
            try:
                await scheduled.sweep()
            except Exception as e:
                scheduled.failures += 1
                logger.error("sweep_failed", sweep=scheduled.name, error=str(e), exc_info=True)
        return ran

    async def _loop(self) -> None:
        while True:
            await self.run_pending()
            await asyncio.sleep(self._tick)

    def start(self) -> None:
        """Start the ticker task (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="sweep-scheduler")
        logger.info("sweep_scheduler_started", sweeps=self.sweep_names(), tick_seconds=self._tick)

    async def stop(self) -> None:
        """Cancel the ticker task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sweep_scheduler_stopped")
