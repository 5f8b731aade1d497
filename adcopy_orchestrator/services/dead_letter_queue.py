"""
Dead Letter Queue Service

Durable record of generation requests that no provider could satisfy,
with bounded, scheduled retry and aggregate failure statistics.

Reference Documents:
- Enterprise Integration Patterns (Hohpe): Dead Letter Channel
- Building Microservices (Newman): bounded retries, avoid retry storms
- GUIDELINES pp. 2309: Redis caching patterns

Storage Layout:
    dlq:<request_id>                 -> FailedRequestRecord JSON (7 days)
    dlq:retry:<request_id>           -> RetryScheduleEntry JSON
    dlq:claim:<request_id>:<attempt> -> marker owned by the sweep running that attempt
    dlq:stats:<YYYY-MM-DD-HH>        -> hash of counters (30 days)

Retry Model:
    A retryable record gets exactly one schedule entry. Each sweep claims due
    entries with insert-if-absent, so concurrent sweeps on several instances
    never run the same attempt twice. Delay grows as
    base * 2 ** retry_count, capped at the configured maximum; after
    max_retry_attempts the schedule is dropped and the record is kept
    for audit until its TTL lapses.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.models.domain import DLQStats, FailedRequestRecord, RetryScheduleEntry
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import record_dlq_record, record_dlq_retry
from adcopy_orchestrator.storage.base import KeyValueStore

logger = get_logger(__name__)

RetryHandler = Callable[[FailedRequestRecord], Awaitable[bool]]


# =============================================================================
# Constants
# =============================================================================

DLQ_PREFIX = "dlq:"
DLQ_RETRY_PREFIX = "dlq:retry:"
DLQ_STATS_PREFIX = "dlq:stats:"
DLQ_CLAIM_PREFIX = "dlq:claim:"

STAT_TOTAL = "total_failures"
STAT_RETRYABLE = "retryable_failures"
STAT_PERMANENT = "permanent_failures"
STAT_PROVIDER_PREFIX = "provider_"

_AUXILIARY_PREFIXES = (DLQ_RETRY_PREFIX, DLQ_STATS_PREFIX, DLQ_CLAIM_PREFIX)


@dataclass
class RetrySweepSummary:
    """Counts from one pass over the retry schedule."""

    due: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    exhausted: int = 0
    skipped: int = 0
    discarded: int = 0


class DeadLetterQueue:
    """
    Dead letter queue over the shared key-value store.

    The retry handler is injected after construction because it is the
    fallback orchestrator, which itself submits to this queue.

    Example:
        >>> dlq = DeadLetterQueue(store)
        >>> dlq.set_retry_handler(orchestrator.retry_failed_request)
        >>> await dlq.add_failed_request(record)
        >>> summary = await dlq.process_retry_queue()
    """

    def __init__(
        self,
        store: KeyValueStore,
        record_ttl_seconds: int = 7 * 24 * 3600,
        stats_ttl_seconds: int = 30 * 24 * 3600,
        max_retry_attempts: int = 3,
        retry_base_delay_seconds: float = 3600.0,
        retry_max_delay_seconds: float = 6 * 3600.0,
        claim_ttl_seconds: int = 300,
        retry_handler: Optional[RetryHandler] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._record_ttl = record_ttl_seconds
        self._stats_ttl = stats_ttl_seconds
        self._max_retry_attempts = max_retry_attempts
        self._base_delay = retry_base_delay_seconds
        self._max_delay = retry_max_delay_seconds
        self._claim_ttl = claim_ttl_seconds
        self._retry_handler = retry_handler
        self._clock = clock

    @property
    def max_retry_attempts(self) -> int:
        return self._max_retry_attempts

    def set_retry_handler(self, handler: RetryHandler) -> None:
        """Install the coroutine that replays a failed request."""
        self._retry_handler = handler

    # =========================================================================
    # Keys
    # =========================================================================

    @staticmethod
    def _record_key(request_id: str) -> str:
        return f"{DLQ_PREFIX}{request_id}"

    @staticmethod
    def _retry_key(request_id: str) -> str:
        return f"{DLQ_RETRY_PREFIX}{request_id}"

    @staticmethod
    def _stats_key(moment: datetime) -> str:
        return f"{DLQ_STATS_PREFIX}{moment.strftime('%Y-%m-%d-%H')}"

    def retry_delay(self, retry_count: int) -> timedelta:
        """Backoff before attempt ``retry_count + 1``."""
        seconds = min(self._base_delay * (2 ** retry_count), self._max_delay)
        return timedelta(seconds=seconds)

    # =========================================================================
    # Submission
    # =========================================================================

    async def add_failed_request(self, record: FailedRequestRecord) -> None:
        """
        Persist a failed request, count it, and schedule a retry.

        Args:
            record: The failure. ``retryable`` decides whether a retry
                schedule entry is created.

        Raises:
            StoreError: If the store is unreachable.
        """
        await self._store.set(
            self._record_key(record.request_id),
            record.model_dump_json(),
            ttl_seconds=self._record_ttl,
        )
        await self._bump_stats(record)

        if record.retryable and record.retry_count < self._max_retry_attempts:
            await self._schedule(record)

        record_dlq_record(record.provider, record.retryable)
        logger.warning(
            "dlq_record_added",
            request_id=record.request_id,
            provider=record.provider,
            error_code=record.error_code,
            retryable=record.retryable,
        )

    async def _bump_stats(self, record: FailedRequestRecord) -> None:
        key = self._stats_key(self._clock())
        await self._store.hincrby(key, STAT_TOTAL)
        await self._store.hincrby(key, STAT_RETRYABLE if record.retryable else STAT_PERMANENT)
        await self._store.hincrby(key, f"{STAT_PROVIDER_PREFIX}{record.provider}")
        await self._store.expire(key, self._stats_ttl)

    async def _schedule(self, record: FailedRequestRecord) -> RetryScheduleEntry:
        entry = RetryScheduleEntry(
            request_id=record.request_id,
            scheduled_retry_time=self._clock() + self.retry_delay(record.retry_count),
            attempt=record.retry_count + 1,
        )
        await self._store.set(
            self._retry_key(record.request_id),
            entry.model_dump_json(),
            ttl_seconds=self._record_ttl,
        )
        logger.info(
            "dlq_retry_scheduled",
            request_id=record.request_id,
            attempt=entry.attempt,
            scheduled_retry_time=entry.scheduled_retry_time.isoformat(),
        )
        return entry

    # =========================================================================
    # Retry Sweep
    # =========================================================================

    async def process_retry_queue(self) -> RetrySweepSummary:
        """
        Replay every due retry once.

        Safe to run concurrently on several instances: an attempt is only
        executed by the sweep that claims it, and re-processing an entry
        that was already handled is a no-op.

        Returns:
            Counts of what this pass did.
        """
        summary = RetrySweepSummary()
        if self._retry_handler is None:
            logger.warning("dlq_retry_handler_missing")
            return summary

        now = self._clock()
        for key in await self._store.keys(DLQ_RETRY_PREFIX):
            raw = await self._store.get(key)
            if raw is None:
                continue
            try:
                entry = RetryScheduleEntry.model_validate_json(raw)
            except ValidationError as e:
                # The failed request record stays for audit; only the schedule is dropped.
                logger.error("dlq_retry_entry_unreadable", key=key, error=str(e))
                await self._store.delete(key)
                summary.discarded += 1
                continue
            if entry.scheduled_retry_time > now:
                continue

            summary.due += 1
            outcome = await self._process_entry(entry)
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        if summary.due or summary.discarded:
            logger.info("dlq_retry_sweep_finished", **vars(summary))
        return summary

    async def _process_entry(self, entry: RetryScheduleEntry) -> str:
        claim_key = f"{DLQ_CLAIM_PREFIX}{entry.request_id}:{entry.attempt}"
        if not await self._store.set_if_absent(claim_key, "1", ttl_seconds=self._claim_ttl):
            return "skipped"

        try:
            record = await self.get_failed_request(entry.request_id)
        except ValidationError as e:
            logger.error("dlq_record_unreadable", request_id=entry.request_id, error=str(e))
            await self._store.delete(self._retry_key(entry.request_id))
            return "discarded"
        if record is None:
            # Record lapsed; nothing left to replay.
            await self._store.delete(self._retry_key(entry.request_id))
            return "skipped"

        succeeded = await self._replay(record)
        if succeeded:
            await self._store.delete(
                self._retry_key(record.request_id),
                self._record_key(record.request_id),
            )
            record_dlq_retry("succeeded")
            logger.info("dlq_retry_succeeded", request_id=record.request_id, attempt=entry.attempt)
            return "succeeded"

        record.retry_count += 1
        record.last_retry_time = self._clock()
        await self._store.set(
            self._record_key(record.request_id),
            record.model_dump_json(),
            ttl_seconds=self._remaining_record_ttl(record),
        )

        if record.retry_count >= self._max_retry_attempts:
            await self._store.delete(self._retry_key(record.request_id))
            record_dlq_retry("exhausted")
            logger.error(
                "dlq_retry_exhausted",
                request_id=record.request_id,
                retry_count=record.retry_count,
            )
            return "exhausted"

        await self._schedule(record)
        record_dlq_retry("rescheduled")
        return "rescheduled"

    async def _replay(self, record: FailedRequestRecord) -> bool:
        if self._retry_handler is None:
            return False
        try:
            return bool(await self._retry_handler(record))
        except Exception as e:
            logger.error(
                "dlq_retry_handler_failed",
                request_id=record.request_id,
                error=str(e),
                exc_info=True,
            )
            return False

    def _remaining_record_ttl(self, record: FailedRequestRecord) -> int:
        expires_at = record.failure_time + timedelta(seconds=self._record_ttl)
        return max(int((expires_at - self._clock()).total_seconds()), 1)

    # =========================================================================
    # Introspection
    # =========================================================================

    async def get_failed_request(self, request_id: str) -> Optional[FailedRequestRecord]:
        raw = await self._store.get(self._record_key(request_id))
        if raw is None:
            return None
        return FailedRequestRecord.model_validate_json(raw)

    async def get_retry_entry(self, request_id: str) -> Optional[RetryScheduleEntry]:
        raw = await self._store.get(self._retry_key(request_id))
        if raw is None:
            return None
        return RetryScheduleEntry.model_validate_json(raw)

    async def get_dlq_stats(self, window_hours: int = 24) -> DLQStats:
        """
        Sum the hourly counters of the last ``window_hours`` hours.

        The current (partial) hour is included.
        """
        stats = DLQStats(window_hours=window_hours)
        now = self._clock()

        for offset in range(max(window_hours, 1)):
            counters = await self._store.hgetall(self._stats_key(now - timedelta(hours=offset)))
            for field, raw_value in counters.items():
                value = int(raw_value)
                if field == STAT_TOTAL:
                    stats.total_failures += value
                elif field == STAT_RETRYABLE:
                    stats.retryable_failures += value
                elif field == STAT_PERMANENT:
                    stats.permanent_failures += value
                elif field.startswith(STAT_PROVIDER_PREFIX):
                    provider = field[len(STAT_PROVIDER_PREFIX):]
                    stats.provider_failures[provider] = stats.provider_failures.get(provider, 0) + value

        return stats

    async def get_dlq_size(self) -> int:
        """Number of failure records currently held (schedules and counters excluded)."""
        keys = await self._store.keys(DLQ_PREFIX)
        return sum(1 for key in keys if not key.startswith(_AUXILIARY_PREFIXES))

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def cleanup_old_entries(self) -> int:
        """
        Purge entries the TTL mechanism missed.

        Removes keys written without an expiry and schedule entries whose
        record no longer exists.

        Returns:
            Number of keys deleted.
        """
        removed = 0
        for key in await self._store.keys(DLQ_PREFIX):
            if await self._store.ttl(key) == -1:
                removed += await self._store.delete(key)
                continue
            if key.startswith(DLQ_RETRY_PREFIX):
                request_id = key[len(DLQ_RETRY_PREFIX):]
                if not await self._store.exists(self._record_key(request_id)):
                    removed += await self._store.delete(key)

        if removed:
            logger.info("dlq_cleanup_finished", removed=removed)
        return removed
