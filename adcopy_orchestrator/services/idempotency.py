"""
Idempotency Cache Service

Deduplicates logically identical requests so their side effects happen at
most once. A request is identified by a fingerprint of
(operation, canonical request body, caller identity).

Reference Documents:
- Microservices Patterns (Richardson): Idempotent consumer
- GUIDELINES pp. 2309: Redis caching patterns

Storage:
    idempotency:<sha256> -> IdempotentResult JSON
        IN_PROGRESS  in-flight marker, short TTL, written with insert-if-absent
        SUCCESS      stored payload, 24h TTL
        ERROR        stored error message and code, 24h TTL

Concurrency:
    The first caller wins the insert-if-absent and runs the work. A
    concurrent caller with the same key sees the IN_PROGRESS marker and
    polls until the final record appears; if it does not appear within
    the wait budget, IdempotencyInFlightError tells the caller to retry
    later. A marker left behind by a crashed caller lapses with its TTL.

    If the final record cannot be written after the work ran, the outcome
    is still returned (or raised) to the caller and the marker stays until
    its TTL lapses; a retry after that runs the work again.
"""

import asyncio
import hashlib
import json
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic_core import to_jsonable_python

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.exceptions import (
    AdCopyOrchestratorException,
    ErrorCode,
    IdempotencyInFlightError,
    IdempotentReplayError,
    StoreError,
)
from adcopy_orchestrator.models.domain import IdempotencyStatus, IdempotentResult
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import record_idempotency_lookup
from adcopy_orchestrator.storage.base import KeyValueStore

logger = get_logger(__name__)

T = TypeVar("T")

IDEMPOTENCY_PREFIX = "idempotency:"


def canonicalize(body: Any) -> str:
    """
    Deterministic JSON text for a request body.

    Pydantic models are dumped in JSON mode; mapping keys are sorted so
    field order never changes the fingerprint.
    """
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json")
    return json.dumps(
        to_jsonable_python(body),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def generate_idempotency_key(operation: str, body: Any, caller: str) -> str:
    """
    Fixed-width key for (operation, body, caller).

    Pure and deterministic: identical logical inputs always give the
    identical key.
    """
    material = f"{operation}:{caller}:{canonicalize(body)}"
    return IDEMPOTENCY_PREFIX + hashlib.sha256(material.encode("utf-8")).hexdigest()


class IdempotencyCache:
    """
    Run-once wrapper around async work.

    Example:
        >>> cache = IdempotencyCache(store)
        >>> copy = await cache.process_idempotently(
        ...     "generate_ad_content", request, user_id,
        ...     lambda: orchestrator.generate_with_fallback(...),
        ...     response_model=list[AdContent],
        ... )
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 24 * 3600,
        in_flight_ttl_seconds: int = 300,
        in_flight_wait_seconds: float = 5.0,
        poll_interval_seconds: float = 0.1,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._in_flight_ttl = in_flight_ttl_seconds
        self._in_flight_wait = in_flight_wait_seconds
        self._poll_interval = poll_interval_seconds
        self._clock = clock

    generate_idempotency_key = staticmethod(generate_idempotency_key)

    # =========================================================================
    # Core operation
    # =========================================================================

    async def process_idempotently(
        self,
        operation: str,
        body: Any,
        caller: str,
        work: Callable[[], Awaitable[T]],
        response_model: Any = None,
    ) -> T:
        """
        Run ``work`` at most once per (operation, body, caller).

        Args:
            operation: Operation name, part of the fingerprint.
            body: Request body, part of the fingerprint.
            caller: Caller identity, part of the fingerprint.
            work: Zero-argument coroutine function doing the real work.
            response_model: Type used to rebuild a replayed payload
                (e.g. ``list[AdContent]``). Without it the JSON payload is
                returned as stored.

        Returns:
            The work's result, or the stored result of an earlier call.

        Raises:
            IdempotentReplayError: An earlier call failed; its error is replayed.
            IdempotencyInFlightError: Another caller is still running the work.
            Exception: Whatever ``work`` raised, on the call that ran it.
        """
        key = generate_idempotency_key(operation, body, caller)
        deadline = time.monotonic() + self._in_flight_wait

        while True:
            if await self._claim(key):
                record_idempotency_lookup(operation, "miss")
                return await self._run(key, operation, work)

            existing = await self._wait_for_final(key, deadline)
            if existing is not None:
                record_idempotency_lookup(operation, "hit")
                logger.info("idempotent_replay", operation=operation, key=key, status=existing.status.value)
                return self._replay(existing, response_model)

            if time.monotonic() >= deadline:
                record_idempotency_lookup(operation, "in_flight")
                raise IdempotencyInFlightError(key)
            # Marker vanished before a result was written; try to claim again.

    async def _claim(self, key: str) -> bool:
        marker = IdempotentResult(status=IdempotencyStatus.IN_PROGRESS, timestamp=self._clock())
        return await self._store.set_if_absent(key, marker.model_dump_json(), ttl_seconds=self._in_flight_ttl)

    async def _run(self, key: str, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await work()
        except asyncio.CancelledError:
            await self._store.delete(key)
            raise
        except AdCopyOrchestratorException as e:
            await self._record_outcome(key, self._error_record(e.message, str(getattr(e.error_code, "value", e.error_code))))
            raise
        except Exception as e:
            await self._record_outcome(key, self._error_record(str(e) or type(e).__name__, type(e).__name__))
            raise

        await self._record_outcome(
            key,
            IdempotentResult(
                status=IdempotencyStatus.SUCCESS,
                result=to_jsonable_python(result),
                timestamp=self._clock(),
            ),
        )
        logger.debug("idempotent_result_stored", operation=operation, key=key)
        return result

    async def _record_outcome(self, key: str, record: IdempotentResult) -> None:
        """Persist the outcome of work that already ran; a store failure must not hide it."""
        try:
            await self._write(key, record)
        except StoreError as e:
            logger.error("idempotent_result_store_failed", key=key, status=record.status.value, error=str(e))

    async def _wait_for_final(self, key: str, deadline: float) -> Optional[IdempotentResult]:
        """Poll until the record is final, disappears, or the deadline passes."""
        while True:
            existing = await self.get_idempotent_result(key)
            if existing is None:
                return None
            if existing.is_final:
                return existing
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(self._poll_interval)

    @staticmethod
    def _replay(existing: IdempotentResult, response_model: Any) -> Any:
        if existing.status == IdempotencyStatus.ERROR:
            raise IdempotentReplayError(
                existing.error_message or "Request previously failed",
                existing.error_code or ErrorCode.IDEMPOTENT_REPLAY.value,
            )
        if response_model is None:
            return existing.result
        return TypeAdapter(response_model).validate_python(existing.result)

    def _error_record(self, message: str, code: str) -> IdempotentResult:
        return IdempotentResult(
            status=IdempotencyStatus.ERROR,
            error_message=message,
            error_code=code,
            timestamp=self._clock(),
        )

    async def _write(self, key: str, record: IdempotentResult, ttl_seconds: Optional[int] = None) -> None:
        await self._store.set(key, record.model_dump_json(), ttl_seconds=ttl_seconds or self._ttl)

    # =========================================================================
    # Direct access
    # =========================================================================

    async def has_been_processed(self, key: str) -> bool:
        """
        Existence check without deserializing the payload.

        An in-flight marker counts as processed.
        """
        return await self._store.exists(key)

    async def get_idempotent_result(self, key: str) -> Optional[IdempotentResult]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        return IdempotentResult.model_validate_json(raw)

    async def store_idempotent_result(self, key: str, result: Any, ttl_seconds: Optional[int] = None) -> bool:
        """
        Store a successful result under ``key``.

        Args:
            key: Idempotency key.
            result: JSON-compatible payload (pydantic models are dumped).
            ttl_seconds: Retention; the cache default when None.

        Returns:
            False (and stores nothing) if a final result already exists.
        """
        return await self._store_final(
            key,
            IdempotentResult(
                status=IdempotencyStatus.SUCCESS,
                result=to_jsonable_python(result),
                timestamp=self._clock(),
            ),
            ttl_seconds,
        )

    async def store_idempotent_error(self, key: str, message: str, code: str) -> bool:
        """
        Store a failure under ``key``.

        Returns:
            False (and stores nothing) if a final result already exists.
        """
        return await self._store_final(key, self._error_record(message, code))

    async def _store_final(self, key: str, record: IdempotentResult, ttl_seconds: Optional[int] = None) -> bool:
        existing = await self.get_idempotent_result(key)
        if existing is not None and existing.is_final:
            logger.warning("idempotent_result_exists", key=key, status=existing.status.value)
            return False
        await self._write(key, record, ttl_seconds)
        return True
