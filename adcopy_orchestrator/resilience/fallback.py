"""
Fallback Orchestrator

Generates ad copy by trying AI providers in a fixed priority order, each
guarded by a shared circuit breaker, and always returns content.

Reference Documents:
- Building Microservices (Newman): Cascading failure prevention
- Microservices Patterns (Richardson): Fallback patterns
- Release It! (Nygard): Timeouts, circuit breakers, steady state

Fallback Chain:
    providers (priority order) → fallback cache → placeholder copy + DLQ record

Each provider has its own breaker and call timeout. Provider failures are
absorbed here: the first success wins, the breaker of every failed
provider is charged, and only total exhaustion reaches the dead letter
queue. The priority order is a trust ranking, not load balancing.

Storage:
    fallback_cache:<sha256 fingerprint> -> last good list[AdContent] JSON (7 days)

Anti-Pattern Compliance:
- AP-1: Constants for key prefixes and placeholder copy
- AP-2: Methods <15 CC
- AP-5: Errors use the ProviderError / GenerationValidationError types from core
"""

import asyncio
import hashlib
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.exceptions import ErrorCode, GenerationValidationError, ProviderError
from adcopy_orchestrator.models.domain import (
    FALLBACK_PROVIDER_NAME,
    AdContent,
    CallToAction,
    FailedRequestRecord,
    ProviderHealthStatus,
)
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import (
    record_fallback_outcome,
    record_provider_attempt,
    record_provider_failure,
)
from adcopy_orchestrator.providers.registry import ProviderRegistry
from adcopy_orchestrator.resilience.circuit_breaker import CircuitBreakerStore
from adcopy_orchestrator.services.dead_letter_queue import DeadLetterQueue
from adcopy_orchestrator.storage.base import KeyValueStore

logger = get_logger(__name__)

T = TypeVar("T")

_CONTENT_LIST = TypeAdapter(list[AdContent])


# =============================================================================
# Constants (AP-1 Compliance)
# =============================================================================

FALLBACK_CACHE_PREFIX = "fallback_cache:"
DEFAULT_FALLBACK_CACHE_TTL_SECONDS = 7 * 24 * 3600
DEFAULT_MAX_VARIATION_COUNT = 10
NO_PROVIDER = "none"

PLACEHOLDER_HEADLINE = "Discover Amazing Products!"
PLACEHOLDER_PRIMARY_TEXT = (
    "Check out our latest offerings and special deals. Limited time offer - don't miss out!"
)
PLACEHOLDER_DESCRIPTION = "Explore our wide range of quality products designed just for you."

OUTCOME_PROVIDER = "provider"
OUTCOME_CACHE = "cache"
OUTCOME_PLACEHOLDER = "placeholder"


@dataclass
class ProviderAttempts:
    """
    What happened while walking the provider list once.

    Attributes:
        content: Variations from the first provider that succeeded.
        provider: Name of that provider.
        errors: Tagged failure per provider that was called and failed.
        skipped: Providers passed over, with the reason.
    """

    content: Optional[list[AdContent]] = None
    provider: Optional[str] = None
    errors: dict[str, ProviderError] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.content is not None

    @property
    def retryable(self) -> bool:
        """Worth retrying later: nothing was callable, or some failure was transient."""
        if not self.errors:
            return True
        return any(error.retryable for error in self.errors.values())

    @property
    def last_failed_provider(self) -> str:
        if self.errors:
            return list(self.errors)[-1]
        return NO_PROVIDER


class FallbackOrchestrator:
    """
    Priority failover across content providers.

    Thread Safety:
        Stateless apart from the injected stores; breaker state is shared
        through the key-value store, not held in memory.

    Example:
        >>> orchestrator = FallbackOrchestrator(registry, breakers, store, dlq)
        >>> copy = await orchestrator.generate_with_fallback("Running shoes", 3, "en", CallToAction.SHOP_NOW)
        >>> len(copy)
        3
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        breakers: CircuitBreakerStore,
        store: KeyValueStore,
        dlq: Optional[DeadLetterQueue] = None,
        provider_priority: Optional[list[str]] = None,
        max_variation_count: int = DEFAULT_MAX_VARIATION_COUNT,
        fallback_cache_ttl_seconds: int = DEFAULT_FALLBACK_CACHE_TTL_SECONDS,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Providers keyed by name.
            breakers: Shared breaker state.
            store: Key-value store holding the fallback cache.
            dlq: Dead letter queue for exhausted requests.
            provider_priority: Provider names in trust order; defaults to
                the registry's registration order.
            max_variation_count: Upper bound accepted for variation_count.
            fallback_cache_ttl_seconds: Retention of last good results.
            clock: Time source.
            id_factory: Generates DLQ request ids.
        """
        self._registry = registry
        self._breakers = breakers
        self._store = store
        self._dlq = dlq
        self._priority = [name.lower() for name in (provider_priority or registry.names())]
        self._max_variation_count = max_variation_count
        self._cache_ttl = fallback_cache_ttl_seconds
        self._clock = clock
        self._id_factory = id_factory

    @property
    def provider_priority(self) -> list[str]:
        return list(self._priority)

    # =========================================================================
    # Public API
    # =========================================================================

    async def generate_with_fallback(
        self,
        prompt: str,
        variation_count: int,
        language: str = "en",
        call_to_action: Union[CallToAction, str] = CallToAction.LEARN_MORE,
    ) -> list[AdContent]:
        """
        Generate ``variation_count`` ad copy variations, whatever it takes.

        Never raises for well-formed input: provider failures fall through
        to the next provider, then to the fallback cache, then to
        placeholder copy (which also files a dead letter).

        Args:
            prompt: Generation prompt.
            variation_count: Number of variations, 1..max_variation_count.
            language: Target language code.
            call_to_action: CTA the copy should lead to.

        Returns:
            Exactly ``variation_count`` variations.

        Raises:
            GenerationValidationError: Input is malformed.
        """
        cta = self.validate_request(prompt, variation_count, language, call_to_action)

        attempts = await self.try_providers(prompt, variation_count, language, cta)
        if attempts.content is not None:
            record_fallback_outcome(OUTCOME_PROVIDER)
            return attempts.content

        cached = await self._read_fallback_cache(prompt, variation_count, language, cta)
        if cached is not None:
            record_fallback_outcome(OUTCOME_CACHE)
            logger.warning(
                "fallback_cache_served",
                failed_providers=list(attempts.errors),
                skipped_providers=list(attempts.skipped),
            )
            return cached

        record_fallback_outcome(OUTCOME_PLACEHOLDER)
        await self._submit_dead_letter(prompt, variation_count, language, cta, attempts)
        return self.placeholder_content(variation_count, cta)

    async def try_providers(
        self,
        prompt: str,
        variation_count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> ProviderAttempts:
        """
        Walk the priority list once, stopping at the first success.

        Breakers are updated after every call and a success refreshes the
        fallback cache. No placeholder or dead letter is produced here.
        """
        attempts = ProviderAttempts()

        for name in self._priority:
            provider = self._registry.get(name)
            if provider is None:
                attempts.skipped[name] = "not registered"
                continue

            if await self._breaker_is_open(name):
                logger.debug("provider_skipped_circuit_open", provider=name)
                attempts.skipped[name] = "circuit open"
                continue

            record_provider_attempt(name)
            timeout = self._breakers.profile(name).timeout_seconds
            try:
                raw = await asyncio.wait_for(
                    provider.generate(prompt, variation_count, language, call_to_action),
                    timeout=timeout,
                )
                content = self._accept(name, raw, variation_count)
            except asyncio.TimeoutError:
                error = ProviderError.timeout(name, timeout)
            except Exception as e:
                error = ProviderError.from_exception(name, e)
            else:
                await self._guarded("record_success", self._breakers.record_success(name))
                await self._guarded(
                    "write_fallback_cache",
                    self._write_fallback_cache(prompt, variation_count, language, call_to_action, content),
                )
                attempts.content = content
                attempts.provider = name
                return attempts

            attempts.errors[name] = error
            record_provider_failure(name, error.kind.value, error.retryable)
            logger.warning(
                "provider_failed",
                provider=name,
                kind=error.kind.value,
                retryable=error.retryable,
                error=error.message,
            )
            await self._guarded("record_failure", self._breakers.record_failure(name))

        return attempts

    async def retry_failed_request(self, record: FailedRequestRecord) -> bool:
        """
        Replay a dead-lettered request through the providers.

        Used as the DLQ retry handler. A success refreshes the fallback
        cache; a failure charges the breakers but files no new dead letter.

        Returns:
            True if a provider produced content.
        """
        params = record.request_parameters
        try:
            variation_count = int(params.get("variation_count", 1))
            language = str(params.get("language", "en"))
            cta = self.validate_request(
                record.prompt,
                variation_count,
                language,
                params.get("call_to_action", CallToAction.LEARN_MORE),
            )
        except (GenerationValidationError, TypeError, ValueError) as e:
            logger.error("dlq_record_unreplayable", request_id=record.request_id, error=str(e))
            return False

        attempts = await self.try_providers(record.prompt, variation_count, language, cta)
        return attempts.succeeded

    async def get_provider_health_status(self) -> dict[str, ProviderHealthStatus]:
        """Health of every provider in the priority list."""
        health: dict[str, ProviderHealthStatus] = {}
        for name in self._priority:
            if not self._registry.is_registered(name):
                health[name] = ProviderHealthStatus.UNAVAILABLE
            elif await self._breaker_is_open(name):
                health[name] = ProviderHealthStatus.CIRCUIT_OPEN
            else:
                health[name] = ProviderHealthStatus.AVAILABLE
        return health

    # =========================================================================
    # Validation and shaping
    # =========================================================================

    def validate_request(
        self,
        prompt: Any,
        variation_count: Any,
        language: Any,
        call_to_action: Any,
    ) -> CallToAction:
        """
        Reject malformed input before any provider is called.

        Returns:
            The call to action as a CallToAction member.

        Raises:
            GenerationValidationError: For the first invalid field.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise GenerationValidationError("prompt must be a non-empty string", "prompt", prompt)
        if isinstance(variation_count, bool) or not isinstance(variation_count, int):
            raise GenerationValidationError("variation_count must be an integer", "variation_count", variation_count)
        if not 1 <= variation_count <= self._max_variation_count:
            raise GenerationValidationError(
                f"variation_count must be between 1 and {self._max_variation_count}",
                "variation_count",
                variation_count,
            )
        if not isinstance(language, str) or not language.strip():
            raise GenerationValidationError("language must be a non-empty string", "language", language)
        try:
            return CallToAction(call_to_action)
        except ValueError as e:
            raise GenerationValidationError(
                f"Unknown call to action: {call_to_action}", "call_to_action", call_to_action
            ) from e

    def _accept(self, name: str, raw: Any, variation_count: int) -> list[AdContent]:
        """Check a provider result and trim it to the requested size."""
        if not isinstance(raw, list) or not all(isinstance(item, AdContent) for item in raw):
            raise ProviderError.invalid_response(name, "Provider returned an unexpected payload")
        if len(raw) < variation_count:
            raise ProviderError.invalid_response(
                name, f"Expected {variation_count} variations, got {len(raw)}"
            )
        return [
            item if item.provider else item.model_copy(update={"provider": name})
            for item in raw[:variation_count]
        ]

    @staticmethod
    def placeholder_content(variation_count: int, call_to_action: CallToAction) -> list[AdContent]:
        """Deterministic stand-in copy, flagged as placeholder."""
        return [
            AdContent(
                headline=PLACEHOLDER_HEADLINE,
                primary_text=PLACEHOLDER_PRIMARY_TEXT,
                description=PLACEHOLDER_DESCRIPTION,
                call_to_action=call_to_action,
                provider=FALLBACK_PROVIDER_NAME,
                is_placeholder=True,
            )
            for _ in range(variation_count)
        ]

    # =========================================================================
    # Fallback cache
    # =========================================================================

    @staticmethod
    def fallback_cache_key(
        prompt: str,
        variation_count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> str:
        """Fingerprint of a request for the last-known-good cache."""
        canonical = json.dumps(
            {
                "prompt": prompt,
                "variation_count": variation_count,
                "language": language,
                "call_to_action": call_to_action.value,
            },
            sort_keys=True,
            ensure_ascii=False,
        )
        return FALLBACK_CACHE_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    async def _write_fallback_cache(
        self,
        prompt: str,
        variation_count: int,
        language: str,
        call_to_action: CallToAction,
        content: list[AdContent],
    ) -> None:
        key = self.fallback_cache_key(prompt, variation_count, language, call_to_action)
        await self._store.set(key, _CONTENT_LIST.dump_json(content).decode("utf-8"), ttl_seconds=self._cache_ttl)

    async def _read_fallback_cache(
        self,
        prompt: str,
        variation_count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> Optional[list[AdContent]]:
        key = self.fallback_cache_key(prompt, variation_count, language, call_to_action)
        raw = await self._guarded("read_fallback_cache", self._store.get(key))
        if raw is None:
            return None
        try:
            return _CONTENT_LIST.validate_json(raw)
        except ValidationError as e:
            logger.warning("fallback_cache_corrupt", key=key, error=str(e))
            return None

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _breaker_is_open(self, name: str) -> bool:
        is_open = await self._guarded("read_breaker", self._breakers.is_open(name))
        return bool(is_open)

    async def _submit_dead_letter(
        self,
        prompt: str,
        variation_count: int,
        language: str,
        call_to_action: CallToAction,
        attempts: ProviderAttempts,
    ) -> None:
        if self._dlq is None:
            logger.error("all_providers_failed_no_dlq", failed_providers=list(attempts.errors))
            return

        if attempts.errors:
            message = "; ".join(f"{name}: {error.message}" for name, error in attempts.errors.items())
        else:
            message = "No provider available: " + ", ".join(
                f"{name} ({reason})" for name, reason in attempts.skipped.items()
            )

        record = FailedRequestRecord(
            request_id=self._id_factory(),
            provider=attempts.last_failed_provider,
            prompt=prompt,
            request_parameters={
                "variation_count": variation_count,
                "language": language,
                "call_to_action": call_to_action.value,
                "provider_errors": {name: error.kind.value for name, error in attempts.errors.items()},
            },
            error_message=message,
            error_code=ErrorCode.ALL_PROVIDERS_FAILED.value,
            retryable=attempts.retryable,
            failure_time=self._clock(),
        )
        await self._guarded("submit_dead_letter", self._dlq.add_failed_request(record))

    async def _guarded(self, action: str, operation: Awaitable[T]) -> Optional[T]:
        """
        Await bookkeeping that must not break generation.

        Store outages while updating breakers, the cache or the DLQ are
        logged and yield None.
        """
        try:
            return await operation
        except Exception as e:
            logger.error("orchestrator_bookkeeping_failed", action=action, error=str(e))
            return None
