"""
Shared Circuit Breaker Store

Per-provider circuit breaker state kept in the shared key-value store, so
every instance of a horizontally scaled deployment sees the same failure
counts and trips the same breakers.

Reference Documents:
- Building Reactive Microservices in Java (Escoffier) Ch.6, pp.54-62
- Release It! (Nygard): Stability patterns
- Building Microservices (Newman): Cascading failure prevention

Breaker Model:
    closed: open_until is unset (or elapsed); calls pass through
    open:   open_until is in the future; the provider is skipped
    trial:  open_until has elapsed but failure_count is still high; the
            next call is a probe. A failure re-opens at once, a success
            resets the state.

Storage:
    circuit_breaker:<provider> -> CircuitBreakerState JSON

Anti-Pattern Compliance:
- AP-1: Constants for key prefixes
- AP-6: Read-modify-write guarded by asyncio.Lock() within one process;
        across processes updates are last-writer-wins
"""

import asyncio
from collections import defaultdict
from datetime import timedelta
from typing import Optional

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.config import DEFAULT_BREAKER_PROFILE, BreakerProfile
from adcopy_orchestrator.models.domain import CircuitBreakerState
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import record_circuit_transition
from adcopy_orchestrator.storage.base import KeyValueStore

logger = get_logger(__name__)


# =============================================================================
# Constants (AP-1 Compliance)
# =============================================================================

CIRCUIT_BREAKER_PREFIX = "circuit_breaker:"
DEFAULT_STATE_TTL_SECONDS = 3600

STATE_OPEN = "open"
STATE_CLOSED = "closed"


class CircuitBreakerStore:
    """
    Repository for per-provider breaker state.

    Thresholds and cooldowns come from a profile per provider; providers
    without a profile use the default profile.

    Example:
        >>> breakers = CircuitBreakerStore(store, profiles=settings.circuit_breaker_profiles)
        >>> if not await breakers.is_open("openai"):
        ...     ...
        >>> await breakers.record_failure("openai")
    """

    def __init__(
        self,
        store: KeyValueStore,
        profiles: Optional[dict[str, BreakerProfile]] = None,
        default_profile: BreakerProfile = DEFAULT_BREAKER_PROFILE,
        state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize the breaker store.

        Args:
            store: Shared key-value store.
            profiles: Per-provider reliability profiles.
            default_profile: Profile for providers not in ``profiles``.
            state_ttl_seconds: Minimum retention of a persisted state. The
                effective TTL is never shorter than the provider's cooldown.
            clock: Time source.
        """
        self._store = store
        self._profiles = dict(profiles or {})
        self._default_profile = default_profile
        self._state_ttl_seconds = state_ttl_seconds
        self._clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # =========================================================================
    # Profiles
    # =========================================================================

    def profile(self, provider: str) -> BreakerProfile:
        return self._profiles.get(provider, self._default_profile)

    def _key(self, provider: str) -> str:
        return f"{CIRCUIT_BREAKER_PREFIX}{provider}"

    def _ttl(self, provider: str) -> int:
        cooldown = int(self.profile(provider).cooldown_seconds) + 60
        return max(self._state_ttl_seconds, cooldown)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_state(self, provider: str) -> CircuitBreakerState:
        """
        Load the breaker state for ``provider``.

        A missing record (never written, or lapsed TTL) reads as a fresh
        closed breaker.
        """
        raw = await self._store.get(self._key(provider))
        if raw is None:
            return CircuitBreakerState(provider=provider)
        return CircuitBreakerState.model_validate_json(raw)

    async def is_open(self, provider: str) -> bool:
        """True while the provider's cooldown is still running."""
        state = await self.get_state(provider)
        return state.is_open(self._clock())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def record_success(self, provider: str) -> CircuitBreakerState:
        """
        Reset the breaker after a successful call.

        The zeroed state is written back rather than deleted, so the record
        always reflects the latest outcome.
        """
        async with self._locks[provider]:
            previous = await self.get_state(provider)
            state = CircuitBreakerState(provider=provider, failure_count=0, open_until=None)
            await self._save(state)

        if previous.open_until is not None:
            record_circuit_transition(provider, STATE_CLOSED)
            logger.info("circuit_breaker_closed", provider=provider)
        return state

    async def record_failure(self, provider: str) -> CircuitBreakerState:
        """
        Count a failed call and open the breaker at the threshold.

        Once ``failure_count`` has reached the provider's threshold every
        further failure (including a failed trial call after the cooldown)
        pushes ``open_until`` to ``now + cooldown``.

        Returns:
            The state as persisted.
        """
        profile = self.profile(provider)

        async with self._locks[provider]:
            now = self._clock()
            state = await self.get_state(provider)
            was_open = state.is_open(now)

            state.failure_count += 1
            if state.failure_count >= profile.failure_threshold:
                state.open_until = now + timedelta(seconds=profile.cooldown_seconds)
            await self._save(state)

        if state.open_until is not None and not was_open and state.is_open(now):
            record_circuit_transition(provider, STATE_OPEN)
            logger.warning(
                "circuit_breaker_opened",
                provider=provider,
                failure_count=state.failure_count,
                open_until=state.open_until.isoformat(),
            )
        return state

    async def reset(self, provider: str) -> None:
        """Force a provider's breaker closed (operator action)."""
        await self.record_success(provider)

    async def _save(self, state: CircuitBreakerState) -> None:
        await self._store.set(
            self._key(state.provider),
            state.model_dump_json(),
            ttl_seconds=self._ttl(state.provider),
        )
