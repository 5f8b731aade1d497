"""
Pytest configuration for the orchestrator test suite.

Reference Documents:
- GUIDELINES pp. 155-157: "high and low gear" testing philosophy
- GUIDELINES pp. 157: FakeRepository pattern using duck typing
- GUIDELINES pp. 242 (Newman): AI tests require fakes simulating varying response times,
  occasional failures, and context-dependent outputs

This configuration sets up:
- Test markers for categorization
- A controllable clock shared by every time-dependent component
- In-memory and fakeredis-backed key-value stores
- Fake content providers and a fully wired container
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import fakeredis
import fakeredis.aioredis
import pytest

# Add project root to Python path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adcopy_orchestrator.core.config import BreakerProfile, Settings  # noqa: E402
from adcopy_orchestrator.providers.fake import FakeContentProvider  # noqa: E402
from adcopy_orchestrator.providers.registry import ProviderRegistry  # noqa: E402
from adcopy_orchestrator.storage.memory import InMemoryKeyValueStore  # noqa: E402
from adcopy_orchestrator.storage.redis_store import RedisKeyValueStore  # noqa: E402

START_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    - unit: Low gear tests for individual components
    - integration: High gear tests across components
    - slow: Tests that take a long time to run
    """
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for service interactions")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# =============================================================================
# Clock
# =============================================================================


class MutableClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    """Controllable time source starting at START_TIME."""
    return MutableClock()


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def store(clock) -> InMemoryKeyValueStore:
    """In-memory store whose TTLs follow the test clock."""
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def fake_redis():
    """
    Create a fake Redis client for testing.

    Reference: GUIDELINES pp. 157 - FakeRepository pattern
    """
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def redis_store(fake_redis) -> RedisKeyValueStore:
    """RedisKeyValueStore over fakeredis."""
    return RedisKeyValueStore(fake_redis)


# =============================================================================
# Settings and Providers
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings for tests: three providers with small, fast profiles.
    """
    return Settings(
        environment="development",
        provider_priority=["alpha", "beta", "gamma"],
        circuit_breaker_profiles={
            "alpha": BreakerProfile(failure_threshold=2, cooldown_seconds=60, timeout_seconds=1.0),
            "beta": BreakerProfile(failure_threshold=3, cooldown_seconds=120, timeout_seconds=1.0),
            "gamma": BreakerProfile(failure_threshold=3, cooldown_seconds=120, timeout_seconds=1.0),
        },
        idempotency_in_flight_wait_seconds=1.0,
        idempotency_poll_interval_seconds=0.01,
    )


@pytest.fixture
def providers() -> dict[str, FakeContentProvider]:
    """Three healthy fake providers keyed by name."""
    return {name: FakeContentProvider(name) for name in ("alpha", "beta", "gamma")}


@pytest.fixture
def registry(providers) -> ProviderRegistry:
    return ProviderRegistry(list(providers.values()))


@pytest.fixture
def container(test_settings, store, registry, clock):
    """Fully wired container over the in-memory store and fake providers."""
    from adcopy_orchestrator.container import build_container

    return build_container(test_settings, store=store, registry=registry, clock=clock)
