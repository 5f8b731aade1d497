"""
Tests for application wiring.
"""

import pytest

from adcopy_orchestrator.container import (
    SWEEP_DLQ_CLEANUP,
    SWEEP_DLQ_RETRY,
    SWEEP_JOB_RECONCILE,
    build_container,
)
from adcopy_orchestrator.core.exceptions import PoolSaturatedError, ProviderError
from adcopy_orchestrator.models.domain import FailedRequestRecord


class TestBuildContainer:
    """build_container assembles and connects every component."""

    def test_sweeps_registered(self, container):
        """The three background sweeps share one scheduler."""
        assert sorted(container.scheduler.sweep_names()) == sorted(
            [SWEEP_DLQ_RETRY, SWEEP_DLQ_CLEANUP, SWEEP_JOB_RECONCILE]
        )

    def test_settings_flow_into_components(self, container, test_settings):
        """Priority, profiles and limits come from settings."""
        assert container.orchestrator.provider_priority == ["alpha", "beta", "gamma"]
        assert container.breakers.profile("alpha").failure_threshold == 2
        assert container.dlq.max_retry_attempts == test_settings.dlq_max_retry_attempts
        assert container.jobs.max_active_jobs_per_owner == test_settings.max_active_jobs_per_owner

    def test_default_registry_from_settings(self, test_settings, store):
        """Without API keys, development gets a fake provider under the first priority name."""
        container = build_container(test_settings, store=store)

        assert container.registry.names() == ["alpha"]
        assert container.store is store

    @pytest.mark.asyncio
    async def test_dlq_retry_handler_replays_through_orchestrator(self, container, clock, providers):
        """A due dead letter is replayed through the providers and cleared."""
        record = FailedRequestRecord(
            request_id="r-1",
            provider="gamma",
            prompt="Eco sneakers",
            request_parameters={"variation_count": 1, "language": "en", "call_to_action": "SHOP_NOW"},
            error_code="ALL_PROVIDERS_FAILED",
            retryable=True,
            failure_time=clock(),
        )
        await container.dlq.add_failed_request(record)
        clock.advance(hours=1)

        summary = await container.dlq.process_retry_queue()

        assert summary.succeeded == 1
        assert providers["alpha"].call_count == 1

    @pytest.mark.asyncio
    async def test_aclose_stops_everything(self, container):
        """aclose stops the scheduler and the pools."""
        container.scheduler.start()

        await container.aclose()

        assert container.scheduler.running is False
        with pytest.raises(PoolSaturatedError):
            container.pools.ai.submit(lambda: None)

    @pytest.mark.asyncio
    async def test_failed_replay_files_no_new_dead_letter(self, container, clock, providers):
        """Replays that fail update the record instead of adding another."""
        for name, provider in providers.items():
            provider.error = ProviderError.network_error(name)
        await container.orchestrator.generate_with_fallback("Eco sneakers", 1)
        assert await container.dlq.get_dlq_size() == 1
        clock.advance(hours=1)

        summary = await container.dlq.process_retry_queue()

        assert summary.rescheduled == 1
        assert await container.dlq.get_dlq_size() == 1
