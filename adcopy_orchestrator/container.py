"""
Application wiring.

Builds every component from Settings in dependency order:

    store → providers → breakers → DLQ → orchestrator → idempotency
          → jobs → worker pools → generation service → sweep scheduler
"""

from dataclasses import dataclass
from typing import Optional

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.config import Settings
from adcopy_orchestrator.providers.registry import ProviderRegistry, create_provider_registry
from adcopy_orchestrator.resilience.circuit_breaker import CircuitBreakerStore
from adcopy_orchestrator.resilience.fallback import FallbackOrchestrator
from adcopy_orchestrator.resilience.scheduler import SweepScheduler
from adcopy_orchestrator.resilience.worker_pools import WorkerPools
from adcopy_orchestrator.services.dead_letter_queue import DeadLetterQueue
from adcopy_orchestrator.services.generation import AdContentGenerationService
from adcopy_orchestrator.services.idempotency import IdempotencyCache
from adcopy_orchestrator.services.jobs import AsyncJobTracker
from adcopy_orchestrator.storage.base import KeyValueStore
from adcopy_orchestrator.storage.redis_store import RedisKeyValueStore

SWEEP_DLQ_RETRY = "dlq_retry"
SWEEP_DLQ_CLEANUP = "dlq_cleanup"
SWEEP_JOB_RECONCILE = "job_reconcile"


@dataclass
class Container:
    """Every long-lived component of a running service."""

    settings: Settings
    store: KeyValueStore
    registry: ProviderRegistry
    breakers: CircuitBreakerStore
    dlq: DeadLetterQueue
    orchestrator: FallbackOrchestrator
    idempotency: IdempotencyCache
    jobs: AsyncJobTracker
    pools: WorkerPools
    generation: AdContentGenerationService
    scheduler: SweepScheduler

    async def aclose(self) -> None:
        """Stop background work and release connections."""
        await self.scheduler.stop()
        await self.pools.shutdown()
        await self.registry.close()
        await self.store.close()


def build_container(
    settings: Settings,
    store: Optional[KeyValueStore] = None,
    registry: Optional[ProviderRegistry] = None,
    clock: Clock = utc_now,
) -> Container:
    """
    Assemble the service.

    Args:
        settings: Application settings.
        store: Key-value store; a Redis store from ``settings.redis_url`` by default.
        registry: Provider registry; built from the configured API keys by default.
        clock: Time source shared by all components.
    """
    store = store or RedisKeyValueStore.from_url(settings.redis_url)
    registry = registry or create_provider_registry(settings)

    breakers = CircuitBreakerStore(
        store,
        profiles=settings.circuit_breaker_profiles,
        state_ttl_seconds=settings.circuit_breaker_state_ttl_seconds,
        clock=clock,
    )
    dlq = DeadLetterQueue(
        store,
        record_ttl_seconds=settings.dlq_record_ttl_seconds,
        stats_ttl_seconds=settings.dlq_stats_ttl_seconds,
        max_retry_attempts=settings.dlq_max_retry_attempts,
        retry_base_delay_seconds=settings.dlq_retry_base_delay_seconds,
        retry_max_delay_seconds=settings.dlq_retry_max_delay_seconds,
        claim_ttl_seconds=settings.dlq_claim_ttl_seconds,
        clock=clock,
    )
    orchestrator = FallbackOrchestrator(
        registry,
        breakers,
        store,
        dlq=dlq,
        provider_priority=settings.provider_priority,
        max_variation_count=settings.max_variation_count,
        fallback_cache_ttl_seconds=settings.fallback_cache_ttl_seconds,
        clock=clock,
    )
    dlq.set_retry_handler(orchestrator.retry_failed_request)

    idempotency = IdempotencyCache(
        store,
        ttl_seconds=settings.idempotency_ttl_seconds,
        in_flight_ttl_seconds=settings.idempotency_in_flight_ttl_seconds,
        in_flight_wait_seconds=settings.idempotency_in_flight_wait_seconds,
        poll_interval_seconds=settings.idempotency_poll_interval_seconds,
        clock=clock,
    )
    jobs = AsyncJobTracker(
        store,
        expiry_seconds=settings.job_expiry_seconds,
        timeout_seconds=settings.job_timeout_seconds,
        retention_seconds=settings.job_retention_seconds,
        max_active_jobs_per_owner=settings.max_active_jobs_per_owner,
        clock=clock,
    )
    pools = WorkerPools.from_settings(settings)
    generation = AdContentGenerationService(orchestrator, idempotency, jobs, pools)

    scheduler = SweepScheduler(tick_seconds=settings.scheduler_tick_seconds)
    scheduler.register(SWEEP_DLQ_RETRY, settings.dlq_retry_sweep_interval_seconds, dlq.process_retry_queue)
    scheduler.register(SWEEP_DLQ_CLEANUP, settings.dlq_cleanup_interval_seconds, dlq.cleanup_old_entries)
    scheduler.register(SWEEP_JOB_RECONCILE, settings.job_reconcile_interval_seconds, jobs.reconcile_jobs)

    return Container(
        settings=settings,
        store=store,
        registry=registry,
        breakers=breakers,
        dlq=dlq,
        orchestrator=orchestrator,
        idempotency=idempotency,
        jobs=jobs,
        pools=pools,
        generation=generation,
        scheduler=scheduler,
    )
