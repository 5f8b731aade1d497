"""
Resilience patterns for the Ad Copy Orchestrator.

This package provides:
- CircuitBreakerStore: per-provider breaker state in the shared store
- FallbackOrchestrator: priority failover with cache and placeholder fallback
- WorkerPools: bulkheaded, bounded background execution
- SweepScheduler: single ticker for periodic sweeps

Reference Documents:
- Release It! (Nygard): Stability patterns
- Microservices Patterns (Richardson): Fallback patterns
"""

from adcopy_orchestrator.resilience.circuit_breaker import CircuitBreakerStore
from adcopy_orchestrator.resilience.fallback import FallbackOrchestrator, ProviderAttempts
from adcopy_orchestrator.resilience.scheduler import SweepScheduler
from adcopy_orchestrator.resilience.worker_pools import BoundedWorkerPool, WorkerPools

__all__ = [
    "BoundedWorkerPool",
    "CircuitBreakerStore",
    "FallbackOrchestrator",
    "ProviderAttempts",
    "SweepScheduler",
    "WorkerPools",
]
