"""Domain models for the Ad Copy Orchestrator."""

from adcopy_orchestrator.models.domain import (
    AdContent,
    AsyncJob,
    CallToAction,
    CircuitBreakerState,
    DLQStats,
    FailedRequestRecord,
    GenerationRequest,
    IdempotencyStatus,
    IdempotentResult,
    JobStatus,
    JobType,
    ProviderHealthStatus,
    RetryScheduleEntry,
)

__all__ = [
    "AdContent",
    "AsyncJob",
    "CallToAction",
    "CircuitBreakerState",
    "DLQStats",
    "FailedRequestRecord",
    "GenerationRequest",
    "IdempotencyStatus",
    "IdempotentResult",
    "JobStatus",
    "JobType",
    "ProviderHealthStatus",
    "RetryScheduleEntry",
]
