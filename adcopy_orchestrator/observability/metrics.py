"""
Orchestration Metrics

Prometheus metrics for the resilience layer: provider attempts, breaker
transitions, fallback outcomes, dead letters, idempotency hits, job
transitions and worker pool backpressure.

Reference Documents:
- GUIDELINES pp. 2309-2319: Prometheus for metrics collection

Anti-Pattern Compliance:
- AP-1: Metric names as constants
"""

from prometheus_client import Counter, Gauge

# =============================================================================
# Constants (AP-1 Compliance: No duplicated string literals)
# =============================================================================

METRIC_PROVIDER_ATTEMPTS = "adcopy_provider_attempts_total"
METRIC_PROVIDER_FAILURES = "adcopy_provider_failures_total"
METRIC_CIRCUIT_TRANSITIONS = "adcopy_circuit_breaker_transitions_total"
METRIC_CIRCUIT_OPEN = "adcopy_circuit_breaker_open"
METRIC_FALLBACK_OUTCOMES = "adcopy_fallback_outcomes_total"
METRIC_DLQ_RECORDS = "adcopy_dlq_records_total"
METRIC_DLQ_RETRIES = "adcopy_dlq_retries_total"
METRIC_IDEMPOTENCY_LOOKUPS = "adcopy_idempotency_lookups_total"
METRIC_JOB_TRANSITIONS = "adcopy_job_transitions_total"
METRIC_POOL_REJECTIONS = "adcopy_worker_pool_rejections_total"
METRIC_POOL_OUTSTANDING = "adcopy_worker_pool_outstanding_tasks"


# =============================================================================
# Providers and Circuit Breakers
# =============================================================================

PROVIDER_ATTEMPTS = Counter(
    name=METRIC_PROVIDER_ATTEMPTS,
    documentation="Provider calls attempted by the fallback orchestrator",
    labelnames=["provider"],
)

PROVIDER_FAILURES = Counter(
    name=METRIC_PROVIDER_FAILURES,
    documentation="Provider calls that failed, by failure kind",
    labelnames=["provider", "kind", "retryable"],
)

CIRCUIT_TRANSITIONS = Counter(
    name=METRIC_CIRCUIT_TRANSITIONS,
    documentation="Circuit breaker open/close transitions",
    labelnames=["provider", "to_state"],
)

CIRCUIT_OPEN = Gauge(
    name=METRIC_CIRCUIT_OPEN,
    documentation="1 while the provider's breaker is open, else 0",
    labelnames=["provider"],
)


def record_provider_attempt(provider: str) -> None:
    PROVIDER_ATTEMPTS.labels(provider=provider).inc()


def record_provider_failure(provider: str, kind: str, retryable: bool) -> None:
    PROVIDER_FAILURES.labels(
        provider=provider,
        kind=kind,
        retryable=str(retryable).lower(),
    ).inc()


def record_circuit_transition(provider: str, to_state: str) -> None:
    """
    Record a breaker opening or closing.

    Args:
        provider: Provider whose breaker changed.
        to_state: "open" or "closed".
    """
    CIRCUIT_TRANSITIONS.labels(provider=provider, to_state=to_state).inc()
    CIRCUIT_OPEN.labels(provider=provider).set(1 if to_state == "open" else 0)


# =============================================================================
# Fallback Outcomes
# =============================================================================

FALLBACK_OUTCOMES = Counter(
    name=METRIC_FALLBACK_OUTCOMES,
    documentation="How generate_with_fallback produced its answer (provider, cache, placeholder)",
    labelnames=["outcome"],
)


def record_fallback_outcome(outcome: str) -> None:
    FALLBACK_OUTCOMES.labels(outcome=outcome).inc()


# =============================================================================
# Dead Letter Queue
# =============================================================================

DLQ_RECORDS = Counter(
    name=METRIC_DLQ_RECORDS,
    documentation="Failed requests written to the dead letter queue",
    labelnames=["provider", "retryable"],
)

DLQ_RETRIES = Counter(
    name=METRIC_DLQ_RETRIES,
    documentation="Dead letter retry attempts by result (succeeded, rescheduled, exhausted)",
    labelnames=["result"],
)


def record_dlq_record(provider: str, retryable: bool) -> None:
    DLQ_RECORDS.labels(provider=provider, retryable=str(retryable).lower()).inc()


def record_dlq_retry(result: str) -> None:
    DLQ_RETRIES.labels(result=result).inc()


# =============================================================================
# Idempotency and Jobs
# =============================================================================

IDEMPOTENCY_LOOKUPS = Counter(
    name=METRIC_IDEMPOTENCY_LOOKUPS,
    documentation="Idempotency cache lookups by result (hit, miss, in_flight)",
    labelnames=["operation", "result"],
)

JOB_TRANSITIONS = Counter(
    name=METRIC_JOB_TRANSITIONS,
    documentation="Async job state transitions",
    labelnames=["job_type", "to_status"],
)


def record_idempotency_lookup(operation: str, result: str) -> None:
    IDEMPOTENCY_LOOKUPS.labels(operation=operation, result=result).inc()


def record_job_transition(job_type: str, to_status: str) -> None:
    JOB_TRANSITIONS.labels(job_type=job_type, to_status=to_status).inc()


# =============================================================================
# Worker Pools
# =============================================================================

POOL_REJECTIONS = Counter(
    name=METRIC_POOL_REJECTIONS,
    documentation="Tasks rejected because a worker pool was saturated",
    labelnames=["pool"],
)

POOL_OUTSTANDING = Gauge(
    name=METRIC_POOL_OUTSTANDING,
    documentation="Tasks running or queued in a worker pool",
    labelnames=["pool"],
)


def record_pool_rejection(pool: str) -> None:
    POOL_REJECTIONS.labels(pool=pool).inc()


def set_pool_outstanding(pool: str, outstanding: int) -> None:
    POOL_OUTSTANDING.labels(pool=pool).set(outstanding)
