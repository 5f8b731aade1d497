"""
Health Router - operator endpoints

Liveness, readiness, provider health and dead letter statistics for
operational dashboards, plus the Prometheus scrape endpoint.

Reference Documents:
- Building Microservices (Newman) pp. 273-275: Service metrics and synthetic monitoring
- Building Python Microservices with FastAPI (Sinha) pp. 89-91: Dependency injection patterns

Anti-Patterns Avoided:
- ANTI_PATTERN_ANALYSIS §3.1: No bare except clauses - exceptions logged with context
"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from adcopy_orchestrator import __version__
from adcopy_orchestrator.api.deps import get_container, get_dead_letter_queue, get_orchestrator
from adcopy_orchestrator.container import Container
from adcopy_orchestrator.models.domain import DLQStats, ProviderHealthStatus
from adcopy_orchestrator.resilience.fallback import FallbackOrchestrator
from adcopy_orchestrator.services.dead_letter_queue import DeadLetterQueue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]


class ProviderHealthResponse(BaseModel):
    providers: dict[str, ProviderHealthStatus]
    available: int


class DLQStatsResponse(BaseModel):
    stats: DLQStats
    size: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health(_container: Container = Depends(get_container)) -> HealthResponse:
    """Liveness: the process is up and wired."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(response: Response, container: Container = Depends(get_container)) -> ReadinessResponse:
    """
    Readiness: the shared store answers and at least one provider is registered.

    Returns 503 while not ready.
    """
    store_ok = True
    try:
        await container.store.exists("health:probe")
    except Exception as e:
        logger.warning(f"Store readiness check failed: {e}")
        store_ok = False

    checks = {"store": store_ok, "providers": bool(container.registry.names())}
    ready = all(checks.values())
    if not ready:
        response.status_code = 503
    return ReadinessResponse(status="ready" if ready else "not_ready", checks=checks)


@router.get("/health/providers", response_model=ProviderHealthResponse)
async def provider_health(
    orchestrator: FallbackOrchestrator = Depends(get_orchestrator),
) -> ProviderHealthResponse:
    """AVAILABLE / UNAVAILABLE / CIRCUIT_OPEN per provider in priority order."""
    providers = await orchestrator.get_provider_health_status()
    available = sum(1 for status in providers.values() if status == ProviderHealthStatus.AVAILABLE)
    return ProviderHealthResponse(providers=providers, available=available)


@router.get("/health/dlq", response_model=DLQStatsResponse)
async def dlq_stats(
    window_hours: int = Query(default=24, ge=1, le=24 * 30),
    dlq: DeadLetterQueue = Depends(get_dead_letter_queue),
) -> DLQStatsResponse:
    """Dead letter counters for the last ``window_hours`` hours."""
    stats = await dlq.get_dlq_stats(window_hours)
    size = await dlq.get_dlq_size()
    return DLQStatsResponse(stats=stats, size=size)


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
