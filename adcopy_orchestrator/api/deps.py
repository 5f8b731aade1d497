"""
API Dependencies

FastAPI dependency functions for the operator endpoints. Components are
read from ``app.state.container`` (set by the lifespan), so tests can
install their own container or use ``dependency_overrides``.

Reference Documents:
- GUIDELINES: Sinha pp. 89-91 (Dependency injection patterns)
"""

from fastapi import HTTPException, Request

from adcopy_orchestrator.container import Container
from adcopy_orchestrator.resilience.fallback import FallbackOrchestrator
from adcopy_orchestrator.services.dead_letter_queue import DeadLetterQueue


def get_container(request: Request) -> Container:
    """
    The application's component container.

    Raises:
        HTTPException: 503 while the application is not started.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return container


def get_orchestrator(request: Request) -> FallbackOrchestrator:
    return get_container(request).orchestrator


def get_dead_letter_queue(request: Request) -> DeadLetterQueue:
    return get_container(request).dlq
