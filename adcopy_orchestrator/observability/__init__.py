"""
Observability package - structured logging and Prometheus metrics.
"""

from adcopy_orchestrator.observability.logging import (
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "correlation_id_context",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
]
