"""
Structured Logging

JSON logging via structlog with a request correlation id carried in a
context variable, so every event emitted while handling one generation
request (provider attempts, breaker trips, DLQ writes) can be joined.

Reference Documents:
- GUIDELINES pp. 2309-2319: "Prometheus for metrics collection and structured logging"
- GUIDELINES pp. 2319: Newman "log when timeouts occur, look at what happens"

Pattern: Structured logging for observability
Pattern: Singleton configuration (configure once at startup)
"""

import contextvars
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor

_configured: bool = False

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "adcopy_correlation_id", default=None
)


# =============================================================================
# Correlation ID
# =============================================================================


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set (or clear, with None) the correlation id for the current context."""
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_id_context(correlation_id: str) -> Generator[None, None, None]:
    """
    Scope a correlation id to a block.

    Example:
        >>> with correlation_id_context(request_id):
        ...     await orchestrator.generate_with_fallback(...)
    """
    token = _correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id_var.reset(token)


# =============================================================================
# Processors
# =============================================================================


def _add_correlation_id(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    correlation_id = _correlation_id_var.get()
    if correlation_id is not None:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def _add_timestamp(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _rename_level(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    if "log_level" in event_dict:
        event_dict["level"] = event_dict.pop("log_level")
    return event_dict


def _rename_logger_name(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    # structlog reserves the ``logger`` keyword, so names are bound as ``logger_name``.
    if "logger_name" in event_dict:
        event_dict["logger"] = event_dict.pop("logger_name")
    return event_dict


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Called once at startup; later calls are no-ops unless ``force`` is set.
    Provider adapters log through the stdlib ``logging`` module, so the root
    logger is pointed at the same stream and level.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Output stream, stdout by default.
        force: Reconfigure even if already configured (tests only).
    """
    global _configured

    if _configured and not force:
        return

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        _add_timestamp,
        _add_correlation_id,
        _rename_level,
        _rename_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(level=numeric_level, stream=stream or sys.stdout, force=force)

    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger bound to ``name``.

    Configures logging with defaults on first use. The returned logger is a
    lazy proxy, so module-level loggers follow a later reconfiguration.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("dlq_record_added", request_id="r-1", provider="openai")
    """
    configure_logging()
    return structlog.get_logger(logger_name=name)
