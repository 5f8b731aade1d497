"""
Custom exceptions for the Ad Copy Orchestrator.

This module provides a hierarchy of custom exceptions for the orchestrator.
All exceptions inherit from AdCopyOrchestratorException and include error
codes for consistent error handling and API responses.

Provider failures are a tagged error type: every ProviderError carries a
ProviderErrorKind and an explicit ``retryable`` flag, so callers branch on
data rather than on the exception class.

Reference:
- ANTI_PATTERN_ANALYSIS.md: Exception handling patterns
- GUIDELINES: Specific exceptions, always capture with 'as e'
"""

from enum import Enum
from typing import Any, Optional


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for orchestrator exceptions.

    These codes provide a consistent way to identify error types
    across the API, the dead letter queue and in logging.
    """

    ORCHESTRATOR_ERROR = "ORCHESTRATOR_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    IDEMPOTENT_REPLAY = "IDEMPOTENT_REPLAY"
    IDEMPOTENCY_IN_FLIGHT = "IDEMPOTENCY_IN_FLIGHT"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    JOB_STATE_ERROR = "JOB_STATE_ERROR"
    JOB_LIMIT_EXCEEDED = "JOB_LIMIT_EXCEEDED"
    POOL_SATURATED = "POOL_SATURATED"
    STORE_ERROR = "STORE_ERROR"


class ProviderErrorKind(str, Enum):
    """Classification of a provider failure."""

    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    GENERIC = "GENERIC"


# Markers that make an untagged failure worth retrying later
RETRYABLE_MESSAGE_MARKERS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "rate limit",
    "service unavailable",
)


# =============================================================================
# Base Exception
# =============================================================================


class AdCopyOrchestratorException(Exception):
    """
    Base exception for all orchestrator errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.ORCHESTRATOR_ERROR,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            **kwargs: Additional attributes to set on the exception.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# ProviderError
# =============================================================================


class ProviderError(AdCopyOrchestratorException):
    """
    Tagged failure from an AI content provider.

    Raised by provider adapters when generation fails. The orchestrator
    absorbs these errors; they never reach the caller of
    ``generate_with_fallback``.

    Attributes:
        provider: Name of the provider (e.g., "openai", "gemini").
        kind: What went wrong, as a ProviderErrorKind.
        retryable: Whether replaying the same request later may succeed.
        status_code: HTTP status code from the provider API (if applicable).
    """

    def __init__(
        self,
        message: str,
        provider: str,
        kind: ProviderErrorKind = ProviderErrorKind.GENERIC,
        retryable: bool = False,
        status_code: Optional[int] = None,
        error_code: str = ErrorCode.PROVIDER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.provider = provider
        self.kind = kind
        self.retryable = retryable
        self.status_code = status_code

    # -------------------------------------------------------------------------
    # Factories, one per failure kind
    # -------------------------------------------------------------------------

    @classmethod
    def quota_exceeded(cls, provider: str, message: Optional[str] = None) -> "ProviderError":
        """Account quota is used up; retrying later will not help."""
        return cls(
            message or f"Quota exceeded for provider {provider}",
            provider=provider,
            kind=ProviderErrorKind.QUOTA_EXCEEDED,
            retryable=False,
            status_code=429,
        )

    @classmethod
    def rate_limited(cls, provider: str, message: Optional[str] = None) -> "ProviderError":
        """Provider is throttling requests."""
        return cls(
            message or f"Rate limit exceeded for provider {provider}",
            provider=provider,
            kind=ProviderErrorKind.RATE_LIMITED,
            retryable=True,
            status_code=429,
        )

    @classmethod
    def invalid_credentials(cls, provider: str, message: Optional[str] = None) -> "ProviderError":
        """API key missing, revoked or rejected."""
        return cls(
            message or f"Invalid API key for provider {provider}",
            provider=provider,
            kind=ProviderErrorKind.INVALID_CREDENTIALS,
            retryable=False,
            status_code=401,
        )

    @classmethod
    def network_error(cls, provider: str, message: Optional[str] = None) -> "ProviderError":
        """Transport failure reaching the provider."""
        return cls(
            message or f"Network error for provider {provider}",
            provider=provider,
            kind=ProviderErrorKind.NETWORK,
            retryable=True,
        )

    @classmethod
    def timeout(cls, provider: str, timeout_seconds: float) -> "ProviderError":
        """Provider call exceeded its time budget."""
        return cls(
            f"Provider {provider} timed out after {timeout_seconds:g}s",
            provider=provider,
            kind=ProviderErrorKind.TIMEOUT,
            retryable=True,
        )

    @classmethod
    def invalid_response(cls, provider: str, message: Optional[str] = None) -> "ProviderError":
        """Provider answered but the payload is unusable."""
        return cls(
            message or f"Invalid response from provider {provider}",
            provider=provider,
            kind=ProviderErrorKind.INVALID_RESPONSE,
            retryable=False,
        )

    @classmethod
    def from_exception(cls, provider: str, error: BaseException) -> "ProviderError":
        """
        Tag an arbitrary exception raised by a provider.

        ProviderErrors pass through unchanged. Anything else is classified
        by its message: transport, timeout and throttling wording marks it
        retryable.

        Args:
            provider: Provider that raised the error.
            error: The raised exception.

        Returns:
            A ProviderError carrying the original message.
        """
        if isinstance(error, ProviderError):
            return error

        message = str(error) or type(error).__name__
        return cls(
            message,
            provider=provider,
            kind=ProviderErrorKind.GENERIC,
            retryable=is_retryable_message(message),
        )


def is_retryable_message(message: str) -> bool:
    """Return True when an error message describes a transient failure."""
    lowered = message.lower()
    return any(marker in lowered for marker in RETRYABLE_MESSAGE_MARKERS)


# =============================================================================
# Validation
# =============================================================================


class GenerationValidationError(AdCopyOrchestratorException):
    """
    Exception for malformed generation input.

    Surfaced immediately to the caller; never queued for retry.

    Attributes:
        field: Name of the field that failed validation.
        value: The invalid value.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        error_code: str = ErrorCode.VALIDATION_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.field = field
        self.value = value


# =============================================================================
# Idempotency
# =============================================================================


class IdempotentReplayError(AdCopyOrchestratorException):
    """
    A previously stored error, re-surfaced for a duplicate request.

    ``error_code`` holds the code stored with the original failure, so the
    replay is indistinguishable from the first response.
    """

    def __init__(self, message: str, error_code: str = ErrorCode.IDEMPOTENT_REPLAY) -> None:
        super().__init__(message, error_code)


class IdempotencyInFlightError(AdCopyOrchestratorException):
    """Another caller is still processing the same idempotency key; retry later."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            f"Request {idempotency_key} is still being processed, retry later",
            ErrorCode.IDEMPOTENCY_IN_FLIGHT,
        )
        self.idempotency_key = idempotency_key


# =============================================================================
# Async Jobs
# =============================================================================


class JobError(AdCopyOrchestratorException):
    """Base exception for async job tracker failures."""

    def __init__(self, message: str, job_id: Optional[str] = None, error_code: str = ErrorCode.JOB_STATE_ERROR) -> None:
        super().__init__(message, error_code)
        self.job_id = job_id


class JobNotFoundError(JobError):
    """No job exists under the given id (or it belongs to another owner)."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}", job_id, ErrorCode.JOB_NOT_FOUND)


class JobStateError(JobError):
    """Requested transition is not legal from the job's current state."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Job {job_id} cannot move from {current} to {requested}",
            job_id,
            ErrorCode.JOB_STATE_ERROR,
        )
        self.current = current
        self.requested = requested


class JobLimitExceededError(JobError):
    """Owner already has the maximum number of active jobs."""

    def __init__(self, owner_id: str, limit: int) -> None:
        super().__init__(
            f"Owner {owner_id} already has {limit} active jobs",
            None,
            ErrorCode.JOB_LIMIT_EXCEEDED,
        )
        self.owner_id = owner_id
        self.limit = limit


# =============================================================================
# Infrastructure
# =============================================================================


class PoolSaturatedError(AdCopyOrchestratorException):
    """Worker pool has no free worker and its queue is full."""

    def __init__(self, pool_name: str, capacity: int) -> None:
        super().__init__(
            f"Worker pool '{pool_name}' is saturated ({capacity} tasks outstanding)",
            ErrorCode.POOL_SATURATED,
        )
        self.pool_name = pool_name
        self.capacity = capacity


class StoreError(AdCopyOrchestratorException):
    """Key-value store operation failed (connection, serialization)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.STORE_ERROR)
