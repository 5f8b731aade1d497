"""
Domain Models - ad content, breaker state, dead letters, idempotency, jobs.

This module contains the value objects that flow through the orchestration
layer and the records persisted in the shared key-value store. Every stored
record is a pydantic model serialized with ``model_dump_json`` and restored
with ``model_validate_json``.

Reference Documents:
- GUIDELINES pp. 276: Domain modeling with Pydantic or @dataclass(frozen=True)
- GUIDELINES pp. 2153: "production systems often require external state stores (Redis)"
- ANTI_PATTERN_ANALYSIS §1.1: Optional types with explicit None
- ANTI_PATTERN_ANALYSIS §1.5: Mutable default arguments

Pattern: Domain models as value objects (Percival & Gregory pp. 59-65)
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from adcopy_orchestrator.core.clock import utc_now


# =============================================================================
# Ad Content
# =============================================================================


class CallToAction(str, Enum):
    """Call-to-action buttons supported by Facebook ads."""

    SHOP_NOW = "SHOP_NOW"
    LEARN_MORE = "LEARN_MORE"
    SIGN_UP = "SIGN_UP"
    DOWNLOAD = "DOWNLOAD"
    CONTACT_US = "CONTACT_US"
    APPLY_NOW = "APPLY_NOW"
    BOOK_NOW = "BOOK_NOW"
    GET_OFFER = "GET_OFFER"
    MESSAGE_PAGE = "MESSAGE_PAGE"
    SUBSCRIBE = "SUBSCRIBE"

    def label(self, language: str = "en") -> str:
        """
        Button text for ``language``.

        Vietnamese ("vi") has its own labels; every other language
        falls back to English.
        """
        english, vietnamese = _CTA_LABELS[self]
        if language.lower() == "vi":
            return vietnamese
        return english


_CTA_LABELS: dict[CallToAction, tuple[str, str]] = {
    CallToAction.SHOP_NOW: ("Shop Now", "Mua ngay"),
    CallToAction.LEARN_MORE: ("Learn More", "Tìm hiểu thêm"),
    CallToAction.SIGN_UP: ("Sign Up", "Đăng ký"),
    CallToAction.DOWNLOAD: ("Download", "Tải xuống"),
    CallToAction.CONTACT_US: ("Contact Us", "Liên hệ"),
    CallToAction.APPLY_NOW: ("Apply Now", "Ứng tuyển ngay"),
    CallToAction.BOOK_NOW: ("Book Now", "Đặt ngay"),
    CallToAction.GET_OFFER: ("Get Offer", "Nhận ưu đãi"),
    CallToAction.MESSAGE_PAGE: ("Message Page", "Nhắn tin"),
    CallToAction.SUBSCRIBE: ("Subscribe", "Theo dõi"),
}

FALLBACK_PROVIDER_NAME = "fallback"


class AdContent(BaseModel):
    """
    One generated ad copy variation.

    Attributes:
        headline: Short attention line.
        primary_text: Main body copy.
        description: Secondary line shown under the headline.
        call_to_action: CTA button for the ad.
        provider: Backend that produced the copy ("fallback" for placeholders).
        is_placeholder: True for synthesized copy produced under total outage.
    """

    headline: str
    primary_text: str
    description: str = ""
    call_to_action: CallToAction = CallToAction.LEARN_MORE
    provider: str = ""
    is_placeholder: bool = False

    model_config = {"frozen": True}


class GenerationRequest(BaseModel):
    """Caller input for ad copy generation."""

    prompt: str
    variation_count: int = Field(default=1, ge=1)
    language: str = "en"
    call_to_action: CallToAction = CallToAction.LEARN_MORE


# =============================================================================
# Circuit Breaker
# =============================================================================


class ProviderHealthStatus(str, Enum):
    """Health of a provider as reported to operators."""

    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"


class CircuitBreakerState(BaseModel):
    """
    Shared breaker state for one provider.

    The breaker is open while ``open_until`` is set and in the future. Once
    it has elapsed the provider gets a trial call; the state is not cleared
    until a call succeeds.
    """

    provider: str
    failure_count: int = Field(default=0, ge=0)
    open_until: Optional[datetime] = None

    def is_open(self, now: datetime) -> bool:
        return self.open_until is not None and self.open_until > now


# =============================================================================
# Dead Letter Queue
# =============================================================================


class FailedRequestRecord(BaseModel):
    """
    A request no provider could satisfy.

    ``request_parameters`` holds everything needed to replay the call
    besides the prompt (variation count, language, call to action).
    """

    request_id: str
    provider: str
    prompt: str
    request_parameters: dict[str, Any] = Field(default_factory=dict)
    error_message: str = ""
    error_code: str = ""
    retryable: bool = False
    retry_count: int = Field(default=0, ge=0)
    failure_time: datetime = Field(default_factory=utc_now)
    last_retry_time: Optional[datetime] = None


class RetryScheduleEntry(BaseModel):
    """Pending retry for a FailedRequestRecord."""

    request_id: str
    scheduled_retry_time: datetime
    attempt: int = Field(default=1, ge=1)


class DLQStats(BaseModel):
    """Failure counters aggregated over a time window."""

    window_hours: int
    total_failures: int = 0
    retryable_failures: int = 0
    permanent_failures: int = 0
    provider_failures: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Idempotency
# =============================================================================


class IdempotencyStatus(str, Enum):
    """Outcome stored under an idempotency key."""

    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    IN_PROGRESS = "IN_PROGRESS"


class IdempotentResult(BaseModel):
    """
    Stored outcome of an idempotent operation.

    IN_PROGRESS is the in-flight marker written before the work runs; it is
    overwritten by a SUCCESS or ERROR record when the work finishes.
    """

    status: IdempotencyStatus
    result: Any = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def is_final(self) -> bool:
        return self.status != IdempotencyStatus.IN_PROGRESS


# =============================================================================
# Async Jobs
# =============================================================================


class JobStatus(str, Enum):
    """Lifecycle state of an async job."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.IN_PROGRESS)


TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.EXPIRED}
)


class JobType(str, Enum):
    """Kinds of long-running work tracked as jobs."""

    AD_CONTENT_GENERATION = "AD_CONTENT_GENERATION"
    IMAGE_GENERATION = "IMAGE_GENERATION"
    IMAGE_ENHANCEMENT = "IMAGE_ENHANCEMENT"
    BULK_AD_GENERATION = "BULK_AD_GENERATION"


class AsyncJob(BaseModel):
    """
    A tracked unit of long-running work.

    Attributes:
        job_id: Opaque, globally unique id.
        owner_id: Caller that created the job.
        job_type: Kind of work.
        status: Stored lifecycle state (see ``effective_status``).
        progress: Percent complete, 0-100.
        current_step: Human-readable label of the current step.
        total_steps: Number of steps the work is split into.
        result_data: Payload of a completed job.
        error_message: Reason a job failed.
    """

    job_id: str
    owner_id: str
    job_type: JobType
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    current_step: Optional[str] = None
    total_steps: Optional[int] = None
    result_data: Any = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: datetime

    def effective_status(self, now: datetime) -> JobStatus:
        """Stored status, except a non-terminal job past expiry reads as EXPIRED."""
        if not self.status.is_terminal and self.expires_at <= now:
            return JobStatus.EXPIRED
        return self.status
