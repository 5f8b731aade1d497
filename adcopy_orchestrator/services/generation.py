"""
Ad Content Generation Service

Composes the resilience components into the two ways callers ask for copy:

    generate()               idempotency cache → fallback orchestrator
    submit_generation_job()  job tracker → ai worker pool → fallback orchestrator

Long-running generation reports progress through the job tracker so
clients can poll, and checks for cancellation between steps.
"""

import asyncio

from adcopy_orchestrator.core.exceptions import (
    GenerationValidationError,
    JobStateError,
    PoolSaturatedError,
    ProviderError,
    ProviderErrorKind,
)
from adcopy_orchestrator.models.domain import AdContent, GenerationRequest, JobType
from adcopy_orchestrator.observability.logging import correlation_id_context, get_logger
from adcopy_orchestrator.resilience.fallback import FallbackOrchestrator
from adcopy_orchestrator.resilience.worker_pools import WorkerPools
from adcopy_orchestrator.services.idempotency import IdempotencyCache
from adcopy_orchestrator.services.jobs import AsyncJobTracker

logger = get_logger(__name__)

GENERATE_OPERATION = "generate_ad_content"
GENERATION_STEPS = 4

STEP_PREPARING = "Preparing content generation"
STEP_GENERATING = "Generating text content"
STEP_PROCESSING = "Processing generated content"
STEP_VALIDATING = "Validating content"

MESSAGE_TIMEOUT = "Request timed out. Please try again later."
MESSAGE_CONFIGURATION = "AI service configuration error. Please contact support."
MESSAGE_OVERLOADED = "Service temporarily overloaded. Please try again in a few minutes."
MESSAGE_QUOTA = "Daily usage limit reached. Please try again tomorrow."
MESSAGE_GENERIC = "Content generation failed. Please try again with a different prompt."
MESSAGE_BUSY = "Service is busy. Please try again later."


def user_friendly_error(error: BaseException) -> str:
    """Message safe to show an end user for a failed generation job."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return MESSAGE_TIMEOUT
    if isinstance(error, ProviderError):
        by_kind = {
            ProviderErrorKind.TIMEOUT: MESSAGE_TIMEOUT,
            ProviderErrorKind.INVALID_CREDENTIALS: MESSAGE_CONFIGURATION,
            ProviderErrorKind.RATE_LIMITED: MESSAGE_OVERLOADED,
            ProviderErrorKind.QUOTA_EXCEEDED: MESSAGE_QUOTA,
        }
        if error.kind in by_kind:
            return by_kind[error.kind]
    if isinstance(error, GenerationValidationError):
        return error.message

    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return MESSAGE_TIMEOUT
    if "api key" in message:
        return MESSAGE_CONFIGURATION
    if "rate limit" in message:
        return MESSAGE_OVERLOADED
    if "quota" in message:
        return MESSAGE_QUOTA
    return MESSAGE_GENERIC


class AdContentGenerationService:
    """
    Entry point for ad copy generation.

    Example:
        >>> service = AdContentGenerationService(orchestrator, idempotency, jobs, pools)
        >>> ads = await service.generate(GenerationRequest(prompt="Eco sneakers", variation_count=3), "user-1")
        >>> job_id = await service.submit_generation_job(request, "user-1")
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        idempotency: IdempotencyCache,
        jobs: AsyncJobTracker,
        pools: WorkerPools,
    ) -> None:
        self._orchestrator = orchestrator
        self._idempotency = idempotency
        self._jobs = jobs
        self._pools = pools

    def _validate(self, request: GenerationRequest) -> None:
        self._orchestrator.validate_request(
            request.prompt,
            request.variation_count,
            request.language,
            request.call_to_action,
        )

    async def _generate_uncached(self, request: GenerationRequest) -> list[AdContent]:
        return await self._orchestrator.generate_with_fallback(
            request.prompt,
            request.variation_count,
            request.language,
            request.call_to_action,
        )

    # =========================================================================
    # Synchronous generation
    # =========================================================================

    async def generate(self, request: GenerationRequest, caller_id: str) -> list[AdContent]:
        """
        Generate copy once per identical (request, caller).

        Raises:
            GenerationValidationError: Request is malformed (never cached).
            IdempotentReplayError: An identical earlier request failed.
            IdempotencyInFlightError: An identical request is still running.
        """
        self._validate(request)
        return await self._idempotency.process_idempotently(
            GENERATE_OPERATION,
            request,
            caller_id,
            lambda: self._generate_uncached(request),
            response_model=list[AdContent],
        )

    # =========================================================================
    # Async jobs
    # =========================================================================

    async def submit_generation_job(self, request: GenerationRequest, owner_id: str) -> str:
        """
        Queue generation as a tracked job on the ai pool.

        Returns:
            Job id for polling.

        Raises:
            GenerationValidationError: Request is malformed.
            JobLimitExceededError: Owner has too many active jobs.
            PoolSaturatedError: The ai pool is full; the job is marked FAILED.
        """
        self._validate(request)
        job_id = await self._jobs.create_job(owner_id, JobType.AD_CONTENT_GENERATION, total_steps=GENERATION_STEPS)

        try:
            self._pools.ai.submit(lambda: self.run_generation_job(job_id, request))
        except PoolSaturatedError:
            await self._jobs.fail_job(job_id, MESSAGE_BUSY)
            raise
        return job_id

    async def run_generation_job(self, job_id: str, request: GenerationRequest) -> None:
        """
        Worker body for a generation job.

        Stops quietly when the job was cancelled or closed by the reconcile
        sweep; any other failure marks the job FAILED with a user-facing
        message.
        """
        with correlation_id_context(job_id):
            try:
                await self._jobs.start_job(job_id, STEP_PREPARING)
                await self._jobs.update_job_progress(job_id, 10, STEP_PREPARING)
                if await self._jobs.is_cancelled(job_id):
                    return

                await self._jobs.update_job_progress(job_id, 30, STEP_GENERATING)
                content = await self._generate_uncached(request)
                if await self._jobs.is_cancelled(job_id):
                    logger.info("job_cancelled_during_generation", job_id=job_id)
                    return

                await self._jobs.update_job_progress(job_id, 70, STEP_PROCESSING)
                await self._jobs.update_job_progress(job_id, 95, STEP_VALIDATING)
                await self._jobs.complete_job(
                    job_id,
                    {
                        "ads": content,
                        "placeholder": any(item.is_placeholder for item in content),
                    },
                )
            except JobStateError as e:
                logger.info("job_no_longer_active", job_id=job_id, status=e.current)
            except Exception as e:
                logger.error("generation_job_failed", job_id=job_id, error=str(e), exc_info=True)
                await self._fail_quietly(job_id, user_friendly_error(e))

    async def _fail_quietly(self, job_id: str, message: str) -> None:
        try:
            await self._jobs.fail_job(job_id, message)
        except JobStateError as e:
            logger.info("job_no_longer_active", job_id=job_id, status=e.current)
