"""
Async Job Tracker Service

State machine for long-running generation work that clients poll.

Reference Documents:
- Microservices Patterns (Richardson): Asynchronous request/response
- GUIDELINES pp. 949: Repository pattern - "hides the boring details of data access"

State Machine:
    PENDING --start--> IN_PROGRESS --progress*--> COMPLETED | FAILED | CANCELLED
    PENDING ------------------------------------> FAILED | CANCELLED

    COMPLETED, FAILED, CANCELLED and EXPIRED are terminal and immutable.
    A non-terminal job past ``expires_at`` reads as EXPIRED whatever its
    stored status says.

Storage:
    async_job:<job_id>         -> AsyncJob JSON (kept until expiry + retention)
    async_job_owner:<owner_id> -> hash of job_id -> created_at

Concurrency:
    Request handlers, workers and the reconcile sweep all read-modify-write
    the same record; updates are last-writer-wins. Cancellation is
    cooperative: workers poll ``is_cancelled`` at their checkpoints.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.exceptions import JobLimitExceededError, JobNotFoundError, JobStateError
from adcopy_orchestrator.models.domain import AsyncJob, JobStatus, JobType
from adcopy_orchestrator.observability.logging import get_logger
from adcopy_orchestrator.observability.metrics import record_job_transition
from adcopy_orchestrator.storage.base import KeyValueStore

logger = get_logger(__name__)

JOB_PREFIX = "async_job:"
JOB_OWNER_PREFIX = "async_job_owner:"

STEP_QUEUED = "Queued"
STEP_STARTED = "Started"
STEP_COMPLETED = "Completed"
TIMEOUT_MESSAGE = "Job timed out before completing"

_STARTABLE = {JobStatus.PENDING}
_UPDATABLE = {JobStatus.IN_PROGRESS}
_COMPLETABLE = {JobStatus.IN_PROGRESS}
_FAILABLE = {JobStatus.PENDING, JobStatus.IN_PROGRESS}
_CANCELLABLE = {JobStatus.PENDING, JobStatus.IN_PROGRESS}


@dataclass
class JobSweepSummary:
    """What one reconcile pass changed."""

    timed_out: int = 0
    expired: int = 0
    unreadable: int = 0


class AsyncJobTracker:
    """
    Repository and state machine for AsyncJob records.

    Example:
        >>> tracker = AsyncJobTracker(store)
        >>> job_id = await tracker.create_job("user-1", JobType.AD_CONTENT_GENERATION, total_steps=4)
        >>> await tracker.start_job(job_id)
        >>> await tracker.update_job_progress(job_id, 30, "Generating text content")
        >>> await tracker.complete_job(job_id, {"ads": [...]})
    """

    def __init__(
        self,
        store: KeyValueStore,
        expiry_seconds: int = 24 * 3600,
        timeout_seconds: int = 3600,
        retention_seconds: int = 7 * 24 * 3600,
        max_active_jobs_per_owner: int = 5,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        """
        Initialize the tracker.

        Args:
            store: Shared key-value store.
            expiry_seconds: Horizon after creation at which a job expires.
            timeout_seconds: Age after which the sweep fails an unfinished job.
            retention_seconds: How long records outlive their expiry.
            max_active_jobs_per_owner: Admission limit per owner.
            clock: Time source.
            id_factory: Generates job ids.
        """
        self._store = store
        self._expiry = timedelta(seconds=expiry_seconds)
        self._timeout = timedelta(seconds=timeout_seconds)
        self._retention_seconds = retention_seconds
        self._max_active = max_active_jobs_per_owner
        self._clock = clock
        self._id_factory = id_factory

    @property
    def max_active_jobs_per_owner(self) -> int:
        return self._max_active

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{JOB_PREFIX}{job_id}"

    @staticmethod
    def _owner_key(owner_id: str) -> str:
        return f"{JOB_OWNER_PREFIX}{owner_id}"

    def _record_ttl(self, job: AsyncJob) -> int:
        keep_until = job.expires_at + timedelta(seconds=self._retention_seconds)
        return max(int((keep_until - self._clock()).total_seconds()), 1)

    async def _save(self, job: AsyncJob) -> None:
        await self._store.set(self._key(job.job_id), job.model_dump_json(), ttl_seconds=self._record_ttl(job))

    async def _load(self, job_id: str) -> AsyncJob:
        raw = await self._store.get(self._key(job_id))
        if raw is None:
            raise JobNotFoundError(job_id)
        return AsyncJob.model_validate_json(raw)

    def _present(self, job: AsyncJob) -> AsyncJob:
        """Apply the expiry rule to a stored job."""
        status = job.effective_status(self._clock())
        if status is job.status:
            return job
        return job.model_copy(update={"status": status})

    # =========================================================================
    # Creation and admission control
    # =========================================================================

    async def can_create_job(self, owner_id: str) -> bool:
        active = await self.list_active_jobs(owner_id)
        return len(active) < self._max_active

    async def create_job(
        self,
        owner_id: str,
        job_type: JobType,
        total_steps: Optional[int] = None,
    ) -> str:
        """
        Create a PENDING job.

        Raises:
            JobLimitExceededError: Owner already has the maximum number of
                active (PENDING or IN_PROGRESS) jobs.
        """
        if not await self.can_create_job(owner_id):
            logger.warning("job_admission_rejected", owner_id=owner_id, limit=self._max_active)
            raise JobLimitExceededError(owner_id, self._max_active)

        now = self._clock()
        job = AsyncJob(
            job_id=self._id_factory(),
            owner_id=owner_id,
            job_type=job_type,
            status=JobStatus.PENDING,
            progress=0,
            current_step=STEP_QUEUED,
            total_steps=total_steps,
            created_at=now,
            updated_at=now,
            expires_at=now + self._expiry,
        )
        await self._save(job)

        owner_key = self._owner_key(owner_id)
        await self._store.hset(owner_key, job.job_id, now.isoformat())
        await self._store.expire(owner_key, self._record_ttl(job))

        record_job_transition(job_type.value, JobStatus.PENDING.value)
        logger.info("job_created", job_id=job.job_id, owner_id=owner_id, job_type=job_type.value)
        return job.job_id

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _transition(
        self,
        job_id: str,
        allowed_from: Iterable[JobStatus],
        target: JobStatus,
        **changes: Any,
    ) -> AsyncJob:
        job = await self._load(job_id)
        now = self._clock()
        current = job.effective_status(now)
        if current not in allowed_from:
            raise JobStateError(job_id, current.value, target.value)

        updated = job.model_copy(update={"status": target, "updated_at": now, **changes})
        await self._save(updated)
        if target is not job.status:
            record_job_transition(job.job_type.value, target.value)
        return updated

    async def start_job(self, job_id: str, step: Optional[str] = None) -> AsyncJob:
        """PENDING -> IN_PROGRESS."""
        job = await self._transition(job_id, _STARTABLE, JobStatus.IN_PROGRESS, current_step=step or STEP_STARTED)
        logger.info("job_started", job_id=job_id)
        return job

    async def update_job_progress(self, job_id: str, percent: int, step: Optional[str] = None) -> AsyncJob:
        """
        Record progress on a running job.

        ``percent`` is clamped to 0..100. The step label is kept when
        ``step`` is None.
        """
        changes: dict[str, Any] = {"progress": max(0, min(100, int(percent)))}
        if step is not None:
            changes["current_step"] = step
        return await self._transition(job_id, _UPDATABLE, JobStatus.IN_PROGRESS, **changes)

    async def complete_job(self, job_id: str, result: Any = None) -> AsyncJob:
        """IN_PROGRESS -> COMPLETED, storing ``result``."""
        job = await self._transition(
            job_id,
            _COMPLETABLE,
            JobStatus.COMPLETED,
            progress=100,
            current_step=STEP_COMPLETED,
            result_data=to_jsonable_python(result),
            completed_at=self._clock(),
        )
        logger.info("job_completed", job_id=job_id)
        return job

    async def fail_job(self, job_id: str, error_message: str) -> AsyncJob:
        """PENDING or IN_PROGRESS -> FAILED."""
        job = await self._transition(
            job_id,
            _FAILABLE,
            JobStatus.FAILED,
            error_message=error_message,
            completed_at=self._clock(),
        )
        logger.warning("job_failed", job_id=job_id, error=error_message)
        return job

    async def cancel_job(self, job_id: str, owner_id: str) -> AsyncJob:
        """
        Cancel a job on behalf of its owner.

        Raises:
            JobNotFoundError: Unknown job, or owned by someone else.
            JobStateError: Job already finished.
        """
        job = await self._load(job_id)
        if job.owner_id != owner_id:
            raise JobNotFoundError(job_id)
        cancelled = await self._transition(job_id, _CANCELLABLE, JobStatus.CANCELLED, completed_at=self._clock())
        logger.info("job_cancelled", job_id=job_id, owner_id=owner_id)
        return cancelled

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_job(self, job_id: str) -> Optional[AsyncJob]:
        raw = await self._store.get(self._key(job_id))
        if raw is None:
            return None
        return self._present(AsyncJob.model_validate_json(raw))

    async def get_owner_job(self, job_id: str, owner_id: str) -> Optional[AsyncJob]:
        """The job, only if ``owner_id`` owns it."""
        job = await self.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            return None
        return job

    async def list_owner_jobs(self, owner_id: str) -> list[AsyncJob]:
        """Owner's jobs, newest first. Index entries of lapsed records are pruned."""
        owner_key = self._owner_key(owner_id)
        jobs: list[AsyncJob] = []
        stale: list[str] = []
        for job_id in await self._store.hgetall(owner_key):
            job = await self.get_job(job_id)
            if job is None:
                stale.append(job_id)
            else:
                jobs.append(job)
        if stale:
            await self._store.hdel(owner_key, *stale)
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    async def list_active_jobs(self, owner_id: str) -> list[AsyncJob]:
        return [job for job in await self.list_owner_jobs(owner_id) if job.status.is_active]

    async def is_cancelled(self, job_id: str) -> bool:
        """Cooperative cancellation checkpoint for workers."""
        job = await self.get_job(job_id)
        return job is not None and job.status is JobStatus.CANCELLED

    async def get_job_result(self, job_id: str, owner_id: str) -> Any:
        """
        Result payload of a completed job.

        Returns:
            The stored result, or None while the job is not COMPLETED.

        Raises:
            JobNotFoundError: Unknown job, or owned by someone else.
        """
        job = await self.get_owner_job(job_id, owner_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status is not JobStatus.COMPLETED:
            return None
        return job.result_data

    # =========================================================================
    # Reconciliation sweep
    # =========================================================================

    async def reconcile_jobs(self) -> JobSweepSummary:
        """
        Close out jobs nobody will finish.

        Non-terminal jobs past ``expires_at`` are persisted as EXPIRED;
        non-terminal jobs older than the timeout become FAILED, so a
        crashed worker cannot leave a job "in progress" forever. Running
        the sweep twice changes nothing the second time. Records that
        cannot be parsed are logged and left for their TTL.
        """
        summary = JobSweepSummary()
        now = self._clock()

        for key in await self._store.keys(JOB_PREFIX):
            raw = await self._store.get(key)
            if raw is None:
                continue
            try:
                job = AsyncJob.model_validate_json(raw)
            except ValidationError as e:
                logger.error("job_record_unreadable", key=key, error=str(e))
                summary.unreadable += 1
                continue
            if job.status.is_terminal:
                continue

            if job.expires_at <= now:
                target, message = JobStatus.EXPIRED, job.error_message
                summary.expired += 1
            elif job.created_at + self._timeout <= now:
                target, message = JobStatus.FAILED, TIMEOUT_MESSAGE
                summary.timed_out += 1
            else:
                continue

            await self._save(
                job.model_copy(
                    update={"status": target, "error_message": message, "updated_at": now, "completed_at": now}
                )
            )
            record_job_transition(job.job_type.value, target.value)
            logger.warning("job_reconciled", job_id=job.job_id, status=target.value)

        return summary
