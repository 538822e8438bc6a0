"""Durable generation job queue.

Each operation runs in its own unit of work. Database errors are never
swallowed: they surface as PersistenceError naming the failed operation.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from colorpage.core.timezone import utcnow
from colorpage.models.queue_job import InvalidStateTransition, QueueJob, QueueJobStatus
from colorpage.services.exceptions import JobNotFoundError, PersistenceError, ValidationError
from colorpage.services.generation.schemas import GenerationPayload
from colorpage.services.job_status import JobStatusProvider, default_status_provider

logger = structlog.get_logger()

STALE_JOB_MESSAGE = "Worker stopped before the job finished"


def validate_payload(payload: GenerationPayload | dict[str, Any]) -> GenerationPayload:
    """Coerce a payload dict into GenerationPayload.

    Raises:
        ValidationError: If the payload is malformed
    """
    if isinstance(payload, GenerationPayload):
        return payload
    try:
        return GenerationPayload.model_validate(payload)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid generation payload: {details}") from e


class JobQueue:
    """Priority + FIFO queue with exponential-backoff retries.

    State machine:
        pending → processing → completed | retrying | failed
        retrying → pending (promotion only)
    """

    def __init__(
        self,
        uow_factory,
        default_max_attempts: int = 3,
        status_provider: Optional[JobStatusProvider] = None,
    ):
        self.uow_factory = uow_factory
        self.default_max_attempts = default_max_attempts
        self.status_provider = status_provider or default_status_provider(uow_factory)

    async def enqueue(
        self,
        external_job_id: UUID,
        payload: GenerationPayload | dict[str, Any],
        owner_id: Optional[str] = None,
        priority: int = 0,
        max_attempts: Optional[int] = None,
        now: Optional[datetime] = None,
        uow=None,
    ) -> QueueJob:
        """Insert a pending row for ``external_job_id``.

        Args:
            uow: Join an existing unit of work instead of opening one

        Raises:
            ValidationError: Malformed payload, bad max_attempts, or the
                external job already has an active queue row
            PersistenceError: Database write failed
        """
        validated = validate_payload(payload)
        max_attempts = self.default_max_attempts if max_attempts is None else max_attempts
        if max_attempts < 1:
            raise ValidationError(f"max_attempts must be at least 1, got {max_attempts}")

        now = now or utcnow()
        job = QueueJob(
            external_job_id=external_job_id,
            owner_id=owner_id,
            status=QueueJobStatus.PENDING,
            priority=priority,
            attempt=0,
            max_attempts=max_attempts,
            payload=validated.model_dump(mode="json"),
            scheduled_at=now,
            created_at=now,
            updated_at=now,
        )

        try:
            if uow is not None:
                await self._insert(uow, job)
            else:
                async with await self.uow_factory() as own_uow:
                    await self._insert(own_uow, job)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to enqueue job: {e}") from e

        logger.info(
            "queue.job.enqueued",
            job_id=str(job.id),
            external_job_id=str(external_job_id),
            priority=priority,
            max_attempts=max_attempts,
        )
        return job

    async def _insert(self, uow, job: QueueJob) -> None:
        active = await uow.queue_jobs.get_active_by_external_job(job.external_job_id)
        if active is not None:
            raise ValidationError(
                f"External job {job.external_job_id} already has an active queue row "
                f"({active.status.value})"
            )
        await uow.queue_jobs.add(job)

    async def claim_next(self, now: Optional[datetime] = None) -> Optional[QueueJob]:
        """Claim the highest-priority, oldest-scheduled pending row.

        Returns:
            The claimed job, or None when nothing is claimable
        """
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                job = await uow.queue_jobs.claim_next(now)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to claim next job: {e}") from e

        if job is not None:
            logger.info(
                "queue.job.claimed",
                job_id=str(job.id),
                external_job_id=str(job.external_job_id),
                attempt=job.attempt,
                priority=job.priority,
            )
        return job

    async def claim_for_external_job(
        self, external_job_id: UUID, now: Optional[datetime] = None
    ) -> Optional[QueueJob]:
        """Claim the pending row of one specific external job, if any."""
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                job = await uow.queue_jobs.claim_by_external_job(external_job_id, now)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to claim job for {external_job_id}: {e}") from e

        if job is not None:
            logger.info(
                "queue.job.claimed",
                job_id=str(job.id),
                external_job_id=str(external_job_id),
                attempt=job.attempt,
                manual=True,
            )
        return job

    async def mark_completed(self, job_id: UUID, now: Optional[datetime] = None) -> QueueJob:
        """Move a processing row to completed.

        Raises:
            JobNotFoundError: Row does not exist
            InvalidStateTransition: Row is not processing
            PersistenceError: Database write failed
        """
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                job = await self._require(uow, job_id)
                job.mark_completed(now)
                await uow.queue_jobs.save(job)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to mark job {job_id} completed: {e}") from e

        logger.info("queue.job.completed", job_id=str(job_id), attempt=job.attempt)
        return job

    async def mark_failed(
        self, job_id: UUID, error_message: str, now: Optional[datetime] = None
    ) -> QueueJob:
        """Record a failed cycle; the row becomes retrying or, at the cap, failed.

        Raises:
            JobNotFoundError: Row does not exist
            InvalidStateTransition: Row is not processing
            PersistenceError: Database write failed
        """
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                job = await self._require(uow, job_id)
                status = job.record_failure(error_message, now)
                await uow.queue_jobs.save(job)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to mark job {job_id} failed: {e}") from e

        if status == QueueJobStatus.RETRYING:
            logger.warning(
                "queue.job.retrying",
                job_id=str(job_id),
                attempt=job.attempt,
                max_attempts=job.max_attempts,
                scheduled_at=job.scheduled_at.isoformat(),
                error=job.last_error,
            )
        else:
            logger.error(
                "queue.job.failed",
                job_id=str(job_id),
                attempt=job.attempt,
                max_attempts=job.max_attempts,
                error=job.last_error,
            )
        return job

    async def promote_retryable(self, now: Optional[datetime] = None) -> int:
        """Move retrying rows whose backoff has elapsed back to pending."""
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                promoted = await uow.queue_jobs.promote_retryable(now)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to promote retryable jobs: {e}") from e

        if promoted:
            logger.info("queue.promoted", count=promoted)
        return promoted

    async def status_of(self, external_job_id: UUID) -> str:
        """Current status of an external job (queue row first, then job record).

        Raises:
            JobNotFoundError: Neither table knows the job
        """
        status = await self.status_provider.get_status(external_job_id)
        if status is None:
            raise JobNotFoundError(f"Job {external_job_id} not found")
        return status

    async def recover_stale(
        self, older_than: timedelta, now: Optional[datetime] = None
    ) -> list[QueueJob]:
        """Fail rows stuck in processing since before ``now - older_than``.

        They go through mark_failed, so the normal retry cap applies.

        Returns:
            The recovered rows in their new state
        """
        now = now or utcnow()
        try:
            async with await self.uow_factory() as uow:
                stale = await uow.queue_jobs.get_stale_processing(now - older_than)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load stale jobs: {e}") from e

        recovered = []
        for job in stale:
            try:
                recovered.append(await self.mark_failed(job.id, STALE_JOB_MESSAGE, now))
            except InvalidStateTransition:
                # Finished by its worker between the read and the update
                logger.info("queue.stale_job_finished", job_id=str(job.id))

        if recovered:
            logger.warning("queue.stale_recovered", count=len(recovered))
        return recovered

    async def _require(self, uow, job_id: UUID) -> QueueJob:
        # Row lock: a concurrent completion cannot be overwritten by a stale copy
        job = await uow.queue_jobs.get_by_id(job_id, lock=True)
        if job is None:
            raise JobNotFoundError(f"Queue job {job_id} not found")
        return job
