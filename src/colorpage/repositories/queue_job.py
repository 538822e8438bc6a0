"""QueueJob repository for the generation job queue.

Provides data access methods for QueueJob entities with atomic claim semantics.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from colorpage.models.queue_job import ACTIVE_STATUSES, QueueJob, QueueJobStatus


class QueueJobRepository:
    """Repository for QueueJob entities.

    Claims are single conditional UPDATE statements guarded by
    ``status = 'pending'``, so two workers can never both own a row. On
    PostgreSQL the candidate sub-select also uses FOR UPDATE SKIP LOCKED so
    concurrent workers move on to the next row instead of waiting.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: QueueJob) -> QueueJob:
        """Persist new queue job to database.

        Args:
            job: QueueJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def save(self, job: QueueJob) -> QueueJob:
        """Flush in-memory changes of an attached job."""
        self.session.add(job)
        await self.session.flush()
        await self.session.refresh(job)
        return job

    async def get_by_id(self, job_id: UUID, lock: bool = False) -> QueueJob | None:
        """Retrieve queue job by UUID.

        Args:
            job_id: Queue row's unique identifier
            lock: Take a row lock (SELECT ... FOR UPDATE) held until the UoW
                ends, so a status transition checks and writes the same
                committed state

        Returns:
            QueueJob if found, None otherwise
        """
        stmt = select(QueueJob).where(QueueJob.id == job_id)  # type: ignore[arg-type]
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_by_external_job(self, external_job_id: UUID) -> QueueJob | None:
        """Retrieve the non-terminal queue row serving an external job, if any."""
        result = await self.session.execute(
            select(QueueJob)
            .where(QueueJob.external_job_id == external_job_id)  # type: ignore[arg-type]
            .where(QueueJob.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest_by_external_job(self, external_job_id: UUID) -> QueueJob | None:
        """Retrieve the most recent queue row for an external job.

        A user-initiated retry after terminal failure creates a new row, so an
        external job may have several; the newest one reflects current state.
        """
        result = await self.session.execute(
            select(QueueJob)
            .where(QueueJob.external_job_id == external_job_id)  # type: ignore[arg-type]
            .order_by(QueueJob.created_at.desc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def claim_next(self, now: datetime) -> QueueJob | None:
        """Atomically claim the next pending job.

        Query explanation:
        - Candidate: WHERE status = 'pending'
          ORDER BY priority DESC, scheduled_at ASC, created_at ASC LIMIT 1
          FOR UPDATE SKIP LOCKED (ignored by SQLite)
        - UPDATE ... WHERE id = candidate AND status = 'pending'
          SET status = 'processing', started_at = now
          RETURNING id

        Args:
            now: Claim timestamp written to started_at

        Returns:
            The claimed job (status=processing), or None if nothing is claimable
        """
        candidate = aliased(QueueJob, name="candidate")
        candidate_id = (
            select(candidate.id)
            .where(candidate.status == QueueJobStatus.PENDING)  # type: ignore[arg-type]
            .order_by(
                candidate.priority.desc(),  # type: ignore[attr-defined]
                candidate.scheduled_at.asc(),  # type: ignore[attr-defined]
                candidate.created_at.asc(),  # type: ignore[attr-defined]
            )
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        return await self._claim_where(QueueJob.id == candidate_id, now)  # type: ignore[arg-type]

    async def claim_by_external_job(self, external_job_id: UUID, now: datetime) -> QueueJob | None:
        """Atomically claim the pending row serving a specific external job."""
        return await self._claim_where(
            QueueJob.external_job_id == external_job_id,  # type: ignore[arg-type]
            now,
        )

    async def _claim_where(self, criterion, now: datetime) -> QueueJob | None:
        result = await self.session.execute(
            update(QueueJob)
            .where(criterion)
            .where(QueueJob.status == QueueJobStatus.PENDING)  # type: ignore[arg-type]
            .values(status=QueueJobStatus.PROCESSING, started_at=now, updated_at=now)
            .returning(QueueJob.id)
            .execution_options(synchronize_session=False)
        )
        claimed_id = result.scalars().first()
        if claimed_id is None:
            return None
        return await self.session.get(QueueJob, claimed_id, populate_existing=True)

    async def promote_retryable(self, now: datetime) -> int:
        """Move retrying jobs whose backoff has elapsed back to pending.

        Query:
            UPDATE job_queue
            SET status = 'pending'
            WHERE status = 'retrying' AND scheduled_at <= :now

        Args:
            now: Current time

        Returns:
            Number of promoted rows
        """
        result = await self.session.execute(
            update(QueueJob)
            .where(QueueJob.status == QueueJobStatus.RETRYING)  # type: ignore[arg-type]
            .where(QueueJob.scheduled_at <= now)  # type: ignore[arg-type]
            .values(status=QueueJobStatus.PENDING, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def get_stale_processing(self, started_before: datetime) -> list[QueueJob]:
        """Retrieve jobs stuck in processing since before ``started_before``."""
        result = await self.session.execute(
            select(QueueJob)
            .where(QueueJob.status == QueueJobStatus.PROCESSING)  # type: ignore[arg-type]
            .where(QueueJob.started_at < started_before)  # type: ignore[arg-type,operator]
            .order_by(QueueJob.started_at.asc())  # type: ignore[union-attr]
        )
        return list(result.scalars().all())
