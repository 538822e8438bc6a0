"""GenerationJob repository.

Provides data access methods for the user-facing generation job records.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from colorpage.core.timezone import utcnow
from colorpage.models.generation_job import GenerationJob, GenerationJobStatus


class GenerationJobRepository:
    """Repository for GenerationJob entities.

    Status writes are plain mirrors of the queue outcome; the record is not a
    state machine (a failed attempt may be followed by a successful retry).
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: GenerationJob) -> GenerationJob:
        """Persist new generation job to database.

        Args:
            job: GenerationJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> GenerationJob | None:
        """Retrieve generation job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_owner(
        self, owner_id: str, limit: int = 50, offset: int = 0
    ) -> list[GenerationJob]:
        """Retrieve an owner's generation jobs, newest first."""
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.owner_id == owner_id)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def mark_processing(self, job_id: UUID) -> GenerationJob:
        """Set status to processing and clear any previous attempt's error.

        Raises:
            ValueError: If the job does not exist
        """
        job = await self._require(job_id)
        job.status = GenerationJobStatus.PROCESSING
        job.error_message = None
        return await self._save(job)

    async def mark_completed(
        self,
        job_id: UUID,
        output_url: str,
        image_path: str,
        page_id: UUID,
        processing_time_ms: int,
        claim_nonce: str | None = None,
    ) -> GenerationJob:
        """Record successful completion with the output reference.

        Raises:
            ValueError: If the job does not exist or output_url is empty
        """
        if not output_url:
            raise ValueError("output_url cannot be empty")

        job = await self._require(job_id)
        job.status = GenerationJobStatus.COMPLETED
        job.output_url = output_url
        job.image_path = image_path
        job.page_id = page_id
        job.processing_time_ms = processing_time_ms
        job.claim_nonce = claim_nonce
        job.error_message = None
        return await self._save(job)

    async def mark_failed(self, job_id: UUID, error_message: str) -> GenerationJob:
        """Record failure with a user-facing message (truncated to 1000 characters).

        Raises:
            ValueError: If the job does not exist
        """
        job = await self._require(job_id)
        job.status = GenerationJobStatus.FAILED
        job.error_message = error_message[:1000]
        return await self._save(job)

    async def take_claim_nonce(self, job: GenerationJob) -> str | None:
        """Hand out an anonymous job's ownership nonce exactly once.

        The nonce is cleared with a conditional update keyed on its current
        value, so of two concurrent readers only one receives it.

        Returns:
            The nonce on the first read of an unclaimed anonymous job, None
            otherwise
        """
        nonce = job.claim_nonce
        if nonce is None or job.owner_id is not None:
            return None

        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job.id)  # type: ignore[arg-type]
            .where(GenerationJob.claim_nonce == nonce)  # type: ignore[arg-type]
            .values(claim_nonce=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:  # type: ignore[attr-defined]
            return None
        job.claim_nonce = None
        return nonce

    async def reassign_anonymous(
        self, image_path: str, new_path: str, owner_id: str, output_url: str
    ) -> int:
        """Point an anonymous job at its claimed file and new owner.

        Only rows that are still anonymous (owner_id IS NULL) are updated.

        Returns:
            Number of updated rows (0 or 1)
        """
        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.image_path == image_path)  # type: ignore[arg-type]
            .where(GenerationJob.owner_id.is_(None))  # type: ignore[union-attr]
            .values(
                owner_id=owner_id,
                image_path=new_path,
                output_url=output_url,
                claim_nonce=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def _require(self, job_id: UUID) -> GenerationJob:
        job = await self.get_by_id(job_id)
        if job is None:
            raise ValueError(f"Generation job {job_id} not found")
        return job

    async def _save(self, job: GenerationJob) -> GenerationJob:
        job.updated_at = utcnow()
        self.session.add(job)
        await self.session.flush()
        await self.session.refresh(job)
        return job
