"""Generation job creation: the external job record plus its queue row."""

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from colorpage.models.generation_job import GenerationJob, GenerationJobStatus
from colorpage.services.exceptions import PersistenceError
from colorpage.services.generation.prompt_validator import log_safe_description
from colorpage.services.generation.schemas import GenerationPayload
from colorpage.services.job_queue import JobQueue, validate_payload

logger = structlog.get_logger()


async def create_generation_job(
    uow_factory,
    queue: JobQueue,
    payload: GenerationPayload | dict[str, Any],
    owner_id: Optional[str] = None,
    priority: int = 0,
) -> tuple[UUID, UUID]:
    """Create a queued GenerationJob and enqueue it in one transaction.

    Returns:
        (external job id, queue row id)

    Raises:
        ValidationError: Malformed payload (nothing is written)
        PersistenceError: Database write failed
    """
    validated = validate_payload(payload)

    try:
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.add(
                GenerationJob(owner_id=owner_id, status=GenerationJobStatus.QUEUED)
            )
            queued = await queue.enqueue(
                job.id, validated, owner_id=owner_id, priority=priority, uow=uow
            )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to create generation job: {e}") from e

    logger.info(
        "generation_job.created",
        external_job_id=str(job.id),
        queue_job_id=str(queued.id),
        owner_id=owner_id,
        style=validated.style.value,
        scene=log_safe_description(validated.scene_description),
    )
    return job.id, queued.id
