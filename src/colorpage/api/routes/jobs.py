"""Generation job API endpoints.

- POST /api/jobs - create a generation job and enqueue it
- GET /api/jobs/{job_id}/status - current status (queue row first, then job record)
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from colorpage.api.dependencies import get_job_queue, get_optional_user_id, get_uow_factory
from colorpage.services.exceptions import JobNotFoundError, PersistenceError, ValidationError
from colorpage.services.generation.schemas import ColoringStyle, Orientation, PhotoAnalysis
from colorpage.services.job_queue import JobQueue
from colorpage.services.jobs import create_generation_job

logger = structlog.get_logger()
router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class CreateJobRequest(BaseModel):
    """Request model for creating a generation job."""

    scene_description: str = Field(..., description="Free-text scene for the page", max_length=2000)
    style: ColoringStyle = Field(default=ColoringStyle.CLASSIC)
    difficulty: int = Field(default=3, description="Detail level from 1 (simplest) to 5")
    input_url: str = Field(..., description="URL of the uploaded source photo")
    orientation: Orientation = Field(default=Orientation.PORTRAIT)
    analysis: Optional[PhotoAnalysis] = Field(
        default=None, description="User-edited analysis; skips the vision call"
    )
    priority: int = Field(default=0, ge=0, le=10)


class CreateJobResponse(BaseModel):
    job_id: UUID
    queue_job_id: UUID
    status: str = "queued"


class JobStatusResponse(BaseModel):
    job_id: UUID
    status: str
    output_url: Optional[str] = None
    image_path: Optional[str] = None
    page_id: Optional[UUID] = None
    claim_nonce: Optional[str] = None
    error_message: Optional[str] = None


@router.post("", response_model=CreateJobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(
    request: CreateJobRequest,
    owner_id: Optional[str] = Depends(get_optional_user_id),
    uow_factory=Depends(get_uow_factory),
    queue: JobQueue = Depends(get_job_queue),
) -> CreateJobResponse:
    """Create a generation job; the worker picks it up on its next tick."""
    payload = request.model_dump(exclude={"priority"}, mode="json")
    try:
        job_id, queue_job_id = await create_generation_job(
            uow_factory, queue, payload, owner_id=owner_id, priority=request.priority
        )
    except ValidationError as e:
        logger.info("jobs.create_rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except PersistenceError as e:
        logger.error("jobs.create_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.user_message
        )

    return CreateJobResponse(job_id=job_id, queue_job_id=queue_job_id)


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(
    job_id: UUID,
    uow_factory=Depends(get_uow_factory),
    queue: JobQueue = Depends(get_job_queue),
) -> JobStatusResponse:
    """Return the job's status plus its output or error, when known."""
    try:
        current = await queue.status_of(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)
        # Delivered on the first read only; later polls never see it
        nonce = await uow.generation_jobs.take_claim_nonce(job) if job else None

    if job is None:
        return JobStatusResponse(job_id=job_id, status=current)

    return JobStatusResponse(
        job_id=job_id,
        status=current,
        output_url=job.output_url,
        image_path=job.image_path,
        page_id=job.page_id,
        claim_nonce=nonce,
        error_message=job.error_message,
    )
