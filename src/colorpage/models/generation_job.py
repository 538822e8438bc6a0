"""GenerationJob entity - user-facing record of a coloring-page request."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from colorpage.core.timezone import utcnow


class GenerationJobStatus(str, Enum):
    """Status shown to the requester; mirrors the outcome of the queue row."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationJob(SQLModel, table=True):
    """GenerationJob is the externally visible job polled by clients.

    Its lifecycle is independent of the transient queue row: it outlives the
    queue entry and carries the output reference or a human-readable error.
    """

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: Optional[str] = Field(default=None, max_length=255, index=True)
    status: GenerationJobStatus = Field(default=GenerationJobStatus.QUEUED, index=True)
    output_url: Optional[str] = Field(default=None)
    image_path: Optional[str] = Field(default=None, max_length=512)
    page_id: Optional[UUID] = Field(default=None)
    # Issued only for anonymous outputs, proves authorship on a later claim
    claim_nonce: Optional[str] = Field(default=None, max_length=128)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    processing_time_ms: Optional[int] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
