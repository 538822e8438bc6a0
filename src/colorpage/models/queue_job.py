"""QueueJob entity - durable job queue row with retry state machine."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from colorpage.core.timezone import utcnow


class QueueJobStatus(str, Enum):
    """Queue row lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


TERMINAL_STATUSES = frozenset({QueueJobStatus.COMPLETED, QueueJobStatus.FAILED})
ACTIVE_STATUSES = frozenset(
    {QueueJobStatus.PENDING, QueueJobStatus.PROCESSING, QueueJobStatus.RETRYING}
)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid queue job state transition."""

    pass


def backoff_delay(attempt: int) -> timedelta:
    """Delay before a job that failed on ``attempt`` becomes claimable again.

    Exponential: 2**attempt minutes (1, 2, 4, 8, ...).
    """
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    return timedelta(minutes=2**attempt)


class QueueJob(SQLModel, table=True):
    """QueueJob is one unit of generation work tracked through the queue states."""

    __tablename__ = "job_queue"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    external_job_id: UUID = Field(foreign_key="generation_jobs.id", index=True)
    owner_id: Optional[str] = Field(default=None, max_length=255, index=True)
    status: QueueJobStatus = Field(default=QueueJobStatus.PENDING, index=True)
    priority: int = Field(default=0)
    attempt: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    last_error: Optional[str] = Field(default=None, max_length=1000)
    scheduled_at: datetime = Field(default_factory=utcnow, index=True)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_processing(self, now: datetime) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != QueueJobStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. Job must be in pending state."
            )
        self.status = QueueJobStatus.PROCESSING
        self.started_at = now
        self.updated_at = now

    def mark_completed(self, now: datetime) -> None:
        """Transition from processing to completed.

        Raises:
            InvalidStateTransition: If current status is not processing
        """
        if self.status != QueueJobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Job must be in processing state."
            )
        self.status = QueueJobStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now

    def record_failure(self, error_message: str, now: datetime) -> QueueJobStatus:
        """Record a failed processing cycle and decide retry vs terminal failure.

        Retries while ``attempt + 1 < max_attempts``, rescheduling after
        ``backoff_delay(attempt)``. The attempt counter is bumped in the same
        transition.

        Args:
            error_message: Failure description (truncated to 1000 characters)
            now: Current time used as the backoff base

        Returns:
            The new status (retrying or failed)

        Raises:
            InvalidStateTransition: If current status is not processing
        """
        if self.status != QueueJobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot record failure from {self.status.value}. "
                "Job must be in processing state."
            )

        if self.attempt + 1 < self.max_attempts:
            self.status = QueueJobStatus.RETRYING
            self.scheduled_at = now + backoff_delay(self.attempt)
        else:
            self.status = QueueJobStatus.FAILED
            self.completed_at = now

        self.attempt += 1
        self.last_error = error_message[:1000]
        self.updated_at = now
        return self.status

    def mark_pending(self, now: datetime) -> None:
        """Transition from retrying back to pending (promotion only).

        Raises:
            InvalidStateTransition: If current status is not retrying
        """
        if self.status != QueueJobStatus.RETRYING:
            raise InvalidStateTransition(
                f"Cannot promote from {self.status.value}. Job must be in retrying state."
            )
        self.status = QueueJobStatus.PENDING
        self.updated_at = now
