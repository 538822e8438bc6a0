"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from colorpage.models.coloring_page import ColoringPage
from colorpage.models.file_ownership import FileOwnership
from colorpage.models.generation_job import GenerationJob, GenerationJobStatus
from colorpage.models.queue_job import (
    InvalidStateTransition,
    QueueJob,
    QueueJobStatus,
    backoff_delay,
)

__all__ = [
    "ColoringPage",
    "FileOwnership",
    "GenerationJob",
    "GenerationJobStatus",
    "InvalidStateTransition",
    "QueueJob",
    "QueueJobStatus",
    "backoff_delay",
]
