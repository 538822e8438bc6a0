"""Repository layer for the colorpage backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from colorpage.repositories.coloring_page import ColoringPageRepository
from colorpage.repositories.file_ownership import FileOwnershipRepository
from colorpage.repositories.generation_job import GenerationJobRepository
from colorpage.repositories.queue_job import QueueJobRepository

__all__ = [
    "ColoringPageRepository",
    "FileOwnershipRepository",
    "GenerationJobRepository",
    "QueueJobRepository",
]
