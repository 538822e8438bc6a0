"""Unified job status view over the queue table and the generation job table.

Queue rows are transient and generation jobs are permanent, so status
lookups go through a chain of providers: the first provider that knows the
job wins.
"""

from typing import Optional, Protocol, Sequence
from uuid import UUID


class JobStatusProvider(Protocol):
    async def get_status(self, external_job_id: UUID) -> Optional[str]:
        """Return the job's status, or None if this provider does not know it."""
        ...


class QueueStatusProvider:
    """Status of the newest queue row serving the job."""

    def __init__(self, uow_factory):
        self.uow_factory = uow_factory

    async def get_status(self, external_job_id: UUID) -> Optional[str]:
        async with await self.uow_factory() as uow:
            job = await uow.queue_jobs.get_latest_by_external_job(external_job_id)
            return job.status.value if job else None


class GenerationJobStatusProvider:
    """Status stored on the user-facing generation job record."""

    def __init__(self, uow_factory):
        self.uow_factory = uow_factory

    async def get_status(self, external_job_id: UUID) -> Optional[str]:
        async with await self.uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(external_job_id)
            return job.status.value if job else None


class FallbackStatusProvider:
    """Consults providers in order and returns the first non-None status."""

    def __init__(self, providers: Sequence[JobStatusProvider]):
        self.providers = list(providers)

    async def get_status(self, external_job_id: UUID) -> Optional[str]:
        for provider in self.providers:
            status = await provider.get_status(external_job_id)
            if status is not None:
                return status
        return None


def default_status_provider(uow_factory) -> FallbackStatusProvider:
    """Queue row first, then the generation job record."""
    return FallbackStatusProvider(
        [QueueStatusProvider(uow_factory), GenerationJobStatusProvider(uow_factory)]
    )
