"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

import pytest
from conftest import make_payload

from colorpage.models.generation_job import GenerationJob
from colorpage.models.queue_job import QueueJob


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Changes made within the context persist after it exits."""
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.add(GenerationJob(owner_id="user-1"))

    async with await uow_factory() as uow:
        found = await uow.generation_jobs.get_by_id(job.id)
        assert found is not None
        assert found.owner_id == "user-1"


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """Changes are rolled back and the exception propagates."""
    job_id = None

    with pytest.raises(RuntimeError, match="boom"):
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.add(GenerationJob())
            job_id = job.id
            raise RuntimeError("boom")

    async with await uow_factory() as uow:
        assert await uow.generation_jobs.get_by_id(job_id) is None


@pytest.mark.asyncio
async def test_uow_multiple_repositories_are_atomic(uow_factory):
    """A failure after writes to two tables leaves neither row behind."""
    with pytest.raises(ValueError):
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.add(GenerationJob())
            row = await uow.queue_jobs.add(QueueJob(external_job_id=job.id, payload=make_payload()))
            job_id, row_id = job.id, row.id
            raise ValueError("abort")

    async with await uow_factory() as uow:
        assert await uow.generation_jobs.get_by_id(job_id) is None
        assert await uow.queue_jobs.get_by_id(row_id) is None


@pytest.mark.asyncio
async def test_generation_job_status_updates(uow_factory):
    """Mirror writes keep only user-facing text and clear it on success."""
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.add(GenerationJob())

    async with await uow_factory() as uow:
        failed = await uow.generation_jobs.mark_failed(job.id, "x" * 2000)
        assert failed.status.value == "failed"
        assert len(failed.error_message) == 1000

    async with await uow_factory() as uow:
        processing = await uow.generation_jobs.mark_processing(job.id)
        assert processing.error_message is None

    async with await uow_factory() as uow:
        with pytest.raises(ValueError, match="output_url"):
            await uow.generation_jobs.mark_completed(
                job.id, output_url="", image_path="p", page_id=job.id, processing_time_ms=1
            )


@pytest.mark.asyncio
async def test_generation_jobs_listed_by_owner(uow_factory):
    async with await uow_factory() as uow:
        await uow.generation_jobs.add(GenerationJob(owner_id="user-1"))
        await uow.generation_jobs.add(GenerationJob(owner_id="user-1"))
        await uow.generation_jobs.add(GenerationJob(owner_id="user-2"))

    async with await uow_factory() as uow:
        assert len(await uow.generation_jobs.get_by_owner("user-1")) == 2
        assert len(await uow.generation_jobs.get_by_owner("user-3")) == 0
