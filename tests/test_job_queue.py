"""JobQueue tests.

Tests focus on queue semantics against a real database:
- Priority then FIFO claim ordering
- Exponential backoff and the attempt cap
- Promotion of due retries
- Claim exclusivity under concurrent claimers
- Status lookup across the queue and generation job tables
"""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from conftest import make_payload

from colorpage.models.generation_job import GenerationJob, GenerationJobStatus
from colorpage.models.queue_job import InvalidStateTransition, QueueJobStatus, backoff_delay
from colorpage.repositories.queue_job import QueueJobRepository
from colorpage.services.exceptions import JobNotFoundError, ValidationError
from colorpage.services.job_queue import STALE_JOB_MESSAGE, JobQueue

NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.mark.asyncio
async def test_enqueue_inserts_pending_row(queue, external_job, uow_factory):
    job = await queue.enqueue(external_job.id, make_payload(), owner_id="user-1", now=NOW)

    assert job.status == QueueJobStatus.PENDING
    assert job.attempt == 0
    assert job.max_attempts == 3
    assert job.scheduled_at == NOW
    assert job.payload["style"] == "classic"

    async with await uow_factory() as uow:
        stored = await uow.queue_jobs.get_by_id(job.id)
        assert stored is not None
        assert stored.owner_id == "user-1"
        assert stored.status == QueueJobStatus.PENDING


@pytest.mark.asyncio
async def test_enqueue_rejects_malformed_payload_without_writing(queue, external_job, uow_factory):
    with pytest.raises(ValidationError, match="difficulty"):
        await queue.enqueue(external_job.id, make_payload(difficulty=9))

    with pytest.raises(ValidationError, match="input_url"):
        await queue.enqueue(external_job.id, {"scene_description": "a picnic in the park"})

    with pytest.raises(ValidationError, match="inappropriate"):
        await queue.enqueue(external_job.id, make_payload(scene_description="holding a gun"))

    async with await uow_factory() as uow:
        assert await uow.queue_jobs.get_latest_by_external_job(external_job.id) is None


@pytest.mark.asyncio
async def test_enqueue_rejects_second_active_row(queue, external_job):
    await queue.enqueue(external_job.id, make_payload())

    with pytest.raises(ValidationError, match="active queue row"):
        await queue.enqueue(external_job.id, make_payload())


@pytest.mark.asyncio
async def test_enqueue_rejects_invalid_max_attempts(queue, external_job):
    with pytest.raises(ValidationError, match="max_attempts"):
        await queue.enqueue(external_job.id, make_payload(), max_attempts=0)


@pytest.mark.asyncio
async def test_higher_priority_is_claimed_first(queue, new_external_job):
    """Priority 5 wins over priority 0 regardless of enqueue order."""
    low_ext = await new_external_job()
    high_ext = await new_external_job()

    low = await queue.enqueue(low_ext.id, make_payload(), priority=0, now=NOW)
    high = await queue.enqueue(high_ext.id, make_payload(), priority=5, now=NOW + timedelta(seconds=5))

    first = await queue.claim_next(now=NOW + timedelta(seconds=10))
    second = await queue.claim_next(now=NOW + timedelta(seconds=11))

    assert first is not None and first.id == high.id
    assert second is not None and second.id == low.id
    assert first.status == QueueJobStatus.PROCESSING
    assert first.started_at == NOW + timedelta(seconds=10)
    assert await queue.claim_next() is None


@pytest.mark.asyncio
async def test_equal_priority_is_claimed_oldest_first(queue, new_external_job):
    older_ext = await new_external_job()
    newer_ext = await new_external_job()

    newer = await queue.enqueue(newer_ext.id, make_payload(), now=NOW + timedelta(minutes=1))
    older = await queue.enqueue(older_ext.id, make_payload(), now=NOW)

    first = await queue.claim_next(now=NOW + timedelta(minutes=2))
    second = await queue.claim_next(now=NOW + timedelta(minutes=2))

    assert first.id == older.id
    assert second.id == newer.id


@pytest.mark.asyncio
async def test_claim_next_returns_none_on_empty_queue(queue):
    assert await queue.claim_next() is None


@pytest.mark.asyncio
async def test_concurrent_claims_yield_exactly_one_winner(uow_factory, external_job):
    queue = JobQueue(uow_factory)
    await queue.enqueue(external_job.id, make_payload(), now=NOW)

    results = await asyncio.gather(*(queue.claim_next(now=NOW) for _ in range(8)))

    claimed = [job for job in results if job is not None]
    assert len(claimed) == 1
    assert claimed[0].external_job_id == external_job.id


@pytest.mark.asyncio
async def test_concurrent_claims_never_share_a_row(uow_factory, new_external_job):
    queue = JobQueue(uow_factory)
    for _ in range(5):
        ext = await new_external_job()
        await queue.enqueue(ext.id, make_payload(), now=NOW)

    results = await asyncio.gather(*(queue.claim_next(now=NOW) for _ in range(10)))

    claimed_ids = [job.id for job in results if job is not None]
    assert len(claimed_ids) == 5
    assert len(set(claimed_ids)) == 5


def test_backoff_is_exponential_in_minutes():
    assert backoff_delay(0) == timedelta(minutes=1)
    assert backoff_delay(1) == timedelta(minutes=2)
    assert backoff_delay(2) == timedelta(minutes=4)
    for attempt in range(8):
        assert backoff_delay(attempt + 1) > backoff_delay(attempt)
        assert backoff_delay(attempt + 1) == timedelta(minutes=2 ** (attempt + 1))

    with pytest.raises(ValueError):
        backoff_delay(-1)


@pytest.mark.asyncio
async def test_mark_failed_schedules_retry_with_backoff(queue, external_job):
    job = await queue.enqueue(external_job.id, make_payload(), now=NOW)
    await queue.claim_next(now=NOW)

    failed = await queue.mark_failed(job.id, "GenerationError: boom", now=NOW)

    assert failed.status == QueueJobStatus.RETRYING
    assert failed.attempt == 1
    assert failed.scheduled_at == NOW + timedelta(minutes=1)
    assert failed.last_error == "GenerationError: boom"


@pytest.mark.asyncio
async def test_terminal_cap_after_max_attempts(queue, external_job):
    """Three failures with max_attempts=3 end in failed, never a fourth attempt."""
    job = await queue.enqueue(external_job.id, make_payload(), max_attempts=3, now=NOW)
    now = NOW
    statuses = []

    for _ in range(3):
        claimed = await queue.claim_next(now=now)
        assert claimed is not None and claimed.id == job.id
        result = await queue.mark_failed(job.id, "still broken", now=now)
        statuses.append(result.status)
        now = now + timedelta(hours=1)
        await queue.promote_retryable(now=now)

    assert statuses == [QueueJobStatus.RETRYING, QueueJobStatus.RETRYING, QueueJobStatus.FAILED]
    assert result.attempt == 3
    assert result.completed_at is not None
    assert await queue.claim_next(now=now + timedelta(days=1)) is None
    assert await queue.promote_retryable(now=now + timedelta(days=1)) == 0


@pytest.mark.asyncio
async def test_max_attempts_of_one_fails_immediately(queue, external_job):
    job = await queue.enqueue(external_job.id, make_payload(), max_attempts=1, now=NOW)
    await queue.claim_next(now=NOW)

    result = await queue.mark_failed(job.id, "boom", now=NOW)

    assert result.status == QueueJobStatus.FAILED
    assert result.attempt == 1


@pytest.mark.asyncio
async def test_retrying_rows_are_not_claimable(queue, external_job):
    job = await queue.enqueue(external_job.id, make_payload(), now=NOW)
    await queue.claim_next(now=NOW)
    await queue.mark_failed(job.id, "boom", now=NOW)

    assert await queue.claim_next(now=NOW + timedelta(hours=1)) is None


@pytest.mark.asyncio
async def test_promote_retryable_only_moves_due_rows(queue, new_external_job, uow_factory):
    due_ext = await new_external_job()
    later_ext = await new_external_job()

    due = await queue.enqueue(due_ext.id, make_payload(), now=NOW)
    later = await queue.enqueue(later_ext.id, make_payload(), now=NOW)
    await queue.claim_next(now=NOW)
    await queue.claim_next(now=NOW)
    await queue.mark_failed(due.id, "boom", now=NOW - timedelta(minutes=5))
    await queue.mark_failed(later.id, "boom", now=NOW + timedelta(minutes=30))

    promoted = await queue.promote_retryable(now=NOW)

    assert promoted == 1
    async with await uow_factory() as uow:
        assert (await uow.queue_jobs.get_by_id(due.id)).status == QueueJobStatus.PENDING
        assert (await uow.queue_jobs.get_by_id(later.id)).status == QueueJobStatus.RETRYING


@pytest.mark.asyncio
async def test_mark_completed_requires_processing(queue, external_job):
    job = await queue.enqueue(external_job.id, make_payload(), now=NOW)

    with pytest.raises(InvalidStateTransition):
        await queue.mark_completed(job.id, now=NOW)

    await queue.claim_next(now=NOW)
    completed = await queue.mark_completed(job.id, now=NOW + timedelta(seconds=30))
    assert completed.status == QueueJobStatus.COMPLETED
    assert completed.completed_at == NOW + timedelta(seconds=30)

    with pytest.raises(InvalidStateTransition):
        await queue.mark_completed(job.id)
    with pytest.raises(InvalidStateTransition):
        await queue.mark_failed(job.id, "too late")


@pytest.mark.asyncio
async def test_mark_completed_unknown_job_raises(queue):
    with pytest.raises(JobNotFoundError):
        await queue.mark_completed(uuid4())
    with pytest.raises(JobNotFoundError):
        await queue.mark_failed(uuid4(), "boom")


@pytest.mark.asyncio
async def test_new_row_allowed_after_terminal_failure(queue, external_job):
    job = await queue.enqueue(external_job.id, make_payload(), max_attempts=1, now=NOW)
    await queue.claim_next(now=NOW)
    await queue.mark_failed(job.id, "boom", now=NOW)

    retry = await queue.enqueue(external_job.id, make_payload(), now=NOW + timedelta(minutes=1))

    assert retry.id != job.id
    assert await queue.status_of(external_job.id) == "pending"


@pytest.mark.asyncio
async def test_status_of_prefers_queue_row(queue, external_job):
    await queue.enqueue(external_job.id, make_payload(), now=NOW)
    assert await queue.status_of(external_job.id) == "pending"

    await queue.claim_next(now=NOW)
    assert await queue.status_of(external_job.id) == "processing"


@pytest.mark.asyncio
async def test_status_of_falls_back_to_generation_job(queue, uow_factory):
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.add(GenerationJob(status=GenerationJobStatus.COMPLETED))

    assert await queue.status_of(job.id) == "completed"


@pytest.mark.asyncio
async def test_status_of_unknown_job_raises(queue):
    with pytest.raises(JobNotFoundError):
        await queue.status_of(uuid4())


@pytest.mark.asyncio
async def test_recover_stale_routes_through_mark_failed(queue, new_external_job, uow_factory):
    stale_ext = await new_external_job()
    fresh_ext = await new_external_job()
    stale = await queue.enqueue(stale_ext.id, make_payload(), now=NOW)
    fresh = await queue.enqueue(fresh_ext.id, make_payload(), now=NOW + timedelta(seconds=1))
    await queue.claim_next(now=NOW - timedelta(hours=2))
    await queue.claim_next(now=NOW)

    recovered = await queue.recover_stale(timedelta(minutes=30), now=NOW)

    assert [job.id for job in recovered] == [stale.id]
    assert recovered[0].status == QueueJobStatus.RETRYING
    assert recovered[0].attempt == 1
    assert recovered[0].last_error == STALE_JOB_MESSAGE
    async with await uow_factory() as uow:
        assert (await uow.queue_jobs.get_by_id(fresh.id)).status == QueueJobStatus.PROCESSING


@pytest.mark.asyncio
async def test_recover_stale_leaves_row_completed_after_stale_read(
    queue, external_job, uow_factory, monkeypatch
):
    """A row completed after the stale scan read it stays completed."""
    job = await queue.enqueue(external_job.id, make_payload(), now=NOW)
    await queue.claim_next(now=NOW - timedelta(hours=2))

    async with await uow_factory() as uow:
        stale_copies = await uow.queue_jobs.get_stale_processing(NOW - timedelta(minutes=30))
    assert [row.status for row in stale_copies] == [QueueJobStatus.PROCESSING]

    await queue.mark_completed(job.id, now=NOW)

    async def stale_read(self, started_before):
        return stale_copies

    monkeypatch.setattr(QueueJobRepository, "get_stale_processing", stale_read)

    recovered = await queue.recover_stale(timedelta(minutes=30), now=NOW)

    assert recovered == []
    async with await uow_factory() as uow:
        stored = await uow.queue_jobs.get_by_id(job.id)
        assert stored.status == QueueJobStatus.COMPLETED
        assert stored.attempt == 0
        assert stored.last_error is None


@pytest.mark.asyncio
async def test_transitions_read_the_row_under_lock(queue, external_job, monkeypatch):
    locks = []
    original = QueueJobRepository.get_by_id

    async def recording_get_by_id(self, job_id, lock=False):
        locks.append(lock)
        return await original(self, job_id, lock=lock)

    monkeypatch.setattr(QueueJobRepository, "get_by_id", recording_get_by_id)

    job = await queue.enqueue(external_job.id, make_payload(), now=NOW)
    await queue.claim_next(now=NOW)
    await queue.mark_failed(job.id, "boom", now=NOW)
    await queue.promote_retryable(now=NOW + timedelta(hours=1))
    await queue.claim_next(now=NOW + timedelta(hours=1))
    await queue.mark_completed(job.id, now=NOW + timedelta(hours=1))

    assert locks[-2:] == [True, True]

