"""Coloring-page generation worker.

Polls the job queue, drives each claimed job through the generation
pipeline, mirrors progress onto the user-facing generation job record and
reports every failure to the queue, which decides retry vs terminal failure.
"""

import asyncio
from datetime import timedelta
from typing import Optional
from uuid import UUID

import structlog

from colorpage.core.config import Settings
from colorpage.models.queue_job import QueueJob
from colorpage.services.best_effort import best_effort
from colorpage.services.exceptions import ServiceError, user_message_for
from colorpage.services.generation.pipeline import GenerationPipeline, PipelineResult
from colorpage.services.job_queue import JobQueue, validate_payload

logger = structlog.get_logger()

ERROR_BACKOFF_SECONDS = 5


class GenerationWorker:
    """Processes queued generation jobs one at a time."""

    def __init__(self, uow_factory, queue: JobQueue, pipeline: GenerationPipeline, settings: Settings):
        self.uow_factory = uow_factory
        self.queue = queue
        self.pipeline = pipeline
        self.settings = settings

    async def process_queue(self) -> int:
        """Run one polling tick.

        Promotes due retries, then claims and processes jobs until the queue
        is empty or the batch cap is reached.

        Returns:
            Number of jobs processed (succeeded or failed)
        """
        await self.queue.promote_retryable()

        processed = 0
        while processed < self.settings.worker_batch_size:
            job = await self.queue.claim_next()
            if job is None:
                break
            await self.process_job(job)
            processed += 1

        return processed

    async def process_job(self, job: QueueJob) -> bool:
        """Run the pipeline for a claimed job.

        On any exception the external record gets a human-readable message
        (best-effort) and the queue row goes through mark_failed. There is no
        partial recovery mid-pipeline.

        Returns:
            True if the job completed, False if it failed
        """
        log = logger.bind(
            job_id=str(job.id), external_job_id=str(job.external_job_id), attempt=job.attempt
        )
        log.info("worker.job_started")

        await best_effort(
            "generation_job.mark_processing", self._mirror_processing, job.external_job_id
        )

        try:
            payload = validate_payload(job.payload)
            result = await self.pipeline.run(payload, job.owner_id, job.external_job_id)
            await self._mirror_completed(job.external_job_id, result)
        except Exception as e:
            log.warning("worker.job_failed", error=str(e), error_type=type(e).__name__)
            await best_effort(
                "generation_job.mark_failed",
                self._mirror_failed,
                job.external_job_id,
                user_message_for(e),
            )
            await self.queue.mark_failed(job.id, f"{type(e).__name__}: {e}")
            return False

        await self.queue.mark_completed(job.id)
        log.info(
            "worker.job_completed",
            page_id=str(result.page_id),
            duration_ms=result.duration_ms,
            total_cost=round(result.total_cost, 6),
        )
        return True

    async def process_single_job(self, external_job_id: UUID) -> bool:
        """Claim and process the pending row of one external job.

        Returns:
            False if the job has no pending row, otherwise the process_job outcome
        """
        job = await self.queue.claim_for_external_job(external_job_id)
        if job is None:
            logger.info("worker.job_not_claimable", external_job_id=str(external_job_id))
            return False
        return await self.process_job(job)

    async def recover_stale_jobs(self) -> int:
        """Route rows abandoned in processing by a crashed worker through mark_failed."""
        recovered = await self.queue.recover_stale(
            timedelta(minutes=self.settings.stale_job_minutes)
        )
        for job in recovered:
            await best_effort(
                "generation_job.mark_failed",
                self._mirror_failed,
                job.external_job_id,
                ServiceError.user_message,
            )
        return len(recovered)

    async def _mirror_processing(self, external_job_id: UUID) -> None:
        async with await self.uow_factory() as uow:
            await uow.generation_jobs.mark_processing(external_job_id)

    async def _mirror_failed(self, external_job_id: UUID, message: str) -> None:
        async with await self.uow_factory() as uow:
            await uow.generation_jobs.mark_failed(external_job_id, message)

    async def _mirror_completed(self, external_job_id: UUID, result: PipelineResult) -> None:
        async with await self.uow_factory() as uow:
            await uow.generation_jobs.mark_completed(
                external_job_id,
                output_url=result.stored.url,
                image_path=result.stored.path,
                page_id=result.page_id,
                processing_time_ms=result.duration_ms,
                claim_nonce=result.stored.ownership_nonce,
            )


async def run_generation_worker(
    worker: GenerationWorker, poll_interval: Optional[float] = None
) -> None:
    """Main worker loop.

    Recovers stale jobs once, then runs ``process_queue`` immediately and
    every ``poll_interval`` seconds. Unexpected errors are logged and the
    loop backs off before the next tick; cancellation stops it.
    """
    interval = poll_interval if poll_interval is not None else worker.settings.poll_interval_seconds
    logger.info(
        "worker.started",
        poll_interval=interval,
        batch_size=worker.settings.worker_batch_size,
    )

    try:
        try:
            recovered = await worker.recover_stale_jobs()
            if recovered:
                logger.info("worker.recovery_completed", recovered=recovered)
        except Exception as e:
            logger.error("worker.recovery_failed", error=str(e), error_type=type(e).__name__)

        while True:
            try:
                processed = await worker.process_queue()
                if processed:
                    logger.info("worker.tick", processed=processed)
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "worker.error",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    except asyncio.CancelledError:
        logger.info("worker.stopped")
        raise


def start_worker(worker: GenerationWorker, interval_seconds: Optional[float] = None) -> asyncio.Task:
    """Start the polling loop as a background task."""
    return asyncio.create_task(
        run_generation_worker(worker, interval_seconds), name="generation-worker"
    )


async def stop_worker(task: asyncio.Task) -> None:
    """Cancel the polling loop and wait for it to finish."""
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
