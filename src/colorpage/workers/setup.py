"""Process-start construction of clients, pipeline stages and the worker.

Clients are built once here and passed down explicitly; nothing below this
module reaches for a global client.
"""

from dataclasses import dataclass

import httpx
from openai import AsyncOpenAI

from colorpage.core.config import Settings
from colorpage.services.generation.image_generation import ImageGenerationStage
from colorpage.services.generation.openai_client import OpenAIImageClient, OpenAIVisionClient
from colorpage.services.generation.persistence import PersistenceStage
from colorpage.services.generation.photo_analysis import PhotoAnalysisStage
from colorpage.services.generation.pipeline import GenerationPipeline
from colorpage.services.generation.storage import StorageStage
from colorpage.services.job_queue import JobQueue
from colorpage.services.storage.supabase_client import SupabaseStorageClient
from colorpage.workers.generation_worker import GenerationWorker


@dataclass
class WorkerComponents:
    worker: GenerationWorker
    queue: JobQueue
    storage_stage: StorageStage
    storage_client: SupabaseStorageClient
    openai_client: AsyncOpenAI

    async def aclose(self) -> None:
        await self.storage_client.aclose()
        await self.openai_client.close()


def build_worker(settings: Settings, uow_factory) -> WorkerComponents:
    openai_client = AsyncOpenAI(
        api_key=settings.openai_api_key, timeout=settings.openai_timeout_seconds
    )
    storage_client = SupabaseStorageClient(
        base_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        bucket=settings.storage_bucket,
        http_client=httpx.AsyncClient(timeout=settings.http_timeout_seconds),
        timeout=settings.http_timeout_seconds,
    )

    queue = JobQueue(uow_factory, default_max_attempts=settings.default_max_attempts)
    storage_stage = StorageStage(
        storage_client, uow_factory, signed_url_ttl=settings.signed_url_ttl_seconds
    )
    pipeline = GenerationPipeline(
        photo_source=storage_client,
        analysis_stage=PhotoAnalysisStage(OpenAIVisionClient(openai_client, settings.vision_model)),
        image_stage=ImageGenerationStage(OpenAIImageClient(openai_client, settings.image_model)),
        storage_stage=storage_stage,
        persistence_stage=PersistenceStage(uow_factory),
        image_quality=settings.image_quality,
    )
    worker = GenerationWorker(uow_factory, queue, pipeline, settings)

    return WorkerComponents(
        worker=worker,
        queue=queue,
        storage_stage=storage_stage,
        storage_client=storage_client,
        openai_client=openai_client,
    )
