"""Five-stage generation pipeline driven by the worker.

analysis → prompt → image generation → storage → persistence, strictly in
sequence. Any stage error propagates unchanged to the caller.
"""

import time
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from colorpage.services.best_effort import best_effort_call
from colorpage.services.generation.cost_tracker import calculate_cost
from colorpage.services.generation.image_generation import ImageGenerationStage
from colorpage.services.generation.persistence import PersistenceStage
from colorpage.services.generation.photo_analysis import AnalysisResult, PhotoAnalysisStage
from colorpage.services.generation.pipeline_logger import PipelineLogger
from colorpage.services.generation.prompt_builder import build_prompt
from colorpage.services.generation.schemas import GenerationPayload
from colorpage.services.generation.storage import ObjectStorage, StorageStage, StoredImage


@dataclass
class PipelineResult:
    """Everything one successful run produced."""

    analysis: AnalysisResult
    prompt: str
    image_url: Optional[str]
    revised_prompt: Optional[str]
    stored: StoredImage
    page_id: UUID
    total_cost: float
    duration_ms: int
    cost_breakdown: list[dict] = field(default_factory=list)


class GenerationPipeline:
    def __init__(
        self,
        photo_source: ObjectStorage,
        analysis_stage: PhotoAnalysisStage,
        image_stage: ImageGenerationStage,
        storage_stage: StorageStage,
        persistence_stage: PersistenceStage,
        image_quality: str = "high",
    ):
        self.photo_source = photo_source
        self.analysis_stage = analysis_stage
        self.image_stage = image_stage
        self.storage_stage = storage_stage
        self.persistence_stage = persistence_stage
        self.image_quality = image_quality

    async def run(
        self, payload: GenerationPayload, owner_id: Optional[str], job_id: UUID
    ) -> PipelineResult:
        """Run all stages for one job.

        The source photo is only downloaded when no pre-computed analysis was
        supplied, since the image stage is text-to-image.

        Raises:
            ServiceError subclasses from the failing stage, or ValueError from
            prompt construction
        """
        started = time.monotonic()
        log = PipelineLogger(job_id=str(job_id))

        try:
            photo = b""
            if payload.analysis is None:
                photo = await self.photo_source.download(payload.input_url)
            log.start(payload.style.value, payload.difficulty, len(photo))

            analysis = await self.analysis_stage.analyze(photo, preset=payload.analysis)
            if analysis.model:
                vision_cost = best_effort_call(
                    "cost.vision",
                    calculate_cost,
                    analysis.model,
                    analysis.prompt_tokens,
                    analysis.completion_tokens,
                )
                if vision_cost is not None:
                    log.vision(analysis.prompt_tokens, analysis.completion_tokens, vision_cost)

            prompt = build_prompt(
                analysis.analysis, payload.scene_description, payload.style, payload.difficulty
            )

            image = await self.image_stage.generate(prompt, payload.orientation, self.image_quality)
            image_cost = best_effort_call(
                "cost.image",
                calculate_cost,
                image.model,
                image.prompt_tokens,
                image.completion_tokens,
                self.image_quality,
            )
            if image_cost is not None:
                log.image(image_cost, self.image_quality, image.prompt_tokens)

            stored = await self.storage_stage.store(image, owner_id, job_id)
            log.storage(stored.path)

            page_id = await self.persistence_stage.save_page(
                owner_id=owner_id,
                prompt=prompt,
                style=payload.style.value,
                difficulty=payload.difficulty,
                image_path=stored.path,
                analysis=analysis.analysis,
                analysis_is_fallback=analysis.using_fallback,
            )
            log.database(str(page_id))
        except Exception as e:
            log.error(str(e), e)
            raise

        log.complete()
        return PipelineResult(
            analysis=analysis,
            prompt=prompt,
            image_url=image.url,
            revised_prompt=image.revised_prompt,
            stored=stored,
            page_id=page_id,
            total_cost=log.costs.running_total,
            duration_ms=int((time.monotonic() - started) * 1000),
            cost_breakdown=log.costs.breakdown(),
        )
