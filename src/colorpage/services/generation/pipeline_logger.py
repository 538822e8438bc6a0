"""Structured milestone logging for one pipeline run."""

import time

import structlog

from colorpage.services.best_effort import best_effort_call
from colorpage.services.generation.cost_tracker import CostCalculation, CostTracker

logger = structlog.get_logger()


class PipelineLogger:
    """Records pipeline milestones as structlog events and totals API cost.

    Every public method runs behind the best-effort boundary: a failing log
    sink can never change the outcome of the job being described.
    """

    def __init__(self, job_id: str | None = None):
        self.costs = CostTracker()
        self.started_at: float | None = None
        self.log = logger.bind(job_id=job_id) if job_id else logger

    def start(self, style: str, difficulty: int, photo_size: int) -> None:
        best_effort_call("pipeline_logger.start", self._start, style, difficulty, photo_size)

    def vision(self, prompt_tokens: int, completion_tokens: int, cost: CostCalculation) -> None:
        best_effort_call(
            "pipeline_logger.vision", self._vision, prompt_tokens, completion_tokens, cost
        )

    def image(self, cost: CostCalculation, quality: str, prompt_tokens: int = 0) -> None:
        best_effort_call("pipeline_logger.image", self._image, cost, quality, prompt_tokens)

    def storage(self, path: str) -> None:
        best_effort_call("pipeline_logger.storage", self.log.info, "pipeline.stored", path=path)

    def database(self, page_id: str) -> None:
        best_effort_call(
            "pipeline_logger.database", self.log.info, "pipeline.page_saved", page_id=page_id
        )

    def complete(self) -> None:
        best_effort_call("pipeline_logger.complete", self._complete)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        best_effort_call("pipeline_logger.error", self._error, message, exc)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def _start(self, style: str, difficulty: int, photo_size: int) -> None:
        self.started_at = time.monotonic()
        self.costs.reset()
        self.log.info(
            "pipeline.started",
            style=style,
            difficulty=difficulty,
            photo_size_mb=round(photo_size / 1024 / 1024, 2),
        )

    def _vision(self, prompt_tokens: int, completion_tokens: int, cost: CostCalculation) -> None:
        self.costs.add(cost)
        self.log.info(
            "pipeline.vision",
            model=cost.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=cost.formatted_cost,
        )

    def _image(self, cost: CostCalculation, quality: str, prompt_tokens: int) -> None:
        self.costs.add(cost)
        self.log.info(
            "pipeline.image",
            model=cost.model,
            quality=quality,
            prompt_tokens=prompt_tokens,
            flat_fee=round(cost.flat_cost, 4),
            cost=cost.formatted_cost,
        )

    def _complete(self) -> None:
        self.log.info(
            "pipeline.completed",
            duration_s=round(self.duration_seconds, 1),
            total_cost=self.costs.formatted_total,
        )
        self.log.debug("pipeline.cost_breakdown", breakdown=self.costs.breakdown())

    def _error(self, message: str, exc: BaseException | None) -> None:
        if exc is None:
            self.log.error("pipeline.failed", error=message)
        else:
            self.log.error(
                "pipeline.failed", error=message, error_type=type(exc).__name__, detail=str(exc)
            )
