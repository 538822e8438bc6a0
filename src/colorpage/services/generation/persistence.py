"""Persistence stage: writes the completed coloring-page record."""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from colorpage.models.coloring_page import ColoringPage
from colorpage.services.exceptions import PersistenceError
from colorpage.services.generation.schemas import PhotoAnalysis

logger = structlog.get_logger()


class PersistenceStage:
    def __init__(self, uow_factory):
        self.uow_factory = uow_factory

    async def save_page(
        self,
        owner_id: Optional[str],
        prompt: str,
        style: str,
        difficulty: int,
        image_path: str,
        analysis: Optional[PhotoAnalysis] = None,
        analysis_is_fallback: bool = False,
    ) -> UUID:
        """Insert a page record and return its id.

        A fallback analysis is stored flagged so it is never mistaken for a
        real one.

        Raises:
            PersistenceError: Database write failed
        """
        page = ColoringPage(
            owner_id=owner_id,
            prompt=prompt,
            style=str(getattr(style, "value", style)),
            difficulty=difficulty,
            image_path=image_path,
            analysis=analysis.model_dump(mode="json") if analysis is not None else None,
            analysis_is_fallback=analysis_is_fallback,
        )
        try:
            async with await self.uow_factory() as uow:
                await uow.pages.add(page)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save coloring page: {e}") from e

        logger.info("page.saved", page_id=str(page.id), owner_id=owner_id)
        return page.id
