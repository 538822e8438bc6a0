"""ColoringPage repository.

Provides data access methods for persisted coloring pages.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from colorpage.models.coloring_page import ColoringPage


class ColoringPageRepository:
    """Repository for ColoringPage entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, page: ColoringPage) -> ColoringPage:
        """Persist new page to database.

        Args:
            page: ColoringPage entity to persist

        Returns:
            Persisted page with generated ID
        """
        self.session.add(page)
        await self.session.flush()
        return page

    async def get_by_id(self, page_id: UUID) -> ColoringPage | None:
        """Retrieve page by UUID."""
        result = await self.session.execute(
            select(ColoringPage).where(ColoringPage.id == page_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_owner(
        self, owner_id: str, limit: int = 50, offset: int = 0
    ) -> list[ColoringPage]:
        """Retrieve an owner's pages with pagination.

        Returns:
            List of pages ordered by created_at timestamp (newest first)
        """
        result = await self.session.execute(
            select(ColoringPage)
            .where(ColoringPage.owner_id == owner_id)  # type: ignore[arg-type]
            .order_by(ColoringPage.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def reassign_anonymous(self, image_path: str, new_path: str, owner_id: str) -> int:
        """Move an anonymous page to its new owner after a verified claim.

        Only rows that are still anonymous (owner_id IS NULL) are updated.

        Returns:
            Number of updated rows (0 or 1)
        """
        result = await self.session.execute(
            update(ColoringPage)
            .where(ColoringPage.image_path == image_path)  # type: ignore[arg-type]
            .where(ColoringPage.owner_id.is_(None))  # type: ignore[union-attr]
            .values(owner_id=owner_id, image_path=new_path)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]
