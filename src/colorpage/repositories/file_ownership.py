"""FileOwnership repository.

Provides data access methods for anonymous-upload ownership records.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from colorpage.models.file_ownership import FileOwnership


class FileOwnershipRepository:
    """Repository for FileOwnership entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, record: FileOwnership) -> FileOwnership:
        """Persist new ownership record to database."""
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_path(self, path: str) -> FileOwnership | None:
        """Retrieve ownership record by anonymous storage path."""
        result = await self.session.execute(
            select(FileOwnership).where(FileOwnership.path == path)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def claim(self, path: str, user_id: str, claimed_path: str, now: datetime) -> bool:
        """Mark a file as claimed if nobody claimed it yet.

        Query:
            UPDATE file_ownerships
            SET claimed_by = :user_id, claimed_path = :claimed_path, claimed_at = :now
            WHERE path = :path AND claimed_at IS NULL

        Returns:
            True if this call performed the claim, False if it was already claimed
        """
        result = await self.session.execute(
            update(FileOwnership)
            .where(FileOwnership.path == path)  # type: ignore[arg-type]
            .where(FileOwnership.claimed_at.is_(None))  # type: ignore[union-attr]
            .values(claimed_by=user_id, claimed_path=claimed_path, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]
