"""FileOwnership entity - authorship proof for anonymously uploaded files."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from colorpage.core.timezone import utcnow


class FileOwnership(SQLModel, table=True):
    """FileOwnership tracks an anonymous upload until an authenticated user claims it.

    Only the SHA-256 digest of the ownership nonce is stored.
    """

    __tablename__ = "file_ownerships"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    path: str = Field(max_length=512, unique=True, index=True)
    nonce_hash: str = Field(max_length=64)
    claimed_by: Optional[str] = Field(default=None, max_length=255)
    claimed_path: Optional[str] = Field(default=None, max_length=512)
    claimed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None
