"""ColoringPage entity - persisted result of a completed generation."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from colorpage.core.timezone import utcnow


class ColoringPage(SQLModel, table=True):
    """ColoringPage stores the prompt and storage location of a generated page."""

    __tablename__ = "coloring_pages"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: Optional[str] = Field(default=None, max_length=255, index=True)
    prompt: str
    style: str = Field(max_length=50)
    difficulty: int = Field(ge=1, le=5)
    image_path: str = Field(max_length=512, index=True)
    analysis: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    analysis_is_fallback: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
