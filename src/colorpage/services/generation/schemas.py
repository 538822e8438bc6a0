"""Generation parameters and photo-analysis models."""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from colorpage.services.generation.prompt_validator import validate_scene_description


class ColoringStyle(str, Enum):
    """Closed set of supported art styles."""

    CLASSIC = "classic"
    GHIBLI = "ghibli"
    MANDALA = "mandala"


class Orientation(str, Enum):
    """Page orientation, mapped to an image size by the generation stage."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    SQUARE = "square"


class ChildAttributes(BaseModel):
    age: str
    gender: str
    hair: str
    headwear: str = "none"
    eyewear: str = "none"
    clothing: str
    expression: str
    main_object: str = Field(default="none", alias="mainObject")

    model_config = ConfigDict(populate_by_name=True)


class Composition(BaseModel):
    pose: str
    perspective: str
    focus: str


class Suggestions(BaseModel):
    coloring_complexity: Literal["simple", "medium", "complex"] = Field(
        alias="coloringComplexity"
    )
    recommended_elements: list[str] = Field(alias="recommendedElements")

    model_config = ConfigDict(populate_by_name=True)


class PhotoAnalysis(BaseModel):
    """Structured attributes extracted from the uploaded photo.

    Accepts both snake_case and camelCase keys from the vision model.
    """

    child: ChildAttributes
    composition: Composition
    suggestions: Suggestions


FALLBACK_ANALYSIS = PhotoAnalysis(
    child=ChildAttributes(
        age="6-8 years old",
        gender="child",
        hair="shoulder-length hair",
        headwear="none",
        eyewear="none",
        clothing="colorful casual outfit with comfortable play clothes",
        expression="happy and cheerful with a genuine smile",
        main_object="none",
    ),
    composition=Composition(
        pose="standing in a natural, relaxed position",
        perspective="mid-distance shot showing full body",
        focus="centered on child with clear view of face and clothing",
    ),
    suggestions=Suggestions(
        coloring_complexity="medium",
        recommended_elements=["flowers", "butterflies", "rainbow", "clouds", "stars"],
    ),
)


class GenerationPayload(BaseModel):
    """Immutable generation parameters captured at enqueue time."""

    scene_description: str
    style: ColoringStyle = ColoringStyle.CLASSIC
    difficulty: int = Field(default=3, ge=1, le=5)
    input_url: str = Field(min_length=1)
    orientation: Orientation = Orientation.PORTRAIT
    analysis: Optional[PhotoAnalysis] = None

    @field_validator("scene_description")
    @classmethod
    def sanitize_scene(cls, v: str) -> str:
        """Reject harmful scene text and store the sanitised form."""
        return validate_scene_description(v)
