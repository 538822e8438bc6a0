"""Photo analysis stage: vision model reply → structured PhotoAnalysis."""

import json
import re
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from colorpage.services.exceptions import VisionParseError
from colorpage.services.generation.openai_client import VisionClient
from colorpage.services.generation.schemas import FALLBACK_ANALYSIS, PhotoAnalysis

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are a professional image analysis assistant helping to create artistic coloring book illustrations.

Analyze the uploaded photograph and document the visual elements an artist needs to recreate the person as line art:

SUBJECT: estimated age range, gender presentation, hair (color, texture, length), facial expression.
ACCESSORIES: headwear and eyewear (type, shape, style), or "none".
CLOTHING: clothing type, patterns and fit.
MAIN OBJECT: the main item the person holds or interacts with, or "none".
COMPOSITION: body pose, camera perspective, main focal point.

Return your analysis as a JSON object with this exact structure:
{"child": {"age": "", "gender": "", "hair": "", "headwear": "", "eyewear": "", "clothing": "", "expression": "", "main_object": ""}, "composition": {"pose": "", "perspective": "", "focus": ""}, "suggestions": {"coloring_complexity": "simple|medium|complex", "recommended_elements": []}}

Provide ONLY the JSON object with no additional text."""

USER_PROMPT = (
    "Please analyze this photograph and provide detailed visual information for creating "
    "an artistic coloring book illustration. Focus on the physical characteristics, "
    "accessories, clothing, and composition visible in the image."
)

_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```$")


@dataclass
class AnalysisResult:
    """Outcome of the analysis stage.

    ``using_fallback`` marks the canned analysis so it is never presented as a
    real one downstream.
    """

    analysis: PhotoAnalysis
    using_fallback: bool
    model: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0


def strip_code_fences(content: str) -> str:
    """Remove a surrounding Markdown code fence (```json or ```), if any."""
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_END.sub("", _FENCE_START.sub("", cleaned))
    return cleaned


def parse_analysis(content: str) -> PhotoAnalysis:
    """Parse and validate a vision reply.

    Raises:
        VisionParseError: If the reply is not JSON or does not match the schema
    """
    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise VisionParseError(f"Vision reply is not valid JSON: {e}", raw_content=content) from e

    try:
        return PhotoAnalysis.model_validate(data)
    except PydanticValidationError as e:
        raise VisionParseError(
            f"Vision reply failed schema validation: {e.error_count()} errors", raw_content=content
        ) from e


class PhotoAnalysisStage:
    """Extracts child/composition attributes from a photo.

    Parse and schema failures degrade to FALLBACK_ANALYSIS; a failing API
    call raises AnalysisError from the client and goes through the retry path.
    """

    def __init__(self, vision_client: VisionClient):
        self.vision_client = vision_client

    async def analyze(
        self, image_bytes: bytes, preset: Optional[PhotoAnalysis] = None
    ) -> AnalysisResult:
        """Analyze the photo, or pass a pre-computed analysis straight through.

        Args:
            image_bytes: Raw photo bytes
            preset: User-supplied analysis; skips the API call when given

        Returns:
            AnalysisResult with using_fallback=True when the reply was unusable
        """
        if preset is not None:
            logger.info("analysis.preset_used")
            return AnalysisResult(analysis=preset, using_fallback=False)

        reply = await self.vision_client.analyze(image_bytes, SYSTEM_PROMPT, USER_PROMPT)

        try:
            analysis = parse_analysis(reply.content)
        except VisionParseError as e:
            logger.warning(
                "analysis.fallback_used",
                error=str(e),
                raw_content=(e.raw_content or "")[:2000],
            )
            return AnalysisResult(
                analysis=FALLBACK_ANALYSIS.model_copy(deep=True),
                using_fallback=True,
                model=reply.model,
                prompt_tokens=reply.prompt_tokens,
                completion_tokens=reply.completion_tokens,
            )

        logger.info(
            "analysis.completed",
            complexity=analysis.suggestions.coloring_complexity,
            elements=len(analysis.suggestions.recommended_elements),
        )
        return AnalysisResult(
            analysis=analysis,
            using_fallback=False,
            model=reply.model,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
        )
