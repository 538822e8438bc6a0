"""Image generation stage: one provider call, exactly one usable image."""

import base64
import binascii
from dataclasses import dataclass
from typing import Optional

import structlog

from colorpage.services.exceptions import GenerationError
from colorpage.services.generation.openai_client import ImageClient
from colorpage.services.generation.schemas import Orientation

logger = structlog.get_logger()

ORIENTATION_SIZES = {
    Orientation.PORTRAIT: "1024x1536",
    Orientation.LANDSCAPE: "1536x1024",
    Orientation.SQUARE: "1024x1024",
}


@dataclass
class GeneratedImage:
    """A generated image as either a hosted URL or inline bytes."""

    model: str
    size: str
    quality: str
    url: Optional[str] = None
    image_bytes: Optional[bytes] = None
    revised_prompt: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0


class ImageGenerationStage:
    def __init__(self, image_client: ImageClient):
        self.image_client = image_client

    async def generate(
        self, prompt: str, orientation: Orientation = Orientation.PORTRAIT, quality: str = "high"
    ) -> GeneratedImage:
        """Generate a single image for ``prompt``.

        Raises:
            GenerationError: If the provider fails (classified, ContentPolicyError
                for policy rejections) or does not return exactly one usable image
        """
        size = ORIENTATION_SIZES[Orientation(orientation)]
        reply = await self.image_client.generate(prompt, size, quality)

        if len(reply.images) != 1:
            raise GenerationError(f"Expected exactly one image, got {len(reply.images)}")

        item = reply.images[0]
        image_bytes = None
        if item.b64_json:
            try:
                image_bytes = base64.b64decode(item.b64_json, validate=True)
            except (binascii.Error, ValueError) as e:
                raise GenerationError(f"Image payload is not valid base64: {e}") from e

        if not item.url and not image_bytes:
            raise GenerationError("Image generation returned no URL or image data")

        if item.revised_prompt:
            logger.info(
                "image.revised_prompt",
                revised_prompt=item.revised_prompt,
                prompt_length=len(prompt),
            )

        return GeneratedImage(
            model=reply.model,
            size=size,
            quality=quality,
            url=item.url,
            image_bytes=image_bytes,
            revised_prompt=item.revised_prompt,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
        )
