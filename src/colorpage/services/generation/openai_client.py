"""OpenAI clients for vision analysis and image generation with error classification."""

import base64
from dataclasses import dataclass, field
from typing import Optional, Protocol

import openai
from openai import AsyncOpenAI

from colorpage.services.exceptions import AnalysisError, ContentPolicyError, GenerationError


@dataclass
class VisionReply:
    """Raw text reply of a vision call plus token usage."""

    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class ImageData:
    """One image returned by the provider (URL or base64 payload)."""

    url: Optional[str] = None
    b64_json: Optional[str] = None
    revised_prompt: Optional[str] = None


@dataclass
class ImageReply:
    model: str
    images: list[ImageData] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0


class VisionClient(Protocol):
    async def analyze(self, image_bytes: bytes, system_prompt: str, user_prompt: str) -> VisionReply:
        ...


class ImageClient(Protocol):
    async def generate(self, prompt: str, size: str, quality: str) -> ImageReply:
        ...


def classify_error(exception: Exception) -> GenerationError:
    """Classify a provider exception into the generation error taxonomy.

    Classification rules:
        - Content policy / safety rejections → ContentPolicyError
        - Timeout errors → GenerationError ("Network timeout")
        - 429 (rate limit) → GenerationError ("Rate limit exceeded")
        - 503 (service unavailable) → GenerationError ("Service unavailable")
        - 401/403 (authentication) → GenerationError ("Authentication failed")
        - Everything else → GenerationError ("Provider error")

    The queue retries every failure up to the attempt cap, so the category
    only shapes the logged message and the user-facing text.
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if (
        getattr(exception, "code", None) == "content_policy_violation"
        or "content policy" in error_message_lower
        or "content_policy" in error_message_lower
        or "safety system" in error_message_lower
        or "moderation" in error_message_lower
    ):
        return ContentPolicyError(f"Content policy violation: {error_message}")

    if isinstance(exception, openai.APITimeoutError) or "timeout" in error_message_lower:
        return GenerationError(f"Network timeout: {error_message}")

    status = getattr(exception, "status_code", None)

    if status == 429 or "rate limit" in error_message_lower:
        return GenerationError(f"Rate limit exceeded: {error_message}")

    if status == 503 or "service unavailable" in error_message_lower:
        return GenerationError(f"Service unavailable: {error_message}")

    if status in (401, 403) or isinstance(exception, openai.AuthenticationError):
        return GenerationError(f"Authentication failed: {error_message}")

    if isinstance(exception, (openai.APIConnectionError, ConnectionError, OSError)):
        return GenerationError(f"Connection error: {error_message}")

    return GenerationError(f"Provider error: {error_message}")


def _image_mime_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class OpenAIVisionClient:
    """Vision analysis through the chat completions API."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o"):
        self.client = client
        self.model = model

    async def analyze(self, image_bytes: bytes, system_prompt: str, user_prompt: str) -> VisionReply:
        """Send the photo with a JSON-only instruction and return the raw reply.

        Raises:
            AnalysisError: If the API call fails or returns no content
        """
        encoded = base64.b64encode(image_bytes).decode("ascii")
        data_url = f"data:{_image_mime_type(image_bytes)};base64,{encoded}"

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": user_prompt},
                            {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}},
                        ],
                    },
                ],
                max_tokens=1000,
                temperature=0.3,
            )
        except openai.OpenAIError as e:
            raise AnalysisError(f"Vision request failed: {classify_error(e)}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AnalysisError("No analysis received from vision model")

        usage = response.usage
        return VisionReply(
            content=content,
            model=response.model or self.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
        )


class OpenAIImageClient:
    """Image generation through the images API (gpt-image-1 or dall-e-3)."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-image-1"):
        self.client = client
        self.model = model

    async def generate(self, prompt: str, size: str, quality: str) -> ImageReply:
        """Generate one image.

        gpt-image-1 always answers with base64 data; dall-e models are asked
        for a hosted URL.

        Raises:
            GenerationError: Classified provider failure (ContentPolicyError for
                policy rejections)
        """
        params: dict = {"model": self.model, "prompt": prompt, "size": size, "quality": quality, "n": 1}
        if self.model.startswith("dall-e"):
            params["response_format"] = "url"

        try:
            response = await self.client.images.generate(**params)
        except openai.OpenAIError as e:
            raise classify_error(e) from e

        images = [
            ImageData(url=item.url, b64_json=item.b64_json, revised_prompt=item.revised_prompt)
            for item in (response.data or [])
        ]

        usage = getattr(response, "usage", None)
        return ImageReply(
            model=self.model,
            images=images,
            prompt_tokens=getattr(usage, "input_tokens", 0) or 0,
            completion_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
