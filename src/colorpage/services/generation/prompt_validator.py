"""Prompt and scene-description validation for image generation.

Scene text comes straight from users, so it is sanitised against prompt
injection before it is embedded in a generation prompt.
"""

import re

MAX_PROMPT_LENGTH = 32000
MAX_SCENE_LENGTH = 500
MIN_SCENE_LENGTH = 3

_INJECTION_PATTERNS = [
    re.compile(
        r"\b(ignore|forget|disregard|override)\s+(previous|above|earlier|all)\s+"
        r"(instructions?|prompts?|rules?|commands?)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(you\s+are\s+now|act\s+as|pretend\s+to\s+be|role\s*[-:]?\s*play)\b", re.IGNORECASE),
    re.compile(r"\b(system\s*:\s*|human\s*:\s*|assistant\s*:\s*)", re.IGNORECASE),
    re.compile(r"[\"'`“”‘’]{3,}"),
    re.compile(r"<\s*/?\s*(system|instruction|prompt|rule|override|ignore)\s*>", re.IGNORECASE),
    re.compile(r"\b(jailbreak|bypass|circumvent|workaround)\b", re.IGNORECASE),
    re.compile(r"\b(developer\s+mode|debug\s+mode|admin\s+mode)\b", re.IGNORECASE),
]

_HARMFUL_PATTERNS = [
    re.compile(r"\b(kill|murder|violence|blood|gore|death|suicide|self[-\s]?harm)\b", re.IGNORECASE),
    re.compile(r"\b(sex|sexual|nude|naked|porn|adult|explicit)\b", re.IGNORECASE),
    re.compile(r"\b(drug|alcohol|weapon|gun|knife|bomb)\b", re.IGNORECASE),
]

_BRACKET_RUNS = re.compile(r"[{}\[\]()]{3,}")
_WHITESPACE = re.compile(r"\s+")


def sanitize_scene_description(text: str) -> str:
    """Strip prompt-injection patterns and normalise whitespace.

    Output is capped at 500 characters, trimmed back to the last sentence or
    word boundary when that loses less than 50 characters.
    """
    if not text or not isinstance(text, str):
        return ""

    sanitized = _WHITESPACE.sub(" ", text.strip())
    for pattern in _INJECTION_PATTERNS:
        sanitized = pattern.sub("", sanitized)
    sanitized = _BRACKET_RUNS.sub("", sanitized)
    sanitized = _WHITESPACE.sub(" ", sanitized).strip()

    if len(sanitized) > MAX_SCENE_LENGTH:
        sanitized = sanitized[:MAX_SCENE_LENGTH].strip()
        if len(sanitized) == MAX_SCENE_LENGTH:
            cutoff = max(sanitized.rfind(".") + 1, sanitized.rfind(" "))
            if cutoff > MAX_SCENE_LENGTH - 50:
                sanitized = sanitized[:cutoff].strip()

    return sanitized


def validate_scene_description(text: str) -> str:
    """Validate a scene description and return its sanitised form.

    Raises:
        ValueError: If the text is missing, too short or long, or matches a
            harmful-content pattern
    """
    if not text or not isinstance(text, str):
        raise ValueError("Scene description is required")

    trimmed = text.strip()
    if len(trimmed) > MAX_SCENE_LENGTH:
        raise ValueError(f"Scene description is too long (max {MAX_SCENE_LENGTH} characters)")

    for pattern in _HARMFUL_PATTERNS:
        if pattern.search(trimmed):
            raise ValueError("Scene description contains inappropriate content")

    sanitized = sanitize_scene_description(trimmed)
    if len(sanitized) < MIN_SCENE_LENGTH:
        raise ValueError("Scene description is too short")

    return sanitized


def log_safe_description(text: str) -> str:
    """Sanitised scene text truncated to 100 characters for log lines."""
    sanitized = sanitize_scene_description(text)
    if len(sanitized) > 100:
        return sanitized[:97] + "..."
    return sanitized


def validate_prompt(prompt: str) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Fully built generation prompt

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        ValueError: If prompt is empty, not a string, or exceeds the model limit
    """
    if not prompt:
        raise ValueError("Prompt cannot be empty or None")

    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters (got {len(prompt)})"
        )

    return prompt
