"""Deterministic prompt composition for coloring-page generation."""

from dataclasses import dataclass
from typing import assert_never

from colorpage.services.generation.prompt_validator import (
    sanitize_scene_description,
    validate_prompt,
)
from colorpage.services.generation.schemas import ColoringStyle, PhotoAnalysis

CLOSING_DIRECTIVE = "pure black lines on white background, no shading, gradients or gray areas"


@dataclass(frozen=True)
class StyleClauses:
    art_style: str
    characteristics: str
    line_weight: str


def style_clauses(style: ColoringStyle) -> StyleClauses:
    match style:
        case ColoringStyle.CLASSIC:
            return StyleClauses(
                art_style="classic cartoon coloring book style",
                characteristics="clean bold outlines, simple shapes, clear distinct sections",
                line_weight="thick black outlines perfect for coloring",
            )
        case ColoringStyle.GHIBLI:
            return StyleClauses(
                art_style="Studio Ghibli inspired coloring book style",
                characteristics=(
                    "beautiful detailed illustrations, organic flowing lines, magical elements"
                ),
                line_weight="varied line weights with intricate details",
            )
        case ColoringStyle.MANDALA:
            return StyleClauses(
                art_style="mandala and pattern coloring book style",
                characteristics=(
                    "intricate geometric patterns, symmetrical designs, decorative elements"
                ),
                line_weight="fine detailed lines with pattern work",
            )
        case _:
            assert_never(style)


def difficulty_clause(difficulty: int) -> str:
    """Complexity clause for difficulty levels 1-5.

    Raises:
        ValueError: If difficulty is outside 1-5
    """
    match difficulty:
        case 1:
            return "very simple, thick lines, minimal details, perfect for toddlers"
        case 2:
            return "simple, clear shapes, basic details, good for young children"
        case 3:
            return "moderate detail, balanced complexity, suitable for school-age children"
        case 4:
            return "detailed with intricate elements, challenging but achievable"
        case 5:
            return "highly detailed, complex patterns, suitable for older children and adults"
        case _:
            raise ValueError(f"difficulty must be between 1 and 5, got {difficulty}")


def _optional(label: str, value: str) -> str | None:
    if not value or value.strip().lower() in ("none", "n/a", "no"):
        return None
    return f"- {label}: {value}"


def build_prompt(
    analysis: PhotoAnalysis, scene: str, style: ColoringStyle, difficulty: int
) -> str:
    """Compose the final image prompt.

    Scene-first, character-constrained: the user's scene drives composition
    while the child stays recognizable. No I/O and no randomness, so equal
    inputs always produce the same string.

    Raises:
        ValueError: On unknown difficulty or if the prompt exceeds the model limit
    """
    style = ColoringStyle(style)
    clauses = style_clauses(style)
    complexity = difficulty_clause(difficulty)
    scene_text = sanitize_scene_description(scene)

    child = analysis.child
    elements = ", ".join(analysis.suggestions.recommended_elements)
    detail_rule = (
        "Include intricate details and patterns"
        if difficulty >= 4
        else "Keep details simple and clear"
    )

    character_lines = [
        f"- The main character must be recognizable as: {child.age} {child.gender} with {child.hair}",
        _optional("Headwear to preserve", child.headwear),
        _optional("Eyewear to preserve", child.eyewear),
        f"- Key clothing to maintain: {child.clothing}",
        f"- Facial expression should adapt to the scene while showing: {child.expression}",
        f"- Pose reference: {analysis.composition.pose}",
        _optional("Holding or interacting with", child.main_object),
    ]

    sections = [
        f"Create a black-and-white {clauses.art_style} coloring page illustration "
        f"featuring this scene: {scene_text}",
        "",
        "PRIMARY SCENE REQUIREMENTS:",
        f"- The main focus should be the adventure: {scene_text}",
        "- Transform the setting, pose, and action to match this scenario",
        f"- Include these scene-relevant elements: {elements}",
        "",
        "CHARACTER FIDELITY CONSTRAINTS:",
        *[line for line in character_lines if line is not None],
        "",
        "ARTISTIC STYLE:",
        f"- {clauses.characteristics}",
        f"- {clauses.line_weight}",
        f"- Complexity level: {complexity}",
        "",
        "TECHNICAL SPECIFICATIONS:",
        f"- {detail_rule}",
        "- Ensure all lines connect properly for clean coloring sections",
        "- Leave appropriate white space for coloring",
        "",
        f"Complexity: Level {difficulty}/5 - {analysis.suggestions.coloring_complexity}",
        f"Final requirement: {CLOSING_DIRECTIVE}.",
    ]

    return validate_prompt("\n".join(sections))
