"""OpenAI API cost accounting.

Prices are dollars per token. Image models additionally carry a flat
per-image fee that depends on the requested quality tier.
"""

from dataclasses import dataclass, field

PRICING: dict[str, dict[str, float]] = {
    "gpt-4o": {"in": 0.000005, "out": 0.000020},
    "gpt-4o-2024-08-06": {"in": 0.000005, "out": 0.000020},
    "gpt-image-1": {"in": 0.000005, "out": 0.000040},
    "gpt-image-1-2025-04-23": {"in": 0.000005, "out": 0.000040},
    # dall-e-3 bills per image only
    "dall-e-3": {"in": 0.0, "out": 0.0},
}

IMAGE_FEES: dict[str, float] = {
    "low": 0.01,
    "medium": 0.04,
    "high": 0.17,
    "standard": 0.04,
    "hd": 0.17,
}

DALLE3_FEES: dict[str, float] = {
    "standard": 0.04,
    "hd": 0.08,
}


@dataclass(frozen=True)
class CostCalculation:
    """Cost of a single external API call."""

    model: str
    token_cost: float
    flat_cost: float
    total_cost: float
    formatted_cost: str


def _flat_fee(model: str, image_quality: str) -> float:
    if "gpt-image-1" in model:
        if image_quality not in IMAGE_FEES:
            raise ValueError(f"Unknown image quality: {image_quality}")
        return IMAGE_FEES[image_quality]
    if model == "dall-e-3":
        return DALLE3_FEES.get(image_quality, DALLE3_FEES["standard"])
    return 0.0


def calculate_cost(
    model: str, prompt: int, completion: int = 0, image_quality: str = "high"
) -> CostCalculation:
    """Calculate the cost of one API call.

    Args:
        model: Model identifier (must be in PRICING)
        prompt: Input token count
        completion: Output token count
        image_quality: Quality tier for image models

    Returns:
        Immutable cost breakdown

    Raises:
        ValueError: If the model is not in the price table
    """
    pricing = PRICING.get(model)
    if pricing is None:
        raise ValueError(f"Unknown model for cost calculation: {model}")

    token_cost = prompt * pricing["in"] + completion * pricing["out"]
    flat_cost = _flat_fee(model, image_quality)
    total_cost = token_cost + flat_cost

    return CostCalculation(
        model=model,
        token_cost=token_cost,
        flat_cost=flat_cost,
        total_cost=total_cost,
        formatted_cost=f"${total_cost:.4f}",
    )


@dataclass
class CostTracker:
    """Accumulates the cost of every API call made for one job."""

    running_total: float = 0.0
    costs: list[CostCalculation] = field(default_factory=list)

    def add(self, calculation: CostCalculation) -> None:
        self.running_total += calculation.total_cost
        self.costs.append(calculation)

    @property
    def formatted_total(self) -> str:
        return f"${self.running_total:.4f}"

    def breakdown(self) -> list[dict[str, float | str]]:
        """Per-call costs in call order, as plain dicts for logging."""
        return [
            {"model": c.model, "total_cost": c.total_cost, "formatted_cost": c.formatted_cost}
            for c in self.costs
        ]

    def reset(self) -> None:
        self.running_total = 0.0
        self.costs = []
