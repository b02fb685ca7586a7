"""Model tiers and list pricing."""

from enum import Enum


class ClaudeModel(str, Enum):
    """Claude model tiers offered by the client."""

    HAIKU = "claude-haiku-4-5-20251001"
    SONNET = "claude-sonnet-4-5-20250929"
    OPUS = "claude-opus-4-6"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def input_cost_per_million(self) -> float:
        return _PRICING[self][0]

    @property
    def output_cost_per_million(self) -> float:
        return _PRICING[self][1]

    @classmethod
    def from_name(cls, name: str) -> "ClaudeModel":
        """Resolve a tier name ("haiku"), display name or model id."""
        lowered = name.strip().lower()
        for model in cls:
            if lowered in (model.name.lower(), model.value, model.display_name.lower()):
                return model
        raise ValueError(f"Unknown model: {name}")


_DISPLAY_NAMES = {
    ClaudeModel.HAIKU: "Haiku 4.5",
    ClaudeModel.SONNET: "Sonnet 4.5",
    ClaudeModel.OPUS: "Opus 4.6",
}

# (input, output) USD per million tokens
_PRICING = {
    ClaudeModel.HAIKU: (0.80, 4.00),
    ClaudeModel.SONNET: (3.00, 15.00),
    ClaudeModel.OPUS: (5.00, 25.00),
}

DEFAULT_MODEL = ClaudeModel.SONNET


def estimate_cost(model: ClaudeModel, input_tokens: int, output_tokens: int) -> float:
    """Return the USD cost of a token count at list price."""
    return (
        input_tokens / 1_000_000 * model.input_cost_per_million
        + output_tokens / 1_000_000 * model.output_cost_per_million
    )
