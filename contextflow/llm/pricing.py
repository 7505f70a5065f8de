"""Static per-provider, per-model pricing.

Rates are USD per 1K tokens. The table is data, not code: entries from the
``pricing`` section of the configuration file are merged over the defaults.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ModelRate:
    """USD per 1K prompt tokens and per 1K completion tokens."""

    input: float
    output: float


DEFAULT_RATE = ModelRate(input=0.001, output=0.002)

DEFAULT_RATES: dict[str, dict[str, ModelRate]] = {
    "openai": {
        "gpt-4o": ModelRate(0.005, 0.015),
        "gpt-4o-mini": ModelRate(0.00015, 0.0006),
        "gpt-4.1-2025-04-14": ModelRate(0.01, 0.03),
    },
    "anthropic": {
        "claude-opus-4-20250514": ModelRate(0.015, 0.075),
        "claude-sonnet-4-20250514": ModelRate(0.003, 0.015),
        "claude-3-5-haiku-20241022": ModelRate(0.00025, 0.00125),
    },
    "xai": {
        "grok-beta": ModelRate(0.005, 0.015),
        "grok-vision-beta": ModelRate(0.01, 0.03),
    },
}


class RateTable:
    """
    Lookup table from (provider, model) to token rates.

    Example:
        table = RateTable.from_config({"openai": {"gpt-5": {"input": 0.01, "output": 0.04}}})
        table.cost("openai", "gpt-5", prompt_tokens=1000, completion_tokens=500)
    """

    def __init__(
        self,
        rates: dict[str, dict[str, ModelRate]] | None = None,
        default: ModelRate = DEFAULT_RATE,
    ):
        source = DEFAULT_RATES if rates is None else rates
        self._rates = {p: dict(models) for p, models in source.items()}
        self.default = default

    @classmethod
    def from_config(cls, overrides: dict[str, Any] | None) -> "RateTable":
        """Merge ``{provider: {model: {"input": x, "output": y}}}`` over the defaults."""
        table = cls()
        for provider, models in (overrides or {}).items():
            if provider == "default" and isinstance(models, dict) and "input" in models:
                table.default = ModelRate(float(models["input"]), float(models.get("output", 0)))
                continue
            if not isinstance(models, dict):
                continue
            for model, rate in models.items():
                if isinstance(rate, dict):
                    table.set_rate(
                        provider, model, ModelRate(float(rate["input"]), float(rate["output"]))
                    )
        return table

    def set_rate(self, provider: str, model: str, rate: ModelRate) -> None:
        self._rates.setdefault(provider.lower(), {})[model] = rate

    def rate(self, provider: str, model: str) -> ModelRate:
        """Rate for a model; unknown models get the default pair."""
        if "/" in model and not provider:
            provider, model = model.split("/", 1)
        return self._rates.get((provider or "").lower(), {}).get(model, self.default)

    def cost(self, provider: str, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        rate = self.rate(provider, model)
        return (prompt_tokens / 1000) * rate.input + (completion_tokens / 1000) * rate.output
