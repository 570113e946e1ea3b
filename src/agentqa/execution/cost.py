"""Cost calculation from token usage and model pricing.

A CostRegistry instance is passed explicitly to whoever needs pricing
(the multi-run executor, the aggregator); there is no module-level
registry. default_cost_registry() builds a fresh one from the static
table below.
"""

from __future__ import annotations

from dataclasses import dataclass

from agentqa.models.report import CostResult, TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Pricing per million tokens for a single model.

    Cache prices default to None, meaning cache tokens are billed at
    the input price.
    """

    input_per_million: float
    output_per_million: float
    cache_write_per_million: float | None = None
    cache_read_per_million: float | None = None


# Prices are in USD per million tokens.
PRICING_TABLE: dict[str, ModelPricing] = {
    # OpenAI models
    "gpt-4o": ModelPricing(input_per_million=2.50, output_per_million=10.00, cache_read_per_million=1.25),
    "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.60, cache_read_per_million=0.075),
    # Anthropic models
    "claude-sonnet-4-5": ModelPricing(
        input_per_million=3.00,
        output_per_million=15.00,
        cache_write_per_million=3.75,
        cache_read_per_million=0.30,
    ),
    "claude-haiku-4-5": ModelPricing(
        input_per_million=1.00,
        output_per_million=5.00,
        cache_write_per_million=1.25,
        cache_read_per_million=0.10,
    ),
}

# Dated model versions that share pricing with their base model.
MODEL_ALIASES: dict[str, str] = {
    "claude-sonnet-4-5-20250929": "claude-sonnet-4-5",
    "claude-haiku-4-5-20241022": "claude-haiku-4-5",
}


class CostRegistry:
    """Model pricing lookup and cost calculation."""

    def __init__(
        self,
        pricing: dict[str, ModelPricing] | None = None,
        aliases: dict[str, str] | None = None,
    ) -> None:
        self._pricing: dict[str, ModelPricing] = dict(pricing or {})
        self._aliases: dict[str, str] = dict(aliases or {})

    def register(self, model: str, pricing: ModelPricing) -> None:
        self._pricing[model] = pricing

    def register_alias(self, alias: str, model: str) -> None:
        self._aliases[alias] = model

    def resolve(self, model: str) -> str:
        return self._aliases.get(model, model)

    def has_model(self, model: str) -> bool:
        return self.resolve(model) in self._pricing

    def list_models(self) -> list[str]:
        return sorted(self._pricing)

    def get_pricing(self, model: str) -> ModelPricing | None:
        return self._pricing.get(self.resolve(model))

    def calculate_cost(self, model: str, usage: TokenUsage) -> CostResult | None:
        """Price one usage record.

        Args:
            model: Model name or alias (e.g., "gpt-4o", "claude-sonnet-4-5-20250929").
            usage: Token counts to price.

        Returns:
            CostResult in USD with each component rounded to 6 decimal
            places, or None if the model has no pricing.
        """
        pricing = self.get_pricing(model)
        if pricing is None:
            return None

        cache_write_rate = pricing.cache_write_per_million
        if cache_write_rate is None:
            cache_write_rate = pricing.input_per_million
        cache_read_rate = pricing.cache_read_per_million
        if cache_read_rate is None:
            cache_read_rate = pricing.input_per_million

        input_cost = round(usage.input_tokens / 1_000_000 * pricing.input_per_million, 6)
        output_cost = round(usage.output_tokens / 1_000_000 * pricing.output_per_million, 6)
        cache_write_cost = round((usage.cache_creation_tokens or 0) / 1_000_000 * cache_write_rate, 6)
        cache_read_cost = round((usage.cache_read_tokens or 0) / 1_000_000 * cache_read_rate, 6)

        return CostResult(
            input_cost=input_cost,
            output_cost=output_cost,
            cache_write_cost=cache_write_cost,
            cache_read_cost=cache_read_cost,
            total_cost=round(input_cost + output_cost + cache_write_cost + cache_read_cost, 6),
        )


def default_cost_registry() -> CostRegistry:
    """Build a new registry loaded with the static pricing table."""
    return CostRegistry(PRICING_TABLE, MODEL_ALIASES)
