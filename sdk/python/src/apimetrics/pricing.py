"""
Token Cost Tables
=================
Per-1M-token prices for OpenAI and Anthropic models.

Prices can be overridden or extended with a YAML file pointed to by
``APIMETRICS_PRICING_PATH``::

    openai:
      gpt-4o:
        input_per_1m: 2.50
        output_per_1m: 10.00
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Prices for one model, in USD per 1M tokens."""

    provider: str
    model: str
    input_per_1m: Decimal
    output_per_1m: Decimal


@dataclass(frozen=True)
class CostCalculation:
    """Cost of a single call."""

    input_cost: Decimal
    output_cost: Decimal
    total_cost: Decimal
    currency: str = "USD"


ZERO_COST = CostCalculation(Decimal("0"), Decimal("0"), Decimal("0"))

# As of Jan 2025
DEFAULT_PRICING: dict[str, dict[str, tuple[str, str]]] = {
    "openai": {
        "gpt-4o": ("2.50", "10.00"),
        "gpt-4o-mini": ("0.15", "0.60"),
        "gpt-4-turbo": ("10.00", "30.00"),
        "gpt-3.5-turbo": ("0.50", "1.50"),
    },
    "anthropic": {
        "claude-opus-4": ("15.00", "75.00"),
        "claude-sonnet-4": ("3.00", "15.00"),
        "claude-sonnet-3.5": ("3.00", "15.00"),
        "claude-haiku-3.5": ("0.80", "4.00"),
    },
}


class PricingTable:
    """
    Model price lookup.

    Built-in prices are loaded first, then any YAML overrides on top.
    """

    def __init__(self, overrides_path: Optional[str] = None):
        self.overrides_path = overrides_path or os.getenv("APIMETRICS_PRICING_PATH")
        self._prices: dict[str, dict[str, ModelPricing]] = {}
        self._load()

    def _load(self) -> None:
        self._prices = {
            provider: {
                model: ModelPricing(provider, model, Decimal(inp), Decimal(out))
                for model, (inp, out) in models.items()
            }
            for provider, models in DEFAULT_PRICING.items()
        }
        if self.overrides_path:
            self._apply_overrides(Path(self.overrides_path))

    def _apply_overrides(self, path: Path) -> None:
        if not path.exists():
            logger.warning("Pricing overrides not found, using defaults: %s", path)
            return

        try:
            with open(path) as f:
                data: dict[str, Any] = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load pricing overrides from %s: %s", path, e)
            return

        for provider, models in data.items():
            for model, prices in (models or {}).items():
                self._prices.setdefault(provider, {})[model] = ModelPricing(
                    provider=provider,
                    model=model,
                    input_per_1m=Decimal(str(prices.get("input_per_1m", 0))),
                    output_per_1m=Decimal(str(prices.get("output_per_1m", 0))),
                )
        logger.info("Loaded pricing overrides from %s", path)

    def reload(self) -> None:
        """Reload built-in prices and overrides."""
        self._load()

    def get_model_pricing(self, provider: str, model: str) -> Optional[ModelPricing]:
        """
        Find the prices for a model.

        Dated variants (``gpt-4o-2024-08-06``) resolve to the longest known
        model name they start with. Returns None for unknown models.
        """
        models = self._prices.get(provider.lower(), {})
        if model in models:
            return models[model]

        prefixes = [name for name in models if model.startswith(f"{name}-")]
        if prefixes:
            return models[max(prefixes, key=len)]
        return None

    def calculate_cost(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
    ) -> CostCalculation:
        """
        Calculate the cost of a call. Unknown models cost nothing.
        """
        pricing = self.get_model_pricing(provider, model)
        if pricing is None:
            return ZERO_COST

        input_cost = Decimal(input_tokens) / ONE_MILLION * pricing.input_per_1m
        output_cost = Decimal(output_tokens) / ONE_MILLION * pricing.output_per_1m
        return CostCalculation(input_cost, output_cost, input_cost + output_cost)

    def get_supported_models(self) -> list[ModelPricing]:
        return [
            pricing
            for provider in sorted(self._prices)
            for pricing in sorted(self._prices[provider].values(), key=lambda p: p.model)
        ]


@lru_cache
def get_pricing_table() -> PricingTable:
    """Get cached pricing table instance."""
    return PricingTable()


def calculate_cost(
    provider: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> CostCalculation:
    """Calculate the cost of a call with the shared pricing table."""
    return get_pricing_table().calculate_cost(provider, model, input_tokens, output_tokens)


def get_supported_models() -> list[ModelPricing]:
    """All models with known prices."""
    return get_pricing_table().get_supported_models()
