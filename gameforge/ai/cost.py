from __future__ import annotations

from gameforge.ai.providers.base import TokenUsage

# USD per million (input, output) tokens.
PricingTable = dict[str, tuple[float, float]]

DEFAULT_PRICING: PricingTable = {
  "gpt-4o-mini": (0.15, 0.60),
  "gpt-4o": (2.50, 10.00),
}


def estimate_cost(usage: TokenUsage, model: str, pricing_table: PricingTable | None = None) -> float:
  """Estimate the USD cost of a token usage record; unknown models cost zero."""
  pricing = pricing_table or DEFAULT_PRICING
  price_in, price_out = pricing.get(model.strip(), (0.0, 0.0))
  cost = (usage.input_tokens / 1_000_000) * price_in
  cost += (usage.output_tokens / 1_000_000) * price_out
  return round(cost, 6)
