"""Usage-based cost accounting for model invocations."""

from .accountant import (
    CostAccountant,
    CostBreakdown,
    TokenUsage,
    format_cost,
    format_tokens,
)
from .pricing import (
    DEFAULT_MODEL,
    DEFAULT_PRICING,
    PricingEntry,
    PricingTable,
    build_pricing_table,
)

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_PRICING",
    "CostAccountant",
    "CostBreakdown",
    "PricingEntry",
    "PricingTable",
    "TokenUsage",
    "build_pricing_table",
    "format_cost",
    "format_tokens",
]
