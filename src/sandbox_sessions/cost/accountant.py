"""Token usage pricing."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sandbox_sessions.cost.pricing import PricingTable

TOKENS_PER_MILLION = Decimal(1_000_000)


class TokenUsage(BaseModel):
    """Token counts for one model invocation.

    Field aliases match the usage block returned by the model API, so raw
    payloads validate directly. Missing or null counts are zero.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cache_write_tokens: int = Field(default=0, ge=0, alias="cache_creation_input_tokens")
    cache_read_tokens: int = Field(default=0, ge=0, alias="cache_read_input_tokens")

    @field_validator(
        "input_tokens",
        "output_tokens",
        "cache_write_tokens",
        "cache_read_tokens",
        mode="before",
    )
    @classmethod
    def none_as_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_write_tokens
            + self.cache_read_tokens
        )

    def to_payload(self) -> dict[str, int]:
        """Serialize using the model API field names."""
        return self.model_dump(by_alias=True)


class CostAccountant:
    """Converts token usage into a USD cost. Pure, safe to share."""

    def __init__(self, pricing: PricingTable) -> None:
        self.pricing = pricing

    def price(self, usage: TokenUsage, model: str | None) -> Decimal:
        """Return the unrounded cost of one invocation.

        cost = sum(tokens / 1M * rate) over input, output, cache write and
        cache read.
        """
        rates = self.pricing.get(model)
        return (
            Decimal(usage.input_tokens) / TOKENS_PER_MILLION * rates.input
            + Decimal(usage.output_tokens) / TOKENS_PER_MILLION * rates.output
            + Decimal(usage.cache_write_tokens) / TOKENS_PER_MILLION * rates.cache_write
            + Decimal(usage.cache_read_tokens) / TOKENS_PER_MILLION * rates.cache_read
        )


@dataclass
class CostBreakdown:
    """Running totals over a set of model invocations."""

    total_cost: Decimal = Decimal(0)
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int = 0
    cache_read_tokens: int = 0
    call_count: int = 0
    by_model: dict[str, "CostBreakdown"] = field(default_factory=dict)

    def add_call(self, model: str, usage: TokenUsage, cost: Decimal) -> None:
        """Add one priced invocation, also rolling it into the per-model entry."""
        self._accumulate(usage, cost)
        self.by_model.setdefault(model, CostBreakdown())._accumulate(usage, cost)

    def _accumulate(self, usage: TokenUsage, cost: Decimal) -> None:
        self.total_cost += cost
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.cache_write_tokens += usage.cache_write_tokens
        self.cache_read_tokens += usage.cache_read_tokens
        self.call_count += 1

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_write_tokens
            + self.cache_read_tokens
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "total_cost": str(self.total_cost),
            "formatted_cost": format_cost(self.total_cost),
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_write_tokens": self.cache_write_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "total_tokens": self.total_tokens,
            "call_count": self.call_count,
            "by_model": {model: b.to_dict() for model, b in self.by_model.items()},
        }


def format_cost(cost: Decimal | float, decimals: int = 4) -> str:
    """Format a cost as a USD string, e.g. "$0.0123"."""
    return f"${Decimal(str(cost)):.{decimals}f}"


def format_tokens(tokens: int) -> str:
    """Format a token count with thousands separators, e.g. "1,234"."""
    return f"{tokens:,}"
