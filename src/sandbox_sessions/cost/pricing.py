"""Per-model token pricing.

Rates are USD per million tokens. The table is built once at startup and
only read afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any

DEFAULT_MODEL = "claude-sonnet-4-5"


@dataclass(frozen=True)
class PricingEntry:
    """Rates for one model, in USD per million tokens."""

    input: Decimal
    output: Decimal
    cache_write: Decimal
    cache_read: Decimal

    def __post_init__(self) -> None:
        for name in ("input", "output", "cache_write", "cache_read"):
            if getattr(self, name) < 0:
                raise ValueError(f"Pricing rate {name} cannot be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingEntry":
        """Create from a config dict. Values go through str() to keep floats exact."""
        return cls(
            input=Decimal(str(data["input"])),
            output=Decimal(str(data["output"])),
            cache_write=Decimal(str(data["cache_write"])),
            cache_read=Decimal(str(data["cache_read"])),
        )


DEFAULT_PRICING: Mapping[str, PricingEntry] = MappingProxyType(
    {
        "claude-sonnet-4-5": PricingEntry(
            input=Decimal("3"),
            output=Decimal("15"),
            cache_write=Decimal("3.75"),
            cache_read=Decimal("0.30"),
        ),
        "claude-haiku-4-5": PricingEntry(
            input=Decimal("1"),
            output=Decimal("5"),
            cache_write=Decimal("1.25"),
            cache_read=Decimal("0.10"),
        ),
        "claude-opus-4-5": PricingEntry(
            input=Decimal("5"),
            output=Decimal("25"),
            cache_write=Decimal("6.25"),
            cache_read=Decimal("0.50"),
        ),
    }
)


class PricingTable:
    """Read-only model to rates lookup with a default-model fallback."""

    def __init__(
        self,
        entries: Mapping[str, PricingEntry] | None = None,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        table = dict(DEFAULT_PRICING if entries is None else entries)
        if default_model not in table:
            raise ValueError(f"Default model {default_model} has no pricing entry")
        self._entries: Mapping[str, PricingEntry] = MappingProxyType(table)
        self.default_model = default_model

    def __contains__(self, model: object) -> bool:
        return model in self._entries

    @property
    def models(self) -> list[str]:
        return sorted(self._entries)

    def get(self, model: str | None) -> PricingEntry:
        """Return rates for a model.

        Unknown models silently use the default model's rates so cost reporting
        stays available for new model ids, even if the figure is then off.
        """
        if model and model in self._entries:
            return self._entries[model]
        return self._entries[self.default_model]

    def resolve_model(self, model: str | None) -> str:
        """Return the model id whose rates get() would use."""
        if model and model in self._entries:
            return model
        return self.default_model


def build_pricing_table(
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
    default_model: str = DEFAULT_MODEL,
) -> PricingTable:
    """Build a table from the built-in rates plus configured overrides."""
    entries = dict(DEFAULT_PRICING)
    for model, rates in (overrides or {}).items():
        entries[model] = PricingEntry.from_dict(rates)
    return PricingTable(entries, default_model=default_model)
