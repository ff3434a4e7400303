"""
Token pricing for Reco.

Turns a normalized usage triple into an integer amount of minor currency
units (USD cents). Everything here is pure: no I/O, no clocks, no config
lookups beyond the arguments passed in.

Rounding rule: half-up to the nearest minor unit (0.5 cent rounds to 1 cent).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from src.constants import DEFAULT_MARGIN_MULTIPLIER, DEFAULT_MODEL, SEARCH_PRICE_PER_MTOK_USD

# USD per token, from the provider's published per-million rates
PRICING: dict[str, dict[str, float]] = {
    "gpt-4.1": {
        "input_per_token": 2.00 / 1_000_000,
        "cached_input_per_token": 0.50 / 1_000_000,
        "output_per_token": 8.00 / 1_000_000,
    },
    "gpt-4.1-mini": {
        "input_per_token": 0.40 / 1_000_000,
        "cached_input_per_token": 0.10 / 1_000_000,
        "output_per_token": 1.60 / 1_000_000,
    },
    "gpt-4.1-nano": {
        "input_per_token": 0.10 / 1_000_000,
        "cached_input_per_token": 0.025 / 1_000_000,
        "output_per_token": 0.40 / 1_000_000,
    },
    "gpt-4o": {
        "input_per_token": 2.50 / 1_000_000,
        "cached_input_per_token": 1.25 / 1_000_000,
        "output_per_token": 10.00 / 1_000_000,
    },
    "gpt-4o-mini": {
        "input_per_token": 0.15 / 1_000_000,
        "cached_input_per_token": 0.075 / 1_000_000,
        "output_per_token": 0.60 / 1_000_000,
    },
}

MINOR_UNITS_PER_MAJOR = 100


@dataclass(frozen=True)
class Usage:
    """Token usage of one or more completion calls, normalized across API shapes."""

    input_tokens: int = 0
    cached_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            cached_tokens=self.cached_tokens + other.cached_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CostBreakdown:
    """Derived cost of a usage triple. Never persisted; only cost_minor is debited."""

    model: str
    input_tokens: int
    cached_tokens: int
    output_tokens: int
    cost_native: float
    cost_minor: int


def get_model_pricing(model: str) -> dict[str, float]:
    """Price row for a model, falling back to the default model's prices."""
    if model in PRICING:
        return PRICING[model]
    # Dated snapshots ("gpt-4.1-2025-04-14") share the base model's prices
    for name in sorted(PRICING, key=len, reverse=True):
        if model.startswith(f"{name}-"):
            return PRICING[name]
    return PRICING[DEFAULT_MODEL]


def price_usage(
    model: str,
    usage: Usage,
    margin: float = DEFAULT_MARGIN_MULTIPLIER,
) -> CostBreakdown:
    """
    Price a usage triple for the given model.

    Cached tokens are a subset of input tokens: they are billed at the
    cached rate and the remainder at the full input rate. Output tokens
    are billed at the output rate. The margin multiplier is applied to
    the raw provider cost before rounding to minor units.
    """
    pricing = get_model_pricing(model)

    input_tokens = max(0, usage.input_tokens)
    cached_tokens = min(max(0, usage.cached_tokens), input_tokens)
    output_tokens = max(0, usage.output_tokens)
    billable_input = max(0, input_tokens - cached_tokens)

    raw = (
        billable_input * pricing["input_per_token"]
        + cached_tokens * pricing["cached_input_per_token"]
        + output_tokens * pricing["output_per_token"]
    )
    with_margin = raw * margin

    return CostBreakdown(
        model=model,
        input_tokens=input_tokens,
        cached_tokens=cached_tokens,
        output_tokens=output_tokens,
        cost_native=with_margin,
        cost_minor=to_minor_units(with_margin),
    )


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount (dollars) to integer minor units, rounding half-up."""
    minor = Decimal(repr(amount)) * MINOR_UNITS_PER_MAJOR
    return int(minor.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def convert_currency(amount_minor: int, rate: float) -> int:
    """Convert minor units between currencies (e.g. USD cents to EUR cents)."""
    converted = Decimal(amount_minor) * Decimal(repr(rate))
    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def estimate_search_cost(
    total_tokens: int,
    price_per_mtok_usd: float = SEARCH_PRICE_PER_MTOK_USD,
) -> int:
    """Flat per-token search provider rate, in minor units. Independent of PRICING."""
    return to_minor_units(max(0, total_tokens) / 1_000_000 * price_per_mtok_usd)


def format_minor(amount_minor: int, symbol: str = "€") -> str:
    """Render minor units for display: 255 -> '€2.55'."""
    return f"{symbol}{amount_minor / MINOR_UNITS_PER_MAJOR:.2f}"
