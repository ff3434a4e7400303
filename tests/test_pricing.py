"""Tests for token pricing and currency conversion."""

import pytest

from src.billing.pricing import (
    PRICING,
    Usage,
    convert_currency,
    estimate_search_cost,
    format_minor,
    get_model_pricing,
    price_usage,
    to_minor_units,
)


class TestModelPricing:
    """Test price table lookup."""

    def test_known_model(self):
        assert get_model_pricing("gpt-4o-mini") is PRICING["gpt-4o-mini"]

    def test_unknown_model_falls_back_to_default(self):
        assert get_model_pricing("some-other-model") is PRICING["gpt-4.1"]

    def test_dated_snapshot_uses_base_prices(self):
        assert get_model_pricing("gpt-4.1-mini-2025-04-14") is PRICING["gpt-4.1-mini"]
        assert get_model_pricing("gpt-4.1-2025-04-14") is PRICING["gpt-4.1"]


class TestPriceUsage:
    """Test the usage → minor units calculation."""

    def test_zero_usage_costs_nothing(self):
        breakdown = price_usage("gpt-4.1", Usage())
        assert breakdown.cost_minor == 0
        assert breakdown.cost_native == 0

    def test_gpt41_known_values(self):
        # 10k input at $2/M + 5k output at $8/M = 0.02 + 0.04 = 0.06; x1.15 = 0.069
        breakdown = price_usage("gpt-4.1", Usage(10_000, 0, 5_000))
        assert breakdown.cost_native == pytest.approx(0.069)
        assert breakdown.cost_minor == 7

    def test_cached_tokens_billed_at_discount(self):
        full = price_usage("gpt-4.1", Usage(100_000, 0, 0), margin=1.0)
        cached = price_usage("gpt-4.1", Usage(100_000, 100_000, 0), margin=1.0)
        assert full.cost_native == pytest.approx(0.20)
        assert cached.cost_native == pytest.approx(0.05)

    def test_cached_more_than_input_is_clamped(self):
        breakdown = price_usage("gpt-4.1", Usage(1_000, 5_000, 0))
        assert breakdown.cached_tokens == 1_000

    def test_margin_is_applied(self):
        base = price_usage("gpt-4.1", Usage(1_000_000, 0, 0), margin=1.0)
        marked = price_usage("gpt-4.1", Usage(1_000_000, 0, 0), margin=1.15)
        assert base.cost_minor == 200
        assert marked.cost_minor == 230

    def test_monotonic_in_each_field(self):
        model = "gpt-4.1"
        previous = -1
        for n in range(0, 200_000, 7_919):
            cost = price_usage(model, Usage(n, 0, 1_000)).cost_minor
            assert cost >= previous
            previous = cost

        previous = -1
        for n in range(0, 200_000, 7_919):
            cost = price_usage(model, Usage(1_000, 0, n)).cost_minor
            assert cost >= previous
            previous = cost

    def test_more_cached_never_costs_more(self):
        previous = None
        for cached in range(0, 100_001, 5_000):
            cost = price_usage("gpt-4o", Usage(100_000, cached, 2_000)).cost_native
            if previous is not None:
                assert cost <= previous
            previous = cost


class TestRounding:
    """Half-up rounding to minor units."""

    def test_half_rounds_up(self):
        assert to_minor_units(0.005) == 1
        assert to_minor_units(0.015) == 2
        assert to_minor_units(0.025) == 3

    def test_below_half_rounds_down(self):
        assert to_minor_units(0.0049) == 0

    def test_convert_currency_is_separate(self):
        assert convert_currency(100, 0.92) == 92
        assert convert_currency(45, 0.92) == 41  # 41.4
        assert convert_currency(50, 0.93) == 47  # 46.5 rounds up


class TestSearchCost:
    """Flat search provider rate."""

    def test_flat_rate(self):
        assert estimate_search_cost(1_000_000, 1.0) == 100
        assert estimate_search_cost(1_500, 1.0) == 0
        assert estimate_search_cost(5_000, 1.0) == 1  # 0.5 cent rounds up

    def test_negative_tokens_cost_nothing(self):
        assert estimate_search_cost(-10) == 0


class TestUsage:
    """Usage triple arithmetic."""

    def test_field_by_field_sum(self):
        total = Usage(10, 2, 5) + Usage(20, 3, 7)
        assert total == Usage(30, 5, 12)
        assert total.total_tokens == 42

    def test_format_minor(self):
        assert format_minor(255) == "€2.55"
        assert format_minor(5, "$") == "$0.05"
