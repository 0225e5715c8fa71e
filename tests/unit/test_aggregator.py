"""
Unit Tests for the Price Aggregator

Run with:
    pytest tests/unit/test_aggregator.py -v
"""

import pytest

from core.aggregator import (
    UNKNOWN_VENUE_WEIGHT,
    aggregate,
    best_price,
    calculate_price_change,
    calculate_statistics,
    find_arbitrage_opportunities,
    weighted_average,
)
from core.schemas import PriceQuote

TOKEN = "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"


def quote(source, price, liquidity=None, success=True):
    return PriceQuote(source=source, price=price, liquidity=liquidity, timestamp=1704110400000, success=success)


class TestBestPrice:
    def test_highest_liquidity_wins(self):
        best = best_price([
            quote("PancakeSwap V2", 1.0, liquidity=100),
            quote("Uniswap V3", 1.1, liquidity=500),
        ])
        assert best.source == "Uniswap V3"

    def test_failed_quotes_are_ignored(self):
        best = best_price([
            quote("PancakeSwap V2", 1.0, liquidity=10_000, success=False),
            quote("Thena", 1.2, liquidity=1),
        ])
        assert best.source == "Thena"

    def test_no_successful_quote(self):
        assert best_price([quote("Thena", 1.0, success=False)]) is None
        assert best_price([]) is None

    def test_liquidity_tie_uses_venue_priority(self):
        best = best_price([
            quote("Thena", 1.0, liquidity=100),
            quote("PancakeSwap V3", 1.1, liquidity=100),
        ])
        assert best.source == "PancakeSwap V3"

    def test_tie_between_unknown_venues_keeps_input_order(self):
        best = best_price([quote("venue-a", 1.0), quote("venue-b", 2.0)])
        assert best.source == "venue-a"

    def test_custom_priority(self):
        best = best_price(
            [quote("PancakeSwap V2", 1.0, liquidity=5), quote("Thena", 1.1, liquidity=5)],
            priority=["Thena"],
        )
        assert best.source == "Thena"


class TestWeightedAverage:
    def test_known_weights(self):
        # (1.0 * 1.0 + 2.0 * 0.9) / 1.9
        result = weighted_average([quote("PancakeSwap V2", 1.0), quote("Uniswap V2", 2.0)])
        assert result == pytest.approx(2.8 / 1.9)

    def test_unknown_venue_weight(self):
        result = weighted_average([quote("PancakeSwap V2", 1.0), quote("mystery", 3.0)])
        expected = (1.0 + 3.0 * UNKNOWN_VENUE_WEIGHT) / (1.0 + UNKNOWN_VENUE_WEIGHT)
        assert result == pytest.approx(expected)

    def test_weight_override(self):
        result = weighted_average([quote("a", 1.0), quote("b", 3.0)], weights={"a": 3.0, "b": 1.0})
        assert result == pytest.approx(1.5)

    def test_empty_is_zero(self):
        assert weighted_average([quote("a", 1.0, success=False)]) == 0.0


class TestStatistics:
    def test_odd_count(self):
        stats = calculate_statistics([quote("a", 1.0), quote("b", 3.0), quote("c", 2.0)])
        assert stats.count == 3
        assert stats.min == 1.0
        assert stats.max == 3.0
        assert stats.median == 2.0
        assert stats.variance == pytest.approx(2.0 / 3.0)
        assert stats.standard_deviation == pytest.approx((2.0 / 3.0) ** 0.5)

    def test_even_count_median(self):
        stats = calculate_statistics([quote("a", 1.0), quote("b", 2.0), quote("c", 3.0), quote("d", 4.0)])
        assert stats.median == 2.5

    def test_empty(self):
        stats = calculate_statistics([])
        assert stats.count == 0
        assert stats.standard_deviation == 0.0


class TestArbitrage:
    def test_spread_above_threshold(self):
        opportunities = find_arbitrage_opportunities([quote("A", 1.00), quote("B", 1.02)])
        assert len(opportunities) == 1
        assert opportunities[0].buy_from == "A"
        assert opportunities[0].sell_to == "B"
        assert opportunities[0].profit == pytest.approx(0.02)
        assert opportunities[0].profit_percent == pytest.approx(2.0)

    def test_small_and_equal_spreads_skipped(self):
        quotes = [quote("A", 1.0), quote("B", 1.0), quote("C", 1.0005)]
        assert find_arbitrage_opportunities(quotes) == []

    def test_sorted_by_profit(self):
        quotes = [quote("A", 1.0), quote("B", 1.05), quote("C", 1.2)]
        opportunities = find_arbitrage_opportunities(quotes)
        percents = [o.profit_percent for o in opportunities]
        assert percents == sorted(percents, reverse=True)
        assert (opportunities[0].buy_from, opportunities[0].sell_to) == ("A", "C")


class TestAggregateAndChange:
    def test_aggregate(self):
        aggregated = aggregate(
            TOKEN,
            [quote("PancakeSwap V2", 1.0, liquidity=10), quote("Thena", 1.1, success=False)],
            timestamp=1,
        )
        assert aggregated.token_address == TOKEN
        assert aggregated.best.source == "PancakeSwap V2"
        assert aggregated.weighted_average == pytest.approx(1.0)
        assert len(aggregated.quotes) == 2
        assert aggregated.timestamp == 1

    def test_price_change(self):
        change = calculate_price_change("2.00", "2.50")
        assert change["absolute"] == pytest.approx(0.5)
        assert change["percentage"] == pytest.approx(25.0)

    def test_price_change_from_zero(self):
        assert calculate_price_change(0, 5) == {"absolute": 0.0, "percentage": 0.0}
        assert calculate_price_change("x", 5) == {"absolute": 0.0, "percentage": 0.0}
