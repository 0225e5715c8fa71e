"""
Unit Tests for Leveraged PnL

These tests verify:
- Display-formatted inputs are parsed ("$1,000", "10x")
- Long and short PnL follow the exposure formula
- Unusable inputs give None rather than a bogus number
- Display formatting adapts precision to magnitude

Run with:
    pytest tests/unit/test_pnl.py -v
"""

import math

import pytest

from core.pnl import (
    UNAVAILABLE,
    calculate_pnl,
    format_percentage,
    format_pnl,
    format_pnl_result,
    format_price,
    parse_numeric,
    position_inputs_usable,
)


class TestParseNumeric:
    @pytest.mark.parametrize("raw, expected", [
        ("$45,000.50", 45000.5),
        ("10x", 10.0),
        ("20X", 20.0),
        (" 1 000 ", 1000.0),
        (2.5, 2.5),
    ])
    def test_parses_display_values(self, raw, expected):
        assert parse_numeric(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "$"])
    def test_unparsable_is_nan(self, raw):
        assert math.isnan(parse_numeric(raw))


class TestCalculatePnL:
    def test_long_profit(self):
        result = calculate_pnl("$100", 110.0, "$1,000", "10x", is_long=True)

        assert result is not None
        assert result.side == "long"
        assert result.unrealized_pnl == pytest.approx(1000.0)
        assert result.unrealized_pnl_percentage == pytest.approx(100.0)
        assert result.token_amount == pytest.approx(100.0)
        assert result.current_value == pytest.approx(11000.0)

    def test_short_profits_when_price_falls(self):
        result = calculate_pnl(100, 90, 1000, 10, is_long=False)

        assert result.side == "short"
        assert result.is_long is False
        assert result.unrealized_pnl == pytest.approx(1000.0)
        assert result.unrealized_pnl_percentage == pytest.approx(100.0)

    def test_long_btc_position_gains_on_rise(self):
        result = calculate_pnl(45000, 45500, 1000, 10, is_long=True)

        assert result.unrealized_pnl == pytest.approx(111.11, abs=0.01)
        assert result.unrealized_pnl_percentage == pytest.approx(11.11, abs=0.01)
        assert result.token_amount == pytest.approx(10000 / 45000)

    def test_short_btc_position_loses_on_rise(self):
        result = calculate_pnl(45000, 45500, 1000, 10, is_long=False)

        assert result.unrealized_pnl == pytest.approx(-111.11, abs=0.01)
        assert result.unrealized_pnl_percentage == pytest.approx(-11.11, abs=0.01)

    def test_long_and_short_are_symmetric(self):
        long = calculate_pnl(2.0, 2.5, 50, 3, is_long=True)
        short = calculate_pnl(2.0, 2.5, 50, 3, is_long=False)
        assert long.unrealized_pnl == pytest.approx(-short.unrealized_pnl)

    def test_liquidation_price_passes_through(self):
        result = calculate_pnl(100, 100, 10, 2, is_long=True, liquidation_price="55.5")
        assert result.liquidation_price == "55.5"
        assert result.unrealized_pnl == 0

    @pytest.mark.parametrize("entry, current, margin, leverage", [
        (0, 100, 10, 2),
        (100, 0, 10, 2),
        (100, 100, "0", 2),
        (100, 100, 10, "abc"),
        ("", 100, 10, 2),
    ])
    def test_unusable_inputs_return_none(self, entry, current, margin, leverage):
        assert calculate_pnl(entry, current, margin, leverage, is_long=True) is None

    def test_position_inputs_usable(self):
        assert position_inputs_usable("$45,000", "1000", "10x") is True
        assert position_inputs_usable(45000, 0, 10) is False
        assert position_inputs_usable("abc", 1000, 10) is False


class TestFormatting:
    def test_format_price_precision(self):
        assert format_price(0.0005) == "$0.000500000000"
        assert format_price(0.5) == "$0.50000000"
        assert format_price(2.41) == "$2.410000"
        assert format_price(None) == UNAVAILABLE

    def test_format_pnl_sign_and_precision(self):
        assert format_pnl(-12.5) == "-$12.50"
        assert format_pnl(5) == "+$5.0000"
        assert format_pnl(0.5) == "+$0.500000"
        assert format_pnl(math.nan) == UNAVAILABLE

    def test_format_percentage(self):
        assert format_percentage(0.5) == "+0.5000%"
        assert format_percentage(-25) == "-25.00%"

    def test_format_missing_result(self):
        display = format_pnl_result(None)
        assert display.current_price == UNAVAILABLE
        assert display.unrealized_pnl_percentage == UNAVAILABLE

    def test_format_result(self):
        display = format_pnl_result(calculate_pnl(100, 110, 1000, 10, is_long=True))
        assert display.entry_price == "$100.000000"
        assert display.unrealized_pnl == "+$1000.00"
        assert display.unrealized_pnl_percentage == "+100.00%"
