"""
Unit Tests for Symbol, Chain and Numeric Utilities

Run with:
    pytest tests/unit/test_symbols.py -v
"""

import math

import pytest

from core.utils.chains import get_chain_by_slug, get_chain_info, get_production_chains, is_supported_chain
from core.utils.numbers import to_float
from core.utils.symbols import extract_base_symbol, extract_token_address, is_valid_address
from core.utils.time import normalize_timestamp_ms

CAKE = "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"


class TestAddressValidation:
    @pytest.mark.parametrize("address", [CAKE, "0x" + "a" * 40, "0x" + "F" * 40])
    def test_valid_addresses(self, address):
        assert is_valid_address(address) is True

    @pytest.mark.parametrize("address", ["", "0x123", "0x" + "g" * 40, CAKE[2:], CAKE + "0", None])
    def test_invalid_addresses(self, address):
        assert is_valid_address(address) is False


class TestIdentifierParsing:
    """Market symbols, perp symbols and bare addresses"""

    def test_market_symbol(self):
        identifier = f"cake+{CAKE}"
        assert extract_token_address(identifier) == CAKE
        assert extract_base_symbol(identifier) == "CAKE"

    def test_perp_symbol(self):
        identifier = f"cake_PERP_{CAKE}"
        assert extract_token_address(identifier) == CAKE
        assert extract_base_symbol(identifier) == "CAKE"

    def test_bare_address_has_no_symbol(self):
        assert extract_token_address(CAKE) == CAKE
        assert extract_base_symbol(CAKE) is None

    def test_plain_symbol(self):
        assert extract_token_address("cake") is None
        assert extract_base_symbol("cake") == "CAKE"

    def test_malformed_market_symbol_has_no_address(self):
        assert extract_token_address("CAKE+0x123") is None


class TestChains:
    def test_lookup_by_id_and_slug(self):
        assert get_chain_info(56).slug == "bsc"
        assert get_chain_by_slug("BASE").id == 8453
        assert get_chain_info(None) is None
        assert is_supported_chain(999) is False

    def test_only_bsc_and_base_have_oracle_paths(self):
        assert get_chain_info(56).oracle_path == "bsc"
        assert get_chain_info(8453).oracle_path == "base"
        assert get_chain_info(1).oracle_path is None

    def test_production_chains_exclude_testnets(self):
        assert all(not chain.is_testnet for chain in get_production_chains())
        assert 11155111 not in [chain.id for chain in get_production_chains()]


class TestNumbers:
    def test_to_float(self):
        assert to_float("2.41") == 2.41
        assert to_float(3) == 3.0
        assert to_float(None) is None
        assert to_float("", 0.0) == 0.0
        assert to_float("abc", -1.0) == -1.0
        assert to_float(math.inf) is None

    def test_normalize_timestamp(self):
        assert normalize_timestamp_ms(1704110400) == 1704110400000
        assert normalize_timestamp_ms("1704110400000") == 1704110400000
        assert normalize_timestamp_ms(None, default=7) == 7
        assert normalize_timestamp_ms("bad", default=7) == 7
