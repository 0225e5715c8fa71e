"""
Unit Tests for the DexScreener API Client and Source

Run with:
    pytest tests/unit/test_dexscreener_api_client.py -v
"""

import pytest
import pytest_asyncio

from core.errors import UpstreamDataError, ValidationError
from core.schemas import RequestResult, TokenMetadata
from sources.dexscreener import DexScreenerSource
from sources.dexscreener.api_client import DexScreenerAPIClient, decode_pair, select_best_pair

CAKE = "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"
WBNB = "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"
PAIR_V2 = "0x0eD7e52944161450477ee417DE9Cd3a859b14fD0"
PAIR_V3 = "0x133B3D95bAD5405d14d53473671200e9342896BF"


def pair(pair_address, price_usd, liquidity, chain="bsc", base=CAKE, symbol="Cake", dex="pancakeswap"):
    return {
        "chainId": chain,
        "dexId": dex,
        "pairAddress": pair_address,
        "baseToken": {"address": base, "name": "PancakeSwap Token", "symbol": symbol},
        "quoteToken": {"address": WBNB, "name": "Wrapped BNB", "symbol": "WBNB"},
        "priceNative": "0.0041",
        "priceUsd": price_usd,
        "volume": {"h24": 50000},
        "priceChange": {"h24": -1.2},
        "liquidity": {"usd": liquidity},
        "info": {"imageUrl": "https://img.test/cake.png"},
    }


def ok(data):
    return RequestResult(success=True, data=data, status=200)


# ============================================
# Fixtures
# ============================================

@pytest_asyncio.fixture
async def api_client():
    """Create a DexScreenerAPIClient instance for testing"""
    async with DexScreenerAPIClient(base_url="http://dexscreener.test", retry_delay=0) as client:
        yield client


# ============================================
# Decoders
# ============================================

class TestDecoders:
    def test_decode_pair(self):
        decoded = decode_pair(pair(PAIR_V2, "2.41", 1250000))

        assert decoded.pair_address == PAIR_V2
        assert decoded.chain_id == "bsc"
        assert decoded.base_token_symbol == "Cake"
        assert decoded.price_usd == 2.41
        assert decoded.liquidity_usd == 1250000
        assert decoded.price_change_24h == -1.2
        assert decoded.image_url == "https://img.test/cake.png"

    def test_pair_without_base_token_is_rejected(self):
        item = pair(PAIR_V2, "2.41", 1)
        del item["baseToken"]
        with pytest.raises(UpstreamDataError):
            decode_pair(item)

    def test_select_best_pair_prefers_liquidity_and_skips_unpriced(self):
        pairs = [
            decode_pair(pair(PAIR_V2, "2.40", 100)),
            decode_pair(pair(PAIR_V3, None, 10_000_000)),
            decode_pair(pair(WBNB, "2.42", 900)),
        ]
        assert select_best_pair(pairs).pair_address == WBNB

    def test_quote_from_pair(self):
        quote = decode_pair(pair(PAIR_V2, "2.41", 100)).to_quote()
        assert quote.source == "dexscreener:pancakeswap"
        assert quote.success is True
        assert quote.price == 2.41


# ============================================
# Client
# ============================================

class TestClientEndpoints:
    @pytest.mark.asyncio
    async def test_get_token_pairs(self, api_client, monkeypatch):
        calls = []

        async def mock_request(endpoint, params=None):
            calls.append(endpoint)
            return ok({"pairs": [pair(PAIR_V2, "2.41", 100)]})

        monkeypatch.setattr(api_client, "_request", mock_request)

        result = await api_client.get_token_pairs(CAKE)

        assert calls == [f"/dex/tokens/{CAKE}"]
        assert len(result.data) == 1

    @pytest.mark.asyncio
    async def test_null_pairs_means_empty(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"schemaVersion": "1.0.0", "pairs": None})

        monkeypatch.setattr(api_client, "_request", mock_request)

        result = await api_client.get_token_pairs(CAKE)
        assert result.data == []

    @pytest.mark.asyncio
    async def test_validation(self, api_client):
        with pytest.raises(ValidationError):
            await api_client.get_token_pairs("0x123")
        with pytest.raises(ValidationError):
            await api_client.search_pairs("   ")

    @pytest.mark.asyncio
    async def test_best_pair_only_counts_token_as_base_on_chain(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"pairs": [
                pair(PAIR_V2, "2.40", 1000),
                pair(PAIR_V3, "2.45", 5000, chain="ethereum"),
                pair(WBNB, "590", 10_000_000, base=WBNB, symbol="WBNB"),
            ]})

        monkeypatch.setattr(api_client, "_request", mock_request)

        best = await api_client.get_best_pair(CAKE.lower(), chain="bsc")

        assert best.pair_address == PAIR_V2

    @pytest.mark.asyncio
    async def test_token_quote_prefers_given_pair(self, api_client, monkeypatch):
        calls = []

        async def mock_request(endpoint, params=None):
            calls.append(endpoint)
            return ok({"pair": pair(PAIR_V3, "2.50", 10)})

        monkeypatch.setattr(api_client, "_request", mock_request)

        quote = await api_client.get_token_quote(CAKE, "bsc", PAIR_V3)

        assert calls == [f"/dex/pairs/bsc/{PAIR_V3}"]
        assert quote.price_usd == 2.50

    @pytest.mark.asyncio
    async def test_search_token_exact_match_on_chain(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            assert params == {"q": "cake"}
            return ok({"pairs": [
                pair(PAIR_V3, "1.0", 10, symbol="CAKEX"),
                pair(PAIR_V2, "2.4", 10, chain="ethereum"),
                pair(PAIR_V2, "2.4", 10),
            ]})

        monkeypatch.setattr(api_client, "_request", mock_request)

        metadata = await api_client.search_token("cake", chain="bsc")

        assert metadata.address == CAKE
        assert metadata.symbol == "CAKE"
        assert metadata.chain == "bsc"
        assert metadata.decimals == 18
        assert metadata.logo_uri == "https://img.test/cake.png"

    @pytest.mark.asyncio
    async def test_search_token_without_match(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"pairs": []})

        monkeypatch.setattr(api_client, "_request", mock_request)

        assert await api_client.search_token("NOPE", chain="bsc") is None


class TestDexScreenerSource:
    @pytest.mark.asyncio
    async def test_token_price(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"pairs": [pair(PAIR_V2, "2.41", 100)]})

        monkeypatch.setattr(api_client, "_request", mock_request)
        source = DexScreenerSource(client=api_client)
        metadata = TokenMetadata(symbol="CAKE", name="PancakeSwap", address=CAKE, chain="bsc")

        price = await source.get_token_price(metadata)

        assert price.price_usd == 2.41
        assert price.source == "dexscreener"
        assert price.confidence == "medium"
        assert price.price_change_24h == -1.2

    @pytest.mark.asyncio
    async def test_no_priced_pair_means_no_price(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"pairs": [pair(PAIR_V2, None, 100)]})

        monkeypatch.setattr(api_client, "_request", mock_request)
        source = DexScreenerSource(client=api_client)
        metadata = TokenMetadata(symbol="CAKE", name="PancakeSwap", address=CAKE, chain="bsc")

        assert await source.get_token_price(metadata) is None

    @pytest.mark.asyncio
    async def test_quotes_filtered_by_chain(self, api_client, monkeypatch):
        async def mock_request(endpoint, params=None):
            return ok({"pairs": [
                pair(PAIR_V2, "2.40", 1000),
                pair(PAIR_V3, "2.45", 5000, chain="ethereum", dex="uniswap"),
            ]})

        monkeypatch.setattr(api_client, "_request", mock_request)
        source = DexScreenerSource(client=api_client)

        aggregated = await source.get_quotes(CAKE, chain_id=56)

        assert [q.source for q in aggregated.quotes] == ["dexscreener:pancakeswap"]
        assert aggregated.best.price == 2.40
