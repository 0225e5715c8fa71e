"""
Shared fixtures for service-level tests.

FakeSource is an in-memory PriceSourceInterface: prices, metadata, batch
answers and venue quotes are scripted per test, and every call is recorded.
"""

from typing import Dict, List, Optional

import pytest

from core.aggregator import aggregate
from core.schemas import AggregatedPrice, PriceQuote, PriceRequest, TokenMetadata, TokenPriceData
from core.source_interface import PriceSourceInterface
from core.source_manager import SourceManager

CAKE = "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82"
WBNB = "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"

CONFIDENCE = {"oracle": "high", "dexscreener": "medium", "coingecko": "low"}


class FakeSource(PriceSourceInterface):
    def __init__(
        self,
        name: str,
        prices: Optional[Dict[str, object]] = None,
        tokens: Optional[Dict[str, TokenMetadata]] = None,
        batch: Optional[Dict[str, float]] = None,
        quotes: Optional[List[PriceQuote]] = None,
        configured: bool = True,
        error: Optional[Exception] = None,
        healthy: bool = True,
        venue_quotes: bool = False,
    ):
        self.name = name
        self.confidence = CONFIDENCE[name]
        self.prices = prices or {}
        self.tokens = tokens or {}
        self.batch = batch
        self.quotes = quotes
        self.configured = configured
        self.error = error
        self.healthy = healthy
        self.calls: List[tuple] = []
        self.capabilities = {
            "token_price": True,
            "batch_prices": batch is not None,
            "venue_quotes": venue_quotes or quotes is not None,
            "metadata_search": bool(tokens),
        }

    def is_configured(self) -> bool:
        return self.configured

    async def health_check(self) -> bool:
        return self.healthy

    def _price(self, metadata: TokenMetadata, value: float) -> TokenPriceData:
        return TokenPriceData(
            token_address=metadata.address,
            symbol=metadata.symbol,
            price_usd=value,
            timestamp=1704110400000,
            source=self.name,
            confidence=self.confidence,
        )

    async def get_token_price(self, metadata, pair_address=None, chain_id=None):
        self.calls.append(("price", metadata.address, pair_address, chain_id))
        if self.error is not None:
            raise self.error
        value = self.prices.get(metadata.address.lower())
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return self._price(metadata, value)

    async def get_prices_batch(self, requests: List[PriceRequest], symbols=None):
        self.calls.append(("batch", [r.token_address for r in requests]))
        if isinstance(self.batch, Exception):
            raise self.batch
        symbols = symbols or {}
        result = {}
        for request in requests:
            key = request.token_address.lower()
            if key in self.batch:
                metadata = TokenMetadata(
                    symbol=symbols.get(key, "UNKNOWN"), name="", address=request.token_address, chain="bsc"
                )
                result[key] = self._price(metadata, self.batch[key])
        return result

    async def get_quotes(self, token_address, pair_address=None, chain_id=None) -> Optional[AggregatedPrice]:
        self.calls.append(("quotes", token_address, chain_id))
        if self.error is not None:
            raise self.error
        return aggregate(token_address, self.quotes or [], pair_address=pair_address)

    async def search_token(self, symbol, chain):
        self.calls.append(("search", symbol, chain))
        if self.error is not None:
            raise self.error
        return self.tokens.get(symbol.upper())

    async def get_token_metadata(self, address, chain):
        self.calls.append(("metadata", address, chain))
        for metadata in self.tokens.values():
            if metadata.address.lower() == address.lower():
                return metadata
        return None


def cake_metadata() -> TokenMetadata:
    return TokenMetadata(symbol="CAKE", name="PancakeSwap Token", address=CAKE, chain="bsc")


def wbnb_metadata() -> TokenMetadata:
    return TokenMetadata(symbol="WBNB", name="Wrapped BNB", address=WBNB, chain="bsc")


@pytest.fixture
def tokens():
    return {"CAKE": cake_metadata(), "WBNB": wbnb_metadata()}


@pytest.fixture
def make_manager():
    """Build a SourceManager from FakeSources"""

    def _make(*sources: FakeSource) -> SourceManager:
        return SourceManager(list(sources))

    return _make
