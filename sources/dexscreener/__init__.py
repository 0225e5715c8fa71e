"""
DexScreener Price Source Connector

This module implements PriceSourceInterface for DexScreener, the medium-confidence
fallback used when the oracle has no price. DexScreener is also the first
metadata source: its pair search resolves a symbol to a token address.

Structure:
    sources/dexscreener/
    ├── __init__.py          # This file (DexScreenerSource class)
    └── api_client.py        # REST client and payload decoders
"""

from typing import Optional

from core.aggregator import aggregate
from core.config import settings
from core.logging import logger
from core.schemas import AggregatedPrice, TokenMetadata, TokenPriceData
from core.source_interface import PriceSourceInterface
from core.utils.chains import get_chain_info
from core.utils.time import current_utc_timestamp
from .api_client import DexScreenerAPIClient, DexScreenerPair


class DexScreenerSource(PriceSourceInterface):
    """
    DexScreener Price Source

    Example:
        >>> source = DexScreenerSource()
        >>> await source.initialize()
        >>> meta = await source.search_token("CAKE", "bsc")
        >>> price = await source.get_token_price(meta)
    """

    name = "dexscreener"
    confidence = "medium"

    capabilities = {
        "token_price": True,
        "batch_prices": False,
        "venue_quotes": True,
        "metadata_search": True,
    }

    def __init__(self, client: Optional[DexScreenerAPIClient] = None):
        self.client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        if self.client is None:
            self.client = DexScreenerAPIClient()
        if self._owns_client:
            await self.client.__aenter__()
        logger.debug("DexScreener source initialized")

    async def shutdown(self) -> None:
        if self.client and self._owns_client:
            await self.client.__aexit__(None, None, None)

    @staticmethod
    def _chain_slug(metadata_chain: Optional[str], chain_id: Optional[int]) -> str:
        chain = get_chain_info(chain_id)
        if chain is not None:
            return chain.slug
        return metadata_chain or settings.default_chain.slug

    async def get_token_price(
        self,
        metadata: TokenMetadata,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        chain = self._chain_slug(metadata.chain, chain_id)
        pair: Optional[DexScreenerPair] = await self.client.get_token_quote(metadata.address, chain, pair_address)
        if pair is None or not pair.price_usd or pair.price_usd <= 0:
            return None

        return TokenPriceData(
            token_address=metadata.address,
            symbol=metadata.symbol,
            price_usd=pair.price_usd,
            price_native=pair.price_native,
            price_change_24h=pair.price_change_24h,
            timestamp=current_utc_timestamp(milliseconds=True),
            source="dexscreener",
            confidence="medium",
        )

    async def get_quotes(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[AggregatedPrice]:
        """One quote per DexScreener pair in which the token is the base token."""
        result = await self.client.get_token_pairs(token_address)
        pairs = result.raise_for_error().data

        chain = get_chain_info(chain_id)
        target = token_address.lower()
        quotes = [
            pair.to_quote() for pair in pairs
            if pair.base_token_address.lower() == target
            and (chain is None or pair.chain_id == chain.slug)
            and (pair_address is None or pair.pair_address.lower() == pair_address.lower())
        ]
        return aggregate(token_address, quotes, pair_address=pair_address)

    async def search_token(self, symbol: str, chain: str) -> Optional[TokenMetadata]:
        return await self.client.search_token(symbol, chain)

    async def get_token_metadata(self, address: str, chain: str) -> Optional[TokenMetadata]:
        return await self.client.get_token_metadata(address, chain)


__all__ = ["DexScreenerSource", "DexScreenerAPIClient", "DexScreenerPair"]
