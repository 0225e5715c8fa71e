"""
CoinGecko Price Source Connector

This module implements PriceSourceInterface for CoinGecko, the low-confidence
last resort of the fallback chain. The source is only active when a CoinGecko
API key is configured; otherwise is_configured() is False and the orchestrator
skips it without a network call.

Pricing order inside this source:
    1. Simple token price for the chain's asset platform
    2. Highest-reserve on-chain pool with the token as base token (for chains without a platform id, or when
       the simple price endpoint has no entry)

Structure:
    sources/coingecko/
    ├── __init__.py          # This file (CoinGeckoSource class)
    └── api_client.py        # REST client and payload decoders
"""

from typing import Optional

from core.aggregator import aggregate
from core.config import settings
from core.logging import logger
from core.schemas import AggregatedPrice, TokenMetadata, TokenPriceData
from core.source_interface import PriceSourceInterface
from core.utils.chains import ChainInfo, get_chain_by_slug, get_chain_info
from core.utils.time import current_utc_timestamp
from .api_client import CoinGeckoAPIClient, GeckoPool


class CoinGeckoSource(PriceSourceInterface):
    """
    CoinGecko Price Source

    Example:
        >>> source = CoinGeckoSource()
        >>> source.is_configured()
        False   # no COINGECKO_API_KEY
    """

    name = "coingecko"
    confidence = "low"

    capabilities = {
        "token_price": True,
        "batch_prices": False,
        "venue_quotes": True,
        "metadata_search": True,
    }

    def __init__(self, client: Optional[CoinGeckoAPIClient] = None):
        self.client = client
        self._owns_client = client is None

    def is_configured(self) -> bool:
        if self.client is not None:
            return self.client.is_configured
        return settings.use_coingecko

    async def initialize(self) -> None:
        if self.client is None:
            self.client = CoinGeckoAPIClient()
        if self._owns_client:
            await self.client.__aenter__()
        logger.debug(f"CoinGecko source initialized (configured={self.is_configured()})")

    async def shutdown(self) -> None:
        if self.client and self._owns_client:
            await self.client.__aexit__(None, None, None)

    @staticmethod
    def _resolve_chain(metadata_chain: Optional[str], chain_id: Optional[int]) -> ChainInfo:
        chain = get_chain_info(chain_id)
        if chain is None and metadata_chain:
            chain = get_chain_by_slug(metadata_chain)
        return chain or settings.default_chain

    async def get_token_price(
        self,
        metadata: TokenMetadata,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        chain = self._resolve_chain(metadata.chain, chain_id)

        price_usd: Optional[float] = None
        price_change: Optional[float] = None
        if chain.coingecko_platform:
            result = await self.client.get_token_price(chain.coingecko_platform, metadata.address)
            price_usd = result.raise_for_error().data

        if not price_usd:
            pool: Optional[GeckoPool] = await self.client.get_best_pool(chain.gecko_network, metadata.address)
            if pool is not None:
                price_usd = pool.base_token_price_usd
                price_change = pool.price_change_24h

        if not price_usd or price_usd <= 0:
            return None

        return TokenPriceData(
            token_address=metadata.address,
            symbol=metadata.symbol,
            price_usd=price_usd,
            price_change_24h=price_change,
            timestamp=current_utc_timestamp(milliseconds=True),
            source="coingecko",
            confidence="low",
        )

    async def get_quotes(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[AggregatedPrice]:
        """One quote per on-chain pool that has the token as its base token."""
        chain = self._resolve_chain(None, chain_id)
        result = await self.client.get_token_pools(chain.gecko_network, token_address)
        pools = result.raise_for_error().data
        quotes = [
            pool.to_quote() for pool in pools
            if pool.is_base_token(token_address)
            and (pair_address is None or pool.address.lower() == pair_address.lower())
        ]
        return aggregate(token_address, quotes, pair_address=pair_address)

    async def search_token(self, symbol: str, chain: str) -> Optional[TokenMetadata]:
        chain_info = get_chain_by_slug(chain)
        if chain_info is None:
            return None
        return await self.client.search_token(
            symbol, chain_info.coingecko_platform, chain_info.slug, network=chain_info.gecko_network
        )


__all__ = ["CoinGeckoSource", "CoinGeckoAPIClient", "GeckoPool"]
