"""
Oracle Price Source Connector

This module implements PriceSourceInterface for the internal price oracle, the
highest-confidence source. The oracle quotes a token on several DEXes at once,
so one answer carries the winning venue plus a per-venue breakdown.

Endpoint Selection:
    - BSC and Base have chain-specific endpoints (/price/bsc, /price/base)
    - Every other chain goes to the generic /price endpoint with an explicit chainId

Structure:
    sources/oracle/
    ├── __init__.py          # This file (OracleSource class)
    └── api_client.py        # REST client and payload decoders
"""

from typing import Dict, List, Optional

from core.logging import logger
from core.schemas import AggregatedPrice, DexPrice, PriceRequest, TokenMetadata, TokenPriceData
from core.source_interface import PriceSourceInterface
from core.utils.chains import get_chain_info
from core.utils.time import current_utc_timestamp
from .api_client import OracleAPIClient


def price_data_from_aggregate(aggregated: AggregatedPrice, symbol: str) -> Optional[TokenPriceData]:
    """
    Turn an oracle AggregatedPrice into TokenPriceData.

    The USD price is the best quote's USD price, falling back to its raw price
    when the venue reports no USD conversion.

    Returns:
        TokenPriceData, or None when there is no successful quote or the price is not positive
    """
    best = aggregated.best
    if best is None:
        return None

    price_usd = best.price_usd if best.price_usd else best.price
    if not price_usd or price_usd <= 0:
        return None

    return TokenPriceData(
        token_address=aggregated.token_address,
        symbol=symbol.upper(),
        price_usd=price_usd,
        price_native=best.price,
        timestamp=current_utc_timestamp(milliseconds=True),
        source="oracle",
        confidence="high",
        dex_prices=[
            DexPrice(dex=quote.source, price=quote.effective_price, liquidity=quote.liquidity)
            for quote in aggregated.successful_quotes
        ],
    )


class OracleSource(PriceSourceInterface):
    """
    Oracle Price Source

    Attributes:
        name: Source identifier ("oracle")
        confidence: "high"
        client: OracleAPIClient (created in initialize() unless injected)

    Example:
        >>> source = OracleSource()
        >>> await source.initialize()
        >>> price = await source.get_token_price(metadata, chain_id=8453)
        >>> await source.shutdown()
    """

    name = "oracle"
    confidence = "high"

    capabilities = {
        "token_price": True,
        "batch_prices": True,
        "venue_quotes": True,
        "metadata_search": False,
    }

    def __init__(self, client: Optional[OracleAPIClient] = None):
        self.client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        if self.client is None:
            self.client = OracleAPIClient()
        if self._owns_client:
            await self.client.__aenter__()
        logger.debug("Oracle source initialized")

    async def shutdown(self) -> None:
        if self.client and self._owns_client:
            await self.client.__aexit__(None, None, None)

    async def health_check(self) -> bool:
        result = await self.client.get_health()
        return result.success and result.data.status.lower() in ("ok", "healthy")

    # ============================================
    # Price Methods
    # ============================================

    async def get_quotes(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[AggregatedPrice]:
        """
        Per-DEX quotes for a token.

        Uses the chain-specific endpoint when the chain has one, otherwise
        the generic endpoint with an explicit chainId.
        """
        chain_id = chain_id or self.client.default_chain_id
        chain = get_chain_info(chain_id)

        if chain is not None and chain.oracle_path:
            result = await self.client.get_price_for_chain(chain.oracle_path, token_address, pair_address)
        else:
            result = await self.client.get_price(token_address, pair_address, chain_id)

        return result.raise_for_error().data

    async def get_token_price(
        self,
        metadata: TokenMetadata,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        aggregated = await self.get_quotes(metadata.address, pair_address, chain_id)
        if aggregated is None:
            return None
        return price_data_from_aggregate(aggregated, metadata.symbol)

    async def get_prices_batch(
        self,
        requests: List[PriceRequest],
        symbols: Optional[Dict[str, str]] = None
    ) -> Dict[str, TokenPriceData]:
        """
        Price many tokens with one POST /prices request.

        Returns:
            Mapping of lowercase token address to TokenPriceData (unpriced tokens omitted)

        Raises:
            PriceServiceError: If the batch request itself fails
        """
        symbols = symbols or {}
        result = await self.client.get_multiple_prices(requests)

        prices: Dict[str, TokenPriceData] = {}
        for aggregated in result.raise_for_error().data:
            key = aggregated.token_address.lower()
            price = price_data_from_aggregate(aggregated, symbols.get(key, "UNKNOWN"))
            if price is not None:
                prices[key] = price

        return prices


__all__ = ["OracleSource", "OracleAPIClient", "price_data_from_aggregate"]
