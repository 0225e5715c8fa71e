"""
DexScreener REST API Client

This module provides an async HTTP client for the public DexScreener API.
It handles:
- Pair lookups by token, by search query and by pair address
- Picking the highest-liquidity pair for a token
- Symbol search for token metadata resolution
- Decoding DexScreener pairs into our schemas

API Documentation:
    https://docs.dexscreener.com/api/reference

Endpoints Used:
    GET /dex/tokens/{tokenAddress}       - All pairs of a token
    GET /dex/search?q={query}            - Pair search by symbol/name/address
    GET /dex/pairs/{chainId}/{pair}      - One pair

No API key is needed.

Usage:
    async with DexScreenerAPIClient() as client:
        best = await client.get_best_pair("0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82", chain="bsc")
        print(best.price_usd, best.liquidity_usd)
"""

from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel

from core.errors import UpstreamDataError, ValidationError
from core.logging import get_logger
from core.request_executor import RequestExecutor
from core.schemas import PriceQuote, RequestResult, TokenMetadata
from core.utils.numbers import to_float
from core.utils.symbols import is_valid_address
from core.utils.time import current_utc_timestamp
from storage.ttl_cache import CacheStore


class DexScreenerPair(BaseModel):
    """
    One DexScreener pair, flattened to the fields the price service uses.

    Attributes:
        pair_address: Pair contract address
        chain_id: DexScreener chain slug ("bsc", "base", "ethereum")
        dex_id: Venue id ("pancakeswap", "uniswap", ...)
        base_token_*: The token being priced
        quote_token_symbol: Symbol of the quote token
        price_native: Base token price in quote token units
        price_usd: Base token price in USD
        liquidity_usd: USD liquidity of the pair
        volume_24h: 24h USD volume
        price_change_24h: 24h price change in percent
        image_url: Token logo
    """

    pair_address: str
    chain_id: str
    dex_id: str = "unknown"
    base_token_address: str
    base_token_symbol: str = ""
    base_token_name: str = ""
    quote_token_symbol: Optional[str] = None
    price_native: Optional[float] = None
    price_usd: Optional[float] = None
    liquidity_usd: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    image_url: Optional[str] = None

    def to_quote(self) -> PriceQuote:
        has_price = self.price_usd is not None and self.price_usd > 0
        return PriceQuote(
            source=f"dexscreener:{self.dex_id}",
            price=self.price_usd or 0.0,
            price_usd=self.price_usd,
            liquidity=self.liquidity_usd,
            volume_24h=self.volume_24h,
            pair_address=self.pair_address,
            timestamp=current_utc_timestamp(milliseconds=True),
            success=has_price,
            error=None if has_price else "Pair has no USD price",
        )


# ============================================
# Payload Decoders
# ============================================

def decode_pair(item: Dict[str, Any]) -> DexScreenerPair:
    """
    Decode one DexScreener pair.

    DexScreener Format:
        {
          "chainId": "bsc",
          "dexId": "pancakeswap",
          "pairAddress": "0x...",
          "baseToken": {"address": "0x...", "name": "PancakeSwap Token", "symbol": "Cake"},
          "quoteToken": {"address": "0x...", "name": "Wrapped BNB", "symbol": "WBNB"},
          "priceNative": "0.0041",
          "priceUsd": "2.41",
          "volume": {"h24": 50000},
          "priceChange": {"h24": -1.2},
          "liquidity": {"usd": 1250000},
          "info": {"imageUrl": "https://..."}
        }

    Raises:
        UpstreamDataError: If pairAddress, chainId or baseToken.address is missing
    """
    if not isinstance(item, dict):
        raise UpstreamDataError("DexScreener pair is not an object")

    base = item.get("baseToken") or {}
    if not item.get("pairAddress") or not item.get("chainId") or not base.get("address"):
        raise UpstreamDataError("DexScreener pair is missing pairAddress, chainId or baseToken.address")

    quote = item.get("quoteToken") or {}
    liquidity = item.get("liquidity") or {}
    volume = item.get("volume") or {}
    change = item.get("priceChange") or {}
    info = item.get("info") or {}

    return DexScreenerPair(
        pair_address=item["pairAddress"],
        chain_id=item["chainId"],
        dex_id=item.get("dexId") or "unknown",
        base_token_address=base["address"],
        base_token_symbol=base.get("symbol") or "",
        base_token_name=base.get("name") or base.get("symbol") or "",
        quote_token_symbol=quote.get("symbol"),
        price_native=to_float(item.get("priceNative")),
        price_usd=to_float(item.get("priceUsd")),
        liquidity_usd=to_float(liquidity.get("usd")),
        volume_24h=to_float(volume.get("h24")),
        price_change_24h=to_float(change.get("h24")),
        image_url=info.get("imageUrl"),
    )


def decode_pairs(payload: Dict[str, Any]) -> List[DexScreenerPair]:
    """Decode a {"pairs": [...]} payload. A null pairs list means no pairs."""
    if not isinstance(payload, dict):
        raise UpstreamDataError("DexScreener payload is not an object")
    return [decode_pair(item) for item in payload.get("pairs") or []]


def decode_single_pair(payload: Dict[str, Any]) -> Optional[DexScreenerPair]:
    """Decode a pair lookup, which answers with either "pair" or a one-item "pairs" list."""
    if not isinstance(payload, dict):
        raise UpstreamDataError("DexScreener payload is not an object")
    if payload.get("pair"):
        return decode_pair(payload["pair"])
    pairs = decode_pairs(payload)
    return pairs[0] if pairs else None


def select_best_pair(pairs: List[DexScreenerPair]) -> Optional[DexScreenerPair]:
    """
    Highest-liquidity pair with a positive USD price.

    Ties resolve to the first pair in response order.
    """
    best: Optional[DexScreenerPair] = None
    for pair in pairs:
        if not pair.price_usd or pair.price_usd <= 0:
            continue
        if best is None or (pair.liquidity_usd or 0.0) > (best.liquidity_usd or 0.0):
            best = pair
    return best


class DexScreenerAPIClient:
    """
    Async HTTP client for the DexScreener API

    Raw endpoint methods return RequestResult with decoded pairs; helper
    methods (get_best_pair, get_token_quote, search_token, get_token_metadata)
    return plain values or None.

    Example:
        >>> async with DexScreenerAPIClient() as client:
        ...     meta = await client.search_token("CAKE", chain="bsc")
        ...     print(meta.address)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        cache: Optional[CacheStore] = None,
        throw_on_error: bool = True,
    ):
        # Import settings here to avoid circular imports
        from core.config import settings

        self.logger = get_logger(__name__)
        self.executor = RequestExecutor(
            base_url or settings.dexscreener_base_url,
            source="dexscreener",
            headers={"Accept": "application/json"},
            timeout=timeout if timeout is not None else settings.request_timeout,
            max_retries=max_retries if max_retries is not None else settings.max_retries,
            retry_delay=retry_delay if retry_delay is not None else settings.retry_delay,
            cache=cache,
            cache_ttl=cache_ttl if cache_ttl is not None else settings.request_cache_ttl,
            throw_on_error=throw_on_error,
        )

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        await self.executor.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.executor.__aexit__(exc_type, exc_val, exc_tb)

    # ============================================
    # Request Helpers
    # ============================================

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> RequestResult:
        return await self.executor.request(endpoint, params=params)

    def _decode(self, result: RequestResult, decoder: Callable[[Any], Any]) -> RequestResult:
        if not result.success:
            return result
        try:
            data = decoder(result.data)
        except UpstreamDataError as e:
            return self.executor.fail(e)
        except (TypeError, ValueError, KeyError) as e:
            return self.executor.fail(UpstreamDataError(f"Malformed DexScreener payload: {e}"))
        return result.model_copy(update={"data": data})

    # ============================================
    # API Methods
    # ============================================

    async def get_token_pairs(self, token_address: str) -> RequestResult:
        """
        Fetch every pair of a token.

        DexScreener Endpoint:
            GET /dex/tokens/{tokenAddress}
        """
        if not is_valid_address(token_address):
            return self.executor.fail(ValidationError(f"Invalid token address format: {token_address}", status=400))
        return self._decode(await self._request(f"/dex/tokens/{token_address}"), decode_pairs)

    async def search_pairs(self, query: str) -> RequestResult:
        """
        Search pairs by symbol, name or address.

        DexScreener Endpoint:
            GET /dex/search?q={query}
        """
        if not query or not query.strip():
            return self.executor.fail(ValidationError("Search query must not be empty", status=400))
        return self._decode(await self._request("/dex/search", {"q": query.strip()}), decode_pairs)

    async def get_pair(self, chain: str, pair_address: str) -> RequestResult:
        """
        Fetch one pair.

        DexScreener Endpoint:
            GET /dex/pairs/{chainId}/{pairAddress}
        """
        if not is_valid_address(pair_address):
            return self.executor.fail(ValidationError(f"Invalid pair address format: {pair_address}", status=400))
        return self._decode(await self._request(f"/dex/pairs/{chain}/{pair_address}"), decode_single_pair)

    # ============================================
    # Helper Methods
    # ============================================

    async def get_best_pair(self, token_address: str, chain: Optional[str] = None) -> Optional[DexScreenerPair]:
        """
        Highest-liquidity pair in which the token is the base token.

        Args:
            token_address: Token contract address
            chain: Restrict to one DexScreener chain slug (optional)

        Returns:
            The best pair, or None when no pair has a positive USD price
        """
        result = await self.get_token_pairs(token_address)
        if not result.success:
            return None

        target = token_address.lower()
        candidates = [
            pair for pair in result.data
            if pair.base_token_address.lower() == target
            and (chain is None or pair.chain_id == chain)
        ]
        return select_best_pair(candidates)

    async def get_token_quote(
        self,
        token_address: str,
        chain: Optional[str] = None,
        pair_address: Optional[str] = None
    ) -> Optional[DexScreenerPair]:
        """
        Pair used to price a token.

        A given pair address is looked up first; when it has no USD price the
        token's best pair is used instead.
        """
        if pair_address and chain:
            result = await self.get_pair(chain, pair_address)
            if result.success and result.data is not None and (result.data.price_usd or 0) > 0:
                return result.data
            self.logger.debug(f"Pair {pair_address} has no USD price, using best pair for {token_address}")

        return await self.get_best_pair(token_address, chain)

    async def search_token(self, symbol: str, chain: str = "bsc") -> Optional[TokenMetadata]:
        """
        Resolve a symbol to token metadata.

        The first pair whose base token symbol matches exactly
        (case-insensitive) on the requested chain wins. Decimals default to 18.
        """
        result = await self.search_pairs(symbol)
        if not result.success:
            return None

        wanted = symbol.upper()
        for pair in result.data:
            if pair.base_token_symbol.upper() == wanted and pair.chain_id == chain:
                return TokenMetadata(
                    symbol=pair.base_token_symbol,
                    name=pair.base_token_name or pair.base_token_symbol,
                    address=pair.base_token_address,
                    chain=chain,
                    decimals=18,
                    logo_uri=pair.image_url,
                )
        return None

    async def get_token_metadata(self, token_address: str, chain: Optional[str] = None) -> Optional[TokenMetadata]:
        """Token metadata taken from the token's best pair."""
        pair = await self.get_best_pair(token_address, chain)
        if pair is None or not pair.base_token_symbol:
            return None
        return TokenMetadata(
            symbol=pair.base_token_symbol,
            name=pair.base_token_name or pair.base_token_symbol,
            address=pair.base_token_address,
            chain=pair.chain_id,
            decimals=18,
            logo_uri=pair.image_url,
        )

    def clear_cache(self) -> None:
        self.executor.clear_cache()
