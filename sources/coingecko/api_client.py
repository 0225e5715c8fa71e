"""
CoinGecko REST API Client

This module provides an async HTTP client for the CoinGecko Pro API, the
lowest-priority price source. It covers two families of endpoints:
- Coin endpoints (search, coin detail, simple token price)
- On-chain endpoints (DEX pools of a token, pool search)

API Documentation:
    https://docs.coingecko.com/reference/introduction

Endpoints Used:
    GET /search?query=                                        - Coin search
    GET /coins/{id}                                           - Coin detail (platform addresses)
    GET /simple/token_price/{platform}?contract_addresses=    - USD price by contract
    GET /onchain/networks/{network}/tokens/{address}/pools    - Pools of a token
    GET /onchain/search/pools?query=&network=                 - Pool search

Authentication:
    Every request needs the x-cg-pro-api-key header. Without a key the client
    raises ConfigurationError instead of calling the API.

Usage:
    async with CoinGeckoAPIClient(api_key="...") as client:
        result = await client.get_token_price("binance-smart-chain", "0x...")
        print(result.data)
"""

from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, Field

from core.errors import ConfigurationError, UpstreamDataError, ValidationError
from core.logging import get_logger
from core.request_executor import RequestExecutor
from core.schemas import PriceQuote, RequestResult, TokenMetadata
from core.utils.numbers import to_float
from core.utils.symbols import is_valid_address
from core.utils.time import current_utc_timestamp
from storage.ttl_cache import CacheStore


class GeckoPool(BaseModel):
    """
    One on-chain pool, flattened.

    Attributes:
        pool_id: CoinGecko pool id ("bsc_0x...")
        address: Pool contract address
        name: Pool name ("CAKE / WBNB")
        dex_id: Venue id taken from the pool's dex relationship
        base_token_id: Relationship id of the base token ("bsc_0x...")
        base_token_price_usd: Base token price in USD
        base_token_price_quote_token: Base token price in quote token units
        reserve_in_usd: Pool liquidity in USD
        volume_24h: 24h USD volume
        price_change_24h: 24h base token price change in percent
    """

    pool_id: str
    address: str
    name: str = ""
    dex_id: str = "unknown"
    base_token_id: Optional[str] = None
    base_token_price_usd: Optional[float] = None
    base_token_price_quote_token: Optional[float] = None
    reserve_in_usd: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_24h: Optional[float] = None

    @property
    def base_token_address(self) -> Optional[str]:
        """Address part of base_token_id ("bsc_0xabc..." -> "0xabc...")."""
        if not self.base_token_id or "_" not in self.base_token_id:
            return None
        return self.base_token_id.split("_", 1)[1]

    @property
    def base_symbol(self) -> str:
        return self.name.split("/", 1)[0].strip().upper()

    def is_base_token(self, token_address: str) -> bool:
        """True when token_address is this pool's base token (the side base_token_price_usd prices)."""
        return bool(self.base_token_id) and self.base_token_id.lower().endswith(f"_{token_address.lower()}")

    def to_quote(self) -> PriceQuote:
        price = self.base_token_price_usd or 0.0
        return PriceQuote(
            source=f"coingecko:{self.dex_id}",
            price=price,
            price_usd=self.base_token_price_usd,
            liquidity=self.reserve_in_usd,
            volume_24h=self.volume_24h,
            pair_address=self.address,
            timestamp=current_utc_timestamp(milliseconds=True),
            success=price > 0,
            error=None if price > 0 else "Pool has no USD price",
        )


class CoinSummary(BaseModel):
    id: str
    symbol: str
    name: str = ""


class CoinDetail(BaseModel):
    id: str
    symbol: str
    name: str = ""
    platforms: Dict[str, str] = Field(default_factory=dict)
    image: Optional[str] = None


# ============================================
# Payload Decoders
# ============================================

def decode_pool(item: Dict[str, Any]) -> GeckoPool:
    """
    Decode one JSON:API pool resource.

    CoinGecko Format:
        {
          "id": "bsc_0x...",
          "type": "pool",
          "attributes": {
            "address": "0x...",
            "name": "CAKE / WBNB",
            "base_token_price_usd": "2.41",
            "base_token_price_quote_token": "0.0041",
            "reserve_in_usd": "1250000.5",
            "volume_usd": {"h24": "50000"},
            "price_change_percentage": {"h24": "-1.2"}
          },
          "relationships": {
            "base_token": {"data": {"id": "bsc_0x...", "type": "token"}},
            "dex": {"data": {"id": "pancakeswap_v2", "type": "dex"}}
          }
        }

    Raises:
        UpstreamDataError: If the id or the pool address is missing
    """
    if not isinstance(item, dict) or not item.get("id"):
        raise UpstreamDataError("CoinGecko pool is missing 'id'")

    attributes = item.get("attributes") or {}
    if not attributes.get("address"):
        raise UpstreamDataError("CoinGecko pool is missing 'attributes.address'")

    relationships = item.get("relationships") or {}
    base_token = (relationships.get("base_token") or {}).get("data") or {}
    dex = (relationships.get("dex") or {}).get("data") or {}
    volume = attributes.get("volume_usd") or {}
    change = attributes.get("price_change_percentage") or {}

    return GeckoPool(
        pool_id=item["id"],
        address=attributes["address"],
        name=attributes.get("name") or "",
        dex_id=dex.get("id") or "unknown",
        base_token_id=base_token.get("id"),
        base_token_price_usd=to_float(attributes.get("base_token_price_usd")),
        base_token_price_quote_token=to_float(attributes.get("base_token_price_quote_token")),
        reserve_in_usd=to_float(attributes.get("reserve_in_usd")),
        volume_24h=to_float(volume.get("h24")),
        price_change_24h=to_float(change.get("h24")),
    )


def decode_pools(payload: Dict[str, Any]) -> List[GeckoPool]:
    if not isinstance(payload, dict):
        raise UpstreamDataError("CoinGecko pools payload is not an object")
    return [decode_pool(item) for item in payload.get("data") or []]


def decode_coin_search(payload: Dict[str, Any]) -> List[CoinSummary]:
    if not isinstance(payload, dict):
        raise UpstreamDataError("CoinGecko search payload is not an object")
    coins = []
    for coin in payload.get("coins") or []:
        if not coin.get("id") or not coin.get("symbol"):
            raise UpstreamDataError("CoinGecko search result is missing 'id' or 'symbol'")
        coins.append(CoinSummary(id=coin["id"], symbol=coin["symbol"], name=coin.get("name") or ""))
    return coins


def decode_coin(payload: Dict[str, Any]) -> CoinDetail:
    if not isinstance(payload, dict) or not payload.get("id") or not payload.get("symbol"):
        raise UpstreamDataError("CoinGecko coin payload is missing 'id' or 'symbol'")
    image = payload.get("image") or {}
    return CoinDetail(
        id=payload["id"],
        symbol=payload["symbol"],
        name=payload.get("name") or "",
        platforms={k: v for k, v in (payload.get("platforms") or {}).items() if k and v},
        image=image.get("large") if isinstance(image, dict) else None,
    )


def select_best_pool(pools: List[GeckoPool], token_address: Optional[str] = None) -> Optional[GeckoPool]:
    """
    Pool with the greatest reserve_in_usd and a positive price; ties keep response order.

    A token-pools response lists every pool holding the token on either side.
    With token_address given, only pools where it is the base token are
    candidates, since base_token_price_usd prices the other side otherwise.
    """
    best: Optional[GeckoPool] = None
    for pool in pools:
        if token_address and not pool.is_base_token(token_address):
            continue
        if not pool.base_token_price_usd or pool.base_token_price_usd <= 0:
            continue
        if best is None or (pool.reserve_in_usd or 0.0) > (best.reserve_in_usd or 0.0):
            best = pool
    return best


class CoinGeckoAPIClient:
    """
    Async HTTP client for the CoinGecko Pro API

    Example:
        >>> async with CoinGeckoAPIClient(api_key="CG-...") as client:
        ...     pools = await client.get_token_pools("bsc", "0x...")
        ...     print(len(pools.data))
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        cache: Optional[CacheStore] = None,
        throw_on_error: bool = True,
    ):
        # Import settings here to avoid circular imports
        from core.config import settings

        self.api_key = api_key if api_key is not None else settings.coingecko_api_key
        headers = settings.get_coingecko_headers(self.api_key)

        self.logger = get_logger(__name__)
        self.executor = RequestExecutor(
            base_url or settings.coingecko_base_url,
            source="coingecko",
            headers=headers,
            timeout=timeout if timeout is not None else settings.request_timeout,
            max_retries=max_retries if max_retries is not None else settings.max_retries,
            retry_delay=retry_delay if retry_delay is not None else settings.retry_delay,
            cache=cache,
            cache_ttl=cache_ttl if cache_ttl is not None else settings.request_cache_ttl,
            throw_on_error=throw_on_error,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

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
        if not self.is_configured:
            raise ConfigurationError("CoinGecko API key not configured")
        return await self.executor.request(endpoint, params=params)

    def _decode(self, result: RequestResult, decoder: Callable[[Any], Any]) -> RequestResult:
        if not result.success:
            return result
        try:
            data = decoder(result.data)
        except UpstreamDataError as e:
            return self.executor.fail(e)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            return self.executor.fail(UpstreamDataError(f"Malformed CoinGecko payload: {e}"))
        return result.model_copy(update={"data": data})

    def _check_address(self, address: str) -> Optional[RequestResult]:
        if not is_valid_address(address):
            return self.executor.fail(ValidationError(f"Invalid token address format: {address}", status=400))
        return None

    # ============================================
    # On-chain Endpoints
    # ============================================

    async def get_token_pools(self, network: str, token_address: str) -> RequestResult:
        """
        Fetch the DEX pools of a token.

        CoinGecko Endpoint:
            GET /onchain/networks/{network}/tokens/{address}/pools
        """
        invalid = self._check_address(token_address)
        if invalid is not None:
            return invalid
        result = await self._request(f"/onchain/networks/{network}/tokens/{token_address}/pools")
        return self._decode(result, decode_pools)

    async def search_pools(self, query: str, network: Optional[str] = None) -> RequestResult:
        """
        Search pools by token symbol, name or address.

        CoinGecko Endpoint:
            GET /onchain/search/pools?query={query}&network={network}
        """
        if not query or not query.strip():
            return self.executor.fail(ValidationError("Search query must not be empty", status=400))
        result = await self._request("/onchain/search/pools", {"query": query.strip(), "network": network})
        return self._decode(result, decode_pools)

    # ============================================
    # Coin Endpoints
    # ============================================

    async def get_token_price(self, platform: str, token_address: str) -> RequestResult:
        """
        Fetch the USD price of a token contract.

        CoinGecko Endpoint:
            GET /simple/token_price/{platform}?contract_addresses={address}&vs_currencies=usd

        Response Format:
            {"0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82": {"usd": 2.41}}

        Returns:
            RequestResult whose data is the USD price, or None when CoinGecko has no price
        """
        invalid = self._check_address(token_address)
        if invalid is not None:
            return invalid

        def decode(payload: Dict[str, Any]) -> Optional[float]:
            if not isinstance(payload, dict):
                raise UpstreamDataError("CoinGecko token price payload is not an object")
            entry = payload.get(token_address.lower()) or {}
            price = to_float(entry.get("usd"))
            return price if price and price > 0 else None

        result = await self._request(
            f"/simple/token_price/{platform}",
            {"contract_addresses": token_address, "vs_currencies": "usd"}
        )
        return self._decode(result, decode)

    async def search_coins(self, query: str) -> RequestResult:
        """Coin search (GET /search?query=)."""
        if not query or not query.strip():
            return self.executor.fail(ValidationError("Search query must not be empty", status=400))
        return self._decode(await self._request("/search", {"query": query.strip()}), decode_coin_search)

    async def get_coin(self, coin_id: str) -> RequestResult:
        """Coin detail including per-platform contract addresses (GET /coins/{id})."""
        return self._decode(await self._request(f"/coins/{coin_id}"), decode_coin)

    # ============================================
    # Helper Methods
    # ============================================

    async def get_best_pool(self, network: str, token_address: str) -> Optional[GeckoPool]:
        result = await self.get_token_pools(network, token_address)
        if not result.success:
            return None
        return select_best_pool(result.data, token_address)

    async def search_token(
        self,
        symbol: str,
        platform: Optional[str],
        chain: str,
        network: Optional[str] = None
    ) -> Optional[TokenMetadata]:
        """
        Resolve a symbol to a contract on one chain.

        Coin search plus coin detail is tried first: the first coin whose symbol
        matches exactly (case-insensitive) resolves if it has a contract on the
        requested platform. Tokens CoinGecko does not list as coins are then
        looked up through pool search on the network, taking the deepest pool
        whose base token carries the symbol.

        Args:
            symbol: Token symbol
            platform: CoinGecko asset platform ("binance-smart-chain"), None to skip coin search
            chain: Chain slug stored in the metadata ("bsc")
            network: On-chain network id ("bsc"), None to skip pool search
        """
        metadata = None
        if platform:
            metadata = await self._search_coin_contract(symbol, platform, chain)
        if metadata is None and network:
            metadata = await self._search_pool_token(symbol, network, chain)
        return metadata

    async def _search_coin_contract(self, symbol: str, platform: str, chain: str) -> Optional[TokenMetadata]:
        search = await self.search_coins(symbol)
        if not search.success:
            return None

        wanted = symbol.upper()
        match = next((coin for coin in search.data if coin.symbol.upper() == wanted), None)
        if match is None:
            return None

        detail = await self.get_coin(match.id)
        if not detail.success:
            return None

        address = detail.data.platforms.get(platform)
        if not address:
            return None

        return TokenMetadata(
            symbol=detail.data.symbol.upper(),
            name=detail.data.name or detail.data.symbol,
            address=address,
            chain=chain,
            decimals=18,
            logo_uri=detail.data.image,
        )

    async def _search_pool_token(self, symbol: str, network: str, chain: str) -> Optional[TokenMetadata]:
        result = await self.search_pools(symbol, network)
        if not result.success:
            return None

        wanted = symbol.upper()
        candidates = [
            pool for pool in result.data
            if pool.base_symbol == wanted and is_valid_address(pool.base_token_address)
        ]
        pool = select_best_pool(candidates)
        if pool is None:
            return None

        return TokenMetadata(
            symbol=wanted,
            name=wanted,
            address=pool.base_token_address,
            chain=chain,
            decimals=18,
        )

    def clear_cache(self) -> None:
        self.executor.clear_cache()
