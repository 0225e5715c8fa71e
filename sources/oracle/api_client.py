"""
Oracle REST API Client

This module provides an async HTTP client for the internal price oracle, a
multi-chain service that quotes a token on several DEXes (PancakeSwap, Uniswap,
Thena, Four Meme, ...) and converts the result to USD.

It handles:
- Address validation before any request
- Chain parameter selection (chainId is sent when given, or when the default
  chain is not BSC)
- Retries and response caching (through RequestExecutor)
- Decoding oracle payloads into our schemas

Endpoints Used:
    GET  /health                 - Service status and supported chains
    GET  /price?token=&pair=     - Aggregated price on the default or given chain
    GET  /price/{bsc|base}       - Chain-specific aggregated price
    POST /prices                 - Batch of aggregated prices
    GET  /oracle                 - Wrapped native token USD reference price
    GET  /chains                 - Supported chains
    GET  /token-info?ca=         - Token metadata with pricing

Usage:
    async with OracleAPIClient() as client:
        result = await client.get_price("0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82")
        print(result.data.best.price_usd)
"""

from typing import Any, Callable, Dict, List, Optional

from core.aggregator import aggregate
from core.errors import UpstreamDataError, ValidationError
from core.logging import get_logger
from core.request_executor import RequestExecutor
from core.schemas import (
    AggregatedPrice,
    ChainsInfo,
    OracleHealth,
    OracleQuote,
    OracleTokenInfo,
    PriceQuote,
    PriceRequest,
    RequestResult,
)
from core.utils.chains import BSC_CHAIN_ID
from core.utils.numbers import to_float
from core.utils.symbols import is_valid_address
from core.utils.time import normalize_timestamp_ms
from storage.ttl_cache import CacheStore

CHAIN_PATHS = ("bsc", "base")


# ============================================
# Payload Decoders
# ============================================

def decode_price_data(item: Dict[str, Any]) -> PriceQuote:
    """
    Decode one per-DEX entry of an aggregated price.

    Oracle Format:
        {
          "dex": "PancakeSwap V2",
          "price": "0.0041",           // quote-token denominated
          "priceUSD": "2.41",          // optional
          "pairAddress": "0x...",
          "liquidity": "1250000",      // optional
          "volume24h": "50000",        // optional
          "timestamp": 1704110400000,
          "success": true,
          "error": null
        }

    A successful entry without a parseable price is downgraded to a failed quote.

    Raises:
        UpstreamDataError: If the entry has no "dex" name
    """
    if not isinstance(item, dict) or not item.get("dex"):
        raise UpstreamDataError("Oracle price entry is missing 'dex'")

    price = to_float(item.get("price"), 0.0)
    success = bool(item.get("success", True))
    error = item.get("error")
    if success and price <= 0:
        success = False
        error = error or "Missing or non-positive price"

    return PriceQuote(
        source=item["dex"],
        price=price,
        price_usd=to_float(item.get("priceUSD")),
        liquidity=to_float(item.get("liquidity")),
        volume_24h=to_float(item.get("volume24h")),
        pair_address=item.get("pairAddress"),
        timestamp=normalize_timestamp_ms(item.get("timestamp")),
        success=success,
        error=error,
    )


def decode_aggregated_price(payload: Dict[str, Any]) -> AggregatedPrice:
    """
    Decode an aggregated price payload.

    The best quote is recomputed locally (highest liquidity among successful
    quotes) rather than trusted from the payload.

    Raises:
        UpstreamDataError: If tokenAddress or the prices list is missing
    """
    if not isinstance(payload, dict):
        raise UpstreamDataError("Oracle price payload is not an object")
    if not payload.get("tokenAddress"):
        raise UpstreamDataError("Oracle price payload is missing 'tokenAddress'")
    if not isinstance(payload.get("prices"), list):
        raise UpstreamDataError("Oracle price payload is missing 'prices'")

    quotes = [decode_price_data(item) for item in payload["prices"]]
    return aggregate(
        token_address=payload["tokenAddress"],
        quotes=quotes,
        pair_address=payload.get("pairAddress"),
        average_price_usd=to_float(payload.get("averagePriceUSD")),
        timestamp=normalize_timestamp_ms(payload.get("timestamp")),
    )


def decode_aggregated_prices(payload: Any) -> List[AggregatedPrice]:
    if not isinstance(payload, list):
        raise UpstreamDataError("Oracle batch payload is not a list")
    return [decode_aggregated_price(item) for item in payload]


def decode_health(payload: Dict[str, Any]) -> OracleHealth:
    if not isinstance(payload, dict) or "status" not in payload:
        raise UpstreamDataError("Oracle health payload is missing 'status'")
    features = payload.get("features") or {}
    return OracleHealth(
        status=str(payload["status"]),
        timestamp=payload.get("timestamp"),
        multi_chain=bool(payload.get("multiChain", False)),
        dexes=list(payload.get("dexes") or []),
        supported_chains=[int(c) for c in payload.get("supportedChains") or []],
        usd_pricing=bool(features.get("usdPricing", False)),
        price_oracle=features.get("priceOracle"),
    )


def decode_oracle_quote(payload: Dict[str, Any]) -> OracleQuote:
    price = to_float(payload.get("wbnbUSDPrice")) if isinstance(payload, dict) else None
    if price is None:
        raise UpstreamDataError("Oracle reference payload is missing 'wbnbUSDPrice'")
    return OracleQuote(
        wrapped_native_usd_price=price,
        source=payload.get("source", "unknown"),
        timestamp=payload.get("timestamp"),
        note=payload.get("note"),
    )


def decode_chains(payload: Dict[str, Any]) -> ChainsInfo:
    """
    Decode the supported chains payload.

    Oracle Format:
        {"multiChain": true, "supportedChains": {"56": {"chainId": 56, "name": "BSC"}}}
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("supportedChains"), dict):
        raise UpstreamDataError("Oracle chains payload is missing 'supportedChains'")

    chains: Dict[int, str] = {}
    for key, info in payload["supportedChains"].items():
        if isinstance(info, dict):
            chains[int(info.get("chainId", key))] = info.get("name", str(key))
        else:
            chains[int(key)] = str(info)

    return ChainsInfo(multi_chain=bool(payload.get("multiChain", False)), supported_chains=chains)


def decode_token_info(payload: Dict[str, Any]) -> OracleTokenInfo:
    if not isinstance(payload, dict) or not payload.get("address"):
        raise UpstreamDataError("Oracle token info payload is missing 'address'")

    decimals = payload.get("decimals")
    pricing = payload.get("pricing")
    return OracleTokenInfo(
        address=payload["address"],
        name=payload.get("name"),
        symbol=payload.get("symbol"),
        decimals=int(decimals) if decimals is not None else None,
        total_supply=str(payload["totalSupply"]) if payload.get("totalSupply") is not None else None,
        pricing=decode_aggregated_price(pricing) if pricing else None,
    )


class OracleAPIClient:
    """
    Async HTTP client for the price oracle

    Every method returns a RequestResult whose `data` holds the decoded model.
    With throw_on_error=True (default) failures raise typed errors instead.

    Attributes:
        default_chain_id: Chain used when a call does not name one
        executor: RequestExecutor doing the HTTP work
        logger: Logger instance for debugging

    Example:
        >>> async with OracleAPIClient(base_url="http://localhost:3001") as client:
        ...     health = await client.get_health()
        ...     print(health.data.status)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        default_chain_id: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        cache: Optional[CacheStore] = None,
        throw_on_error: bool = True,
    ):
        # Import settings here to avoid circular imports
        from core.config import settings

        headers = settings.get_oracle_headers(api_key)

        self.default_chain_id = default_chain_id or settings.default_chain_id
        self.logger = get_logger(__name__)
        self.executor = RequestExecutor(
            base_url or settings.oracle_base_url,
            source="oracle",
            headers=headers,
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

    async def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        json_body: Any = None,
        idempotent: Optional[bool] = None,
    ) -> RequestResult:
        return await self.executor.request(
            endpoint, params=params, method=method, json_body=json_body, idempotent=idempotent
        )

    def _decode(self, result: RequestResult, decoder: Callable[[Any], Any]) -> RequestResult:
        """Replace raw JSON with the decoded model; decoder failures become UpstreamDataError."""
        if not result.success:
            return result
        try:
            data = decoder(result.data)
        except UpstreamDataError as e:
            return self.executor.fail(e)
        except (TypeError, ValueError, KeyError) as e:
            return self.executor.fail(UpstreamDataError(f"Malformed oracle payload: {e}"))
        return result.model_copy(update={"data": data})

    def _invalid(self, message: str) -> RequestResult:
        return self.executor.fail(ValidationError(message, status=400))

    def _validate(self, token_address: str, pair_address: Optional[str] = None) -> Optional[RequestResult]:
        if not is_valid_address(token_address):
            return self._invalid(f"Invalid token address format: {token_address}")
        if pair_address and not is_valid_address(pair_address):
            return self._invalid(f"Invalid pair address format: {pair_address}")
        return None

    @staticmethod
    def is_valid_address(address: str) -> bool:
        return is_valid_address(address)

    def clear_cache(self) -> None:
        self.executor.clear_cache()

    def cache_statistics(self) -> Dict[str, Any]:
        return self.executor.cache_statistics()

    # ============================================
    # API Methods
    # ============================================

    async def get_health(self) -> RequestResult:
        """
        Fetch oracle service status.

        Oracle Endpoint:
            GET /health
        """
        return self._decode(await self._request("/health"), decode_health)

    async def get_price(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> RequestResult:
        """
        Fetch the aggregated price of a token.

        Args:
            token_address: Token contract address (0x + 40 hex)
            pair_address: Specific pair to quote (optional)
            chain_id: Chain to quote on (optional)

        Returns:
            RequestResult with an AggregatedPrice

        Oracle Endpoint:
            GET /price?token={token}&pair={pair}&chainId={chainId}

        Notes:
            chainId is sent when given explicitly, or when the client's default
            chain is not BSC (the oracle's own default).
        """
        invalid = self._validate(token_address, pair_address)
        if invalid is not None:
            return invalid

        params: Dict[str, Any] = {"token": token_address}
        if pair_address:
            params["pair"] = pair_address
        if chain_id or self.default_chain_id != BSC_CHAIN_ID:
            params["chainId"] = chain_id or self.default_chain_id

        return self._decode(await self._request("/price", params), decode_aggregated_price)

    async def get_price_for_chain(
        self,
        chain: str,
        token_address: str,
        pair_address: Optional[str] = None
    ) -> RequestResult:
        """
        Fetch the aggregated price from a chain-specific endpoint.

        Args:
            chain: "bsc" or "base"

        Oracle Endpoint:
            GET /price/{chain}?token={token}&pair={pair}
        """
        chain = chain.lower()
        if chain not in CHAIN_PATHS:
            return self._invalid(f"Unsupported oracle chain endpoint: {chain}")

        invalid = self._validate(token_address, pair_address)
        if invalid is not None:
            return invalid

        params: Dict[str, Any] = {"token": token_address}
        if pair_address:
            params["pair"] = pair_address

        return self._decode(await self._request(f"/price/{chain}", params), decode_aggregated_price)

    async def get_multiple_prices(self, requests: List[PriceRequest]) -> RequestResult:
        """
        Fetch aggregated prices for many tokens in one request.

        The endpoint is read-only, so the POST is retried like a GET.

        Oracle Endpoint:
            POST /prices   body: [{"tokenAddress": "0x...", "pairAddress": "0x...", "chainId": 56}]
        """
        if not requests:
            return self._invalid("Requests must be a non-empty list")

        for request in requests:
            invalid = self._validate(request.token_address, request.pair_address)
            if invalid is not None:
                return invalid

        result = await self._request(
            "/prices",
            method="POST",
            json_body=[request.to_payload() for request in requests],
            idempotent=True,
        )
        return self._decode(result, decode_aggregated_prices)

    async def get_oracle(self) -> RequestResult:
        """Fetch the wrapped native token USD reference price (GET /oracle)."""
        return self._decode(await self._request("/oracle"), decode_oracle_quote)

    async def get_chains(self) -> RequestResult:
        """Fetch the chains the oracle supports (GET /chains)."""
        return self._decode(await self._request("/chains"), decode_chains)

    async def get_token_info(self, token_address: str) -> RequestResult:
        """
        Fetch token metadata with pricing.

        Oracle Endpoint:
            GET /token-info?ca={token}
        """
        invalid = self._validate(token_address)
        if invalid is not None:
            return invalid
        return self._decode(await self._request("/token-info", {"ca": token_address}), decode_token_info)
