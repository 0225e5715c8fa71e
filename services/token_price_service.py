"""
Token Price Service

The orchestrator behind "what is token X worth right now". For every request it:

    1. Serves a fresh cached answer when one exists (short TTL, default 5s)
    2. Resolves the identifier to token metadata
       - plain symbols go through the metadata resolver's symbol search
       - market symbols (SYMBOL+0x..., SYMBOL_PERP_0x...) and bare addresses skip the search
    3. Walks the price sources in strict priority order
       (oracle -> DexScreener -> CoinGecko) and keeps the first positive price
    4. Writes the answer through to the cache

A failing source never fails the request: it is logged at WARNING and the next
source is asked. When every source comes back empty the answer is None, which
callers must treat as "no price available", never as zero.

Batch requests are processed in chunks: cache hits are served, the rest are
resolved concurrently and priced with one oracle batch request, and whatever the
batch missed is priced individually. A failing chunk degrades to independent
per-item requests. A batch that prices nothing because every identifier hit
source failures raises SourcesUnavailableError, so pollers can tell an upstream
outage from unknown tokens.

Usage:
    async with TokenPriceService() as service:
        price = await service.get_price("CAKE")
        if price:
            print(f"{price.symbol}: ${price.price_usd} ({price.source}, {price.confidence})")
"""

import asyncio
from typing import Any, Dict, List, Optional

from core.aggregator import aggregate, calculate_statistics, find_arbitrage_opportunities
from core.config import settings
from core.errors import SourcesUnavailableError, ValidationError
from core.logging import get_logger, log_source_result
from core.metadata_resolver import MetadataResolver
from core.pnl import calculate_pnl
from core.schemas import (
    PortfolioPosition,
    PortfolioPositionValue,
    PortfolioValuation,
    PositionPnLResult,
    PriceQuote,
    PriceRequest,
    TokenAnalysis,
    TokenMetadata,
    TokenPriceData,
)
from core.source_manager import SourceManager, get_source_manager
from core.utils.chains import get_chain_info
from core.utils.symbols import extract_base_symbol, extract_token_address, is_valid_address
from storage.ttl_cache import CacheStore, TTLCache

logger = get_logger(__name__)


class TokenPriceService:
    """
    Multi-source token price orchestrator.

    Attributes:
        manager: SourceManager holding the sources in priority order
        resolver: MetadataResolver for symbol and address resolution
        cache: CacheStore of TokenPriceData keyed by "{symbol}-{pair}-{chain}"
        batch_size: Identifiers per batch chunk
        batch_delay: Pause between chunks in seconds

    Example:
        >>> service = TokenPriceService()
        >>> await service.initialize()
        >>> prices = await service.get_multiple_prices(["CAKE", "BNB"])
        >>> await service.shutdown()
    """

    def __init__(
        self,
        manager: Optional[SourceManager] = None,
        resolver: Optional[MetadataResolver] = None,
        cache: Optional[CacheStore] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        self.manager = manager if manager is not None else get_source_manager()
        self.resolver = resolver if resolver is not None else MetadataResolver(self.manager)
        self.cache = cache if cache is not None else TTLCache(
            ttl=settings.price_cache_ttl,
            maxsize=settings.cache_max_entries
        )
        self.batch_size = batch_size or settings.batch_size
        self.batch_delay = batch_delay if batch_delay is not None else settings.batch_delay
        self._initialized = False

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.manager.initialize_all()
        self._initialized = True
        logger.info("TokenPriceService initialized")

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self.manager.shutdown_all()
        self._initialized = False
        logger.info("TokenPriceService shut down")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    def cache_key(symbol: str, pair_address: Optional[str] = None, chain_id: Optional[int] = None) -> str:
        """
        Example:
            >>> TokenPriceService.cache_key("CAKE")
            'CAKE-default-default'
        """
        return f"{symbol}-{pair_address or 'default'}-{chain_id or 'default'}"

    @staticmethod
    def _chain_slug(chain_id: Optional[int]) -> str:
        chain = get_chain_info(chain_id)
        return chain.slug if chain is not None else settings.default_chain.slug

    @staticmethod
    def _with_display_symbol(price: TokenPriceData, identifier: str) -> TokenPriceData:
        """Label a price with the symbol the caller asked for (bare addresses keep the source's)."""
        symbol = extract_base_symbol(identifier)
        if symbol and symbol != price.symbol:
            return price.model_copy(update={"symbol": symbol})
        return price

    async def _resolve_identifier(
        self,
        identifier: str,
        chain_id: Optional[int],
        failures: Optional[List[Exception]] = None
    ) -> Optional[TokenMetadata]:
        chain = self._chain_slug(chain_id)
        embedded = extract_token_address(identifier)
        if embedded is not None:
            symbol = extract_base_symbol(identifier)
            metadata = await self.resolver.resolve_address(embedded, chain, symbol, failures=failures)
            if symbol:
                metadata = metadata.model_copy(update={"symbol": symbol})
            return metadata
        return await self.resolver.resolve(identifier, chain, failures=failures)

    async def _price_from_sources(
        self,
        metadata: TokenMetadata,
        pair_address: Optional[str],
        chain_id: Optional[int],
        label: str,
        failures: Optional[List[Exception]] = None
    ) -> Optional[TokenPriceData]:
        """Walk the sources in priority order; the first positive price wins."""
        for source in self.manager.sources_in_priority():
            try:
                price = await source.get_token_price(metadata, pair_address, chain_id)
            except Exception as e:
                log_source_result(source.name, label, error=str(e) or e.__class__.__name__)
                if failures is not None:
                    failures.append(e)
                continue

            if price is not None and price.price_usd > 0:
                log_source_result(source.name, label, price=price.price_usd)
                return price

            log_source_result(source.name, label)

        logger.warning(f"No price available for {label} from any source")
        return None

    # ============================================
    # Single Prices
    # ============================================

    async def get_price(
        self,
        symbol: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        """
        Get the USD price of a token.

        Args:
            symbol: Plain symbol, market symbol (SYMBOL+0x..., SYMBOL_PERP_0x...) or bare address
            pair_address: Specific pair to price against (optional)
            chain_id: Chain to price on (defaults to the configured default chain)

        Returns:
            TokenPriceData, or None when no source has a price

        Raises:
            ValidationError: If pair_address (or an embedded address) is malformed
        """
        if pair_address and not is_valid_address(pair_address):
            raise ValidationError(f"Invalid pair address format: {pair_address}", status=400)
        return await self._get_price(symbol, pair_address, chain_id)

    async def _get_price(
        self,
        symbol: str,
        pair_address: Optional[str],
        chain_id: Optional[int],
        failures: Optional[List[Exception]] = None
    ) -> Optional[TokenPriceData]:
        key = self.cache_key(symbol, pair_address, chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Price cache hit for {key}")
            return cached

        metadata = await self._resolve_identifier(symbol, chain_id, failures)
        if metadata is None:
            logger.warning(f"Token metadata not found for {symbol}")
            return None

        price = await self._price_from_sources(metadata, pair_address, chain_id, symbol, failures)
        if price is None:
            return None

        price = self._with_display_symbol(price, symbol)
        self.cache.set(key, price)
        return price

    async def get_price_by_address(
        self,
        token_address: str,
        symbol: Optional[str] = None,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        """
        Get the USD price of a token by contract address (skips symbol search).

        Raises:
            ValidationError: If token_address or pair_address is malformed
        """
        if not is_valid_address(token_address):
            raise ValidationError(f"Invalid token address format: {token_address}", status=400)
        if pair_address and not is_valid_address(pair_address):
            raise ValidationError(f"Invalid pair address format: {pair_address}", status=400)

        key = self.cache_key(token_address.lower(), pair_address, chain_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        metadata = await self.resolver.resolve_address(token_address, self._chain_slug(chain_id), symbol)
        if symbol:
            metadata = metadata.model_copy(update={"symbol": symbol.upper()})

        price = await self._price_from_sources(metadata, pair_address, chain_id, token_address)
        if price is not None:
            self.cache.set(key, price)
        return price

    # ============================================
    # Batch Prices
    # ============================================

    async def _price_chunk(
        self,
        chunk: List[str],
        chain_id: Optional[int],
        results: Dict[str, TokenPriceData],
        failures: Dict[str, List[Exception]]
    ) -> None:
        """Price one chunk: cache hits, concurrent resolve, one batch request, individual fill-ins."""
        pending: List[str] = []
        for identifier in chunk:
            cached = self.cache.get(self.cache_key(identifier, None, chain_id))
            if cached is not None:
                results[identifier] = cached
            else:
                pending.append(identifier)

        if not pending:
            return

        metadata_list = await asyncio.gather(
            *(self._resolve_identifier(identifier, chain_id, failures[identifier]) for identifier in pending)
        )
        resolved = {
            identifier: metadata
            for identifier, metadata in zip(pending, metadata_list)
            if metadata is not None
        }
        if not resolved:
            return

        batch_prices: Dict[str, TokenPriceData] = {}
        batch_sources = self.manager.get_sources_with_feature("batch_prices")
        if batch_sources:
            requests: Dict[str, PriceRequest] = {}
            symbols: Dict[str, str] = {}
            for metadata in resolved.values():
                key = metadata.address.lower()
                requests.setdefault(key, PriceRequest(token_address=metadata.address, chain_id=chain_id))
                symbols[key] = metadata.symbol
            batch_prices = await batch_sources[0].get_prices_batch(list(requests.values()), symbols)

        missing: Dict[str, TokenMetadata] = {}
        for identifier, metadata in resolved.items():
            price = batch_prices.get(metadata.address.lower())
            if price is None:
                missing[identifier] = metadata
                continue
            price = self._with_display_symbol(price, identifier)
            results[identifier] = price
            self.cache.set(self.cache_key(identifier, None, chain_id), price)

        if not missing:
            return

        singles = await asyncio.gather(
            *(
                self._price_from_sources(metadata, None, chain_id, identifier, failures[identifier])
                for identifier, metadata in missing.items()
            ),
            return_exceptions=True
        )
        for identifier, single in zip(missing.keys(), singles):
            if isinstance(single, Exception):
                logger.warning(f"Failed to price {identifier}: {single}")
                failures[identifier].append(single)
            elif single is not None:
                single = self._with_display_symbol(single, identifier)
                results[identifier] = single
                self.cache.set(self.cache_key(identifier, None, chain_id), single)

    async def get_multiple_prices(
        self,
        identifiers: List[str],
        chain_id: Optional[int] = None
    ) -> Dict[str, TokenPriceData]:
        """
        Price many identifiers.

        Identifiers are de-duplicated and processed in chunks of batch_size with
        batch_delay seconds between chunks. A chunk that fails as a whole falls
        back to independent per-identifier pricing, so one bad identifier never
        hides its siblings.

        Returns:
            Mapping of identifier to price data; unpriced identifiers are omitted

        Raises:
            SourcesUnavailableError: If nothing was priced and every identifier
                met at least one source failure (upstream outage rather than
                unknown tokens)
        """
        unique = list(dict.fromkeys(identifiers))
        results: Dict[str, TokenPriceData] = {}
        failures: Dict[str, List[Exception]] = {identifier: [] for identifier in unique}
        chunks = [unique[i:i + self.batch_size] for i in range(0, len(unique), self.batch_size)]

        for index, chunk in enumerate(chunks):
            try:
                await self._price_chunk(chunk, chain_id, results, failures)
            except Exception as e:
                logger.warning(f"Batch pricing failed, falling back to individual requests: {e}")
                remaining = [identifier for identifier in chunk if identifier not in results]
                singles = await asyncio.gather(
                    *(
                        self._get_price(identifier, None, chain_id, failures[identifier])
                        for identifier in remaining
                    ),
                    return_exceptions=True
                )
                for identifier, single in zip(remaining, singles):
                    if isinstance(single, Exception):
                        logger.warning(f"Failed to price {identifier}: {single}")
                        failures[identifier].append(single)
                    elif single is not None:
                        results[identifier] = single

            if index < len(chunks) - 1:
                await asyncio.sleep(self.batch_delay)

        logger.debug(f"Priced {len(results)}/{len(unique)} identifier(s)")

        if unique and not results and all(failures[identifier] for identifier in unique):
            last = failures[unique[-1]][-1]
            raise SourcesUnavailableError(
                f"No price source answered for {len(unique)} identifier(s): {str(last) or last.__class__.__name__}"
            )
        return results

    # ============================================
    # PnL
    # ============================================

    async def calculate_position_pnl(
        self,
        price_key: str,
        entry_price: Any,
        margin: Any,
        leverage: Any,
        is_long: bool,
        liquidation_price: str = "0"
    ) -> Optional[PositionPnLResult]:
        """
        Unrealized PnL of a position at the current price.

        Args:
            price_key: Symbol, market symbol or token address

        Returns:
            PositionPnLResult labelled with the price source and confidence, or
            None when there is no price or the inputs are unusable
        """
        price = await self.get_price(price_key)
        if price is None:
            logger.warning(f"Cannot calculate PnL for {price_key}: no price available")
            return None

        result = calculate_pnl(entry_price, price.price_usd, margin, leverage, is_long, liquidation_price)
        if result is None:
            return None
        return result.model_copy(update={"price_source": price.source, "price_confidence": price.confidence})

    async def calculate_portfolio_value(self, positions: List[PortfolioPosition]) -> PortfolioValuation:
        """
        Sum current value and PnL over positions.

        All unique price keys are priced in one batch; positions without a
        price or with unusable inputs are left out of the totals.
        """
        prices = await self.get_multiple_prices([position.price_key for position in positions])
        valuation = PortfolioValuation()

        for position in positions:
            price = prices.get(position.price_key)
            if price is None:
                continue

            result = calculate_pnl(
                position.entry_price,
                price.price_usd,
                position.margin,
                position.leverage,
                position.is_long,
            )
            if result is None:
                continue

            valuation.total_value += result.current_value
            valuation.total_pnl += result.unrealized_pnl
            valuation.positions.append(PortfolioPositionValue(
                price_key=position.price_key,
                current_price=result.current_price,
                unrealized_pnl=result.unrealized_pnl,
                current_value=result.current_value,
            ))

        return valuation

    # ============================================
    # Analysis
    # ============================================

    async def analyze_token(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> TokenAnalysis:
        """
        Merge venue quotes from every quote-capable source.

        Quote prices are converted to USD before merging. A source that fails is
        reported in source_errors and does not affect the others.

        Raises:
            ValidationError: If token_address or pair_address is malformed
        """
        if not is_valid_address(token_address):
            raise ValidationError(f"Invalid token address format: {token_address}", status=400)
        if pair_address and not is_valid_address(pair_address):
            raise ValidationError(f"Invalid pair address format: {pair_address}", status=400)

        chain_id = chain_id or settings.default_chain_id
        sources = self.manager.get_sources_with_feature("venue_quotes")
        outcomes = await asyncio.gather(
            *(source.get_quotes(token_address, pair_address, chain_id) for source in sources),
            return_exceptions=True
        )

        quotes: List[PriceQuote] = []
        errors: Dict[str, str] = {}
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, Exception):
                errors[source.name] = str(outcome) or outcome.__class__.__name__
                continue
            if outcome is None:
                continue
            for quote in outcome.quotes:
                quotes.append(quote.model_copy(update={"price": quote.effective_price}))

        return TokenAnalysis(
            token_address=token_address,
            chain_id=chain_id,
            aggregated=aggregate(token_address, quotes, pair_address=pair_address),
            statistics=calculate_statistics(quotes),
            arbitrage=find_arbitrage_opportunities(quotes),
            source_errors=errors,
        )

    # ============================================
    # Cache and Health
    # ============================================

    def clear_cache(self) -> None:
        self.cache.clear()
        self.resolver.clear_cache()
        logger.info("Price and metadata caches cleared")

    def cache_statistics(self) -> Dict[str, Any]:
        return {
            "prices": self.cache.statistics(),
            "metadata": self.resolver.cache.statistics(),
        }

    async def health_check(self) -> Dict[str, Any]:
        """
        Per-source health.

        Returns:
            {"status": "healthy" | "degraded" | "unhealthy", "sources": {...}, "cache": {...}}
        """
        sources = await self.manager.health_check_all()
        configured = [name for name in sources if self.manager.get_source(name).is_configured()]
        healthy = [name for name in configured if sources[name]]

        if configured and len(healthy) == len(configured):
            status = "healthy"
        elif healthy:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "sources": sources,
            "cache": {
                "prices": self.cache.statistics()["fresh"],
                "metadata": self.resolver.cache.statistics()["fresh"],
            },
        }


# ============================================
# Global Service Instance
# ============================================

_service: Optional[TokenPriceService] = None


def get_token_price_service() -> TokenPriceService:
    """
    Get the global TokenPriceService instance (singleton pattern).

    The HTTP layer uses this; tests and scripts can build their own instances.
    """
    global _service
    if _service is None:
        _service = TokenPriceService()
        logger.debug("Created global TokenPriceService instance")
    return _service
