"""
Token Metadata Resolver

Resolves a human symbol ("CAKE") to an on-chain identity (address, chain,
decimals) by asking metadata-capable sources in priority order:

    1. DexScreener pair search (exact symbol match on the target chain)
    2. CoinGecko coin search + coin detail (only when an API key is configured)
    3. None

A failing source is logged and the next one is tried. Resolved metadata is
cached separately from prices because token identity changes far less often
than price; misses are never cached so a token listed later is found on the
next call.
"""

from typing import List, Optional

from core.config import settings
from core.errors import ValidationError
from core.logging import get_logger
from core.schemas import TokenMetadata
from core.source_interface import PriceSourceInterface
from core.utils.symbols import is_valid_address
from storage.ttl_cache import CacheStore, TTLCache

logger = get_logger(__name__)


class MetadataResolver:
    """
    Symbol and address to TokenMetadata resolver with its own TTL cache.

    Args:
        manager: SourceManager supplying metadata-capable sources (defaults to the global one)
        cache: CacheStore for resolved metadata (defaults to a TTLCache of metadata_cache_ttl)

    Example:
        >>> resolver = MetadataResolver()
        >>> meta = await resolver.resolve("CAKE")
        >>> meta.address
        '0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82'
    """

    def __init__(self, manager=None, cache: Optional[CacheStore] = None):
        if manager is None:
            from core.source_manager import get_source_manager
            manager = get_source_manager()

        self.manager = manager
        self.cache = cache if cache is not None else TTLCache(
            ttl=settings.metadata_cache_ttl,
            maxsize=settings.cache_max_entries
        )

    def _sources(self) -> List[PriceSourceInterface]:
        return self.manager.get_sources_with_feature("metadata_search")

    async def resolve(
        self,
        symbol: str,
        chain: Optional[str] = None,
        failures: Optional[List[Exception]] = None
    ) -> Optional[TokenMetadata]:
        """
        Resolve a symbol on one chain.

        Args:
            symbol: Token symbol (case-insensitive)
            chain: DexScreener-style chain slug (defaults to the configured default chain)
            failures: Source exceptions are appended here when given

        Returns:
            TokenMetadata, or None when no source knows the symbol
        """
        chain = chain or settings.default_chain.slug
        key = f"symbol:{symbol.upper()}:{chain}"

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Metadata cache hit for {symbol} on {chain}")
            return cached

        for source in self._sources():
            try:
                metadata = await source.search_token(symbol, chain)
            except Exception as e:
                logger.warning(f"Metadata search failed on {source.name} for {symbol}: {e}")
                if failures is not None:
                    failures.append(e)
                continue

            if metadata is not None:
                logger.debug(f"Resolved {symbol} to {metadata.address} via {source.name}")
                self.cache.set(key, metadata)
                return metadata

        logger.info(f"No metadata found for {symbol} on {chain}")
        return None

    async def resolve_address(
        self,
        address: str,
        chain: Optional[str] = None,
        symbol: Optional[str] = None,
        failures: Optional[List[Exception]] = None
    ) -> TokenMetadata:
        """
        Build metadata for a known token address.

        Symbol and name are discovered from metadata sources when possible,
        otherwise the supplied symbol (or "UNKNOWN") is used.

        Raises:
            ValidationError: If the address is malformed
        """
        if not is_valid_address(address):
            raise ValidationError(f"Invalid token address format: {address}", status=400)

        chain = chain or settings.default_chain.slug
        key = f"address:{address.lower()}:{chain}"

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        for source in self._sources():
            try:
                metadata = await source.get_token_metadata(address, chain)
            except NotImplementedError:
                continue
            except Exception as e:
                logger.warning(f"Metadata lookup failed on {source.name} for {address}: {e}")
                if failures is not None:
                    failures.append(e)
                continue

            if metadata is not None:
                self.cache.set(key, metadata)
                return metadata

        fallback = symbol or "UNKNOWN"
        return TokenMetadata(
            symbol=fallback,
            name=symbol or "Unknown Token",
            address=address,
            chain=chain,
            decimals=18,
        )

    def clear_cache(self) -> None:
        self.cache.clear()
