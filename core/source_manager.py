"""
Source Manager: Central Registry for Price Sources

The SourceManager keeps every price source connector in strict priority order:

    1. oracle       (internal multi-DEX aggregator, confidence "high")
    2. dexscreener  (public DEX index, confidence "medium")
    3. coingecko    (market-data index, confidence "low", only with an API key)

The orchestrator iterates `sources_in_priority()` and stops at the first
positive price, so the registry order IS the fallback order.

Example Usage:
    manager = SourceManager()
    await manager.initialize_all()

    for source in manager.sources_in_priority():
        price = await source.get_token_price(metadata)
        if price:
            break

    await manager.shutdown_all()
"""

from typing import Dict, List, Optional

from core.logging import logger
from core.source_interface import PriceSourceInterface


class SourceManager:
    """
    Central Manager for Price Source Connectors

    Attributes:
        sources: Ordered mapping of source names to connector instances
                 (insertion order is priority order)

    Example:
        >>> manager = SourceManager()
        >>> manager.list_sources()
        ['oracle', 'dexscreener', 'coingecko']
        >>> [s.name for s in manager.sources_in_priority()]
        ['oracle', 'dexscreener']   # coingecko skipped without an API key
    """

    def __init__(self, sources: Optional[List[PriceSourceInterface]] = None):
        """
        Initialize the registry.

        Args:
            sources: Connectors in priority order. Defaults to the oracle,
                     DexScreener and CoinGecko connectors built from settings.
        """
        if sources is None:
            # Import here to avoid circular imports
            # Each source module imports from core, so we can't import at module level
            from sources.oracle import OracleSource
            from sources.dexscreener import DexScreenerSource
            from sources.coingecko import CoinGeckoSource

            sources = [OracleSource(), DexScreenerSource(), CoinGeckoSource()]

        self.sources: Dict[str, PriceSourceInterface] = {source.name: source for source in sources}

        logger.info(
            f"SourceManager initialized with {len(self.sources)} source(s): "
            f"{', '.join(self.sources.keys())}"
        )

    # ============================================
    # Source Retrieval Methods
    # ============================================

    def get_source(self, name: str) -> PriceSourceInterface:
        """
        Get a source connector by name.

        Raises:
            ValueError: If the source is not registered
        """
        name = name.lower()

        if name not in self.sources:
            available = ", ".join(self.sources.keys())
            raise ValueError(f"Source '{name}' is not supported. Available sources: {available}")

        return self.sources[name]

    def has_source(self, name: str) -> bool:
        return name.lower() in self.sources

    def list_sources(self) -> List[str]:
        return list(self.sources.keys())

    def sources_in_priority(self, include_unconfigured: bool = False) -> List[PriceSourceInterface]:
        """
        Sources in fallback order.

        Args:
            include_unconfigured: Also return sources missing credentials

        Returns:
            List of connectors, highest priority first
        """
        return [
            source for source in self.sources.values()
            if include_unconfigured or source.is_configured()
        ]

    def priority_of(self, name: str) -> int:
        """1-based priority of a source (lower is preferred)."""
        return self.list_sources().index(self.get_source(name).name) + 1

    def get_sources_with_feature(self, feature: str) -> List[PriceSourceInterface]:
        """
        Configured sources supporting a feature, in priority order.

        Example:
            >>> [s.name for s in manager.get_sources_with_feature("metadata_search")]
            ['dexscreener', 'coingecko']
        """
        supporting = [source for source in self.sources_in_priority() if source.supports(feature)]
        logger.debug(f"Feature '{feature}' supported by: {', '.join(s.name for s in supporting) or 'none'}")
        return supporting

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize all registered sources.

        A source that fails to initialize stays registered; its calls fail and
        the orchestrator falls through to the next source.
        """
        logger.info("Initializing all price sources...")

        for name, source in self.sources.items():
            try:
                await source.initialize()
                logger.info(f"✓ {name} initialized")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

    async def shutdown_all(self) -> None:
        logger.info("Shutting down all price sources...")

        for name, source in self.sources.items():
            try:
                await source.shutdown()
                logger.info(f"✓ {name} shut down")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

    # ============================================
    # Health Check Methods
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all sources.

        Unconfigured sources report False without a network call.

        Returns:
            Dict[str, bool]: Source name to health status
        """
        health_status = {}
        for name, source in self.sources.items():
            if not source.is_configured():
                health_status[name] = False
                continue
            try:
                health_status[name] = await source.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    def __repr__(self) -> str:
        return f"<SourceManager(sources={list(self.sources.keys())})>"

    def __len__(self) -> int:
        return len(self.sources)


# ============================================
# Global Manager Instance
# ============================================

_manager: Optional[SourceManager] = None


def get_source_manager() -> SourceManager:
    """
    Get the global SourceManager instance (singleton pattern).

    Example:
        >>> from core.source_manager import get_source_manager
        >>> oracle = get_source_manager().get_source("oracle")
    """
    global _manager
    if _manager is None:
        _manager = SourceManager()
        logger.debug("Created global SourceManager instance")
    return _manager
