"""
Price Source Interface: Abstract Contract for All Price Sources

This module defines the abstract base class that all price source connectors must
implement. The orchestrator walks sources through this interface only, so it never
needs to know whether a price came from the internal oracle, DexScreener or CoinGecko.

Design Philosophy:
    "Program to an interface, not an implementation"

    TokenPriceService asks each source in priority order for a price and stops at
    the first positive answer. Adding a source means writing one connector and
    registering it in the SourceManager.

Capabilities System:
    Each source declares which optional features it supports via `capabilities`:

        capabilities = {
            "token_price": True,      # get_token_price (mandatory for all sources)
            "batch_prices": True,     # get_prices_batch (one request for many tokens)
            "venue_quotes": True,     # get_quotes (per-venue quotes for analysis)
            "metadata_search": False  # search_token (symbol to address resolution)
        }

Failure Contract:
    get_token_price returns None for "this source has no price". Network and
    payload errors may propagate; the orchestrator treats any exception as
    "advance to the next source".
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.schemas import AggregatedPrice, PriceRequest, TokenMetadata, TokenPriceData


class PriceSourceInterface(ABC):
    """
    Abstract Base Class for Price Source Connectors

    Class Attributes:
        name: Unique source identifier ("oracle", "dexscreener", "coingecko")
        confidence: Confidence attached to prices from this source
        capabilities: Dictionary indicating which optional features are supported

    Abstract Methods:
        - get_token_price: Price one token

    Optional Methods (can be overridden):
        - is_configured: Whether required credentials are present
        - initialize / shutdown: Open and close HTTP sessions
        - health_check: Verify the upstream API is reachable
        - get_prices_batch: Price many tokens in one request
        - get_quotes: Per-venue quotes for one token
        - search_token / get_token_metadata: Resolve token identity
    """

    # ============================================
    # Class Attributes (must be set by subclasses)
    # ============================================

    name: str
    """Unique source identifier (lowercase). Example: "oracle", "dexscreener" """

    confidence: str = "low"
    """Confidence level of prices from this source: "high", "medium" or "low" """

    capabilities: Dict[str, bool] = {
        "token_price": True,
        "batch_prices": False,
        "venue_quotes": False,
        "metadata_search": False,
    }

    # ============================================
    # Mandatory Price Method
    # ============================================

    @abstractmethod
    async def get_token_price(
        self,
        metadata: TokenMetadata,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[TokenPriceData]:
        """
        Fetch the USD price of one token.

        Args:
            metadata: Resolved token identity (address + chain)
            pair_address: Specific pair to price against (optional)
            chain_id: Numeric chain id (defaults to the configured default chain)

        Returns:
            TokenPriceData with a positive price_usd, or None when this source has no price

        Raises:
            PriceServiceError: For network or payload errors (caller falls through)
        """
        pass

    # ============================================
    # Optional Methods
    # ============================================

    async def get_prices_batch(
        self,
        requests: List[PriceRequest],
        symbols: Optional[Dict[str, str]] = None
    ) -> Dict[str, TokenPriceData]:
        """
        Price many tokens in one upstream request.

        Args:
            requests: Token (and optional pair / chain) per item
            symbols: Lowercase token address to display symbol

        Returns:
            Mapping of lowercase token address to price data. Tokens without a
            price are omitted.

        Raises:
            NotImplementedError: If this source does not support batch pricing
        """
        raise NotImplementedError(f"{self.name} does not support batch prices")

    async def get_quotes(
        self,
        token_address: str,
        pair_address: Optional[str] = None,
        chain_id: Optional[int] = None
    ) -> Optional[AggregatedPrice]:
        """
        Per-venue quotes for one token.

        Raises:
            NotImplementedError: If this source does not expose venue quotes
        """
        raise NotImplementedError(f"{self.name} does not support venue quotes")

    async def search_token(self, symbol: str, chain: str) -> Optional[TokenMetadata]:
        """
        Resolve a symbol to token metadata on one chain.

        Raises:
            NotImplementedError: If this source does not support metadata search
        """
        raise NotImplementedError(f"{self.name} does not support metadata search")

    async def get_token_metadata(self, address: str, chain: str) -> Optional[TokenMetadata]:
        """
        Build token metadata for a known address.

        Raises:
            NotImplementedError: If this source does not support metadata search
        """
        raise NotImplementedError(f"{self.name} does not support metadata lookup")

    def is_configured(self) -> bool:
        """
        Check whether the source has the credentials it needs.

        Sources that are not configured are skipped silently by the orchestrator.
        """
        return True

    async def initialize(self) -> None:
        """
        Initialize the source (open HTTP sessions, etc.).

        Called once by SourceManager.initialize_all(). Default does nothing.
        """
        pass

    async def shutdown(self) -> None:
        """Close sessions and release resources. Default does nothing."""
        pass

    async def health_check(self) -> bool:
        """
        Check if the upstream API is reachable.

        Returns:
            bool: True if healthy. Default assumes healthy.
        """
        return True

    # ============================================
    # Utility Methods
    # ============================================

    def supports(self, feature: str) -> bool:
        """
        Check if this source supports a specific feature.

        Example:
            >>> if source.supports("batch_prices"):
            ...     prices = await source.get_prices_batch(requests)
        """
        return self.capabilities.get(feature, False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}', confidence='{self.confidence}')>"

    def __str__(self) -> str:
        return self.name
