"""
Normalized Data Schemas

This module defines Pydantic models for all price data types.
These schemas provide a unified, vendor-agnostic data format.

Key Principle:
    Regardless of which source the data comes from (the internal oracle, DexScreener,
    CoinGecko), it gets normalized into these standardized schemas. This allows the
    orchestrator, the PnL calculator and API consumers to work with consistent data.

Models:
    - PriceQuote: One venue's price for a token
    - AggregatedPrice: All quotes for one token plus best/weighted price
    - PriceStatistics / ArbitrageOpportunity: Dispersion across venues
    - TokenMetadata: Symbol resolved to an on-chain address
    - TokenPriceData: The orchestrator's answer to "what is token X worth"
    - PositionPnLInput / PositionPnLResult / PnLDisplay: Leveraged PnL
    - PortfolioValuation: PnL summed over many positions
    - PriceStreamUpdate: One update pushed by a price stream
    - ApiError / RequestResult: Result type of the request executor
    - Oracle auxiliary payloads (health, reference price, chains, token info)

Timestamps are milliseconds since epoch (UTC) throughout.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from core.errors import error_from_kind


SourceName = Literal["oracle", "dexscreener", "coingecko"]
Confidence = Literal["high", "medium", "low"]


# ============================================
# Quote Schemas
# ============================================

class PriceQuote(BaseModel):
    """
    Single-venue Price Quote

    Represents the price one venue (a DEX inside the oracle, a DexScreener pair,
    a CoinGecko pool) reported for a token. Quotes are ephemeral: they are created
    by the adapters, combined by the aggregator and then discarded.

    Attributes:
        source: Venue name (e.g., "PancakeSwap V2", "dexscreener:pancakeswap")
        price: Raw price as reported (quote-token denominated for DEX venues)
        price_usd: USD price when the venue reports one
        liquidity: USD liquidity backing the quote (optional)
        volume_24h: 24h USD volume (optional)
        pair_address: Pool/pair the quote came from (optional)
        timestamp: When the quote was produced (ms)
        success: False if the venue failed to produce a price
        error: Venue error message when success is False

    Example:
        >>> quote = PriceQuote(
        ...     source="PancakeSwap V2",
        ...     price=0.0041,
        ...     price_usd=2.41,
        ...     liquidity=1250000.0,
        ...     timestamp=1704110400000,
        ...     success=True
        ... )
    """

    source: str = Field(..., description="Venue name")
    price: float = Field(0.0, description="Raw price as reported by the venue")
    price_usd: Optional[float] = Field(None, description="USD price (optional)")
    liquidity: Optional[float] = Field(None, ge=0, description="USD liquidity (optional)")
    volume_24h: Optional[float] = Field(None, ge=0, description="24h USD volume (optional)")
    pair_address: Optional[str] = Field(None, description="Pair/pool address (optional)")
    timestamp: int = Field(..., description="Quote time in milliseconds since epoch")
    success: bool = Field(True, description="False if the venue failed")
    error: Optional[str] = Field(None, description="Venue error message")

    @property
    def effective_price(self) -> float:
        """USD price when known, raw price otherwise."""
        if self.price_usd is not None and self.price_usd > 0:
            return self.price_usd
        return self.price


class PriceStatistics(BaseModel):
    """
    Dispersion of successful quotes for one token.

    All fields are zero when there is no successful quote.
    Variance is the population variance.
    """

    min: float = 0.0
    max: float = 0.0
    median: float = 0.0
    variance: float = 0.0
    standard_deviation: float = 0.0
    count: int = Field(0, description="Number of successful quotes used")


class ArbitrageOpportunity(BaseModel):
    """
    Price spread between two venues.

    Attributes:
        buy_from: Venue with the lower price
        sell_to: Venue with the higher price
        profit: Absolute price difference
        profit_percent: (sell - buy) / buy * 100
    """

    buy_from: str
    sell_to: str
    profit: float
    profit_percent: float


class AggregatedPrice(BaseModel):
    """
    Aggregated Price across venues

    Invariant:
        `best` is chosen only from quotes with success=True, by greatest liquidity,
        ties resolved by source priority order.

    Attributes:
        token_address: Token contract address
        pair_address: Pair the request was scoped to (optional)
        quotes: Every quote reported for this token (failed ones included)
        best: Highest-liquidity successful quote (None if nothing succeeded)
        weighted_average: Venue-weighted average of successful raw prices
        average_price_usd: USD average as reported by the oracle (optional)
        timestamp: Aggregation time (ms)
    """

    token_address: str
    pair_address: Optional[str] = None
    quotes: List[PriceQuote] = Field(default_factory=list)
    best: Optional[PriceQuote] = None
    weighted_average: float = 0.0
    average_price_usd: Optional[float] = None
    timestamp: int

    @property
    def successful_quotes(self) -> List[PriceQuote]:
        return [q for q in self.quotes if q.success and q.price > 0]


# ============================================
# Token Schemas
# ============================================

class TokenMetadata(BaseModel):
    """
    Token Metadata

    A human symbol resolved to a concrete token address on one chain.
    Resolved once per symbol and cached independently of prices.

    Example:
        >>> meta = TokenMetadata(
        ...     symbol="CAKE",
        ...     name="PancakeSwap Token",
        ...     address="0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82",
        ...     chain="bsc",
        ...     decimals=18
        ... )
    """

    symbol: str
    name: str
    address: str
    chain: str = Field(..., description="DexScreener-style chain slug (bsc, base, ...)")
    decimals: int = Field(18, ge=0)
    logo_uri: Optional[str] = None

    @field_validator('symbol')
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is uppercase"""
        return v.upper()


class DexPrice(BaseModel):
    """Per-venue price attached to an oracle-sourced TokenPriceData."""

    dex: str
    price: float
    liquidity: Optional[float] = None


class TokenPriceData(BaseModel):
    """
    Token Price Data

    The orchestrator's answer for one token. Callers must treat a missing
    TokenPriceData as "no price available", never as zero.

    Attributes:
        token_address: Token contract address
        symbol: Uppercase token symbol
        price_usd: Winning USD price (always positive)
        price_native: Raw price of the winning quote (oracle only)
        price_change_24h: 24h change in percent when the source reports it
        timestamp: When the price was fetched (ms)
        source: Which source produced the price
        confidence: high (oracle), medium (dexscreener), low (coingecko)
        dex_prices: Successful per-venue prices (oracle only)
    """

    token_address: str
    symbol: str
    price_usd: float = Field(..., gt=0)
    price_native: Optional[float] = None
    price_change_24h: Optional[float] = None
    timestamp: int
    source: SourceName
    confidence: Confidence
    dex_prices: List[DexPrice] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "token_address": "0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82",
                "symbol": "CAKE",
                "price_usd": 2.41,
                "price_native": 0.0041,
                "timestamp": 1704110400000,
                "source": "oracle",
                "confidence": "high",
                "dex_prices": [{"dex": "PancakeSwap V2", "price": 2.41, "liquidity": 1250000.0}]
            }
        }
    )


# ============================================
# PnL Schemas
# ============================================

class PositionPnLInput(BaseModel):
    """
    Position parameters as received from the trading UI.

    Numeric fields are strings because they usually arrive display-formatted
    ("$45,000.00", "10x"); symbols are stripped before parsing.
    """

    price_key: str = Field(..., description="Symbol, market symbol or token address")
    entry_price: str
    margin: str
    leverage: str
    is_long: bool
    liquidation_price: str = Field("0", description="Pass-through, unused in the math")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "price_key": "CAKE",
                "entry_price": "$2.30",
                "margin": "$1,000",
                "leverage": "10x",
                "is_long": True,
                "liquidation_price": "$2.10"
            }
        }
    )


class PositionPnLResult(BaseModel):
    """
    Unrealized PnL of a leveraged position.

    Invariant:
        sign(unrealized_pnl) == sign(current_price - entry_price) for longs,
        inverted for shorts.
    """

    current_price: float
    entry_price: float
    side: Literal["long", "short"]
    is_long: bool
    margin: float
    leverage: float
    unrealized_pnl: float
    unrealized_pnl_percentage: float
    liquidation_price: str = "0"
    token_amount: float
    current_value: float
    price_source: Optional[str] = Field(None, description="Source that priced current_price")
    price_confidence: Optional[Literal["high", "medium", "low"]] = None


class PnLDisplay(BaseModel):
    """Display strings for a PnL result (caller-facing precision)."""

    current_price: str
    entry_price: str
    unrealized_pnl: str
    unrealized_pnl_percentage: str


class PortfolioPosition(BaseModel):
    """One position of a portfolio valuation request."""

    price_key: str
    entry_price: str
    margin: str
    leverage: str
    is_long: bool


class PortfolioPositionValue(BaseModel):
    price_key: str
    current_price: float
    unrealized_pnl: float
    current_value: float


class PortfolioValuation(BaseModel):
    """Sum of current value and PnL over every position that could be priced."""

    total_value: float = 0.0
    total_pnl: float = 0.0
    positions: List[PortfolioPositionValue] = Field(default_factory=list)


# ============================================
# Streaming Schemas
# ============================================

class PriceStreamUpdate(BaseModel):
    """
    One update emitted by a price stream cycle.

    Attributes:
        stream_id: Handle of the stream that produced the update
        identifier: Identifier as passed to start_stream
        token_address: Resolved token address
        symbol: Token symbol
        price_usd: Best USD price for this cycle
        price_native: Raw price of the best quote (optional)
        source / confidence: Which source won this cycle
        timestamp: When the update was emitted (ms)
    """

    stream_id: str
    identifier: str
    token_address: str
    symbol: str
    price_usd: float
    price_native: Optional[float] = None
    source: SourceName
    confidence: Confidence
    timestamp: int


# ============================================
# Request Executor Result Type
# ============================================

class ApiError(BaseModel):
    """Normalized error carried by a failed RequestResult."""

    kind: str = Field(..., examples=["NetworkError", "TimeoutError", "ValidationError"])
    message: str


class RequestResult(BaseModel):
    """
    Result of one executor request.

    The executor never leaves a caller guessing: either success is True and
    data holds the decoded JSON body, or error describes what went wrong.
    The call-site decides whether to convert a failure into an exception
    with raise_for_error().
    """

    success: bool
    data: Any = None
    error: Optional[ApiError] = None
    status: int = 0
    cached: bool = False

    def raise_for_error(self) -> "RequestResult":
        """
        Raise the typed exception for a failed result.

        Returns:
            self, so that calls can be chained: result.raise_for_error().data
        """
        if not self.success:
            if self.error is None:
                raise error_from_kind("PriceServiceError", "Unknown error", status=self.status)
            raise error_from_kind(self.error.kind, self.error.message, status=self.status)
        return self


# ============================================
# Oracle Auxiliary Payloads
# ============================================

class PriceRequest(BaseModel):
    """One item of the oracle's batch price request."""

    token_address: str
    pair_address: Optional[str] = None
    chain_id: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"tokenAddress": self.token_address}
        if self.pair_address:
            payload["pairAddress"] = self.pair_address
        if self.chain_id:
            payload["chainId"] = self.chain_id
        return payload


class OracleHealth(BaseModel):
    status: str
    timestamp: Optional[str] = None
    multi_chain: bool = False
    dexes: List[str] = Field(default_factory=list)
    supported_chains: List[int] = Field(default_factory=list)
    usd_pricing: bool = False
    price_oracle: Optional[str] = None


class OracleQuote(BaseModel):
    """Wrapped native token USD reference price used by the oracle."""

    wrapped_native_usd_price: float
    source: str
    timestamp: Optional[str] = None
    note: Optional[str] = None


class ChainsInfo(BaseModel):
    multi_chain: bool = False
    supported_chains: Dict[int, str] = Field(default_factory=dict)


class OracleTokenInfo(BaseModel):
    address: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    total_supply: Optional[str] = None
    pricing: Optional[AggregatedPrice] = None


# ============================================
# API Request/Response Bodies
# ============================================

class BatchPriceRequest(BaseModel):
    identifiers: List[str] = Field(..., min_length=1)
    chain_id: Optional[int] = None


class SourceStatus(BaseModel):
    name: str
    priority: int
    confidence: Confidence
    configured: bool


class TokenAnalysis(BaseModel):
    """
    Cross-source view of one token used by the analysis endpoint.

    Venue quotes from every quote-capable source are merged with prices in USD,
    so that statistics and arbitrage spreads compare like with like.
    """

    token_address: str
    chain_id: int
    aggregated: AggregatedPrice
    statistics: PriceStatistics
    arbitrage: List[ArbitrageOpportunity] = Field(default_factory=list)
    source_errors: Dict[str, str] = Field(default_factory=dict)
