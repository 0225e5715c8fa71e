"""
Core Package

Contains the source-agnostic core logic including:
- PriceSourceInterface: Abstract base class every price source implements
- SourceManager: Registry of price sources in fallback order
- RequestExecutor: Shared HTTP transport with retries, timeouts and caching
- Aggregator / PnL: Pure price math (best price, statistics, arbitrage, leveraged PnL)
- Schemas: Pydantic models for normalized data structures

Every source follows the same interface, so new sources plug in without touching the service layer.
"""
