"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Base URLs and optional API keys for every price source
- Retry, timeout and cache tuning for the request executor
- Batch and streaming cadence for the price service
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.oracle_base_url)
    print(settings.use_coingecko)  # True when a CoinGecko key is configured
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from core.utils.chains import ChainInfo, get_chain_info, is_supported_chain


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        oracle_base_url: Base URL of the internal price aggregation service
        oracle_api_key: Optional API key sent as X-API-Key to the oracle
        dexscreener_base_url: Base URL of the DexScreener public API
        coingecko_base_url: Base URL of the CoinGecko Pro API
        coingecko_api_key: CoinGecko API key (empty = source disabled)
        default_chain_id: Chain used when callers don't specify one
        request_timeout: Per-attempt HTTP timeout in seconds
        max_retries: Extra attempts after the first failed one
        retry_delay: Base delay for exponential backoff in seconds
        request_cache_ttl: TTL of the raw response cache in seconds
        price_cache_ttl: TTL of resolved token prices in seconds
        metadata_cache_ttl: TTL of resolved token metadata in seconds
        cache_max_entries: Size bound of each in-memory cache
        batch_size: Identifiers fetched concurrently per batch chunk
        batch_delay: Pause between batch chunks in seconds
        stream_interval: Default polling interval of price streams in seconds
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
    """

    # ============================================
    # Internal Price Oracle
    # ============================================

    oracle_base_url: str = Field(
        default="http://localhost:3001",
        description="Internal multi-exchange price aggregator base URL"
    )

    oracle_api_key: str = Field(
        default="",
        description="Oracle API key (optional, sent as X-API-Key)"
    )

    # ============================================
    # Public Price Indexes
    # ============================================

    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com/latest",
        description="DexScreener API base URL (unauthenticated)"
    )

    coingecko_base_url: str = Field(
        default="https://pro-api.coingecko.com/api/v3",
        description="CoinGecko Pro API base URL"
    )

    coingecko_api_key: str = Field(
        default="",
        description="CoinGecko API key (optional, source is skipped when empty)"
    )

    # ============================================
    # Chain Configuration
    # ============================================

    default_chain_id: int = Field(
        default=56,
        description="Default chain ID (56 = BNB Smart Chain)"
    )

    # ============================================
    # Request Executor
    # ============================================

    request_timeout: float = Field(
        default=15.0,
        description="HTTP request timeout per attempt in seconds"
    )

    max_retries: int = Field(
        default=2,
        description="Maximum number of retries for failed idempotent requests"
    )

    retry_delay: float = Field(
        default=1.0,
        description="Base delay for exponential backoff between retries (seconds)"
    )

    request_cache_ttl: float = Field(
        default=5.0,
        description="Response cache TTL for GET requests in seconds"
    )

    # ============================================
    # Price Service
    # ============================================

    price_cache_ttl: float = Field(
        default=5.0,
        description="Resolved token price cache TTL in seconds"
    )

    metadata_cache_ttl: float = Field(
        default=300.0,
        description="Resolved token metadata cache TTL in seconds"
    )

    cache_max_entries: int = Field(
        default=1024,
        description="Maximum entries held by each in-memory cache"
    )

    batch_size: int = Field(
        default=10,
        description="Number of identifiers fetched concurrently per batch chunk"
    )

    batch_delay: float = Field(
        default=0.1,
        description="Delay between batch chunks to respect upstream rate limits (seconds)"
    )

    stream_interval: float = Field(
        default=5.0,
        description="Default price stream polling interval in seconds"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def use_coingecko(self) -> bool:
        """
        Check if the CoinGecko source is configured.

        Returns:
            True if an API key is set, False otherwise (source skipped)
        """
        return bool(self.coingecko_api_key)

    @property
    def default_chain(self) -> ChainInfo:
        """
        Chain information for the configured default chain.

        Raises:
            ValueError: If default_chain_id is not a supported chain
        """
        chain = get_chain_info(self.default_chain_id)
        if chain is None:
            raise ValueError(f"Unsupported DEFAULT_CHAIN_ID: {self.default_chain_id}")
        return chain

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['http://localhost:3000', 'http://localhost:5173']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_oracle_headers(self, api_key: Optional[str] = None) -> dict:
        """
        Get HTTP headers for oracle requests.

        Args:
            api_key: Key to send instead of the configured one (optional)

        Returns:
            Dictionary of headers including the API key if configured
        """
        headers = {
            "Content-Type": "application/json",
        }

        api_key = self.oracle_api_key if api_key is None else api_key
        if api_key:
            headers["X-API-Key"] = api_key

        return headers

    def get_coingecko_headers(self, api_key: Optional[str] = None) -> dict:
        """
        Get HTTP headers for CoinGecko requests.

        Args:
            api_key: Key to send instead of the configured one (optional)

        Returns:
            Dictionary of headers including the Pro API key if configured
        """
        headers = {
            "Accept": "application/json",
        }

        api_key = self.coingecko_api_key if api_key is None else api_key
        if api_key:
            headers["x-cg-pro-api-key"] = api_key

        return headers


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global instance)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    if not is_supported_chain(config.default_chain_id):
        raise ValueError(
            f"Unsupported DEFAULT_CHAIN_ID: {config.default_chain_id}. "
            f"Please update DEFAULT_CHAIN_ID in .env"
        )

    for name in ("request_timeout", "request_cache_ttl", "price_cache_ttl",
                 "metadata_cache_ttl", "stream_interval"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name.upper()} must be positive, got {getattr(config, name)}")

    if config.max_retries < 0:
        raise ValueError(f"MAX_RETRIES cannot be negative: {config.max_retries}")

    if config.retry_delay < 0 or config.batch_delay < 0:
        raise ValueError("RETRY_DELAY and BATCH_DELAY cannot be negative")

    if config.batch_size < 1:
        raise ValueError(f"BATCH_SIZE must be at least 1, got {config.batch_size}")

    if config.cache_max_entries < 1:
        raise ValueError(f"CACHE_MAX_ENTRIES must be at least 1, got {config.cache_max_entries}")

    # Validate port number
    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    # Validate log level
    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(f"Oracle: {config.oracle_base_url}")
    logger.info(f"DexScreener: {config.dexscreener_base_url}")
    logger.info(f"CoinGecko: {'enabled' if config.use_coingecko else 'disabled (no API key)'}")
    logger.info(f"Default chain: {config.default_chain.name} ({config.default_chain_id})")
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
