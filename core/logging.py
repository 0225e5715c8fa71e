"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger

    logger.debug("Detailed debugging information")
    logger.info("General informational messages")
    logger.warning("Warning messages for potentially harmful situations")
    logger.error("Error messages for serious problems")

Log Levels used by the price backend:
    DEBUG    - Request/response traces and cache hits
    INFO     - Lifecycle events (service initialized, stream started)
    WARNING  - A price source failed and the next one is being tried
    ERROR    - No source could produce a price, unexpected failures

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] pricebackend: Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("pricebackend")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

# Create the global logger instance
logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance for the specified name

    Example:
        # In sources/dexscreener/api_client.py:
        from core.logging import get_logger
        logger = get_logger(__name__)  # "pricebackend.sources.dexscreener.api_client"
    """
    return logging.getLogger(f"pricebackend.{name}")
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(source: str, method: str, endpoint: str, params: dict = None) -> None:
    """
    Log an API request with consistent formatting.

    Args:
        source: Price source name (e.g., "dexscreener")
        method: HTTP method
        endpoint: API endpoint being called
        params: Request parameters (optional)

    Example:
        >>> log_api_request("oracle", "GET", "/price", {"token": "0x..."})
        [DEBUG] API Request: oracle GET /price | Params: {'token': '0x...'}
    """
    if params:
        logger.debug(f"API Request: {source} {method} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {source} {method} {endpoint}")


def log_api_response(source: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an API response with status and timing information.

    Example:
        >>> log_api_response("oracle", "/price", 200, 0.342)
        [DEBUG] API Response: oracle /price | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {source} {endpoint} | Status: {status}{time_str}")


def log_source_result(source: str, identifier: str, price: float = None, error: str = None) -> None:
    """
    Log the outcome of asking one price source for a token.

    A price is logged at INFO; a failure at WARNING because the caller
    falls through to the next source.

    Example:
        >>> log_source_result("oracle", "CAKE", price=2.41)
        [INFO] Price source: oracle CAKE | Price: 2.41
        >>> log_source_result("oracle", "CAKE", error="timeout")
        [WARNING] Price source: oracle CAKE | Failed: timeout
    """
    if error is not None:
        logger.warning(f"Price source: {source} {identifier} | Failed: {error}")
    elif price is not None:
        logger.info(f"Price source: {source} {identifier} | Price: {price}")
    else:
        logger.info(f"Price source: {source} {identifier} | No price")


logger.debug("Logging system initialized")
