"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Timestamp conversion and normalization utilities
    - chains: Supported chain table and per-vendor chain identifiers
    - symbols: Address validation and market symbol parsing
    - numbers: Lenient float conversion for upstream payloads
"""

from core.utils.time import current_utc_timestamp, normalize_timestamp_ms
from core.utils.chains import get_chain_info, is_supported_chain
from core.utils.symbols import is_valid_address, extract_token_address

__all__ = [
    "current_utc_timestamp",
    "normalize_timestamp_ms",
    "get_chain_info",
    "is_supported_chain",
    "is_valid_address",
    "extract_token_address",
]
