"""
Symbol Utilities

Token identifiers reach the price service in several shapes:
- Plain symbol: "CAKE"
- Market symbol: "CAKE+0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"
- Perp symbol: "CAKE_PERP_0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"
- Bare contract address: "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"

The helpers here split those shapes into a display symbol and an embedded address.
"""

import re
from typing import Optional

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
PERP_PATTERN = re.compile(r"^(.+)_PERP_(0x[a-fA-F0-9]{40})$", re.IGNORECASE)


def is_valid_address(address: Optional[str]) -> bool:
    """
    Validate EVM address format (0x followed by 40 hex characters).

    Example:
        >>> is_valid_address("0x" + "a" * 40)
        True
        >>> is_valid_address("0x123")
        False
    """
    if not isinstance(address, str):
        return False
    return bool(ADDRESS_PATTERN.match(address))


def extract_token_address(identifier: str) -> Optional[str]:
    """
    Extract the contract address embedded in an identifier.

    Returns:
        The address for perp/market symbols and bare addresses, None otherwise

    Example:
        >>> extract_token_address("CAKE+0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82")
        '0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82'
        >>> extract_token_address("CAKE") is None
        True
    """
    if is_valid_address(identifier):
        return identifier

    perp_match = PERP_PATTERN.match(identifier)
    if perp_match:
        return perp_match.group(2)

    if "+" in identifier:
        address_part = identifier.split("+", 1)[1]
        if is_valid_address(address_part):
            return address_part

    return None


def extract_base_symbol(identifier: str) -> Optional[str]:
    """
    Extract the uppercase display symbol from an identifier.

    Bare addresses carry no symbol, so None is returned for them.
    """
    if is_valid_address(identifier):
        return None

    perp_match = PERP_PATTERN.match(identifier)
    if perp_match:
        return perp_match.group(1).upper()

    if "+" in identifier:
        return identifier.split("+", 1)[0].upper()

    return identifier.upper()
