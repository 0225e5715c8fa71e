"""
Numeric parsing helpers for vendor payloads.

Vendors send numbers as JSON numbers, numeric strings, empty strings or null.
"""

import math
from typing import Any, Optional


def to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """
    Parse a vendor number.

    Returns:
        The float value, or `default` when the value is missing, unparsable or not finite

    Example:
        >>> to_float("2.41")
        2.41
        >>> to_float(None, 0.0)
        0.0
    """
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number
