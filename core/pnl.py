"""
Leveraged Position PnL

Pure calculation of unrealized profit and loss for leveraged long/short
positions, plus the display formatting used by trading screens.

Position inputs usually arrive display-formatted ("$45,000.00", "10x"), so
parse_numeric strips currency and leverage decoration before parsing.

Formulas:
    total_exposure = margin * leverage
    token_amount   = total_exposure / entry_price
    current_value  = token_amount * current_price
    unrealized_pnl = (current_price - entry_price) / entry_price * total_exposure * (+1 long, -1 short)
    pnl_percentage = unrealized_pnl / margin * 100

Example:
    >>> result = calculate_pnl("$100", 110.0, "$1,000", "10x", is_long=True)
    >>> result.unrealized_pnl, result.unrealized_pnl_percentage
    (1000.0, 100.0)
"""

import math
import re
from typing import Any, Optional

from core.schemas import PnLDisplay, PositionPnLResult

_STRIP_PATTERN = re.compile(r"[\$,xX\s]")

UNAVAILABLE = "N/A"


def parse_numeric(value: Any) -> float:
    """
    Parse a possibly display-formatted number.

    Strips "$", ",", "x"/"X" and whitespace.

    Returns:
        float value, or NaN when the value cannot be parsed

    Example:
        >>> parse_numeric("$45,000.50")
        45000.5
        >>> parse_numeric("10x")
        10.0
    """
    if value is None:
        return math.nan
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)

    cleaned = _STRIP_PATTERN.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return math.nan


def _unusable(value: float) -> bool:
    return math.isnan(value) or math.isinf(value) or value == 0


def position_inputs_usable(entry_price: Any, margin: Any, leverage: Any) -> bool:
    """True when entry price, margin and leverage all parse to finite non-zero numbers."""
    return not any(_unusable(parse_numeric(v)) for v in (entry_price, margin, leverage))


def calculate_pnl(
    entry_price: Any,
    current_price: Any,
    margin: Any,
    leverage: Any,
    is_long: bool,
    liquidation_price: str = "0"
) -> Optional[PositionPnLResult]:
    """
    Compute unrealized PnL of a leveraged position.

    Args:
        entry_price: Entry price (number or display string)
        current_price: Current USD price
        margin: Collateral (number or display string)
        leverage: Leverage multiplier (number or display string such as "10x")
        is_long: True for long, False for short
        liquidation_price: Passed through unchanged

    Returns:
        PositionPnLResult, or None if any of entry price, current price,
        margin or leverage is zero or unparsable
    """
    entry = parse_numeric(entry_price)
    current = parse_numeric(current_price)
    margin_value = parse_numeric(margin)
    leverage_value = parse_numeric(leverage)

    if any(_unusable(v) for v in (entry, current, margin_value, leverage_value)):
        return None

    total_exposure = margin_value * leverage_value
    token_amount = total_exposure / entry
    current_value = token_amount * current
    multiplier = 1 if is_long else -1
    unrealized_pnl = (current - entry) / entry * total_exposure * multiplier
    unrealized_pnl_percentage = unrealized_pnl / margin_value * 100

    return PositionPnLResult(
        current_price=current,
        entry_price=entry,
        side="long" if is_long else "short",
        is_long=is_long,
        margin=margin_value,
        leverage=leverage_value,
        unrealized_pnl=unrealized_pnl,
        unrealized_pnl_percentage=unrealized_pnl_percentage,
        liquidation_price=str(liquidation_price),
        token_amount=token_amount,
        current_value=current_value,
    )


# ============================================
# Display Formatting
# ============================================

def format_price(price: Optional[float]) -> str:
    """
    Format a price with precision adapted to its magnitude.

    12 decimals below 0.001, 8 below 1, otherwise 6.

    Example:
        >>> format_price(0.0005)
        '$0.000500000000'
        >>> format_price(2.41)
        '$2.410000'
    """
    if price is None or math.isnan(price):
        return UNAVAILABLE
    magnitude = abs(price)
    precision = 12 if magnitude < 0.001 else 8 if magnitude < 1 else 6
    return f"${price:.{precision}f}"


def format_pnl(pnl: Optional[float]) -> str:
    """
    Format a PnL amount with a sign.

    6 decimals below 1, 4 below 10, otherwise 2.

    Example:
        >>> format_pnl(-12.5)
        '-$12.50'
    """
    if pnl is None or math.isnan(pnl):
        return UNAVAILABLE
    magnitude = abs(pnl)
    precision = 6 if magnitude < 1 else 4 if magnitude < 10 else 2
    sign = "+" if pnl >= 0 else "-"
    return f"{sign}${magnitude:.{precision}f}"


def format_percentage(percentage: Optional[float]) -> str:
    """
    Format a percentage with a sign; 4 decimals below 1%, otherwise 2.

    Example:
        >>> format_percentage(0.5)
        '+0.5000%'
    """
    if percentage is None or math.isnan(percentage):
        return UNAVAILABLE
    magnitude = abs(percentage)
    precision = 4 if magnitude < 1 else 2
    sign = "+" if percentage >= 0 else "-"
    return f"{sign}{magnitude:.{precision}f}%"


def format_pnl_result(result: Optional[PositionPnLResult]) -> PnLDisplay:
    """Display strings for a PnL result; every field is "N/A" when the result is missing."""
    if result is None:
        return PnLDisplay(
            current_price=UNAVAILABLE,
            entry_price=UNAVAILABLE,
            unrealized_pnl=UNAVAILABLE,
            unrealized_pnl_percentage=UNAVAILABLE,
        )

    return PnLDisplay(
        current_price=format_price(result.current_price),
        entry_price=format_price(result.entry_price),
        unrealized_pnl=format_pnl(result.unrealized_pnl),
        unrealized_pnl_percentage=format_percentage(result.unrealized_pnl_percentage),
    )
