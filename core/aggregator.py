"""
Price Aggregator

Pure functions that derive a single view from many venue quotes:
- best_price: the highest-liquidity successful quote
- weighted_average: venue-weighted average of successful prices
- calculate_statistics: min / max / median / variance / standard deviation
- find_arbitrage_opportunities: spreads between venue pairs
- calculate_price_change: absolute and percentage change between two prices

Only quotes with success=True and price > 0 take part in any calculation.
Nothing here performs I/O, so every function can be tested with literal quotes.
"""

import math
from typing import Any, Dict, List, Optional

from core.schemas import (
    AggregatedPrice,
    ArbitrageOpportunity,
    PriceQuote,
    PriceStatistics,
)
from core.utils.time import current_utc_timestamp


# ============================================
# Venue Weights
# ============================================

DEX_WEIGHTS: Dict[str, float] = {
    "PancakeSwap V2": 1.0,
    "PancakeSwap V3": 1.0,
    "Uniswap V2": 0.9,
    "Uniswap V3": 0.9,
    "Thena": 0.8,
    "Four Meme": 0.6,
}
"""Default per-venue weights; venues missing from the table weigh UNKNOWN_VENUE_WEIGHT"""

UNKNOWN_VENUE_WEIGHT = 0.5

DEFAULT_VENUE_PRIORITY: List[str] = list(DEX_WEIGHTS.keys())

MIN_ARBITRAGE_PROFIT_PERCENT = 0.1


def successful_quotes(quotes: List[PriceQuote]) -> List[PriceQuote]:
    """Quotes with success=True and a positive price, in input order."""
    return [q for q in quotes if q.success and q.price > 0]


def best_price(
    quotes: List[PriceQuote],
    priority: Optional[List[str]] = None
) -> Optional[PriceQuote]:
    """
    Pick the highest-liquidity successful quote.

    Missing liquidity counts as 0. Ties go to the venue listed earlier in
    `priority` (venues not listed rank after listed ones), then to the
    earlier quote in input order.

    Args:
        quotes: Venue quotes (failed ones are ignored)
        priority: Venue names in preference order (defaults to DEFAULT_VENUE_PRIORITY)

    Returns:
        The winning quote, or None if no quote succeeded

    Example:
        >>> best = best_price([
        ...     PriceQuote(source="A", price=1.0, liquidity=100, timestamp=0),
        ...     PriceQuote(source="B", price=1.1, liquidity=500, timestamp=0),
        ... ])
        >>> best.source
        'B'
    """
    candidates = [q for q in quotes if q.success]
    if not candidates:
        return None

    order = priority if priority is not None else DEFAULT_VENUE_PRIORITY
    rank = {name: index for index, name in enumerate(order)}
    unknown_rank = len(order)

    def sort_key(item):
        index, quote = item
        return (-(quote.liquidity or 0.0), rank.get(quote.source, unknown_rank), index)

    return min(enumerate(candidates), key=sort_key)[1]


def weighted_average(
    quotes: List[PriceQuote],
    weights: Optional[Dict[str, float]] = None
) -> float:
    """
    Venue-weighted average of successful raw prices.

    Args:
        quotes: Venue quotes
        weights: Overrides merged on top of DEX_WEIGHTS

    Returns:
        sum(price * weight) / sum(weight), or 0.0 when no quote qualifies
    """
    combined = dict(DEX_WEIGHTS)
    if weights:
        combined.update(weights)

    weighted_sum = 0.0
    total_weight = 0.0
    for quote in successful_quotes(quotes):
        weight = combined.get(quote.source, UNKNOWN_VENUE_WEIGHT)
        weighted_sum += quote.price * weight
        total_weight += weight

    return weighted_sum / total_weight if total_weight > 0 else 0.0


def calculate_statistics(quotes: List[PriceQuote]) -> PriceStatistics:
    """
    Dispersion statistics over successful quotes.

    Variance is the population variance. An empty input yields an all-zero
    PriceStatistics rather than an error.
    """
    prices = sorted(q.price for q in successful_quotes(quotes))
    if not prices:
        return PriceStatistics()

    count = len(prices)
    middle = count // 2
    if count % 2 == 0:
        median = (prices[middle - 1] + prices[middle]) / 2
    else:
        median = prices[middle]

    mean = sum(prices) / count
    variance = sum((p - mean) ** 2 for p in prices) / count

    return PriceStatistics(
        min=prices[0],
        max=prices[-1],
        median=median,
        variance=variance,
        standard_deviation=math.sqrt(variance),
        count=count,
    )


def find_arbitrage_opportunities(
    quotes: List[PriceQuote],
    min_profit_percent: float = MIN_ARBITRAGE_PROFIT_PERCENT
) -> List[ArbitrageOpportunity]:
    """
    Find price spreads between every unordered pair of successful quotes.

    Pairs with equal prices are skipped. The opportunity buys from the cheaper
    venue and sells to the dearer one; only spreads strictly above
    `min_profit_percent` are kept, largest first.

    Example:
        >>> opps = find_arbitrage_opportunities([
        ...     PriceQuote(source="A", price=1.00, timestamp=0),
        ...     PriceQuote(source="B", price=1.02, timestamp=0),
        ... ])
        >>> opps[0].buy_from, opps[0].sell_to, round(opps[0].profit_percent, 2)
        ('A', 'B', 2.0)
    """
    usable = successful_quotes(quotes)
    opportunities: List[ArbitrageOpportunity] = []

    for i in range(len(usable)):
        for j in range(i + 1, len(usable)):
            first, second = usable[i], usable[j]
            if first.price == second.price:
                continue

            buy, sell = (first, second) if first.price < second.price else (second, first)
            profit = sell.price - buy.price
            profit_percent = profit / buy.price * 100

            if profit_percent > min_profit_percent:
                opportunities.append(ArbitrageOpportunity(
                    buy_from=buy.source,
                    sell_to=sell.source,
                    profit=profit,
                    profit_percent=profit_percent,
                ))

    opportunities.sort(key=lambda o: o.profit_percent, reverse=True)
    return opportunities


def aggregate(
    token_address: str,
    quotes: List[PriceQuote],
    pair_address: Optional[str] = None,
    average_price_usd: Optional[float] = None,
    priority: Optional[List[str]] = None,
    timestamp: Optional[int] = None
) -> AggregatedPrice:
    """Combine venue quotes into an AggregatedPrice (best quote + weighted average)."""
    return AggregatedPrice(
        token_address=token_address,
        pair_address=pair_address,
        quotes=list(quotes),
        best=best_price(quotes, priority),
        weighted_average=weighted_average(quotes),
        average_price_usd=average_price_usd,
        timestamp=timestamp if timestamp is not None else current_utc_timestamp(milliseconds=True),
    )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def calculate_price_change(old_price: Any, new_price: Any) -> Dict[str, float]:
    """
    Absolute and percentage change from old_price to new_price.

    Both values may be numbers or numeric strings. Returns zeros when either
    side is unparsable or the old price is 0.

    Example:
        >>> calculate_price_change("2.00", "2.50")
        {'absolute': 0.5, 'percentage': 25.0}
    """
    old = _to_float(old_price)
    new = _to_float(new_price)

    if math.isnan(old) or math.isnan(new) or old == 0:
        return {"absolute": 0.0, "percentage": 0.0}

    absolute = new - old
    return {"absolute": absolute, "percentage": absolute / old * 100}
