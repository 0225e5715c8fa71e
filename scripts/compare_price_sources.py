#!/usr/bin/env python3
"""
Compare token prices across sources in this backend.

What it does:
- Calls GET /analysis/{token}?chain_id=N for every venue quote
- Calls GET /price/address/{token}?chain_id=N for the fallback-chain price
- Validates response shape and quote consistency
- Prints every venue quote with liquidity, plus best / weighted average
- Reports dispersion (bps) and the arbitrage spreads found

Usage:
  python scripts/compare_price_sources.py 0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82
  python scripts/compare_price_sources.py 0x... --chain-id 8453 --tolerance-bps 100
  python scripts/compare_price_sources.py 0x... --host 127.0.0.1 --port 8000 --pair 0x...
"""

import argparse
import sys
from typing import Any, Dict, List, Optional, Tuple

import httpx


REQUIRED_QUOTE_FIELDS = ["source", "price", "timestamp", "success"]
REQUIRED_PRICE_FIELDS = ["token_address", "symbol", "price_usd", "timestamp", "source", "confidence"]


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Compare token prices across price sources.")
    p.add_argument("token", help="Token contract address")
    p.add_argument("--host", default="localhost", help="Server host (default: localhost)")
    p.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    p.add_argument("--chain-id", type=int, default=56, help="Chain ID (default: 56)")
    p.add_argument("--pair", default=None, help="Pair address to price against (optional)")
    p.add_argument("--tolerance-bps", type=float, default=50.0, help="Allowed dispersion between venues (bps)")
    return p.parse_args()


def is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def validate_quote(quote: dict) -> Tuple[bool, str]:
    for f in REQUIRED_QUOTE_FIELDS:
        if f not in quote:
            return False, f"missing field: {f}"
    if not quote["success"]:
        return True, ""
    if not is_number(quote["price"]) or quote["price"] <= 0:
        return False, f"{quote['source']}: successful quote needs a positive price"
    if quote.get("liquidity") is not None and quote["liquidity"] < 0:
        return False, f"{quote['source']}: negative liquidity"
    return True, ""


def validate_price(item: dict) -> Tuple[bool, str]:
    for f in REQUIRED_PRICE_FIELDS:
        if f not in item:
            return False, f"missing field: {f}"
    if not is_number(item["price_usd"]) or item["price_usd"] <= 0:
        return False, "price_usd must be a positive number"
    if item["symbol"] != item["symbol"].upper():
        return False, "symbol should be uppercase"
    if not isinstance(item["timestamp"], int):
        return False, "timestamp must be int milliseconds"
    return True, ""


def fetch(client: httpx.Client, path: str, params: Dict[str, Any]) -> Optional[dict]:
    r = client.get(path, params={k: v for k, v in params.items() if v is not None})
    if r.status_code == 404:
        return None
    if r.status_code != 200:
        raise RuntimeError(f"{path} HTTP {r.status_code}: {r.text[:200]}")
    return r.json()


def spread_bps(prices: List[float]) -> float:
    lo, hi = min(prices), max(prices)
    mid = (lo + hi) / 2.0 if (lo + hi) != 0 else 1.0
    return (hi - lo) / mid * 10_000.0


def main() -> int:
    args = parse_args()
    base = f"http://{args.host}:{args.port}"
    params = {"chain_id": args.chain_id, "pair_address": args.pair}
    errors: List[str] = []

    with httpx.Client(base_url=base, timeout=30.0) as client:
        try:
            analysis = fetch(client, f"/analysis/{args.token}", params)
            price = fetch(client, f"/price/address/{args.token}", params)
        except (httpx.HTTPError, RuntimeError) as e:
            print(f"[Error] {e}")
            return 2

    if analysis is None:
        print("[Error] analysis returned 404")
        return 2

    quotes = analysis["aggregated"]["quotes"]
    for quote in quotes:
        ok, msg = validate_quote(quote)
        if not ok:
            errors.append(msg)

    if price is not None:
        ok, msg = validate_price(price)
        if not ok:
            errors.append(f"price: {msg}")

    if errors:
        print("[Validation errors]")
        for msg in errors:
            print(f"  - {msg}")

    if analysis["source_errors"]:
        print("[Source errors]")
        for source, msg in analysis["source_errors"].items():
            print(f"  - {source}: {msg}")

    print("\n[Venue quotes]")
    for quote in quotes:
        if not quote["success"]:
            print(f"  {quote['source']:<28} FAILED {quote.get('error') or ''}")
            continue
        liquidity = quote.get("liquidity")
        liq = f"{liquidity:,.0f}" if liquidity is not None else "n/a"
        print(f"  {quote['source']:<28} price={quote['price']:.8f} liquidity={liq}")

    best = analysis["aggregated"]["best"]
    if best is not None:
        print(f"\n[Best] {best['source']} price={best['price']:.8f}")
    print(f"[Weighted average] {analysis['aggregated']['weighted_average']:.8f}")

    stats = analysis["statistics"]
    if stats["count"] >= 2:
        prices = [q["price"] for q in quotes if q["success"]]
        bps = spread_bps(prices)
        status = "OK" if bps <= args.tolerance_bps else "WARN"
        print(
            f"[Dispersion] n={stats['count']} median={stats['median']:.8f} "
            f"stdev={stats['standard_deviation']:.8f} spread={bps:.1f} bps -> {status}"
        )

    if analysis["arbitrage"]:
        print("\n[Arbitrage]")
        for opp in analysis["arbitrage"]:
            print(f"  buy {opp['buy_from']} -> sell {opp['sell_to']} profit={opp['profit_percent']:.3f}%")

    if price is None:
        print("\n[Fallback price] unavailable")
    else:
        print(
            f"\n[Fallback price] {price['symbol']} ${price['price_usd']:.8f} "
            f"via {price['source']} ({price['confidence']})"
        )

    print("\n[Done]")
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
