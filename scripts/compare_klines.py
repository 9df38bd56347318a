#!/usr/bin/env python3
"""
Compare klines for one symbol across every exchange served by this backend.

What it does:
- Calls GET /{exchange}/klines/{symbol}/{interval}?limit=N for each exchange
  in GET /exchanges (or the ones given with --exchanges)
- Validates response shape and basic OHLC consistency
- Optionally keeps only candles opened at/after --since (any ISO-8601 date)
- Prints a summary of the latest candle per exchange
- Compares last closes across venues (price spread in bps)
- Checks direction agreement (close > open vs close < open)

Volumes are printed but never compared: units differ between exchanges.

Usage:
  python scripts/compare_klines.py --symbol BTC --interval 15m --limit 100
  python scripts/compare_klines.py --symbol ETH --exchanges Binance,OKX --since 2024-01-01T00:00Z
  python scripts/compare_klines.py --host 127.0.0.1 --port 8000 --symbol SOL --interval 1h
"""

import argparse
import sys
from datetime import timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
from dateutil import parser as dateparser


REQUIRED_FIELDS = ["time", "open", "high", "low", "close", "volume"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Compare kline data across exchanges.")
    p.add_argument("--host", default="localhost", help="Server host (default: localhost)")
    p.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    p.add_argument("--symbol", default="BTC", help="Base asset (default: BTC)")
    p.add_argument("--interval", default="15m", help="Interval (e.g., 1m, 15m, 1h, 4h, 1d)")
    p.add_argument("--limit", type=int, default=100, help="Number of candles to request")
    p.add_argument("--exchanges", default="", help="Comma-separated exchanges (default: all served)")
    p.add_argument("--since", default=None, help="Only compare candles opened at/after this ISO date")
    p.add_argument("--tolerance-bps", type=float, default=50.0, help="Allowed spread between venues (bps)")
    p.add_argument("--print-sample", type=int, default=0, help="Print first N items per exchange")
    return p.parse_args(argv)


def is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def since_millis(value: Optional[str]) -> Optional[int]:
    """ISO-8601 text -> epoch milliseconds (naive dates are taken as UTC)."""
    if not value:
        return None
    parsed = dateparser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def validate_item(item: dict) -> Tuple[bool, str]:
    for f in REQUIRED_FIELDS:
        if f not in item:
            return False, f"missing field: {f}"
    if not isinstance(item["time"], int) or item["time"] < 0:
        return False, "time must be a non-negative int (epoch ms)"
    if not all(is_number(item[k]) for k in ("open", "high", "low", "close", "volume")):
        return False, "numeric fields must be numbers"
    # Logical OHLC checks
    high, low = float(item["high"]), float(item["low"])
    opn, cls = float(item["open"]), float(item["close"])
    if high < low:
        return False, "high < low"
    if high < opn or high < cls:
        return False, "high must be >= open/close"
    if low > opn or low > cls:
        return False, "low must be <= open/close"
    if any(float(item[k]) < 0 for k in ("open", "high", "low", "close", "volume")):
        return False, "negative values found"
    return True, ""


def validate_series(items: List[dict]) -> Tuple[bool, str]:
    if not isinstance(items, list):
        return False, "response is not a list"
    if not items:
        return False, "empty list"
    for idx, it in enumerate(items):
        ok, msg = validate_item(it)
        if not ok:
            return False, f"item {idx}: {msg}"
    # Strictly increasing open times
    for i in range(1, len(items)):
        if items[i]["time"] <= items[i - 1]["time"]:
            return False, f"times not strictly increasing at {i}"
    return True, ""


def spread_bps(closes: List[float]) -> float:
    cmin, cmax = min(closes), max(closes)
    mid = (cmin + cmax) / 2.0 if (cmin + cmax) != 0 else 1.0
    return (cmax - cmin) / mid * 10_000.0


def pct(a: float, b: float) -> float:
    if b == 0:
        return 0.0
    return (a - b) / b * 100.0


def fetch_exchanges(base: str) -> List[str]:
    r = httpx.get(f"{base}/exchanges", timeout=30.0)
    r.raise_for_status()
    return r.json()["exchanges"]


def fetch_klines(base: str, exchange: str, symbol: str, interval: str, limit: int) -> List[dict]:
    url = f"{base}/{exchange}/klines/{symbol}/{interval}?limit={limit}"
    r = httpx.get(url, timeout=30.0)
    if r.status_code != 200:
        raise RuntimeError(f"{exchange} HTTP {r.status_code}: {r.text[:200]}")
    return r.json()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    base = f"http://{args.host}:{args.port}"
    cutoff = since_millis(args.since)

    try:
        exchanges = [e.strip() for e in args.exchanges.split(",") if e.strip()] or fetch_exchanges(base)
    except httpx.HTTPError as e:
        print(f"[Error] cannot list exchanges: {e}")
        return 2

    results: Dict[str, List[dict]] = {}
    latest: Dict[str, dict] = {}
    errors: Dict[str, str] = {}

    # Fetch and validate
    for ex in exchanges:
        try:
            data = fetch_klines(base, ex, args.symbol, args.interval, args.limit)
        except (httpx.HTTPError, RuntimeError) as e:
            errors[ex] = str(e)
            continue

        ok, msg = validate_series(data)
        if not ok:
            errors[ex] = msg
            continue
        if cutoff is not None:
            data = [it for it in data if it["time"] >= cutoff]
            if not data:
                errors[ex] = "no candles after --since"
                continue
        results[ex] = data
        latest[ex] = data[-1]

    # Report errors if any
    if errors:
        print("[Errors]")
        for ex, msg in errors.items():
            print(f"  - {ex}: {msg}")
        if not results:
            return 2

    # Optional sample
    if args.print_sample > 0:
        print(f"\n[Samples per exchange (first {args.print_sample})]")
        for ex, data in results.items():
            print(f"  {ex}:")
            for it in data[: args.print_sample]:
                print(f"    {it}")

    # Per-exchange latest summary
    print("\n[Latest candle per exchange]")
    for ex, it in latest.items():
        opn = float(it["open"])
        cls = float(it["close"])
        direction = "UP " if cls > opn else ("DOWN" if cls < opn else "FLAT")
        print(
            f"  {ex:<8} time={it['time']} close={cls:,.4f} "
            f"chg={pct(cls, opn):+.3f}% dir={direction} vol={float(it['volume']):,.2f}"
        )

    # Cross-venue spread
    if len(latest) >= 2:
        closes = [float(it["close"]) for it in latest.values()]
        bps = spread_bps(closes)
        status = "OK" if bps <= args.tolerance_bps else "WARN"
        print(f"\n[Cross-venue spread] min={min(closes):,.4f} max={max(closes):,.4f} spread={bps:.1f} bps -> {status}")
        if status == "WARN":
            print(f"  Spread exceeds tolerance ({args.tolerance_bps} bps).")

        # Direction agreement
        directions = [(float(v["close"]) - float(v["open"])) for v in latest.values()]
        up = sum(1 for d in directions if d > 0)
        down = sum(1 for d in directions if d < 0)
        print(f"[Direction agreement] up={up} down={down} flat={len(directions) - up - down}")

    print("\n[Done]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
