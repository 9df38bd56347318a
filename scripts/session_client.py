#!/usr/bin/env python3
"""
WebSocket test client for /ws/session.

Opens a session, searches a symbol and prints the events it receives. Large
payloads (candle batches, indicator sets) are summarized on one line.
Optionally changes the interval and/or exchange after a delay to watch the
session switch over.

Usage examples:
  python scripts/session_client.py --symbol BTC
  python scripts/session_client.py --symbol PEPE --interval 1h --switch-exchange OKX --after 10
  python scripts/session_client.py --host 127.0.0.1 --port 8000 --symbol ETH --duration 120
"""

import asyncio
import argparse
import json
import sys
from typing import Optional

import websockets


def summarize(event: dict) -> str:
    kind = event.get("type")
    data = event.get("data")
    if kind == "candles":
        last = data[-1] if data else None
        return f"candles n={len(data)} last={last}"
    if kind == "indicators":
        return f"indicators n={len(data.get('times', []))} trend={data.get('trend')}"
    return f"{kind} {data}"


async def run_session(
    url: str,
    symbol: str,
    interval: str,
    exchange: Optional[str],
    switch_interval: Optional[str],
    switch_exchange: Optional[str],
    after: float,
    duration: Optional[int]
) -> None:
    """Connect, search, optionally switch, and print events until duration elapses."""
    async with websockets.connect(url) as ws:
        print(f"[session] Connected: {url}")
        await ws.send(json.dumps({
            "action": "search",
            "symbol": symbol,
            "interval": interval,
            "exchange": exchange,
        }))

        async def switcher() -> None:
            await asyncio.sleep(after)
            if switch_interval:
                print(f"[session] -> interval {switch_interval}")
                await ws.send(json.dumps({"action": "interval", "interval": switch_interval}))
            if switch_exchange:
                print(f"[session] -> exchange {switch_exchange}")
                await ws.send(json.dumps({"action": "exchange", "exchange": switch_exchange}))

        switch_task = asyncio.create_task(switcher()) if (switch_interval or switch_exchange) else None
        end_time = (asyncio.get_running_loop().time() + duration) if duration else None

        try:
            while True:
                timeout = None
                if end_time is not None:
                    timeout = end_time - asyncio.get_running_loop().time()
                    if timeout <= 0:
                        print("[session] Duration reached; closing.")
                        await ws.send(json.dumps({"action": "close"}))
                        return
                msg = await asyncio.wait_for(ws.recv(), timeout=timeout)
                print(f"[session] {summarize(json.loads(msg))}")
        except asyncio.TimeoutError:
            print("[session] Duration reached; closing.")
        finally:
            if switch_task is not None:
                switch_task.cancel()


async def main() -> None:
    parser = argparse.ArgumentParser(description="Drive a /ws/session viewing session")
    parser.add_argument("--host", default="localhost", help="Server host (default: localhost)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--symbol", default="BTC", help="Base asset to search (default: BTC)")
    parser.add_argument("--interval", default="15m", help="Initial interval (default: 15m)")
    parser.add_argument("--exchange", default=None, help="Force an exchange for the search")
    parser.add_argument("--switch-interval", default=None, help="Interval to switch to after --after seconds")
    parser.add_argument("--switch-exchange", default=None, help="Exchange to switch to after --after seconds")
    parser.add_argument("--after", type=float, default=5.0, help="Seconds before switching (default: 5)")
    parser.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = run indefinitely)")
    args = parser.parse_args()

    url = f"ws://{args.host}:{args.port}/ws/session"
    duration = args.duration if args.duration and args.duration > 0 else None

    await run_session(
        url,
        args.symbol,
        args.interval,
        args.exchange,
        args.switch_interval,
        args.switch_exchange,
        args.after,
        duration,
    )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[Info] Interrupted. Bye.")
        sys.exit(0)
