"""
Gate Spot Adapter

API Documentation:
    https://www.gate.io/docs/developers/apiv4/

Endpoints Used:
    REST:
        - GET /api/v4/spot/tickers?currency_pair=BTC_USDT (array with one element)
        - GET /api/v4/spot/candlesticks?currency_pair=&interval=&limit=

    WebSocket:
        - wss://api.gateio.ws/ws/v4/
        - Subscribe: {"time": <s>, "channel": "spot.candlesticks",
                      "event": "subscribe", "payload": [interval, pair]}
        - Keep-alive: {"time": <s>, "channel": "spot.pong"} every 30s

Gate quirks:
    - Timestamps are in SECONDS and are converted to milliseconds on ingestion
    - Candlestick rows are ordered [t, volume, close, high, low, open, ...]
    - The stream carries base volume only
    - Weeks and months are 7d and 30d; there are no 3m, 2h, 6h or 12h candles
"""

from typing import Any, Dict, List, Optional

from core.exchange_interface import ExchangeAdapter, WirePayload
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import current_utc_timestamp, seconds_to_millis


class GateAdapter(ExchangeAdapter):
    """Gate Spot adapter."""

    name = ExchangeName.GATE
    rest_base_url = "https://api.gateio.ws/api/v4"
    stream_endpoint = "wss://api.gateio.ws/ws/v4/"
    keepalive_interval_ms = 30000

    interval_map = {
        "1w": "7d",
        "1M": "30d",
    }
    unsupported_intervals = frozenset({"3m", "2h", "6h", "12h"})

    def format_symbol(self, base_symbol: str) -> str:
        return f"{base_symbol.strip().upper()}_{self.quote_asset}"

    def build_snapshot_request(
        self,
        kind: SnapshotKind,
        symbol: str,
        interval: Optional[str] = None,
        limit: int = 500
    ) -> str:
        pair = self.format_symbol(symbol)
        if kind == SnapshotKind.TICKER:
            return self._url("/spot/tickers", {"currency_pair": pair})
        return self._url("/spot/candlesticks", {
            "currency_pair": pair,
            "interval": self.map_interval(interval),
            "limit": limit,
        })

    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        if not isinstance(raw, list) or not raw:
            raise self._malformed("empty ticker array")

        t = raw[0]
        try:
            last = float(t["last"])
            pct = float(t["change_percentage"])
            # Gate reports only the percentage; derive the absolute change
            change = last - last / (1 + pct / 100)
            return TickerSnapshot(
                symbol=t["currency_pair"].replace("_", ""),
                price_change=f"{change:.2f}",
                price_change_percent=t["change_percentage"],
                last_price=t["last"],
                high_price=t["high_24h"],
                low_price=t["low_24h"],
                volume=t["quote_volume"],
                exchange=self.name,
            )
        except (KeyError, TypeError, ValueError, ZeroDivisionError) as e:
            raise self._malformed(f"ticker field error {e}") from e

    def parse_snapshot_candles(self, raw: Any) -> List[Candle]:
        rows = self._require_list(raw, "candlesticks")
        return [
            self._candle_from_row(row, 0, 5, 3, 4, 2, 1, to_millis=seconds_to_millis)
            for row in rows
        ]

    def stream_url(self, symbol: str, interval: str) -> str:
        return self.stream_endpoint

    def build_subscribe_message(self, symbol: str, interval: str) -> Optional[WirePayload]:
        return {
            "time": current_utc_timestamp(),
            "channel": "spot.candlesticks",
            "event": "subscribe",
            "payload": [self.map_stream_interval(interval), self.format_symbol(symbol)],
        }

    def build_keepalive_message(self) -> Optional[WirePayload]:
        return {"time": current_utc_timestamp(), "channel": "spot.pong"}

    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        if message.get("channel") != "spot.candlesticks" or message.get("event") != "update":
            return None
        k = message.get("result")
        if not k:
            return None
        return Candle(
            time=seconds_to_millis(k["t"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
        )
