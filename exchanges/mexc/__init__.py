"""
MEXC Spot Adapter

API Documentation:
    https://mexcdevelop.github.io/apidocs/spot_v3_en/

Endpoints Used:
    REST:
        - GET /api/v3/ticker/24hr?symbol=BTCUSDT
        - GET /api/v3/klines?symbol=&interval=&limit=

    WebSocket:
        - wss://wbs.mexc.com/ws
        - Subscribe: {"method": "SUBSCRIPTION",
                      "params": ["spot@public.kline.v3.api@BTCUSDT@Min15"]}
        - Keep-alive: {"method": "PING"} every 30s

REST uses 60m/1W style interval tokens; the stream uses Min60/Hour4/Week1 style.
There are no 3m, 2h, 6h or 12h candles on either.
"""

from typing import Any, Dict, List, Optional

from core.exchange_interface import ExchangeAdapter, WirePayload
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import to_epoch_millis


class MEXCAdapter(ExchangeAdapter):
    """MEXC Spot adapter."""

    name = ExchangeName.MEXC
    rest_base_url = "https://api.mexc.com/api/v3"
    stream_endpoint = "wss://wbs.mexc.com/ws"
    keepalive_interval_ms = 30000

    interval_map = {
        "1h": "60m",
        "1w": "1W",
    }
    stream_interval_map = {
        "1m": "Min1",
        "5m": "Min5",
        "15m": "Min15",
        "30m": "Min30",
        "1h": "Min60",
        "4h": "Hour4",
        "1d": "Day1",
        "1w": "Week1",
        "1M": "Month1",
    }
    unsupported_intervals = frozenset({"3m", "2h", "6h", "12h"})

    def format_symbol(self, base_symbol: str) -> str:
        return f"{base_symbol.strip().upper()}{self.quote_asset}"

    def map_stream_interval(self, interval: str) -> str:
        self._require_interval(interval)
        return self.stream_interval_map[interval]

    def build_snapshot_request(
        self,
        kind: SnapshotKind,
        symbol: str,
        interval: Optional[str] = None,
        limit: int = 500
    ) -> str:
        pair = self.format_symbol(symbol)
        if kind == SnapshotKind.TICKER:
            return self._url("/ticker/24hr", {"symbol": pair})
        return self._url("/klines", {
            "symbol": pair,
            "interval": self.map_interval(interval),
            "limit": limit,
        })

    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        if not isinstance(raw, dict) or not raw.get("symbol"):
            raise self._malformed("ticker object without symbol")
        try:
            return TickerSnapshot(
                symbol=raw["symbol"],
                price_change=raw["priceChange"],
                price_change_percent=raw["priceChangePercent"],
                last_price=raw["lastPrice"],
                high_price=raw["highPrice"],
                low_price=raw["lowPrice"],
                volume=raw["quoteVolume"],
                exchange=self.name,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise self._malformed(f"ticker missing field {e}") from e

    def parse_snapshot_candles(self, raw: Any) -> List[Candle]:
        rows = self._require_list(raw, "klines")
        return [
            self._candle_from_row(row, 0, 1, 2, 3, 4, 5)
            for row in rows
        ]

    def stream_url(self, symbol: str, interval: str) -> str:
        return self.stream_endpoint

    def build_subscribe_message(self, symbol: str, interval: str) -> Optional[WirePayload]:
        channel = (
            f"spot@public.kline.v3.api@{self.format_symbol(symbol)}"
            f"@{self.map_stream_interval(interval)}"
        )
        return {"method": "SUBSCRIPTION", "params": [channel]}

    def build_keepalive_message(self) -> Optional[WirePayload]:
        return {"method": "PING"}

    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        # {"c": "spot@public.kline.v3.api@BTCUSDT@Min15", "d": {"k": {...}}, "s": "BTCUSDT"}
        channel = message.get("c")
        data = message.get("d")
        if not channel or not data or not channel.startswith("spot@public.kline"):
            return None
        k = data["k"]
        return Candle(
            time=to_epoch_millis(k["t"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
        )
