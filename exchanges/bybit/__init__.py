"""
Bybit Spot Adapter

API Documentation:
    https://bybit-exchange.github.io/docs/v5/intro

Endpoints Used:
    REST:
        - GET /v5/market/tickers?category=spot&symbol=BTCUSDT
        - GET /v5/market/kline?category=spot&symbol=&interval=&limit=
          Returns rows newest first; they are reversed on ingestion.

    WebSocket:
        - wss://stream.bybit.com/v5/public/spot (one shared socket)
        - Subscribe: {"op": "subscribe", "args": ["kline.{interval}.{symbol}"]}
        - Keep-alive: {"op": "ping"} every 20s

Bybit Interval Format:
    1,3,5,15,30,60,120,240,360,720,D,W,M
"""

from typing import Any, Dict, List, Optional

from core.exchange_interface import ExchangeAdapter, WirePayload
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import to_epoch_millis


class BybitAdapter(ExchangeAdapter):
    """
    Bybit Spot adapter.

    Notes:
        - Ticker volume is turnover24h (quote), kline volume is base volume
        - price24hPcnt is a fraction and is scaled to a percentage
    """

    name = ExchangeName.BYBIT
    rest_base_url = "https://api.bybit.com/v5/market"
    stream_endpoint = "wss://stream.bybit.com/v5/public/spot"
    keepalive_interval_ms = 20000

    interval_map = {
        "1m": "1",
        "3m": "3",
        "5m": "5",
        "15m": "15",
        "30m": "30",
        "1h": "60",
        "2h": "120",
        "4h": "240",
        "6h": "360",
        "12h": "720",
        "1d": "D",
        "1w": "W",
        "1M": "M",
    }

    def format_symbol(self, base_symbol: str) -> str:
        return f"{base_symbol.strip().upper()}{self.quote_asset}"

    def build_snapshot_request(
        self,
        kind: SnapshotKind,
        symbol: str,
        interval: Optional[str] = None,
        limit: int = 500
    ) -> str:
        pair = self.format_symbol(symbol)
        if kind == SnapshotKind.TICKER:
            return self._url("/tickers", {"category": "spot", "symbol": pair})
        return self._url("/kline", {
            "category": "spot",
            "symbol": pair,
            "interval": self.map_interval(interval),
            "limit": limit,
        })

    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        if not isinstance(raw, dict) or raw.get("retCode") != 0:
            raise self._malformed("retCode is not 0")
        tickers = (raw.get("result") or {}).get("list")
        if not isinstance(tickers, list) or not tickers:
            raise self._malformed("empty ticker list")

        t = tickers[0]
        try:
            last = t["lastPrice"]
            prev = t.get("prevPrice24h")
            change = str(float(last) - float(prev)) if prev else "0"
            return TickerSnapshot(
                symbol=t["symbol"],
                price_change=change,
                price_change_percent=f"{float(t['price24hPcnt']) * 100:.2f}",
                last_price=last,
                high_price=t["highPrice24h"],
                low_price=t["lowPrice24h"],
                volume=t["turnover24h"],
                exchange=self.name,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise self._malformed(f"ticker field error {e}") from e

    def parse_snapshot_candles(self, raw: Any) -> List[Candle]:
        result = raw.get("result") if isinstance(raw, dict) else None
        rows = self._require_list((result or {}).get("list"), "klines")
        return [
            self._candle_from_row(row, 0, 1, 2, 3, 4, 5)
            for row in reversed(rows)
        ]

    def stream_url(self, symbol: str, interval: str) -> str:
        return self.stream_endpoint

    def build_subscribe_message(self, symbol: str, interval: str) -> Optional[WirePayload]:
        topic = f"kline.{self.map_stream_interval(interval)}.{self.format_symbol(symbol)}"
        return {"op": "subscribe", "args": [topic]}

    def build_keepalive_message(self) -> Optional[WirePayload]:
        return {"op": "ping"}

    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        # Acks and pongs carry "op"; candle pushes carry "topic" + "data"
        topic = message.get("topic")
        data = message.get("data")
        if not topic or not topic.startswith("kline") or not data:
            return None
        k = data[0]
        return Candle(
            time=to_epoch_millis(k["start"]),
            open=float(k["open"]),
            high=float(k["high"]),
            low=float(k["low"]),
            close=float(k["close"]),
            volume=float(k["volume"]),
        )
