"""
OKX Spot Adapter

API Documentation:
    https://www.okx.com/docs-v5/en/

Endpoints Used:
    REST:
        - GET /api/v5/market/ticker?instId=BTC-USDT
        - GET /api/v5/market/candles?instId=&bar=&limit=
          Rows are newest first: [ts, o, h, l, c, vol, volCcy, volCcyQuote, confirm]

    WebSocket:
        - wss://ws.okx.com:8443/ws/v5/public
        - Subscribe: {"op": "subscribe", "args": [{"channel": "candle1H", "instId": "BTC-USDT"}]}
        - Keep-alive: raw text "ping" every 20s, server answers raw text "pong"

OKX Interval Format:
    Minutes lowercase (1m, 5m), hours/days/weeks uppercase (1H, 4H, 1D, 1W)
"""

from typing import Any, Dict, List, Optional

from core.exchange_interface import ExchangeAdapter, WirePayload
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import to_epoch_millis


class OKXAdapter(ExchangeAdapter):
    """
    OKX Spot adapter.

    Notes:
        - Volumes are quote-currency (volCcy24h on ticker, volCcy on candles)
        - The 24h change is derived from open24h
    """

    name = ExchangeName.OKX
    rest_base_url = "https://www.okx.com/api/v5/market"
    stream_endpoint = "wss://ws.okx.com:8443/ws/v5/public"
    keepalive_interval_ms = 20000

    interval_map = {
        "1h": "1H",
        "2h": "2H",
        "4h": "4H",
        "6h": "6H",
        "12h": "12H",
        "1d": "1D",
        "1w": "1W",
        "1M": "1M",
    }

    def format_symbol(self, base_symbol: str) -> str:
        return f"{base_symbol.strip().upper()}-{self.quote_asset}"

    def build_snapshot_request(
        self,
        kind: SnapshotKind,
        symbol: str,
        interval: Optional[str] = None,
        limit: int = 500
    ) -> str:
        inst_id = self.format_symbol(symbol)
        if kind == SnapshotKind.TICKER:
            return self._url("/ticker", {"instId": inst_id})
        return self._url("/candles", {
            "instId": inst_id,
            "bar": self.map_interval(interval),
            "limit": limit,
        })

    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        if not isinstance(raw, dict) or raw.get("code") != "0":
            raise self._malformed("code is not '0'")
        data = raw.get("data")
        if not isinstance(data, list) or not data:
            raise self._malformed("empty ticker data")

        t = data[0]
        try:
            open_24h = float(t["open24h"])
            change = float(t["last"]) - open_24h
            percent = change / open_24h * 100
            return TickerSnapshot(
                symbol=t["instId"].replace("-", ""),
                price_change=str(change),
                price_change_percent=f"{percent:.2f}",
                last_price=t["last"],
                high_price=t["high24h"],
                low_price=t["low24h"],
                volume=t["volCcy24h"],
                exchange=self.name,
            )
        except (KeyError, TypeError, ValueError, ZeroDivisionError) as e:
            raise self._malformed(f"ticker field error {e}") from e

    def parse_snapshot_candles(self, raw: Any) -> List[Candle]:
        data = raw.get("data") if isinstance(raw, dict) else None
        rows = self._require_list(data, "candles")
        return [
            self._candle_from_row(row, 0, 1, 2, 3, 4, 6)
            for row in reversed(rows)
        ]

    def stream_url(self, symbol: str, interval: str) -> str:
        return self.stream_endpoint

    def build_subscribe_message(self, symbol: str, interval: str) -> Optional[WirePayload]:
        return {
            "op": "subscribe",
            "args": [{
                "channel": f"candle{self.map_stream_interval(interval)}",
                "instId": self.format_symbol(symbol),
            }],
        }

    def build_keepalive_message(self) -> Optional[WirePayload]:
        return "ping"

    def is_control_frame(self, raw: str) -> bool:
        return raw == "pong"

    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        # {"arg": {"channel": "candle1H", "instId": "BTC-USDT"}, "data": [["ts","o","h","l","c","vol","volCcy",...]]}
        channel = (message.get("arg") or {}).get("channel", "")
        data = message.get("data")
        if not channel.startswith("candle") or not data:
            return None
        row = data[0]
        return Candle(
            time=to_epoch_millis(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[6]),
        )
