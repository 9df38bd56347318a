"""
Binance Spot Adapter

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    REST:
        - GET /api/v3/ticker/24hr?symbol=BTCUSDT - 24h ticker statistics
        - GET /api/v3/klines?symbol=&interval=&limit= - Candle history

    WebSocket:
        - wss://stream.binance.com:9443/ws/<symbol>@kline_<interval>
          The stream is selected by URL, so no subscribe frame is sent and no
          application-level ping is needed (the server uses protocol pings).

Kline Row Format:
    [open_time_ms, "open", "high", "low", "close", "base_volume", close_time, "quote_volume", ...]
"""

from typing import Any, Dict, List, Optional

from core.exchange_interface import ExchangeAdapter
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import to_epoch_millis


class BinanceAdapter(ExchangeAdapter):
    """
    Binance Spot adapter.

    Notes:
        - Symbols are BASEUSDT on REST and lowercased in the stream path
        - Intervals use the canonical tokens as-is
        - Ticker volume is the quote volume, kline volume is the base volume
    """

    name = ExchangeName.BINANCE
    rest_base_url = "https://api.binance.com/api/v3"
    stream_base_url = "wss://stream.binance.com:9443/ws"

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
            return self._url("/ticker/24hr", {"symbol": pair})
        return self._url("/klines", {
            "symbol": pair,
            "interval": self.map_interval(interval),
            "limit": limit,
        })

    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        if not isinstance(raw, dict) or "symbol" not in raw:
            raise self._malformed("ticker object without symbol")
        return self.ticker_from_item(raw)

    def ticker_from_item(self, item: Dict[str, Any]) -> TickerSnapshot:
        """Map one element of /ticker/24hr (single or all-symbols form)."""
        try:
            return TickerSnapshot(
                symbol=item["symbol"],
                price_change=item["priceChange"],
                price_change_percent=item["priceChangePercent"],
                last_price=item["lastPrice"],
                high_price=item["highPrice"],
                low_price=item["lowPrice"],
                volume=item["quoteVolume"],
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
        pair = self.format_symbol(symbol).lower()
        return f"{self.stream_base_url}/{pair}@kline_{self.map_stream_interval(interval)}"

    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        # {"e": "kline", "k": {"t": 1704110400000, "o": "...", "h": ..., "v": ...}}
        if message.get("e") != "kline":
            return None
        k = message["k"]
        return Candle(
            time=to_epoch_millis(k["t"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
        )
