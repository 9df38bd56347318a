"""
Unit Tests for the Exchange Adapters

These tests verify, per exchange, that:
- Symbols and intervals are mapped to the exchange's native tokens
- REST URLs and stream subscribe/keep-alive payloads have the documented shape
- Ticker and candle snapshots normalize into our schemas
- Newest-first histories are reversed and Gate seconds become milliseconds
- Stream frames produce candles, while acks, pongs and junk produce None

Run with:
    pytest tests/unit/test_adapters.py -v
"""

import json
from urllib.parse import parse_qs, urlparse

import pytest

from core.config import CANONICAL_INTERVALS
from core.errors import MalformedResponse
from core.schemas import ExchangeName, SnapshotKind, TickerSnapshot
from exchanges.binance import BinanceAdapter
from exchanges.bybit import BybitAdapter
from exchanges.gate import GateAdapter
from exchanges.mexc import MEXCAdapter
from exchanges.okx import OKXAdapter


def query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


# ============================================
# Symbol Formatting
# ============================================

class TestFormatSymbol:
    """Every adapter pairs the base asset with USDT"""

    @pytest.mark.parametrize("adapter, expected", [
        (BinanceAdapter(), "BTCUSDT"),
        (BybitAdapter(), "BTCUSDT"),
        (MEXCAdapter(), "BTCUSDT"),
        (GateAdapter(), "BTC_USDT"),
        (OKXAdapter(), "BTC-USDT"),
    ])
    def test_format_symbol(self, adapter, expected):
        assert adapter.format_symbol(" btc ") == expected


class TestIntervalCoverage:
    """Exchanges with a native token for every canonical interval"""

    @pytest.mark.parametrize("adapter", [BinanceAdapter(), BybitAdapter(), OKXAdapter()])
    @pytest.mark.parametrize("interval", CANONICAL_INTERVALS)
    def test_every_interval_maps(self, adapter, interval):
        assert adapter.supports_interval(interval)
        assert adapter.map_interval(interval)
        assert adapter.map_stream_interval(interval)


# ============================================
# Binance
# ============================================

class TestBinanceAdapter:
    """Tests for BinanceAdapter"""

    adapter = BinanceAdapter()

    def test_ticker_url(self):
        url = self.adapter.build_snapshot_request(SnapshotKind.TICKER, "eth")
        assert url.startswith("https://api.binance.com/api/v3/ticker/24hr?")
        assert query(url) == {"symbol": "ETHUSDT"}

    def test_candles_url(self):
        url = self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "eth", "4h", 200)
        assert query(url) == {"symbol": "ETHUSDT", "interval": "4h", "limit": "200"}

    def test_parse_ticker_uses_quote_volume(self):
        raw = {
            "symbol": "BTCUSDT",
            "priceChange": "120.5",
            "priceChangePercent": "0.29",
            "lastPrice": "42000.10",
            "highPrice": "42500",
            "lowPrice": "41000",
            "volume": "1000",
            "quoteVolume": "42000000",
        }
        ticker = self.adapter.parse_snapshot_ticker(raw)

        assert isinstance(ticker, TickerSnapshot)
        assert ticker.volume == "42000000"
        assert ticker.last_price == "42000.10"
        assert ticker.exchange == ExchangeName.BINANCE

    def test_ticker_serializes_camel_case(self):
        raw = {
            "symbol": "BTCUSDT", "priceChange": "1", "priceChangePercent": "2",
            "lastPrice": "3", "highPrice": "4", "lowPrice": "2", "quoteVolume": "5",
        }
        dumped = self.adapter.parse_snapshot_ticker(raw).model_dump(mode="json", by_alias=True)
        assert dumped["priceChangePercent"] == "2"
        assert dumped["exchange"] == "Binance"

    def test_error_payload_is_malformed(self):
        with pytest.raises(MalformedResponse):
            self.adapter.parse_snapshot_ticker({"code": -1121, "msg": "Invalid symbol."})

    def test_parse_candles(self):
        raw = [
            [1704110400000, "42000", "42500", "41800", "42300", "125.5", 1704110459999, "5000000"],
            [1704110460000, "42300", "42400", "42200", "42250", "80.1", 1704110519999, "3000000"],
        ]
        candles = self.adapter.parse_snapshot_candles(raw)

        assert [c.time for c in candles] == [1704110400000, 1704110460000]
        assert candles[0].open == 42000.0
        assert candles[0].volume == 125.5

    def test_stream_url_selects_the_stream(self):
        assert self.adapter.stream_url("BTC", "1m") == "wss://stream.binance.com:9443/ws/btcusdt@kline_1m"
        assert self.adapter.build_subscribe_message("BTC", "1m") is None
        assert self.adapter.build_keepalive_message() is None

    def test_stream_kline(self):
        frame = json.dumps({
            "e": "kline",
            "k": {"t": 1704110400000, "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "10"},
        })
        candle = self.adapter.parse_stream_message(frame)
        assert candle.time == 1704110400000
        assert candle.close == 1.5

    def test_stream_non_kline_is_ignored(self):
        assert self.adapter.parse_stream_message(json.dumps({"e": "trade"})) is None


# ============================================
# Bybit
# ============================================

class TestBybitAdapter:
    """Tests for BybitAdapter"""

    adapter = BybitAdapter()

    @pytest.mark.parametrize("interval, native", [
        ("1m", "1"), ("15m", "15"), ("1h", "60"), ("4h", "240"), ("1d", "D"), ("1w", "W"),
    ])
    def test_interval_map(self, interval, native):
        assert self.adapter.map_interval(interval) == native

    def test_candles_url(self):
        url = self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "sol", "1h", 50)
        assert query(url) == {"category": "spot", "symbol": "SOLUSDT", "interval": "60", "limit": "50"}

    def test_parse_ticker_scales_percent_and_derives_change(self):
        raw = {
            "retCode": 0,
            "result": {"list": [{
                "symbol": "BTCUSDT",
                "lastPrice": "110",
                "prevPrice24h": "100",
                "price24hPcnt": "0.1",
                "highPrice24h": "115",
                "lowPrice24h": "95",
                "turnover24h": "99999",
            }]},
        }
        ticker = self.adapter.parse_snapshot_ticker(raw)

        assert ticker.price_change_percent == "10.00"
        assert float(ticker.price_change) == pytest.approx(10.0)
        assert ticker.volume == "99999"

    def test_non_zero_ret_code_is_malformed(self):
        with pytest.raises(MalformedResponse):
            self.adapter.parse_snapshot_ticker({"retCode": 10001, "result": {}})

    def test_candles_are_reversed_to_oldest_first(self):
        raw = {"retCode": 0, "result": {"list": [
            ["3000", "3", "3", "3", "3", "1", "3"],
            ["2000", "2", "2", "2", "2", "1", "2"],
            ["1000", "1", "1", "1", "1", "1", "1"],
        ]}}
        candles = self.adapter.parse_snapshot_candles(raw)
        assert [c.time for c in candles] == [1000, 2000, 3000]

    def test_subscribe_and_keepalive(self):
        assert self.adapter.build_subscribe_message("btc", "15m") == {
            "op": "subscribe", "args": ["kline.15.BTCUSDT"],
        }
        assert self.adapter.build_keepalive_message() == {"op": "ping"}
        assert self.adapter.keepalive_interval_ms == 20000

    def test_stream_candle(self):
        frame = json.dumps({
            "topic": "kline.15.BTCUSDT",
            "data": [{"start": 1000, "open": "1", "high": "2", "low": "0.5", "close": "1.2", "volume": "7"}],
        })
        candle = self.adapter.parse_stream_message(frame)
        assert candle.time == 1000
        assert candle.volume == 7.0

    @pytest.mark.parametrize("frame", [
        {"op": "pong", "success": True},
        {"success": True, "op": "subscribe"},
        {"topic": "kline.15.BTCUSDT", "data": []},
    ])
    def test_stream_acks_are_ignored(self, frame):
        assert self.adapter.parse_stream_message(json.dumps(frame)) is None


# ============================================
# MEXC
# ============================================

class TestMEXCAdapter:
    """Tests for MEXCAdapter"""

    adapter = MEXCAdapter()

    @pytest.mark.parametrize("interval, rest, stream", [
        ("1m", "1m", "Min1"),
        ("1h", "60m", "Min60"),
        ("4h", "4h", "Hour4"),
        ("1d", "1d", "Day1"),
        ("1w", "1W", "Week1"),
        ("1M", "1M", "Month1"),
    ])
    def test_interval_tokens(self, interval, rest, stream):
        assert self.adapter.map_interval(interval) == rest
        assert self.adapter.map_stream_interval(interval) == stream

    @pytest.mark.parametrize("interval", ["3m", "2h", "6h", "12h"])
    def test_unsupported_interval_never_falls_back(self, interval):
        assert self.adapter.supports_interval(interval) is False
        with pytest.raises(ValueError):
            self.adapter.build_subscribe_message("btc", interval)
        with pytest.raises(ValueError):
            self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "btc", interval, 10)

    def test_weekly_subscription(self):
        msg = self.adapter.build_subscribe_message("btc", "1w")
        assert msg["params"] == ["spot@public.kline.v3.api@BTCUSDT@Week1"]

    def test_subscribe_payload(self):
        assert self.adapter.build_subscribe_message("btc", "1m") == {
            "method": "SUBSCRIPTION",
            "params": ["spot@public.kline.v3.api@BTCUSDT@Min1"],
        }
        assert self.adapter.build_keepalive_message() == {"method": "PING"}

    def test_parse_ticker(self):
        raw = {
            "symbol": "BTCUSDT", "priceChange": "1", "priceChangePercent": "0.01",
            "lastPrice": "100", "highPrice": "101", "lowPrice": "99", "quoteVolume": "5000",
        }
        assert self.adapter.parse_snapshot_ticker(raw).exchange == ExchangeName.MEXC

    def test_missing_symbol_is_malformed(self):
        with pytest.raises(MalformedResponse):
            self.adapter.parse_snapshot_ticker({"code": 30014, "msg": "invalid symbol"})

    def test_stream_candle(self):
        frame = json.dumps({
            "c": "spot@public.kline.v3.api@BTCUSDT@Min15",
            "d": {"k": {"t": 1704110400, "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "3"}},
            "s": "BTCUSDT",
        })
        candle = self.adapter.parse_stream_message(frame)
        assert candle.close == 1.5
        assert candle.time == 1704110400

    def test_stream_pong_is_ignored(self):
        frame = json.dumps({"id": 0, "code": 0, "msg": "PONG"})
        assert self.adapter.parse_stream_message(frame) is None


# ============================================
# Gate
# ============================================

class TestGateAdapter:
    """Tests for GateAdapter"""

    adapter = GateAdapter()

    def test_ticker_url(self):
        url = self.adapter.build_snapshot_request(SnapshotKind.TICKER, "btc")
        assert query(url) == {"currency_pair": "BTC_USDT"}

    @pytest.mark.parametrize("interval, native", [
        ("1h", "1h"),
        ("1w", "7d"),
        ("1M", "30d"),
    ])
    def test_interval_tokens(self, interval, native):
        url = self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "btc", interval, 10)
        assert query(url)["interval"] == native
        assert self.adapter.build_subscribe_message("btc", interval)["payload"][0] == native

    @pytest.mark.parametrize("interval", ["3m", "2h", "6h", "12h"])
    def test_unsupported_interval_raises(self, interval):
        assert self.adapter.supports_interval(interval) is False
        with pytest.raises(ValueError, match=f"Gate has no {interval} candles"):
            self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "btc", interval, 10)

    def test_parse_ticker_derives_change(self):
        raw = [{
            "currency_pair": "BTC_USDT",
            "last": "110",
            "change_percentage": "10",
            "high_24h": "112",
            "low_24h": "98",
            "quote_volume": "12345",
        }]
        ticker = self.adapter.parse_snapshot_ticker(raw)

        assert ticker.symbol == "BTCUSDT"
        assert ticker.price_change == "10.00"
        assert ticker.price_change_percent == "10"

    def test_empty_ticker_array_is_malformed(self):
        with pytest.raises(MalformedResponse):
            self.adapter.parse_snapshot_ticker([])

    def test_candles_seconds_to_millis_and_column_order(self):
        # [t, volume, close, high, low, open]
        raw = [["1704110400", "99.5", "42300", "42500", "41800", "42000"]]
        candle = self.adapter.parse_snapshot_candles(raw)[0]

        assert candle.time == 1704110400000
        assert candle.open == 42000.0
        assert candle.high == 42500.0
        assert candle.low == 41800.0
        assert candle.close == 42300.0
        assert candle.volume == 99.5

    def test_subscribe_and_keepalive(self):
        msg = self.adapter.build_subscribe_message("btc", "1h")
        assert msg["channel"] == "spot.candlesticks"
        assert msg["event"] == "subscribe"
        assert msg["payload"] == ["1h", "BTC_USDT"]
        assert isinstance(msg["time"], int)
        assert self.adapter.build_keepalive_message()["channel"] == "spot.pong"

    def test_stream_update_converts_seconds(self):
        frame = json.dumps({
            "channel": "spot.candlesticks",
            "event": "update",
            "result": {"t": "1704110400", "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "9", "n": "1h_BTC_USDT"},
        })
        candle = self.adapter.parse_stream_message(frame)
        assert candle.time == 1704110400000

    def test_stream_subscribe_ack_is_ignored(self):
        frame = json.dumps({"channel": "spot.candlesticks", "event": "subscribe", "result": {"status": "success"}})
        assert self.adapter.parse_stream_message(frame) is None


# ============================================
# OKX
# ============================================

class TestOKXAdapter:
    """Tests for OKXAdapter"""

    adapter = OKXAdapter()

    @pytest.mark.parametrize("interval, native", [
        ("1m", "1m"), ("15m", "15m"), ("1h", "1H"), ("4h", "4H"), ("1d", "1D"), ("1w", "1W"),
    ])
    def test_interval_map(self, interval, native):
        assert self.adapter.map_interval(interval) == native

    def test_candles_url(self):
        url = self.adapter.build_snapshot_request(SnapshotKind.CANDLES, "btc", "1h", 300)
        assert query(url) == {"instId": "BTC-USDT", "bar": "1H", "limit": "300"}

    def test_parse_ticker_derives_change_from_open(self):
        raw = {"code": "0", "data": [{
            "instId": "BTC-USDT",
            "last": "110",
            "open24h": "100",
            "high24h": "111",
            "low24h": "99",
            "volCcy24h": "777",
        }]}
        ticker = self.adapter.parse_snapshot_ticker(raw)

        assert ticker.symbol == "BTCUSDT"
        assert float(ticker.price_change) == pytest.approx(10.0)
        assert ticker.price_change_percent == "10.00"
        assert ticker.volume == "777"

    def test_error_code_is_malformed(self):
        with pytest.raises(MalformedResponse):
            self.adapter.parse_snapshot_ticker({"code": "51001", "msg": "Instrument ID does not exist", "data": []})

    def test_candles_reversed_and_quote_volume(self):
        raw = {"code": "0", "data": [
            ["2000", "2", "2", "2", "2", "10", "20", "20", "0"],
            ["1000", "1", "1", "1", "1", "30", "40", "40", "1"],
        ]}
        candles = self.adapter.parse_snapshot_candles(raw)

        assert [c.time for c in candles] == [1000, 2000]
        assert candles[0].volume == 40.0

    def test_subscribe_and_keepalive(self):
        assert self.adapter.build_subscribe_message("eth", "4h") == {
            "op": "subscribe",
            "args": [{"channel": "candle4H", "instId": "ETH-USDT"}],
        }
        assert self.adapter.build_keepalive_message() == "ping"

    def test_raw_pong_is_control_frame(self):
        assert self.adapter.parse_stream_message("pong") is None

    def test_stream_candle(self):
        frame = json.dumps({
            "arg": {"channel": "candle1H", "instId": "BTC-USDT"},
            "data": [["1704110400000", "1", "2", "0.5", "1.5", "3", "4.5", "4.5", "0"]],
        })
        candle = self.adapter.parse_stream_message(frame)
        assert candle.time == 1704110400000
        assert candle.volume == 4.5

    def test_stream_subscribe_event_is_ignored(self):
        frame = json.dumps({"event": "subscribe", "arg": {"channel": "candle1H", "instId": "BTC-USDT"}})
        assert self.adapter.parse_stream_message(frame) is None


# ============================================
# Run Tests
# ============================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
