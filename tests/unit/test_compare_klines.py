"""
Unit Tests for the Kline Comparison Script

These tests verify the pure helpers of scripts/compare_klines.py:
- ISO-8601 cut-off parsing (naive dates are UTC)
- Candle and series validation
- Spread and percentage math

Run with:
    pytest tests/unit/test_compare_klines.py -v
"""

import pytest

from scripts.compare_klines import (
    parse_args,
    pct,
    since_millis,
    spread_bps,
    validate_item,
    validate_series,
)


def kline(t, o=10.0, h=11.0, l=9.0, c=10.5, v=1.0):
    return {"time": t, "open": o, "high": h, "low": l, "close": c, "volume": v}


class TestSinceMillis:
    """Tests for the --since parser"""

    def test_none(self):
        assert since_millis(None) is None
        assert since_millis("") is None

    def test_naive_date_is_utc(self):
        assert since_millis("2024-01-01T12:00:00") == 1704110400000

    def test_offset_is_respected(self):
        assert since_millis("2024-01-01T14:00:00+02:00") == 1704110400000


class TestValidation:
    """Tests for validate_item / validate_series"""

    def test_valid_series(self):
        assert validate_series([kline(1000), kline(2000)]) == (True, "")

    def test_missing_field(self):
        item = kline(1000)
        del item["volume"]
        ok, msg = validate_item(item)
        assert not ok and "volume" in msg

    @pytest.mark.parametrize("bad, reason", [
        (kline(1000, h=8.0), "high < low"),
        (kline(1000, h=10.2), "high must be >= open/close"),
        (kline(1000, l=10.2), "low must be <= open/close"),
        (kline("1000"), "time must be a non-negative int (epoch ms)"),
    ])
    def test_ohlc_checks(self, bad, reason):
        assert validate_item(bad) == (False, reason)

    def test_times_must_increase(self):
        ok, msg = validate_series([kline(2000), kline(2000)])
        assert not ok
        assert "strictly increasing" in msg

    def test_empty_and_non_list(self):
        assert validate_series([]) == (False, "empty list")
        assert validate_series({"detail": "x"}) == (False, "response is not a list")


class TestMath:
    """Tests for spread_bps / pct"""

    def test_spread_bps(self):
        assert spread_bps([99.0, 101.0]) == pytest.approx(200.0)
        assert spread_bps([5.0, 5.0]) == 0.0

    def test_pct(self):
        assert pct(110.0, 100.0) == pytest.approx(10.0)
        assert pct(1.0, 0.0) == 0.0


class TestArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.symbol == "BTC"
        assert args.interval == "15m"
        assert args.since is None

    def test_overrides(self):
        args = parse_args(["--symbol", "ETH", "--exchanges", "Binance,OKX", "--since", "2024-01-01"])
        assert args.symbol == "ETH"
        assert args.exchanges == "Binance,OKX"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
