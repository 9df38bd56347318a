"""
Normalized Data Schemas

This module defines Pydantic models for all market data types.
These schemas provide a unified, exchange-agnostic data format.

Key Principle:
    Regardless of which exchange the data comes from (Binance, Bybit, MEXC,
    Gate, OKX), it gets normalized into these standardized schemas. Exchange
    native payloads never cross the adapter boundary.

Models:
    - Candle: OHLCV record keyed by epoch-millisecond open time
    - TickerSnapshot: 24h ticker statistics as decimal text
    - KDJSeries / IndicatorSet: Indicator outputs aligned with a candle series
"""

from enum import Enum
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# Enumerations
# ============================================

class ExchangeName(str, Enum):
    """Supported exchanges. Values are the display names used on the wire."""

    BINANCE = "Binance"
    BYBIT = "Bybit"
    MEXC = "MEXC"
    GATE = "Gate"
    OKX = "OKX"


class SnapshotKind(str, Enum):
    """REST snapshot endpoints an adapter knows how to build."""

    TICKER = "ticker"
    CANDLES = "candles"


class FetchStatus(str, Enum):
    """Lifecycle of a viewing session."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


# ============================================
# Candle Schema
# ============================================

class Candle(BaseModel):
    """
    One OHLCV record for a fixed time bucket.

    Attributes:
        time: Candle open time in epoch milliseconds
        open: Opening price
        high: Highest price during the interval
        low: Lowest price during the interval
        close: Closing (or latest, while forming) price
        volume: Traded volume. Units differ by exchange (base on most
                klines, quote on OKX), so consumers must not compare
                volumes across exchanges.

    Example:
        >>> Candle(time=1704110400000, open=42000.0, high=42500.0,
        ...        low=41800.0, close=42300.0, volume=125.5)
    """

    model_config = ConfigDict(frozen=True)

    time: int = Field(..., description="Open time in epoch milliseconds")
    open: float = Field(..., ge=0, description="Opening price")
    high: float = Field(..., ge=0, description="Highest price")
    low: float = Field(..., ge=0, description="Lowest price")
    close: float = Field(..., ge=0, description="Closing price")
    volume: float = Field(..., ge=0, description="Traded volume")


# ============================================
# Ticker Schema
# ============================================

class TickerSnapshot(BaseModel):
    """
    24h ticker statistics for one symbol on one exchange.

    Numeric fields stay as decimal text exactly as the exchange reported
    them (or as derived, for exchanges that do not report a field directly).
    Serialized with camelCase aliases for API consumers.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str = Field(..., description="Symbol without separators, e.g. BTCUSDT")
    price_change: str = Field(..., alias="priceChange")
    price_change_percent: str = Field(..., alias="priceChangePercent")
    last_price: str = Field(..., alias="lastPrice")
    high_price: str = Field(..., alias="highPrice")
    low_price: str = Field(..., alias="lowPrice")
    volume: str = Field(..., description="24h volume in the quote currency")
    exchange: ExchangeName


# ============================================
# Indicator Schemas
# ============================================

class KDJSeries(BaseModel):
    """K, D and J lines, each aligned index-for-index with the candles."""

    k: List[Optional[float]] = Field(default_factory=list)
    d: List[Optional[float]] = Field(default_factory=list)
    j: List[Optional[float]] = Field(default_factory=list)


class IndicatorSet(BaseModel):
    """
    The overlay bundle recomputed after every series change.

    Attributes:
        times: Candle open times the series below are aligned with
        ema_fast / ema_mid / ema_slow: EMA(7), EMA(25), EMA(99)
        sar: Parabolic SAR(0.02, 0.2)
        rsi: Wilder RSI(14)
        kdj: KDJ(9)
        trend: "up" if the last close is above the last SAR, "down" if not,
               None while SAR is undefined
    """

    times: List[int] = Field(default_factory=list)
    ema_fast: List[Optional[float]] = Field(default_factory=list)
    ema_mid: List[Optional[float]] = Field(default_factory=list)
    ema_slow: List[Optional[float]] = Field(default_factory=list)
    sar: List[Optional[float]] = Field(default_factory=list)
    rsi: List[Optional[float]] = Field(default_factory=list)
    kdj: KDJSeries = Field(default_factory=KDJSeries)
    trend: Optional[Literal["up", "down"]] = None
