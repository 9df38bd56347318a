"""
Indicator Engine

Pure, batch technical indicators over a candle sequence. Every function
returns a list aligned index-for-index with its input, using None where the
indicator is not yet defined. Empty input gives empty output.

Indicators:
    - ema: Exponential moving average seeded with a simple average
    - rsi: Relative Strength Index with Wilder smoothing
    - kdj: Stochastic K/D/J lines
    - parabolic_sar: Parabolic stop-and-reverse

The session recomputes everything from CandleSeries.snapshot() after each
change.
"""

from typing import List, NamedTuple, Optional, Sequence

from core.schemas import Candle, IndicatorSet, KDJSeries


EMA_FAST = 7
EMA_MID = 25
EMA_SLOW = 99
RSI_PERIOD = 14
KDJ_PERIOD = 9
SAR_START_AF = 0.02
SAR_MAX_AF = 0.2
SAR_MIN_CANDLES = 5


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}")


# ============================================
# Moving Averages
# ============================================

def ema(candles: Sequence[Candle], period: int) -> List[Optional[float]]:
    """
    Exponential moving average of closes.

    The value at index period-1 is the simple average of the first `period`
    closes; after that ema[i] = close[i] * k + ema[i-1] * (1 - k) with
    k = 2 / (period + 1). Earlier indices are None.
    """
    _check_period(period)
    n = len(candles)
    result: List[Optional[float]] = [None] * n
    if n < period:
        return result

    k = 2 / (period + 1)
    value = sum(c.close for c in candles[:period]) / period
    result[period - 1] = value

    for i in range(period, n):
        value = candles[i].close * k + value * (1 - k)
        result[i] = value

    return result


# ============================================
# Oscillators
# ============================================

def rsi(candles: Sequence[Candle], period: int = RSI_PERIOD) -> List[Optional[float]]:
    """
    Wilder's Relative Strength Index.

    At index `period` the average gain/loss is the plain mean over changes
    1..period. After that both are smoothed as
    avg = (avg * (period - 1) + current) / period.

    An average loss of zero yields exactly 100.
    """
    _check_period(period)
    n = len(candles)
    result: List[Optional[float]] = [None] * n
    if n <= period:
        return result

    avg_gain = 0.0
    avg_loss = 0.0

    for i in range(1, n):
        change = candles[i].close - candles[i - 1].close
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0

        if i < period:
            avg_gain += gain
            avg_loss += loss
            continue

        if i == period:
            avg_gain = (avg_gain + gain) / period
            avg_loss = (avg_loss + loss) / period
        else:
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period

        result[i] = _rsi_value(avg_gain, avg_loss)

    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100 - 100 / (1 + avg_gain / avg_loss)


def kdj(candles: Sequence[Candle], period: int = KDJ_PERIOD) -> KDJSeries:
    """
    KDJ stochastic oscillator.

    For each index i >= period-1:
        RSV = (close - lowest low) / (highest high - lowest low) * 100, or 50 on a flat window
        K = 2/3 * K_prev + 1/3 * RSV
        D = 2/3 * D_prev + 1/3 * K
        J = 3K - 2D
    K_prev and D_prev start at 50.
    """
    _check_period(period)
    n = len(candles)
    k_line: List[Optional[float]] = [None] * n
    d_line: List[Optional[float]] = [None] * n
    j_line: List[Optional[float]] = [None] * n

    k_value = 50.0
    d_value = 50.0

    for i in range(period - 1, n):
        window = candles[i - period + 1:i + 1]
        low = min(c.low for c in window)
        high = max(c.high for c in window)

        if high == low:
            rsv = 50.0
        else:
            rsv = (candles[i].close - low) / (high - low) * 100

        k_value = (2 / 3) * k_value + (1 / 3) * rsv
        d_value = (2 / 3) * d_value + (1 / 3) * k_value

        k_line[i] = k_value
        d_line[i] = d_value
        j_line[i] = 3 * k_value - 2 * d_value

    return KDJSeries(k=k_line, d=d_line, j=j_line)


# ============================================
# Trend
# ============================================

class SarPoint(NamedTuple):
    """SAR value at one index plus the state carried into the next step."""
    sar: float
    ep: float
    af: float
    uptrend: bool


def sar_points(
    candles: Sequence[Candle],
    start_af: float = SAR_START_AF,
    max_af: float = SAR_MAX_AF
) -> List[Optional[SarPoint]]:
    """
    Parabolic SAR with its extreme point, acceleration factor and trend.

    Needs at least 5 candles; shorter input gives all None. The initial trend
    is up when the first candle closes above its open. The initial SAR is the
    opposite extreme of that candle and the extreme point (EP) is the matching
    extreme.

    Per step:
        sar = prev + af * (ep - prev), clamped so that it never crosses the
        prior two lows (uptrend) or highs (downtrend). A breach of the clamped
        SAR flips the trend: SAR jumps to the old EP, EP becomes the current
        extreme, af resets. Without a flip, a new extreme moves EP and raises
        af by start_af up to max_af.
    """
    n = len(candles)
    points: List[Optional[SarPoint]] = [None] * n
    if n < SAR_MIN_CANDLES:
        return points

    first = candles[0]
    uptrend = first.close > first.open
    ep = first.high if uptrend else first.low
    af = start_af
    sar = first.low if uptrend else first.high
    points[0] = SarPoint(sar, ep, af, uptrend)

    for i in range(1, n):
        sar = sar + af * (ep - sar)
        candle = candles[i]

        if uptrend:
            low1 = candles[i - 1].low
            low2 = candles[i - 2].low if i > 1 else low1
            sar = min(sar, low1, low2)
        else:
            high1 = candles[i - 1].high
            high2 = candles[i - 2].high if i > 1 else high1
            sar = max(sar, high1, high2)

        if uptrend and candle.low < sar:
            uptrend = False
            sar = ep
            ep = candle.low
            af = start_af
        elif not uptrend and candle.high > sar:
            uptrend = True
            sar = ep
            ep = candle.high
            af = start_af
        elif uptrend and candle.high > ep:
            ep = candle.high
            af = min(af + start_af, max_af)
        elif not uptrend and candle.low < ep:
            ep = candle.low
            af = min(af + start_af, max_af)

        points[i] = SarPoint(sar, ep, af, uptrend)

    return points


def parabolic_sar(
    candles: Sequence[Candle],
    start_af: float = SAR_START_AF,
    max_af: float = SAR_MAX_AF
) -> List[Optional[float]]:
    """Parabolic SAR values; see sar_points() for the rules."""
    return [p.sar if p is not None else None for p in sar_points(candles, start_af, max_af)]


def sar_trend(candles: Sequence[Candle], sar: Sequence[Optional[float]]) -> Optional[str]:
    """'up' when the last close is above the last SAR, 'down' otherwise, None if undefined."""
    if not candles or not sar or sar[-1] is None:
        return None
    return "up" if candles[-1].close > sar[-1] else "down"


# ============================================
# Overlay Bundle
# ============================================

def compute_indicators(candles: Sequence[Candle]) -> IndicatorSet:
    """Recompute every overlay the chart draws from one immutable snapshot."""
    sar = parabolic_sar(candles)
    return IndicatorSet(
        times=[c.time for c in candles],
        ema_fast=ema(candles, EMA_FAST),
        ema_mid=ema(candles, EMA_MID),
        ema_slow=ema(candles, EMA_SLOW),
        sar=sar,
        rsi=rsi(candles),
        kdj=kdj(candles),
        trend=sar_trend(candles, sar),
    )
