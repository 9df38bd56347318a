"""
Candle Series - Bounded, Time-Ordered Candle Buffer

A CandleSeries holds the candles of one viewing session. It is created empty,
bulk-replaced after a history fetch, and then kept current by merging the
streamed updates one at a time.

Exchanges stream the candle that is still forming over and over until it
closes, then start the next one. merge_one() therefore has two rules:

    same open time as the last candle -> replace the last candle
    newer open time                   -> append, evicting the oldest at capacity
"""

from collections import deque
from typing import Deque, Iterable, Optional, Tuple

from core.config import settings
from core.schemas import Candle


class CandleSeries:
    """
    Fixed-capacity sliding window of candles, strictly increasing by time.

    Example:
        >>> series = CandleSeries(cap=3)
        >>> series.replace_all(history)
        >>> series.merge_one(live_candle)
        >>> frozen = series.snapshot()  # tuple, safe to iterate
    """

    def __init__(self, cap: Optional[int] = None):
        cap = cap if cap is not None else settings.candle_limit
        if cap <= 0:
            raise ValueError("cap must be > 0")
        self.cap = cap
        self._candles: Deque[Candle] = deque(maxlen=cap)

    def replace_all(self, candles: Iterable[Candle]) -> None:
        """Bulk-set from a history batch (oldest first); keeps the newest `cap`."""
        self._candles = deque(candles, maxlen=self.cap)

    def merge_one(self, candle: Candle) -> bool:
        """
        Merge one streamed candle.

        Returns:
            True if the series changed, False if the candle was older than the
            last stored one and was dropped to keep time strictly increasing.
        """
        if self._candles:
            last_time = self._candles[-1].time
            if candle.time == last_time:
                self._candles[-1] = candle
                return True
            if candle.time < last_time:
                return False

        # deque(maxlen=cap) evicts the oldest element on overflow
        self._candles.append(candle)
        return True

    def snapshot(self) -> Tuple[Candle, ...]:
        """Immutable ordered copy for consumers."""
        return tuple(self._candles)

    def clear(self) -> None:
        self._candles.clear()

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def __len__(self) -> int:
        return len(self._candles)

    def __bool__(self) -> bool:
        return bool(self._candles)

    def __repr__(self) -> str:
        return f"<CandleSeries(len={len(self._candles)}, cap={self.cap})>"
