"""
Exchange Interface - Abstract Contract for All Exchange Adapters

This module defines the abstract base class that every exchange adapter must
implement. An adapter is a stateless policy object: it knows how an exchange
names symbols and intervals, where its REST and stream endpoints live, and how
to turn its native payloads into our canonical schemas. It performs no I/O
itself; the SnapshotFetcher and StreamManager do the networking.

Design Philosophy:
    "Program to an interface, not an implementation"

    The session orchestrator works with ExchangeAdapter, never with a specific
    exchange. Per-exchange branching lives in exactly one place: the concrete
    adapter selected for the session.

Example:
    class BinanceAdapter(ExchangeAdapter):
        name = ExchangeName.BINANCE
        rest_base_url = "https://api.binance.com/api/v3"

        def format_symbol(self, base_symbol):
            return f"{base_symbol.upper()}USDT"
        ...

    adapter = manager.get_adapter("Binance")
    url = adapter.build_snapshot_request(SnapshotKind.CANDLES, "BTC", "1h", 500)
    candles = adapter.parse_snapshot_candles(await fetcher.fetch_with_fallback(url))
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union
from urllib.parse import urlencode

from core.errors import MalformedResponse
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.utils.time import to_epoch_millis


WirePayload = Union[Dict[str, Any], str]


class ExchangeAdapter(ABC):
    """
    Abstract Base Class for Exchange Adapters

    Class Attributes:
        name: Exchange identifier
        quote_asset: Settlement currency every symbol is quoted against
        rest_base_url: REST API root
        interval_map: Canonical interval -> native REST interval token
        unsupported_intervals: Canonical intervals the exchange does not offer
        keepalive_interval_ms: Application-level keep-alive period, or None
                               when the exchange relies on protocol pings

    Abstract Methods (MUST be implemented by all adapters):
        - format_symbol
        - build_snapshot_request
        - parse_snapshot_ticker
        - parse_snapshot_candles
        - stream_url
        - _parse_stream_payload

    Optional Overrides:
        - map_stream_interval: when the stream uses different tokens than REST
        - build_subscribe_message / build_keepalive_message
        - is_control_frame: raw text frames to swallow before JSON parsing
    """

    name: ExchangeName
    quote_asset: str = "USDT"
    rest_base_url: str = ""
    interval_map: Dict[str, str] = {}
    unsupported_intervals: FrozenSet[str] = frozenset()
    keepalive_interval_ms: Optional[int] = None

    # ============================================
    # Symbol & Interval Mapping
    # ============================================

    @abstractmethod
    def format_symbol(self, base_symbol: str) -> str:
        """Turn a base asset (e.g. "btc") into the exchange's pair symbol."""
        ...

    def supports_interval(self, interval: str) -> bool:
        return interval not in self.unsupported_intervals

    def map_interval(self, interval: str) -> str:
        """
        Map a canonical interval ("1m", "1h", "1d", ...) to the REST token.

        Intervals missing from the table pass through unchanged.

        Raises:
            ValueError: The exchange has no candles at this interval
        """
        self._require_interval(interval)
        return self.interval_map.get(interval, interval)

    def map_stream_interval(self, interval: str) -> str:
        """Map a canonical interval to the stream token (REST token by default)."""
        return self.map_interval(interval)

    def _require_interval(self, interval: str) -> None:
        if not self.supports_interval(interval):
            raise ValueError(f"{self.name.value} has no {interval} candles")

    # ============================================
    # REST Snapshots
    # ============================================

    @abstractmethod
    def build_snapshot_request(
        self,
        kind: SnapshotKind,
        symbol: str,
        interval: Optional[str] = None,
        limit: int = 500
    ) -> str:
        """
        Build the full REST URL for a snapshot.

        Args:
            kind: TICKER (24h statistics) or CANDLES (history batch)
            symbol: Base asset, formatted by the adapter
            interval: Canonical interval (CANDLES only)
            limit: Number of candles (CANDLES only)
        """
        ...

    @abstractmethod
    def parse_snapshot_ticker(self, raw: Any) -> TickerSnapshot:
        """
        Extract a TickerSnapshot from a raw REST response.

        Raises:
            MalformedResponse: If expected fields are absent
        """
        ...

    @abstractmethod
    def parse_snapshot_candles(self, raw: Any) -> List[Candle]:
        """
        Extract candles (oldest first) from a raw REST response.

        Raises:
            MalformedResponse: If the payload is not the expected array shape
        """
        ...

    # ============================================
    # Streaming
    # ============================================

    @abstractmethod
    def stream_url(self, symbol: str, interval: str) -> str:
        """WebSocket endpoint for a kline subscription."""
        ...

    def build_subscribe_message(self, symbol: str, interval: str) -> Optional[WirePayload]:
        """Payload sent right after the socket opens (None = nothing to send)."""
        return None

    def build_keepalive_message(self) -> Optional[WirePayload]:
        """Payload sent every keepalive_interval_ms (None = no app-level ping)."""
        return None

    def is_control_frame(self, raw: str) -> bool:
        """Raw, non-JSON text frames (pongs) the adapter swallows."""
        return False

    def parse_stream_message(self, raw: Union[str, bytes]) -> Optional[Candle]:
        """
        Turn one inbound frame into a Candle, or None.

        None is returned for control frames, subscription acknowledgements,
        invalid JSON and anything else that is not a candle update. This
        method never raises.
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                return None

        if self.is_control_frame(raw):
            return None

        try:
            message = json.loads(raw)
        except ValueError:
            return None

        if not isinstance(message, dict):
            return None

        try:
            return self._parse_stream_payload(message)
        except (KeyError, IndexError, TypeError, ValueError):
            return None

    @abstractmethod
    def _parse_stream_payload(self, message: Dict[str, Any]) -> Optional[Candle]:
        """Exchange-specific candle extraction from a decoded JSON frame."""
        ...

    # ============================================
    # Helpers for Subclasses
    # ============================================

    def _url(self, path: str, params: Dict[str, Any]) -> str:
        return f"{self.rest_base_url}{path}?{urlencode(params)}"

    def _malformed(self, detail: str) -> MalformedResponse:
        return MalformedResponse(self.name.value, detail)

    def _require_list(self, value: Any, what: str) -> list:
        if not isinstance(value, list):
            raise self._malformed(f"expected an array of {what}, got {type(value).__name__}")
        return value

    def _candle_from_row(
        self,
        row: Any,
        time_idx: int,
        open_idx: int,
        high_idx: int,
        low_idx: int,
        close_idx: int,
        volume_idx: int,
        to_millis: Callable[[Any], int] = to_epoch_millis
    ) -> Candle:
        """Build a Candle from a positional REST row; bad rows raise MalformedResponse."""
        try:
            return Candle(
                time=to_millis(row[time_idx]),
                open=float(row[open_idx]),
                high=float(row[high_idx]),
                low=float(row[low_idx]),
                close=float(row[close_idx]),
                volume=float(row[volume_idx]),
            )
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise self._malformed(f"bad candle row {row!r}: {e}") from e

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name.value})>"
