"""
Session Orchestrator

Drives one viewing session: which symbol, on which exchange, at which
interval, plus the ticker, the candle series, its indicators and the single
live stream that keeps them current.

Every entry point (search, change_interval, switch_exchange, close) mints a
new cancellation token before doing anything else. Asynchronous completions
compare their captured token at each resumption point, so rapid user input
can never let an older, slower request overwrite newer state.

State changes are published on the session's event-bus topic as
{"type": ..., "data": ...} dicts with these types:

    status       {"status", "symbol", "exchange", "interval", "error"}
    ticker       TickerSnapshot (camelCase aliases)
    exchanges    list of exchange names that list the symbol
    candles      full candle history batch
    candle       one merged streamed candle
    indicators   IndicatorSet for the current series
    error        {"kind", "message"}
"""

import asyncio
import uuid
from typing import Any, List, Optional

from core.cancellation import CancellationToken, TokenSource
from core.candle_series import CandleSeries
from core.config import CANONICAL_INTERVALS, settings
from core.errors import CancellationObsolete, MarketDataError, SymbolNotFound
from core.exchange_manager import ExchangeManager
from core.indicators import compute_indicators
from core.logging import get_logger
from core.schemas import Candle, FetchStatus, IndicatorSet, TickerSnapshot
from core.stream_manager import StreamManager
from services.event_bus import EventBus, bus as default_bus


class SessionOrchestrator:
    """
    Coordinates fetcher, adapters, candle series, indicators and stream for
    one viewer.

    Attributes:
        manager: ExchangeManager with the adapters and the shared fetcher
        stream: StreamManager owning the single live subscription
        bus: EventBus the session publishes to
        topic: Topic name for this session's events
        series: CandleSeries for the current symbol/exchange/interval

    Example:
        >>> session = SessionOrchestrator(manager)
        >>> await session.search("btc")
        >>> await session.change_interval("1h")
        >>> await session.switch_exchange("OKX")
        >>> await session.close()
    """

    def __init__(
        self,
        manager: ExchangeManager,
        stream: Optional[StreamManager] = None,
        bus: Optional[EventBus] = None,
        topic: Optional[str] = None
    ) -> None:
        self.manager = manager
        self.stream = stream if stream is not None else StreamManager()
        self.bus = bus if bus is not None else default_bus
        self.topic = topic or f"session:{uuid.uuid4().hex[:12]}"
        self.series = CandleSeries()

        self._logger = get_logger(__name__)
        self._tokens = TokenSource()
        self._probe_task: Optional[asyncio.Task] = None

        self.status = FetchStatus.IDLE
        self.symbol: Optional[str] = None
        self.interval: str = settings.default_interval
        self.exchange: Optional[str] = None
        self.ticker: Optional[TickerSnapshot] = None
        self.available: List[str] = []
        self.indicators: Optional[IndicatorSet] = None
        self.error: Optional[str] = None

    # ============================================
    # Entry Points
    # ============================================

    async def search(
        self,
        symbol: str,
        interval: Optional[str] = None,
        exchange: Optional[str] = None
    ) -> Optional[TickerSnapshot]:
        """
        Start a new session for a base symbol.

        The preferred exchange (or the forced one) is asked first. Without a
        forced exchange, a failure there falls back to probing every exchange
        and taking the first success in priority order.

        Returns:
            The ticker the session settled on, or None if a newer operation
            superseded this one.

        Raises:
            ValueError: Empty symbol, unknown interval or unknown exchange
            SymbolNotFound: No exchange lists the symbol
            FetchUnavailable / MalformedResponse: The forced exchange failed
        """
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("symbol must not be empty")
        interval = self._check_interval(interval or settings.default_interval)
        forced = self.manager.get_adapter(exchange).name.value if exchange else None
        token = self._tokens.mint()

        try:
            await self._cancel_probe()
            await self.stream.teardown()
            token.check()

            self._reset(symbol=symbol, interval=interval)
            self._set_status(FetchStatus.LOADING)
            return await self._search(token, symbol, forced)
        except CancellationObsolete:
            self._logger.debug(f"Search for {symbol} superseded")
            return None

    async def change_interval(self, interval: str) -> None:
        """Reload history and stream for the current symbol/exchange at a new interval."""
        interval = self._check_interval(interval)
        token = self._tokens.mint()

        try:
            await self.stream.teardown()
            token.check()

            self.interval = interval
            if self.symbol is None or self.exchange is None:
                return

            self._clear_market()
            self._set_status(FetchStatus.LOADING)
            await self._load_market(token)
        except CancellationObsolete:
            self._logger.debug(f"Interval change to {interval} superseded")

    async def switch_exchange(self, exchange: str) -> Optional[TickerSnapshot]:
        """
        Show the current symbol from another exchange.

        Only that exchange is asked; a failure surfaces directly without a
        fallback probe.
        """
        name = self.manager.get_adapter(exchange).name.value
        token = self._tokens.mint()

        try:
            await self.stream.teardown()
            token.check()

            if self.symbol is None:
                self.exchange = name
                return None

            self._clear_market()
            self._set_status(FetchStatus.LOADING)

            try:
                ticker = await self.manager.get_ticker(name, self.symbol)
            except MarketDataError as e:
                token.check()
                self._fail(e)
                raise
            token.check()

            self.exchange = name
            self._set_ticker(ticker)
            await self._load_market(token)
            return ticker
        except CancellationObsolete:
            self._logger.debug(f"Switch to {name} superseded")
            return None

    async def close(self) -> None:
        """End the session: stop streaming, drop all state and go idle."""
        token = self._tokens.mint()
        await self._cancel_probe()
        await self.stream.teardown()
        if token.cancelled:
            return
        self._reset(symbol=None, interval=self.interval)
        self._set_status(FetchStatus.IDLE)

    # ============================================
    # Loading
    # ============================================

    async def _search(
        self,
        token: CancellationToken,
        symbol: str,
        forced: Optional[str]
    ) -> TickerSnapshot:
        preferred = forced or self.manager.preferred

        try:
            ticker = await self.manager.get_ticker(preferred, symbol)
        except MarketDataError as e:
            token.check()
            if forced:
                self._fail(e)
                raise

            self._logger.info(f"{symbol} not available on {preferred}, probing all exchanges")
            found = await self.manager.probe_all(symbol)
            token.check()
            if not found:
                error = SymbolNotFound(symbol)
                self._fail(error)
                raise error

            self._set_available([t.exchange.value for t in found])
            ticker = found[0]
        else:
            token.check()
            self._set_available([preferred])
            self._probe_task = asyncio.create_task(
                self._probe_in_background(symbol),
                name=f"probe:{symbol}"
            )

        self.exchange = ticker.exchange.value
        self._set_ticker(ticker)
        await self._load_market(token)
        return ticker

    async def _probe_in_background(self, symbol: str) -> None:
        # Outlives interval and exchange changes; search and close cancel it
        found = await self.manager.probe_all(symbol)
        if self.symbol != symbol or not found:
            return
        self._set_available([t.exchange.value for t in found])

    async def _load_market(self, token: CancellationToken) -> None:
        adapter = self.manager.get_adapter(self.exchange)
        if not adapter.supports_interval(self.interval):
            self._fail(ValueError(f"{self.exchange} has no {self.interval} candles"))
            return

        candles = await self.manager.get_candles(
            self.exchange, self.symbol, self.interval, self.series.cap
        )
        token.check()

        self.series.replace_all(candles)
        self._publish("candles", [c.model_dump() for c in self.series.snapshot()])
        self._recompute()
        self._set_status(FetchStatus.SUCCESS)

        sub = await self.stream.subscribe(
            adapter, self.symbol, self.interval, self._stream_handler(token)
        )

        if token.cancelled:
            if self.stream.subscription is sub:
                await self.stream.teardown()
            token.check()

    def _stream_handler(self, token: CancellationToken):
        def on_candle(candle: Candle) -> None:
            if token.cancelled:
                return
            # No history yet, nothing to merge into
            if not self.series:
                return
            if not self.series.merge_one(candle):
                return
            self._publish("candle", candle.model_dump())
            self._recompute()

        return on_candle

    async def _cancel_probe(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ============================================
    # State & Publishing
    # ============================================

    def _check_interval(self, interval: str) -> str:
        if interval not in CANONICAL_INTERVALS:
            raise ValueError(
                f"Unsupported interval '{interval}'. "
                f"Must be one of: {', '.join(CANONICAL_INTERVALS)}"
            )
        return interval

    def _reset(self, symbol: Optional[str], interval: str) -> None:
        self.symbol = symbol
        self.interval = interval
        self.exchange = None
        self.ticker = None
        self.available = []
        self.error = None
        self._clear_market()

    def _clear_market(self) -> None:
        self.series.clear()
        self.indicators = None
        self.error = None

    def _recompute(self) -> None:
        self.indicators = compute_indicators(self.series.snapshot())
        self._publish("indicators", self.indicators.model_dump())

    def _set_ticker(self, ticker: TickerSnapshot) -> None:
        self.ticker = ticker
        self._publish("ticker", ticker.model_dump(mode="json", by_alias=True))

    def _set_available(self, exchanges: List[str]) -> None:
        self.available = exchanges
        self._publish("exchanges", list(exchanges))

    def _set_status(self, status: FetchStatus) -> None:
        self.status = status
        self._publish("status", self.describe())

    def _fail(self, error: Exception) -> None:
        self.error = str(error)
        self._logger.warning(f"Session {self.topic} failed: {error}")
        self._publish("error", {"kind": type(error).__name__, "message": str(error)})
        self._set_status(FetchStatus.ERROR)

    def _publish(self, event_type: str, data: Any) -> None:
        self.bus.publish(self.topic, {"type": event_type, "data": data})

    def describe(self) -> dict:
        """Current session state as a plain dict."""
        return {
            "status": self.status.value,
            "symbol": self.symbol,
            "exchange": self.exchange,
            "interval": self.interval,
            "error": self.error,
        }

    def __repr__(self) -> str:
        return (
            f"<SessionOrchestrator(topic={self.topic}, status={self.status.value}, "
            f"symbol={self.symbol}, exchange={self.exchange}, interval={self.interval})>"
        )
