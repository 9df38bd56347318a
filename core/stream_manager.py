"""
Stream Manager - Single Live Kline Subscription

Owns at most one WebSocket subscription at a time. Subscribing always tears
down the previous subscription first, so a session can never receive candles
from two streams.

Lifecycle:
    idle -> connecting -> subscribed -> streaming -> closed

Each subscription runs as one reader task (connect, send the subscribe
payload, read frames) plus an optional keep-alive task. Candles are delivered
to the callback only while the subscription is still the current one; after
teardown() starts, no further callbacks fire.

Dropped connections are logged and left as they are. There is no automatic
reconnect: the next search, interval change or exchange switch resubscribes.

Usage:
    stream = StreamManager()
    await stream.subscribe(adapter, "BTC", "15m", on_candle)
    ...
    await stream.teardown()
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from core.errors import StreamError
from core.exchange_interface import ExchangeAdapter, WirePayload
from core.logging import get_logger, log_websocket_event
from core.schemas import Candle


CandleCallback = Callable[[Candle], None]


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class Subscription:
    """Record of the active stream. Identity is what makes a callback current."""
    exchange: str
    symbol: str
    interval: str
    callback: CandleCallback
    socket: Optional[Any] = None
    task: Optional[asyncio.Task] = None
    keepalive_task: Optional[asyncio.Task] = None
    error: Optional[StreamError] = None


def _encode(payload: WirePayload) -> str:
    return payload if isinstance(payload, str) else json.dumps(payload)


class StreamManager:
    """
    One-at-a-time kline stream driver.

    Attributes:
        connect: Factory returning an async context manager that yields a
                 socket (websockets.connect by default; tests inject fakes)
        logger: Logger instance
    """

    def __init__(self, connect: Callable[[str], Any] = websockets.connect):
        self.connect = connect
        self.logger = get_logger(__name__)
        self._subscription: Optional[Subscription] = None
        self._state = StreamState.IDLE

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def state(self) -> StreamState:
        return self._state

    # ============================================
    # Subscribe / Teardown
    # ============================================

    async def subscribe(
        self,
        adapter: ExchangeAdapter,
        symbol: str,
        interval: str,
        callback: CandleCallback
    ) -> Subscription:
        """
        Replace any current subscription with a new kline stream.

        Args:
            adapter: Exchange adapter providing URL, payloads and frame parsing
            symbol: Base asset (e.g. "BTC")
            interval: Canonical interval (e.g. "15m")
            callback: Invoked with each parsed Candle while current

        Returns:
            Subscription: The new current subscription record
        """
        await self.teardown()

        sub = Subscription(
            exchange=adapter.name.value,
            symbol=symbol,
            interval=interval,
            callback=callback,
        )
        self._subscription = sub
        self._state = StreamState.CONNECTING
        sub.task = asyncio.create_task(self._run(adapter, sub))
        return sub

    async def teardown(self) -> None:
        """Detach and stop the current subscription. Safe to call repeatedly."""
        sub = self._subscription
        if sub is None:
            return

        # Detach first so an in-flight frame cannot reach the callback
        self._subscription = None

        current = asyncio.current_task()
        tasks = [
            t for t in (sub.keepalive_task, sub.task)
            if t is not None and t is not current and not t.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if sub.socket is not None and sub.socket.state is State.OPEN:
            await sub.socket.close()

        self._state = StreamState.CLOSED
        log_websocket_event(sub.exchange, "closed", sub.symbol)

    def _is_current(self, sub: Subscription) -> bool:
        return self._subscription is sub

    # ============================================
    # Reader & Keep-alive
    # ============================================

    async def _run(self, adapter: ExchangeAdapter, sub: Subscription) -> None:
        url = adapter.stream_url(sub.symbol, sub.interval)
        log_websocket_event(sub.exchange, "connecting", sub.symbol, url)

        try:
            async with self.connect(url) as ws:
                sub.socket = ws
                if not self._is_current(sub):
                    return

                payload = adapter.build_subscribe_message(sub.symbol, sub.interval)
                if payload is not None:
                    await ws.send(_encode(payload))

                self._state = StreamState.SUBSCRIBED
                log_websocket_event(sub.exchange, "subscribed", sub.symbol, sub.interval)

                if adapter.keepalive_interval_ms:
                    sub.keepalive_task = asyncio.create_task(self._keepalive(adapter, sub))

                async for raw in ws:
                    if not self._is_current(sub):
                        break

                    candle = adapter.parse_stream_message(raw)
                    if candle is None:
                        continue

                    self._state = StreamState.STREAMING
                    try:
                        sub.callback(candle)
                    except Exception as e:
                        self.logger.error(f"Candle callback failed for {sub.exchange} {sub.symbol}: {e}")
                        continue

        except asyncio.CancelledError:
            raise
        except Exception as e:
            sub.error = StreamError(sub.exchange, str(e))
            log_websocket_event(sub.exchange, "error", sub.symbol, sub.error.detail)
        finally:
            if sub.keepalive_task is not None and not sub.keepalive_task.done():
                sub.keepalive_task.cancel()
            if self._is_current(sub):
                self._state = StreamState.CLOSED

    async def _keepalive(self, adapter: ExchangeAdapter, sub: Subscription) -> None:
        period = adapter.keepalive_interval_ms / 1000
        while True:
            await asyncio.sleep(period)

            ws = sub.socket
            if ws is None or ws.state is not State.OPEN:
                continue

            payload = adapter.build_keepalive_message()
            if payload is None:
                continue

            try:
                await ws.send(_encode(payload))
            except ConnectionClosed:
                continue

    def __repr__(self) -> str:
        sub = self._subscription
        target = f"{sub.exchange}:{sub.symbol}@{sub.interval}" if sub else None
        return f"<StreamManager(state={self._state.value}, subscription={target})>"
