"""
Unit Tests for StreamManager

These tests verify that the StreamManager:
- Sends the adapter's subscribe payload and walks the state machine
- Delivers parsed candles and ignores non-candle frames
- Keeps at most one subscription, tearing down the old one on resubscribe
- Never invokes a callback after teardown
- Sends keep-alives only while the socket is open
- Logs stream failures without reconnecting and reports the stream as closed

Sockets are replaced with in-memory fakes injected through the connect factory.

Run with:
    pytest tests/unit/test_stream_manager.py -v
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from websockets.protocol import State

from core.errors import StreamError
from core.stream_manager import StreamManager, StreamState
from exchanges.binance import BinanceAdapter
from exchanges.okx import OKXAdapter


# ============================================
# Fake WebSocket Helpers
# ============================================

class FakeSocket:
    """In-memory socket: frames pushed to the inbox come out of async iteration."""

    def __init__(self):
        self.state = State.OPEN
        self.sent = []
        self.inbox = asyncio.Queue()

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self.state = State.CLOSED

    def push(self, frame):
        self.inbox.put_nowait(frame)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.inbox.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnection:
    def __init__(self, socket, error=None):
        self.socket = socket
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.socket

    async def __aexit__(self, exc_type, exc, tb):
        self.socket.state = State.CLOSED
        return False


class FakeConnector:
    """Stands in for websockets.connect and records every URL dialled."""

    def __init__(self, error=None):
        self.error = error
        self.urls = []
        self.sockets = []

    def __call__(self, url):
        self.urls.append(url)
        socket = FakeSocket()
        self.sockets.append(socket)
        return FakeConnection(socket, self.error)


class FastOKXAdapter(OKXAdapter):
    keepalive_interval_ms = 10


def okx_frame(ts, close="1.5"):
    return json.dumps({
        "arg": {"channel": "candle1m", "instId": "BTC-USDT"},
        "data": [[str(ts), "1", "2", "0.5", close, "3", "4", "4", "0"]],
    })


async def settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================
# Tests for Subscribing
# ============================================

class TestSubscribe:
    """Tests for subscribe and candle delivery"""

    @pytest.mark.asyncio
    async def test_subscribe_sends_payload(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        await stream.subscribe(OKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()

        assert connector.urls == ["wss://ws.okx.com:8443/ws/v5/public"]
        sent = json.loads(connector.sockets[0].sent[0])
        assert sent == {"op": "subscribe", "args": [{"channel": "candle1m", "instId": "BTC-USDT"}]}
        assert stream.state == StreamState.SUBSCRIBED

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_url_selected_stream_sends_nothing(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        await stream.subscribe(BinanceAdapter(), "BTC", "1m", lambda c: None)
        await settle()

        assert connector.urls == ["wss://stream.binance.com:9443/ws/btcusdt@kline_1m"]
        assert connector.sockets[0].sent == []

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_candles_delivered_and_junk_ignored(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)
        received = []

        await stream.subscribe(OKXAdapter(), "BTC", "1m", received.append)
        await settle()

        socket = connector.sockets[0]
        socket.push("pong")
        socket.push(json.dumps({"event": "subscribe"}))
        socket.push(okx_frame(1000))
        socket.push("{broken")
        socket.push(okx_frame(2000))
        await settle()

        assert [c.time for c in received] == [1000, 2000]
        assert stream.state == StreamState.STREAMING

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_stream(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)
        stream.logger = MagicMock()
        received = []

        def callback(candle):
            received.append(candle)
            if len(received) == 1:
                raise RuntimeError("boom")

        await stream.subscribe(OKXAdapter(), "BTC", "1m", callback)
        await settle()
        connector.sockets[0].push(okx_frame(1000))
        connector.sockets[0].push(okx_frame(2000))
        await settle()

        assert len(received) == 2
        stream.logger.error.assert_called_once()

        await stream.teardown()


# ============================================
# Tests for Single-Subscription Guarantee
# ============================================

class TestSingleSubscription:
    """At most one subscription is ever live"""

    @pytest.mark.asyncio
    async def test_resubscribe_tears_down_previous(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)
        first_received, second_received = [], []

        first = await stream.subscribe(OKXAdapter(), "BTC", "1m", first_received.append)
        await settle()
        second = await stream.subscribe(OKXAdapter(), "ETH", "5m", second_received.append)
        await settle()

        assert stream.subscription is second
        assert first.task.done()
        assert connector.sockets[0].state is State.CLOSED

        connector.sockets[0].push(okx_frame(1000))
        connector.sockets[1].push(okx_frame(2000))
        await settle()

        assert first_received == []
        assert [c.time for c in second_received] == [2000]

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_no_callbacks_after_teardown(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)
        received = []

        await stream.subscribe(OKXAdapter(), "BTC", "1m", received.append)
        await settle()
        await stream.teardown()

        connector.sockets[0].push(okx_frame(1000))
        await settle()

        assert received == []
        assert stream.subscription is None
        assert stream.state == StreamState.CLOSED

    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self):
        stream = StreamManager(connect=FakeConnector())

        await stream.teardown()
        await stream.subscribe(OKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()
        await stream.teardown()
        await stream.teardown()

        assert stream.subscription is None

    @pytest.mark.asyncio
    async def test_teardown_before_connect_completes(self):
        """A subscription torn down before the reader ran never sends anything"""
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        await stream.subscribe(OKXAdapter(), "BTC", "1m", lambda c: None)
        await stream.teardown()
        await settle()

        assert all(s.sent == [] for s in connector.sockets)


# ============================================
# Tests for Keep-alive
# ============================================

class TestKeepalive:
    """Tests for the keep-alive task"""

    @pytest.mark.asyncio
    async def test_keepalive_sent_periodically(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        await stream.subscribe(FastOKXAdapter(), "BTC", "1m", lambda c: None)
        await asyncio.sleep(0.05)

        assert "ping" in connector.sockets[0].sent

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_keepalive_skipped_when_socket_not_open(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        await stream.subscribe(FastOKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()

        socket = connector.sockets[0]
        socket.state = State.CLOSING
        socket.sent.clear()
        await asyncio.sleep(0.05)

        assert socket.sent == []

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_keepalive_stops_after_teardown(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        sub = await stream.subscribe(FastOKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()
        await stream.teardown()

        assert sub.keepalive_task.done()


# ============================================
# Tests for Failures
# ============================================

class TestFailures:
    """Stream failures are logged and never retried"""

    @pytest.mark.asyncio
    async def test_connect_error_logged_without_reconnect(self, monkeypatch):
        events = []
        monkeypatch.setattr(
            "core.stream_manager.log_websocket_event",
            lambda exchange, event, symbol=None, details=None: events.append(event),
        )
        connector = FakeConnector(error=OSError("refused"))
        stream = StreamManager(connect=connector)

        sub = await stream.subscribe(OKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()

        assert sub.task.done()
        assert "error" in events
        assert isinstance(sub.error, StreamError)
        assert sub.error.detail == "refused"
        assert stream.state == StreamState.CLOSED
        assert len(connector.urls) == 1

        await stream.teardown()

    @pytest.mark.asyncio
    async def test_server_close_ends_reader_quietly(self):
        connector = FakeConnector()
        stream = StreamManager(connect=connector)

        sub = await stream.subscribe(OKXAdapter(), "BTC", "1m", lambda c: None)
        await settle()
        connector.sockets[0].push(None)
        await settle()

        assert sub.task.done()
        assert sub.error is None
        assert stream.state == StreamState.CLOSED
        assert stream.subscription is sub
        assert len(connector.urls) == 1

        await stream.teardown()


# ============================================
# Run Tests
# ============================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
