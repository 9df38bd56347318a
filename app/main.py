"""
FastAPI Application - CryptoSearch Market Data API

Provides REST snapshots and a WebSocket-driven viewing session over spot
market data from several exchanges.

Supported Exchanges:
    - Binance, Bybit, MEXC, Gate, OKX (spot, USDT pairs)

Features:
    - 24h ticker per exchange, availability across exchanges
    - Candle history and computed indicators (EMA, SAR, RSI, KDJ)
    - Top coins by 24h quote volume
    - Live session over WebSocket (search, interval change, exchange switch)

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Any, Dict, List, Set
from contextlib import asynccontextmanager
import asyncio

from core.config import settings, validate_configuration
from core.errors import FetchUnavailable, MalformedResponse, MarketDataError
from core.exchange_manager import ExchangeManager
from core.indicators import compute_indicators
from core.logging import logger
from core.schemas import Candle, IndicatorSet, TickerSnapshot
from core.stream_manager import StreamManager
from services.event_bus import bus
from services.session import SessionOrchestrator
from services.top_coins import fetch_top_coins


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await manager.initialize()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("=== Shutting Down ===")
    await manager.shutdown()
    logger.info("=== Shutdown Complete ===")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="CryptoSearch Market Data API",
    description=(
        "Spot market data across Binance, Bybit, MEXC, Gate and OKX.\n\n"
        "## REST Endpoints\n"
        "- `GET /{exchange}/ticker/{symbol}` - 24h ticker (symbol is the base asset, e.g. BTC)\n"
        "- `GET /{exchange}/klines/{symbol}/{interval}` - Candle history (optional ?limit=)\n"
        "- `GET /{exchange}/indicators/{symbol}/{interval}` - EMA 7/25/99, SAR, RSI 14, KDJ 9\n"
        "- `GET /available/{symbol}` - Tickers from every exchange listing the symbol\n"
        "- `GET /top` - Top Binance USDT pairs by 24h quote volume\n"
        "- `GET /exchanges` - Supported exchanges and their priority\n"
        "- `GET /health` - Health check\n\n"
        "## WebSocket Session\n"
        "\n"
        "`ws://{host}/ws/session`\n"
        "- Send JSON actions:\n"
        "  - `{\"action\": \"search\", \"symbol\": \"BTC\", \"interval\": \"15m\", \"exchange\": null}`\n"
        "  - `{\"action\": \"interval\", \"interval\": \"1h\"}`\n"
        "  - `{\"action\": \"exchange\", \"exchange\": \"OKX\"}`\n"
        "  - `{\"action\": \"close\"}`\n"
        "- Receive `{\"type\": ..., \"data\": ...}` events: status, ticker, exchanges,\n"
        "  candles, candle, indicators, error.\n"
        "\n"
        "Live streams are not reconnected after a drop; send a new action to resubscribe."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS (allow your frontend origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

manager = ExchangeManager()  # Global exchange manager


def _get_adapter_or_400(exchange: str):
    try:
        return manager.get_adapter(exchange)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _get_candles_or_400(adapter, symbol: str, interval: str, limit: int) -> List[Candle]:
    try:
        return await manager.get_candles(adapter.name, symbol, interval, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information and available exchanges."""
    return {
        "name": "CryptoSearch Market Data API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "exchanges": manager.list_exchanges()
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Liveness check."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "exchanges": len(manager)
    }


@app.get("/exchanges", tags=["System"])
async def list_exchanges():
    """List all supported exchanges and the fast-path priority."""
    return {
        "exchanges": manager.list_exchanges(),
        "priority": manager.priority,
        "default_interval": settings.default_interval
    }


# ============================================
# Aggregated Market Data Endpoints
# NOTE: must be defined BEFORE generic '/{exchange}/...' routes
#       to avoid being captured by the dynamic path.
# ============================================

@app.get("/top", response_model=List[TickerSnapshot], tags=["Market Data"])
async def top_coins(
    limit: int = Query(default=settings.top_coins_limit, ge=1, le=500, description="Number of symbols")
):
    """Top Binance USDT pairs by 24h quote volume (empty on upstream failure)."""
    return await fetch_top_coins(manager.fetcher, limit)


@app.get("/available/{symbol}", response_model=List[TickerSnapshot], tags=["Market Data"])
async def available(symbol: str):
    """Tickers from every exchange that lists the symbol, in priority order."""
    found = await manager.probe_all(symbol)
    if not found:
        raise HTTPException(status_code=404, detail=f"Symbol '{symbol.upper()}' not found on any exchange")
    return found


# ============================================
# Per-Exchange Market Data Endpoints
# ============================================

@app.get("/{exchange}/ticker/{symbol}", response_model=TickerSnapshot, tags=["Market Data"])
async def get_ticker(exchange: str, symbol: str):
    """
    24h ticker statistics for a base symbol on one exchange.

    Example:
        GET /Binance/ticker/BTC
    """
    adapter = _get_adapter_or_400(exchange)
    try:
        return await manager.get_ticker(adapter.name, symbol)
    except (FetchUnavailable, MalformedResponse) as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/{exchange}/klines/{symbol}/{interval}", response_model=List[Candle], tags=["Market Data"])
async def get_klines(
    exchange: str,
    symbol: str,
    interval: str,
    limit: int = Query(default=settings.candle_limit, ge=1, le=1000, description="Number of candles")
):
    """
    Candle history, oldest first. Empty when the exchange has no data.

    Example:
        GET /OKX/klines/ETH/1h?limit=200
    """
    adapter = _get_adapter_or_400(exchange)
    return await _get_candles_or_400(adapter, symbol, interval, limit)


@app.get("/{exchange}/indicators/{symbol}/{interval}", response_model=IndicatorSet, tags=["Market Data"])
async def get_indicators(
    exchange: str,
    symbol: str,
    interval: str,
    limit: int = Query(default=settings.candle_limit, ge=1, le=1000, description="Number of candles")
):
    """Indicator overlays computed over the candle history."""
    adapter = _get_adapter_or_400(exchange)
    candles = await _get_candles_or_400(adapter, symbol, interval, limit)
    return compute_indicators(candles)


# ============================================
# WebSocket Session
# ============================================

async def _forward_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(event)


async def _run_action(session: SessionOrchestrator, message: Dict[str, Any]) -> None:
    action = message.get("action")
    try:
        if action == "search":
            await session.search(
                str(message.get("symbol") or ""),
                message.get("interval"),
                message.get("exchange")
            )
        elif action == "interval":
            await session.change_interval(str(message.get("interval") or ""))
        elif action == "exchange":
            await session.switch_exchange(str(message.get("exchange") or ""))
        elif action == "close":
            await session.close()
        else:
            raise ValueError(f"Unknown action: {action}")
    except ValueError as e:
        bus.publish(session.topic, {"type": "error", "data": {"kind": "ValueError", "message": str(e)}})
    except MarketDataError as e:
        # Already published on the session topic
        logger.debug(f"Session {session.topic} action '{action}' failed: {e}")


@app.websocket("/ws/session")
async def websocket_session(websocket: WebSocket):
    """
    Interactive viewing session.

    Each connection owns one SessionOrchestrator. Actions run concurrently so a
    newer action supersedes one that is still loading; the session's events
    are forwarded to the client as they are published.

    Example:
        ws://localhost:8000/ws/session
        -> {"action": "search", "symbol": "BTC"}
        <- {"type": "status", "data": {"status": "loading", ...}}
    """
    await websocket.accept()
    session = SessionOrchestrator(manager, stream=StreamManager())
    queue = bus.subscribe(session.topic)
    forwarder = asyncio.create_task(_forward_events(websocket, queue))
    actions: Set[asyncio.Task] = set()
    logger.info(f"WS connected: session {session.topic}")

    try:
        bus.publish(session.topic, {"type": "status", "data": session.describe()})
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                bus.publish(session.topic, {"type": "error", "data": {"kind": "ValueError", "message": "Invalid JSON"}})
                continue
            if not isinstance(message, dict):
                bus.publish(session.topic, {"type": "error", "data": {"kind": "ValueError", "message": "Expected a JSON object"}})
                continue

            task = asyncio.create_task(_run_action(session, message))
            actions.add(task)
            task.add_done_callback(actions.discard)

    except WebSocketDisconnect:
        logger.info(f"WS disconnected: session {session.topic}")
    finally:
        for task in list(actions):
            task.cancel()
        forwarder.cancel()
        await asyncio.gather(forwarder, *actions, return_exceptions=True)
        await session.close()
        bus.unsubscribe(session.topic, queue)
        logger.info(f"WS ended: session {session.topic}")


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    detail = getattr(exc, "detail", None) or "Not found"
    return JSONResponse(status_code=404, content={"detail": detail, "path": str(request.url)})


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
