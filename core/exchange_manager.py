"""
Exchange Manager - Central Registry for Exchange Adapters

This module provides a centralized manager for all exchange adapters and the
shared SnapshotFetcher they are fetched through.

Design Benefits:
    - Single source of truth for available exchanges and their priority
    - Easy to add new exchanges without modifying the session or API routes
    - Centralized lifecycle management (initialize/shutdown of the HTTP session)

Architecture Pattern:
    This is a Registry pattern where:
    - ExchangeManager maintains one stateless adapter per exchange
    - Callers request adapters by name (case-insensitive)
    - Snapshot helpers combine adapter + fetcher so callers never see raw payloads

Example Usage:
    manager = ExchangeManager()
    await manager.initialize()

    ticker = await manager.get_ticker("Binance", "BTC")
    candles = await manager.get_candles("Binance", "BTC", "15m")
    listed = await manager.probe_all("PEPE")  # every exchange that has it

    await manager.shutdown()
"""

import asyncio
from typing import Dict, List, Optional, Union

from core.config import settings
from core.errors import FetchUnavailable, MalformedResponse
from core.exchange_interface import ExchangeAdapter
from core.logging import logger
from core.schemas import Candle, ExchangeName, SnapshotKind, TickerSnapshot
from core.snapshot_fetcher import SnapshotFetcher


ExchangeRef = Union[str, ExchangeName]


class ExchangeManager:
    """
    Central Manager for Exchange Adapters

    Attributes:
        adapters: Exchange display name -> adapter instance
                  Example: {"Binance": BinanceAdapter(), "OKX": OKXAdapter()}
        priority: Exchange names in fast-path / fallback order
        fetcher: Shared SnapshotFetcher used for every REST snapshot

    Example:
        >>> manager = ExchangeManager()
        >>> manager.list_exchanges()
        ['Binance', 'Bybit', 'MEXC', 'Gate', 'OKX']
        >>> manager.get_adapter("okx")
        <OKXAdapter(name=OKX)>
    """

    def __init__(
        self,
        fetcher: Optional[SnapshotFetcher] = None,
        priority: Optional[List[str]] = None
    ):
        # Adapter modules import from core, so we can't import at module level
        from exchanges.binance import BinanceAdapter
        from exchanges.bybit import BybitAdapter
        from exchanges.gate import GateAdapter
        from exchanges.mexc import MEXCAdapter
        from exchanges.okx import OKXAdapter

        self.adapters: Dict[str, ExchangeAdapter] = {
            adapter.name.value: adapter
            for adapter in (
                BinanceAdapter(),
                BybitAdapter(),
                MEXCAdapter(),
                GateAdapter(),
                OKXAdapter(),
            )
        }
        self._by_lower = {name.lower(): name for name in self.adapters}

        names = priority if priority is not None else settings.exchange_priority_list
        self.priority: List[str] = list(dict.fromkeys(self._resolve(name) for name in names))

        self.fetcher = fetcher if fetcher is not None else SnapshotFetcher()

        logger.info(
            f"ExchangeManager initialized with {len(self.adapters)} exchange(s), "
            f"priority: {', '.join(self.priority)}"
        )

    # ============================================
    # Adapter Retrieval Methods
    # ============================================

    def _resolve(self, name: ExchangeRef) -> str:
        key = name.value if isinstance(name, ExchangeName) else str(name)
        resolved = self._by_lower.get(key.strip().lower())
        if resolved is None:
            available = ", ".join(self.adapters.keys())
            logger.error(f"Exchange '{key}' not found. Available: {available}")
            raise ValueError(
                f"Exchange '{key}' is not supported. "
                f"Available exchanges: {available}"
            )
        return resolved

    def get_adapter(self, name: ExchangeRef) -> ExchangeAdapter:
        """
        Get an exchange adapter by name.

        Args:
            name: Exchange name, case-insensitive (e.g. "Binance", "okx")

        Raises:
            ValueError: If the exchange is not supported
        """
        return self.adapters[self._resolve(name)]

    def has_exchange(self, name: ExchangeRef) -> bool:
        key = name.value if isinstance(name, ExchangeName) else str(name)
        return key.strip().lower() in self._by_lower

    def list_exchanges(self) -> List[str]:
        return list(self.adapters.keys())

    @property
    def preferred(self) -> str:
        """The fast-path exchange (first in priority)."""
        return self.priority[0]

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize(self) -> None:
        """Open the shared HTTP session."""
        await self.fetcher.__aenter__()
        logger.info("ExchangeManager fetcher session opened")

    async def shutdown(self) -> None:
        """Close the shared HTTP session."""
        await self.fetcher.__aexit__(None, None, None)
        logger.info("ExchangeManager fetcher session closed")

    # ============================================
    # Snapshot Helpers
    # ============================================

    async def get_ticker(self, exchange: ExchangeRef, symbol: str) -> TickerSnapshot:
        """
        Fetch the 24h ticker for a base symbol on one exchange.

        Raises:
            ValueError: Unknown exchange
            FetchUnavailable: Direct and relay requests both failed
            MalformedResponse: The exchange answered without a usable ticker
        """
        adapter = self.get_adapter(exchange)
        url = adapter.build_snapshot_request(SnapshotKind.TICKER, symbol)
        raw = await self.fetcher.fetch_with_fallback(url)
        return adapter.parse_snapshot_ticker(raw)

    async def get_candles(
        self,
        exchange: ExchangeRef,
        symbol: str,
        interval: str,
        limit: Optional[int] = None
    ) -> List[Candle]:
        """
        Fetch a candle history batch, oldest first.

        Fetch and parse failures are logged and yield an empty list, so a
        session can still show its ticker when history is unavailable.

        Raises:
            ValueError: Unknown exchange, or an interval the exchange does not offer
        """
        adapter = self.get_adapter(exchange)
        limit = limit if limit is not None else settings.candle_limit
        url = adapter.build_snapshot_request(SnapshotKind.CANDLES, symbol, interval, limit)
        try:
            raw = await self.fetcher.fetch_with_fallback(url)
            return adapter.parse_snapshot_candles(raw)
        except (FetchUnavailable, MalformedResponse) as e:
            logger.warning(f"Candle history unavailable for {symbol} on {adapter.name.value}: {e}")
            return []

    async def probe_all(self, symbol: str) -> List[TickerSnapshot]:
        """
        Ask every registered exchange for the symbol's ticker, concurrently.

        Returns:
            Successful tickers, priority-listed exchanges first and the rest in
            registration order. One exchange failing never affects the others.
        """
        names = self.priority + [name for name in self.adapters if name not in self.priority]
        results = await asyncio.gather(
            *(self.get_ticker(name, symbol) for name in names),
            return_exceptions=True
        )

        found: List[TickerSnapshot] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.debug(f"{symbol} not available on {name}: {result}")
                continue
            found.append(result)

        logger.debug(f"{symbol} available on: {', '.join(t.exchange.value for t in found) or 'none'}")
        return found

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        return f"<ExchangeManager(exchanges={list(self.adapters.keys())})>"

    def __len__(self) -> int:
        return len(self.adapters)
