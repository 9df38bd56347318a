"""
Top Coins by 24h Quote Volume

Ranks Binance USDT spot pairs by 24h quote volume for the dashboard's
"top list". Stablecoin-vs-USDT pairs are excluded since their volume says
nothing about market interest.
"""

from typing import List, Optional

from core.config import settings
from core.errors import MarketDataError
from core.logging import get_logger
from core.snapshot_fetcher import SnapshotFetcher
from core.schemas import TickerSnapshot
from exchanges.binance import BinanceAdapter


STABLECOIN_PAIRS = frozenset({
    "USDCUSDT",
    "FDUSDUSDT",
    "TUSDUSDT",
    "USDPUSDT",
    "DAIUSDT",
})

_logger = get_logger(__name__)
_adapter = BinanceAdapter()


def rank_tickers(raw: list, limit: int) -> List[TickerSnapshot]:
    """Filter, sort and map an all-symbols /ticker/24hr payload."""
    pairs = [
        item for item in raw
        if isinstance(item, dict)
        and str(item.get("symbol", "")).endswith(_adapter.quote_asset)
        and item["symbol"] not in STABLECOIN_PAIRS
    ]
    pairs.sort(key=lambda item: float(item.get("quoteVolume") or 0), reverse=True)
    return [_adapter.ticker_from_item(item) for item in pairs[:limit]]


async def fetch_top_coins(
    fetcher: SnapshotFetcher,
    limit: Optional[int] = None
) -> List[TickerSnapshot]:
    """
    Fetch the top `limit` Binance USDT pairs by 24h quote volume.

    Any failure is logged and yields an empty list.
    """
    limit = limit if limit is not None else settings.top_coins_limit
    url = f"{_adapter.rest_base_url}/ticker/24hr"

    try:
        raw = await fetcher.fetch_with_fallback(url)
        if not isinstance(raw, list):
            _logger.warning(f"Unexpected top coins payload: {type(raw).__name__}")
            return []
        return rank_tickers(raw, limit)
    except (MarketDataError, ValueError, TypeError) as e:
        _logger.error(f"Failed to fetch top coins: {e}")
        return []
