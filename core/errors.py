"""
Market Data Errors

Exception taxonomy shared by the fetcher, the adapters, the stream manager
and the session orchestrator.

    MarketDataError
    ├── FetchUnavailable      direct and relay attempts both failed
    ├── MalformedResponse     an adapter could not extract expected fields
    ├── SymbolNotFound        no exchange has data for the symbol
    ├── StreamError           transport-level socket failure (non-fatal)
    └── CancellationObsolete  a completion belongs to a replaced session
"""


class MarketDataError(Exception):
    """Base class for all market data errors."""


class FetchUnavailable(MarketDataError):
    """Raised when both the direct request and the relay request fail."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Unable to fetch {url} directly or through the relay")


class MalformedResponse(MarketDataError):
    """Raised when an exchange payload does not have the expected shape."""

    def __init__(self, exchange: str, detail: str):
        self.exchange = exchange
        self.detail = detail
        super().__init__(f"{exchange}: malformed response ({detail})")


class SymbolNotFound(MarketDataError):
    """Raised when no exchange lists the requested symbol."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Symbol '{symbol}' not found on any exchange")


class StreamError(MarketDataError):
    """Transport-level streaming failure. Logged, never retried."""

    def __init__(self, exchange: str, detail: str):
        self.exchange = exchange
        self.detail = detail
        super().__init__(f"{exchange} stream error: {detail}")


class CancellationObsolete(MarketDataError):
    """The session that started this work has since been replaced."""
