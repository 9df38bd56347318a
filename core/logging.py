"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("General informational messages")

    log = get_logger(__name__)
    log.debug("Detailed debugging information")

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2025-01-01 12:00:00 [INFO] cryptosearch: Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("cryptosearch")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

from core.config import settings

logger = setup_logging(log_level=settings.log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger instance, e.g. "cryptosearch.core.stream_manager"
    """
    return logging.getLogger(f"cryptosearch.{name}")


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(exchange: str, url: str, via: str = "direct") -> None:
    """
    Log an outgoing REST request with consistent formatting.

    Example:
        >>> log_api_request("fetcher", "https://api.binance.com/api/v3/ticker/24hr?symbol=BTCUSDT")
        [DEBUG] API Request: fetcher direct https://api.binance.com/...
    """
    logger.debug(f"API Request: {exchange} {via} {url}")


def log_api_response(exchange: str, url: str, status: int, response_time: float = None) -> None:
    """
    Log an API response with status and timing information.

    Example:
        >>> log_api_response("fetcher", "https://api.binance.com/...", 200, 0.342)
        [DEBUG] API Response: fetcher https://api.binance.com/... | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {exchange} {url} | Status: {status}{time_str}")


def log_websocket_event(exchange: str, event: str, symbol: str = None, details: str = None) -> None:
    """
    Log a WebSocket event with consistent formatting.

    Example:
        >>> log_websocket_event("Bybit", "connected", "BTCUSDT")
        [INFO] WebSocket: Bybit connected | Symbol: BTCUSDT

        >>> log_websocket_event("OKX", "error", details="Connection reset")
        [ERROR] WebSocket: OKX error | Connection reset
    """
    symbol_str = f" | Symbol: {symbol}" if symbol else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {exchange} {event}{symbol_str}{details_str}")


logger.debug("Logging system initialized")
