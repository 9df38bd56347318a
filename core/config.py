"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Converts comma-separated strings to lists (exchange priority, CORS origins)
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    print(settings.relay_url)
    print(settings.exchange_priority_list)  # ["Binance", "Bybit", ...]
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


CANONICAL_INTERVALS = [
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "12h",
    "1d", "1w", "1M",
]


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        relay_url: Pass-through relay used when a direct REST call fails
        exchange_priority: Comma-separated exchange order for the fast path and fallback
        candle_limit: Candles fetched per history batch and kept per series
        default_interval: Interval used for a fresh symbol search
        request_timeout: Optional HTTP deadline in seconds (None = no deadline)
        top_coins_limit: Number of symbols returned by the top list
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        environment: Current environment (development, production)
        debug: Enable debug mode with verbose logging
        log_level: Logging level
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # Market Data Configuration
    # ============================================

    relay_url: str = Field(
        default="https://api.allorigins.win/get?url=",
        description="Relay prefix; the URL-encoded target is appended"
    )

    exchange_priority: str = Field(
        default="Binance,Bybit,MEXC,Gate,OKX",
        description="Comma-separated exchange priority (first = fast path)"
    )

    candle_limit: int = Field(
        default=500,
        description="History batch size and candle series capacity"
    )

    default_interval: str = Field(
        default="15m",
        description="Interval used for a fresh symbol search"
    )

    request_timeout: Optional[float] = Field(
        default=None,
        description="HTTP request timeout in seconds (unset = no deadline)"
    )

    top_coins_limit: int = Field(
        default=50,
        description="Number of symbols in the top-by-volume list"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Properties
    # ============================================

    @property
    def exchange_priority_list(self) -> List[str]:
        """
        Convert comma-separated exchange priority to a list.

        Example:
            >>> settings.exchange_priority_list
            ['Binance', 'Bybit', 'MEXC', 'Gate', 'OKX']
        """
        return [e.strip() for e in self.exchange_priority.split(",") if e.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS origins string to a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings on application startup.

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # logging.py imports config.py, so import lazily
    from core.logging import logger
    from core.schemas import ExchangeName

    known = {e.value for e in ExchangeName}
    priority = settings.exchange_priority_list
    if not priority:
        raise ValueError("EXCHANGE_PRIORITY must contain at least one exchange")

    for name in priority:
        if name not in known:
            raise ValueError(
                f"Unknown exchange '{name}' in EXCHANGE_PRIORITY. "
                f"Must be one of: {', '.join(sorted(known))}"
            )

    if settings.default_interval not in CANONICAL_INTERVALS:
        raise ValueError(
            f"Invalid DEFAULT_INTERVAL: '{settings.default_interval}'. "
            f"Must be one of: {', '.join(CANONICAL_INTERVALS)}"
        )

    if settings.candle_limit < 1:
        raise ValueError(f"CANDLE_LIMIT must be positive, got {settings.candle_limit}")

    if not (1 <= settings.app_port <= 65535):
        raise ValueError(f"Invalid port number: {settings.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Exchange priority: {', '.join(priority)}")
    logger.info(f"Candle limit: {settings.candle_limit} | Default interval: {settings.default_interval}")
    logger.info(f"Relay: {settings.relay_url}")
    logger.info(f"Server: {settings.app_host}:{settings.app_port}")
    logger.info(f"Log level: {settings.log_level.upper()}")
