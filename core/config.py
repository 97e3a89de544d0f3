"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates the relayed feed (symbol + interval) on startup
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (CORS origins)
- Handles optional settings with sensible defaults

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.kucoin_base_url)
    print(settings.feed_topic)  # "/contractMarket/limitCandle:SOLUSDTM_1min"
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


# Candle intervals accepted by the KuCoin Futures candle channel
VALID_INTERVALS = [
    "1min", "5min", "15min", "30min",
    "1hour", "2hour", "4hour", "8hour", "12hour",
    "1day", "1week",
]


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the relay.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        kucoin_base_url: Base URL for KuCoin Futures REST API (bootstrap + klines)
        feed_symbol: Futures contract relayed from the upstream feed (e.g., "SOLUSDTM")
        feed_interval: Candlestick interval of the relayed feed (e.g., "1min")
        app_host: Host address for FastAPI server
        app_port: Port number for FastAPI server
        log_level: Logging level
        request_timeout: Timeout for HTTP requests in seconds
        ping_interval: Seconds between upstream keep-alive pings
        bootstrap_retry_delay: Delay before retrying a failed token bootstrap
        reconnect_delay: Delay before reconnecting after the upstream socket drops
        subscriber_queue_size: Outbound queue bound per downstream subscriber
        subscriber_send_timeout: Seconds a single downstream send may take
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # KuCoin API Configuration
    # ============================================

    kucoin_base_url: str = Field(
        default="https://api-futures.kucoin.com",
        description="KuCoin Futures API base URL"
    )

    # ============================================
    # Relayed Feed Configuration
    # ============================================

    feed_symbol: str = Field(
        default="SOLUSDTM",
        description="Futures contract symbol relayed from the upstream feed"
    )

    feed_interval: str = Field(
        default="1min",
        description="Candlestick granularity of the relayed feed"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=3000,
        description="FastAPI server port"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Upstream Connection Timing
    # ============================================

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    ping_interval: float = Field(
        default=25.0,
        description="Seconds between keep-alive pings on the upstream socket"
    )

    bootstrap_retry_delay: float = Field(
        default=10.0,
        description="Delay before retrying a failed bootstrap token request (seconds)"
    )

    reconnect_delay: float = Field(
        default=5.0,
        description="Delay before reconnecting after the upstream socket closes (seconds)"
    )

    # ============================================
    # Downstream Fan-out
    # ============================================

    subscriber_queue_size: int = Field(
        default=100,
        description="Maximum pending live updates per downstream subscriber"
    )

    subscriber_send_timeout: float = Field(
        default=5.0,
        description="Seconds a single send to a downstream subscriber may take"
    )

    # ============================================
    # CORS Configuration
    # ============================================

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def feed_topic(self) -> str:
        """
        Upstream subscription topic for the configured feed.

        Example:
            >>> settings.feed_topic
            '/contractMarket/limitCandle:SOLUSDTM_1min'
        """
        return f"/contractMarket/limitCandle:{self.feed_symbol}_{self.feed_interval}"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Returns:
            List of allowed origin URLs (e.g., ["http://localhost:3000", "https://myapp.com"])
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Args:
        config: Settings to validate (defaults to the global settings)

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Import logger here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger

    config = config or settings

    if not config.feed_symbol:
        raise ValueError("FEED_SYMBOL must be set")

    if not config.feed_symbol.isupper():
        raise ValueError(
            f"Symbol '{config.feed_symbol}' must be uppercase. "
            f"Please update FEED_SYMBOL in .env"
        )

    if config.feed_interval not in VALID_INTERVALS:
        raise ValueError(
            f"Invalid interval: '{config.feed_interval}'. "
            f"Must be one of: {', '.join(VALID_INTERVALS)}"
        )

    if not (1 <= config.app_port <= 65535):
        raise ValueError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    for name in ("ping_interval", "bootstrap_retry_delay", "reconnect_delay",
                 "subscriber_send_timeout", "request_timeout"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name.upper()} must be positive, got {getattr(config, name)}")

    if config.subscriber_queue_size < 1:
        raise ValueError("SUBSCRIBER_QUEUE_SIZE must be at least 1")

    logger.info("Configuration validated successfully")
    logger.info(f"Relaying feed: {config.feed_topic}")
    logger.info(f"KuCoin API: {config.kucoin_base_url}")
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
