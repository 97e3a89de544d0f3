"""
Relay Logging

One stdout handler for the whole process, configured at import time from
LOG_LEVEL. Components log through children of the "candlerelay" logger:

    from core.logging import logger, get_logger

    logger.info("Relay started")

    log = get_logger(__name__)
    log.warning("Upstream closed, reconnecting")

What goes where:
    DEBUG    - Raw frames, order checks, ignored client messages
    INFO     - Connections, subscriptions, history requests served
    WARNING  - Upstream closes, dropped feed messages, stalled subscribers
    ERROR    - Bootstrap failures, history fetch failures
"""

import logging
import sys

from core.config import settings


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the root handler and return the relay logger.

    Example:
        >>> logger = setup_logging("DEBUG")
        >>> logger.info("Relay started")
        2024-01-01 12:00:00 [INFO] candlerelay Relay started
    """
    logging.basicConfig(
        level=_level(log_level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True  # replace handlers installed by uvicorn or pytest
    )

    relay_logger = logging.getLogger("candlerelay")
    relay_logger.setLevel(_level(log_level))
    return relay_logger


logger = setup_logging(settings.log_level)


def get_logger(name: str) -> logging.Logger:
    """Child logger, e.g. get_logger(__name__) -> "candlerelay.services.supervisor"."""
    return logging.getLogger(f"candlerelay.{name}")


def set_log_level(level: str) -> None:
    """Change the relay and root log level at runtime."""
    logger.setLevel(_level(level))
    logging.getLogger().setLevel(_level(level))


# ============================================
# Provider I/O Helpers
# ============================================

def log_api_request(provider: str, endpoint: str, params: dict = None) -> None:
    """
    Example:
        >>> log_api_request("kucoin", "/api/v1/kline/query", {"symbol": "SOLUSDTM", "granularity": 1})
        [DEBUG] API Request: kucoin /api/v1/kline/query | Params: {'symbol': 'SOLUSDTM', 'granularity': 1}
    """
    suffix = f" | Params: {params}" if params else ""
    logger.debug(f"API Request: {provider} {endpoint}{suffix}")


def log_api_response(provider: str, endpoint: str, status: int, elapsed: float = None) -> None:
    """
    Example:
        >>> log_api_response("kucoin", "/api/v1/bullet-public", 200, 0.342)
        [DEBUG] API Response: kucoin /api/v1/bullet-public | Status: 200 | Time: 0.342s
    """
    suffix = f" | Time: {elapsed:.3f}s" if elapsed is not None else ""
    logger.debug(f"API Response: {provider} {endpoint} | Status: {status}{suffix}")


def log_websocket_event(provider: str, event: str, details: str = None) -> None:
    """
    Upstream socket events. "closed" logs at WARNING, everything else at INFO.

    Example:
        >>> log_websocket_event("kucoin", "subscribed", details="/contractMarket/limitCandle:SOLUSDTM_1min")
        [INFO] WebSocket: kucoin subscribed | /contractMarket/limitCandle:SOLUSDTM_1min
    """
    level = logging.WARNING if event == "closed" else logging.INFO
    suffix = f" | {details}" if details else ""
    logger.log(level, f"WebSocket: {provider} {event}{suffix}")
