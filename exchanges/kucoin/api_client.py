"""
KuCoin Futures REST API Client

This module provides an async HTTP client for the two KuCoin Futures REST
endpoints the relay needs:

- POST /api/v1/bullet-public: short-lived WebSocket endpoint + token
- GET  /api/v1/kline/query:   historical candles for one symbol/granularity

It also owns the candle normalization shared with the live feed: KuCoin
candle arrays are [time_ms, open, close, high, low, ...].

API Documentation:
    https://www.kucoin.com/docs/rest/futures-trading/market-data/get-klines

Usage:
    async with KucoinAPIClient() as client:
        endpoint, token = await client.get_public_token()
        candles = await client.get_history("SOLUSDTM", "1min")
"""

import aiohttp
import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple
from core.errors import BootstrapError, HistoryFetchError
from core.logging import get_logger, log_api_request, log_api_response, logger
from core.schemas import Candle
from core.utils.time import ms_to_seconds


# ============================================
# Candle Normalization
# ============================================

def parse_candle(values: Sequence[Any]) -> Candle:
    """
    Map one KuCoin candle array to a Candle.

    Args:
        values: [time_ms, open, close, high, low, ...] (numbers or numeric strings)

    Returns:
        Candle with time in seconds

    Raises:
        ValueError: Missing fields, non-numeric or non-finite values
        TypeError: A field is None or not a scalar

    Example:
        >>> parse_candle([2000, "10", "12", "13", "9"])
        Candle(time=2, open=10.0, high=13.0, low=9.0, close=12.0)
    """
    if not isinstance(values, (list, tuple)) or len(values) < 5:
        raise ValueError(f"Expected at least 5 candle fields, got {values!r}")

    return Candle(
        time=ms_to_seconds(values[0]),
        open=float(values[1]),
        close=float(values[2]),
        high=float(values[3]),
        low=float(values[4]),
    )


def normalize_history(raw: Any) -> List[Candle]:
    """
    Normalize a raw kline response into an oldest-first, strictly ascending batch.

    KuCoin documents newest-first ordering, but the order is checked on every
    response rather than assumed: the batch is reversed only when the first
    record is newer than the last.

    Args:
        raw: The "data" field of the kline response

    Returns:
        List[Candle]: Strictly ascending by time; [] for empty/non-array input

    Notes:
        - Records that fail to parse are dropped and logged
        - After orientation, records not strictly newer than their predecessor
          are dropped, so the result never repeats or goes back in time
    """
    if not isinstance(raw, list) or not raw:
        return []

    candles: List[Candle] = []
    for record in raw:
        try:
            candles.append(parse_candle(record))
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping malformed historical record {record!r}: {e}")

    if len(candles) > 1 and candles[0].time > candles[-1].time:
        candles.reverse()

    ordered: List[Candle] = []
    for candle in candles:
        if ordered and candle.time <= ordered[-1].time:
            logger.warning(
                f"Dropping out-of-order historical candle at {candle.time} "
                f"(previous {ordered[-1].time})"
            )
            continue
        ordered.append(candle)

    if ordered:
        logger.debug(f"History order check: first={ordered[0].time} last={ordered[-1].time}")

    return ordered


class KucoinAPIClient:
    """
    Async HTTP client for KuCoin Futures REST API

    Attributes:
        BASE_URL: Default KuCoin Futures API base URL
        GRANULARITY_MINUTES: Interval name -> kline granularity in minutes
        base_url: API base URL in use
        timeout: Per-request timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with KucoinAPIClient() as client:
        ...     candles = await client.get_history("SOLUSDTM", "1min")
        ...     print(f"Fetched {len(candles)} candles")

    Notes:
        - Uses context manager for automatic session cleanup
        - One request per call; retry policy belongs to the caller
        - No API key needed for the public endpoints used here
    """

    BASE_URL = "https://api-futures.kucoin.com"
    BULLET_PATH = "/api/v1/bullet-public"
    KLINE_PATH = "/api/v1/kline/query"

    GRANULARITY_MINUTES = {
        "1min": 1,
        "5min": 5,
        "15min": 15,
        "30min": 30,
        "1hour": 60,
        "2hour": 120,
        "4hour": 240,
        "8hour": 480,
        "12hour": 720,
        "1day": 1440,
        "1week": 10080,
    }

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10):
        """
        Initialize the KuCoin API client.

        Args:
            base_url: Override for the REST base URL
            timeout: Request timeout in seconds
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug("KucoinAPIClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.logger.debug("KucoinAPIClient session closed")

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make one HTTP request and return the decoded JSON body.

        Args:
            method: "GET" or "POST"
            path: API endpoint path (e.g., "/api/v1/kline/query")
            params: Optional query parameters

        Returns:
            JSON response from API

        Raises:
            RuntimeError: If session not initialized or status is not 200
            aiohttp.ClientError: Transport failure
            asyncio.TimeoutError: Request exceeded timeout
            ValueError: Body is not valid JSON
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        log_api_request("kucoin", path, params)
        started = time.monotonic()

        async with self.session.request(
            method,
            url,
            params=params,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as resp:
            log_api_response("kucoin", path, resp.status, time.monotonic() - started)
            if resp.status != 200:
                text = await resp.text()
                raise RuntimeError(f"HTTP {resp.status} on {path}: {text[:200]}")
            return await resp.json(content_type=None)

    # ============================================
    # API Methods
    # ============================================

    async def get_public_token(self) -> Tuple[str, str]:
        """
        Request a public WebSocket endpoint and connection token.

        Returns:
            (endpoint, token): e.g. ("wss://ws-api-futures.kucoin.com/endpoint", "2neAiuYv...")

        Raises:
            BootstrapError: Request failed or the response lacks endpoint/token

        KuCoin Endpoint:
            POST /api/v1/bullet-public

        Response Format:
            {
              "code": "200000",
              "data": {
                "token": "2neAiuYvAU61ZD...",
                "instanceServers": [
                  {"endpoint": "wss://ws-api-futures.kucoin.com/endpoint",
                   "protocol": "websocket", "pingInterval": 18000, ...}
                ]
              }
            }
        """
        try:
            payload = await self._request("POST", self.BULLET_PATH)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as e:
            raise BootstrapError(f"Bootstrap request failed: {e}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise BootstrapError(f"Bootstrap response has no data: {payload!r}")

        servers = data.get("instanceServers") or []
        endpoint = servers[0].get("endpoint") if servers and isinstance(servers[0], dict) else None
        token = data.get("token")
        if not endpoint or not token:
            raise BootstrapError("Bootstrap response is missing endpoint or token")

        self.logger.info("KuCoin WS endpoint fetched")
        return endpoint, token

    async def get_klines(self, symbol: str, interval: str) -> Any:
        """
        Fetch the raw kline array for one symbol/interval.

        Args:
            symbol: Contract symbol (e.g., "SOLUSDTM")
            interval: Interval name (e.g., "1min"); unknown names are sent as-is

        Returns:
            The response "data" field (normally a newest-first list of arrays),
            or None when absent

        Raises:
            HistoryFetchError: Transport failure, timeout, non-200 status or bad JSON

        KuCoin Endpoint:
            GET /api/v1/kline/query?symbol={symbol}&granularity={minutes}
        """
        params = {
            "symbol": symbol,
            "granularity": self.GRANULARITY_MINUTES.get(interval, interval),
        }

        try:
            payload = await self._request("GET", self.KLINE_PATH, params)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as e:
            raise HistoryFetchError(f"Failed to fetch klines for {symbol} {interval}: {e}") from e

        if not isinstance(payload, dict):
            return None

        data = payload.get("data")
        if not isinstance(data, list):
            self.logger.warning(
                f"KuCoin returned no kline array for {symbol} {interval} "
                f"(code={payload.get('code')}, msg={payload.get('msg')})"
            )
        return data

    async def get_history(self, symbol: str, interval: str) -> List[Candle]:
        """
        Fetch historical candles, normalized oldest first.

        Args:
            symbol: Contract symbol (e.g., "SOLUSDTM")
            interval: Interval name (e.g., "1min")

        Returns:
            List[Candle]: Strictly ascending by time; [] when KuCoin has no data

        Raises:
            HistoryFetchError: If the request fails

        Example:
            >>> candles = await client.get_history("SOLUSDTM", "1min")
            >>> print(candles[0].time < candles[-1].time)
            True
        """
        self.logger.info(f"Fetching historical data for {symbol}:{interval}")
        raw = await self.get_klines(symbol, interval)
        candles = normalize_history(raw)
        if not candles:
            self.logger.warning(f"KuCoin returned no historical data for {symbol}:{interval}")
        return candles
