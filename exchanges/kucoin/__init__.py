"""
KuCoin Futures Provider Adapter

This module implements the FeedAdapter and HistoryFetcher contracts for the
KuCoin Futures public market data API.

Endpoints Used:
    REST:
        - POST /api/v1/bullet-public - WebSocket endpoint + token
        - GET  /api/v1/kline/query   - Historical candlestick data

    WebSocket:
        - {endpoint}?token={token}
        - Candle topic: /contractMarket/limitCandle:{SYMBOL}_{INTERVAL}
        - Keep-alive: {"type": "ping"} every 25s

Structure:
    exchanges/kucoin/
    ├── __init__.py          # This file (KucoinFeed, KucoinHistoryFetcher)
    ├── api_client.py        # REST client + candle normalization
    └── ws_client.py         # WebSocket connection + keep-alive
"""

from typing import Any, AsyncGenerator, Dict, List, Optional
from core.errors import MalformedFeedMessage, UpstreamConnectionError
from core.feed_interface import FeedAdapter, FeedStream, HistoryFetcher, StateCallback
from core.logging import get_logger
from core.schemas import Candle, LiveUpdate, UpstreamConnectionState
from .api_client import KucoinAPIClient, parse_candle
from .ws_client import KucoinWSClient


CANDLE_SUBJECT = "candle.stick"


# ============================================
# Live Message Normalization
# ============================================

def is_candle_message(msg: Dict[str, Any]) -> bool:
    """True for pushed candle frames; False for welcome/ack/pong and other channels."""
    subject = msg.get("subject")
    return msg.get("type") == "message" and isinstance(subject, str) and CANDLE_SUBJECT in subject


def normalize_candle_message(msg: Dict[str, Any]) -> LiveUpdate:
    """
    Normalize a KuCoin candle push into a LiveUpdate.

    Message Format:
        {
          "type": "message",
          "topic": "/contractMarket/limitCandle:SOLUSDTM_1min",
          "subject": "candle.stick",
          "data": {
            "symbol": "SOLUSDTM",
            "candles": ["1700000040000", "58.12", "58.33", "58.40", "58.01", "1200", "69900"],
            "time": 1700000051234
          }
        }

    Raises:
        MalformedFeedMessage: topic or candle fields missing / unparseable
    """
    topic = msg.get("topic")
    if not isinstance(topic, str) or not topic:
        raise MalformedFeedMessage("candle message has no topic")

    data = msg.get("data")
    candles = data.get("candles") if isinstance(data, dict) else None
    if not isinstance(candles, list):
        raise MalformedFeedMessage(f"candle message on {topic} has no candles array")

    try:
        candle = parse_candle(candles)
    except (ValueError, TypeError) as e:
        raise MalformedFeedMessage(f"candle message on {topic} is malformed: {e}") from e

    return LiveUpdate(topic=topic, data=candle)


# ============================================
# Upstream Feed Adapter
# ============================================

class KucoinFeed(FeedAdapter):
    """
    One KuCoin Futures candle subscription.

    Attributes:
        name: "kucoin"
        symbol: Contract symbol (e.g., "SOLUSDTM")
        interval: Candle interval (e.g., "1min")
        topic: Subscription topic derived from symbol and interval

    Example:
        >>> feed = KucoinFeed("SOLUSDTM", "1min")
        >>> stream = await feed.connect()
        >>> async for update in stream.events:
        ...     print(update.data.close)
    """

    name = "kucoin"

    def __init__(
        self,
        symbol: str,
        interval: str,
        base_url: Optional[str] = None,
        ping_interval: float = 25.0,
        request_timeout: float = 10
    ):
        self.symbol = symbol
        self.interval = interval
        self.base_url = base_url
        self.ping_interval = ping_interval
        self.request_timeout = request_timeout
        self.topic = f"/contractMarket/limitCandle:{symbol}_{interval}"
        self._ws: Optional[KucoinWSClient] = None
        self.logger = get_logger(__name__)

    async def connect(self, on_state: Optional[StateCallback] = None) -> FeedStream:
        """
        Bootstrap a token, open the socket and subscribe to the candle topic.

        Raises:
            BootstrapError: Token request failed
            UpstreamConnectionError: Socket open or subscribe failed
        """
        if self._ws is not None:
            raise RuntimeError("KucoinFeed instances are single-use; create a new one to reconnect")

        async with KucoinAPIClient(self.base_url, timeout=self.request_timeout) as api:
            endpoint, token = await api.get_public_token()

        self._ws = KucoinWSClient(f"{endpoint}?token={token}", ping_interval=self.ping_interval)
        await self._ws.connect()
        if on_state:
            on_state(UpstreamConnectionState.SUBSCRIBING)

        try:
            await self._ws.subscribe(self.topic)
        except UpstreamConnectionError:
            await self._ws.close()
            raise

        if on_state:
            on_state(UpstreamConnectionState.LIVE)
        return FeedStream(self._events(), self._ws.lifecycle)

    async def _events(self) -> AsyncGenerator[LiveUpdate, None]:
        async for msg in self._ws.listen():
            if not is_candle_message(msg):
                self.logger.debug(f"Skipping non-candle message: {msg.get('type')}")
                continue
            try:
                yield normalize_candle_message(msg)
            except MalformedFeedMessage as e:
                self.logger.warning(f"Dropping malformed feed message: {e}")

    async def close(self) -> None:
        if self._ws:
            await self._ws.close()


def create_candle_feed(config) -> KucoinFeed:
    """
    Build a KucoinFeed from application settings.

    Args:
        config: Settings (see core.config.Settings)

    Example:
        >>> feed = create_candle_feed(settings)
        >>> feed.topic
        '/contractMarket/limitCandle:SOLUSDTM_1min'
    """
    return KucoinFeed(
        config.feed_symbol,
        config.feed_interval,
        base_url=config.kucoin_base_url,
        ping_interval=config.ping_interval,
        request_timeout=config.request_timeout,
    )


# ============================================
# History Fetcher
# ============================================

class KucoinHistoryFetcher(HistoryFetcher):
    """
    Stateless historical candle client; one HTTP session per request.
    """

    def __init__(self, base_url: Optional[str] = None, request_timeout: float = 10):
        self.base_url = base_url
        self.request_timeout = request_timeout

    async def fetch(self, symbol: str, interval: str) -> List[Candle]:
        async with KucoinAPIClient(self.base_url, timeout=self.request_timeout) as client:
            return await client.get_history(symbol, interval)
