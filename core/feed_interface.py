"""
Feed Interface - Abstract Contract for Upstream Providers

This module defines the abstract base classes a provider adapter must implement
so the relay can stay provider-agnostic:

- FeedAdapter: owns one streaming connection, yields normalized LiveUpdates
- HistoryFetcher: stateless request/response client for historical candles

The supervisor, router and session handler only ever talk to these classes.
Swapping KuCoin for another provider means writing a new pair of subclasses;
nothing in services/ or app/ changes.

Example:
    class KucoinFeed(FeedAdapter):
        name = "kucoin"

        async def connect(self, on_state=None):
            ...  # bootstrap token, open socket, subscribe
            return FeedStream(self._events(), self.lifecycle)

    feed = KucoinFeed(settings)
    stream = await feed.connect()
    async for update in stream.events:
        await router.publish(update)
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Optional
from core.schemas import Candle, LiveUpdate, UpstreamConnectionState


StateCallback = Callable[[UpstreamConnectionState], None]


class FeedStream:
    """
    Result of a successful FeedAdapter.connect().

    Attributes:
        events: Lazy, unbounded, non-restartable iterator of LiveUpdates.
                Ends when the upstream connection terminates.
        lifecycle: Future resolved exactly once when the connection terminates,
                   with the failure reason (an exception) or None. Never resolved
                   when the consumer closes the adapter itself.
    """

    def __init__(self, events: AsyncIterator[LiveUpdate], lifecycle: "asyncio.Future[Optional[Exception]]"):
        self.events = events
        self.lifecycle = lifecycle


class FeedAdapter(ABC):
    """
    Abstract Base Class for upstream streaming adapters.

    An adapter instance represents one connection attempt. Once its stream has
    ended it is discarded; the supervisor builds a fresh one for the next
    attempt, so at most one adapter is live at a time.

    Class Attributes:
        name: Provider identifier (lowercase, e.g., "kucoin")
    """

    name: str

    @abstractmethod
    async def connect(self, on_state: Optional[StateCallback] = None) -> FeedStream:
        """
        Bootstrap, open the socket and subscribe to the configured topic.

        Args:
            on_state: Called with SUBSCRIBING once the socket is open and
                      with LIVE once the subscribe command is sent

        Returns:
            FeedStream: Normalized event stream plus lifecycle signal

        Raises:
            BootstrapError: Endpoint/token could not be obtained
            UpstreamConnectionError: Socket could not be opened or subscribed
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the connection on behalf of the consumer.

        Safe to call multiple times. Does not resolve the lifecycle signal.
        """
        pass


class HistoryFetcher(ABC):
    """
    Abstract Base Class for historical candle clients.
    """

    @abstractmethod
    async def fetch(self, symbol: str, interval: str) -> List[Candle]:
        """
        Fetch historical candles for one symbol/interval.

        Args:
            symbol: Contract symbol (e.g., "SOLUSDTM")
            interval: Candle interval (e.g., "1min")

        Returns:
            List[Candle]: Strictly ascending by time (oldest first); empty if
                          the provider has no data

        Raises:
            HistoryFetchError: Transport or HTTP failure
        """
        pass
