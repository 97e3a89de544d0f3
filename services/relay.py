"""
Relay Composition

Wires the relay's components together and owns their lifecycle:

    ReconnectionSupervisor --LiveUpdate--> BroadcastRouter --> SubscriberRegistry
                                                                  |
    downstream WebSocket <----------- RelaySession <--------------+
                                          |
                                          +--> HistoryFetcher (per request)

The registry is created here and handed by reference to the router and to
every session; nothing else holds membership state.
"""

from typing import Any, Callable, Dict

from fastapi import WebSocket

from core.feed_interface import FeedAdapter, HistoryFetcher
from core.schemas import UpstreamConnectionState
from services.broadcast import BroadcastRouter
from services.relay_session import RelaySession
from services.subscriber_registry import SubscriberRegistry
from services.supervisor import ReconnectionSupervisor


class Relay:
    """
    The running relay: one upstream feed, many downstream sessions.

    Example:
        >>> relay = Relay(lambda: create_candle_feed(settings), KucoinHistoryFetcher(), settings)
        >>> await relay.start()
        >>> await relay.open_session(websocket).run()
        >>> await relay.stop()
    """

    def __init__(
        self,
        feed_factory: Callable[[], FeedAdapter],
        history_fetcher: HistoryFetcher,
        config,
    ) -> None:
        self.config = config
        self.registry = SubscriberRegistry()
        self.router = BroadcastRouter(self.registry)
        self.history_fetcher = history_fetcher
        self.supervisor = ReconnectionSupervisor(
            feed_factory,
            self.router,
            bootstrap_retry_delay=config.bootstrap_retry_delay,
            reconnect_delay=config.reconnect_delay,
        )

    async def start(self) -> None:
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()

    def open_session(self, websocket: WebSocket) -> RelaySession:
        return RelaySession(
            websocket,
            self.registry,
            self.history_fetcher,
            max_queue_size=self.config.subscriber_queue_size,
            send_timeout=self.config.subscriber_send_timeout,
        )

    @property
    def is_live(self) -> bool:
        return self.supervisor.state == UpstreamConnectionState.LIVE

    def status(self) -> Dict[str, Any]:
        """Snapshot of upstream and fan-out state for the health endpoint."""
        return {
            "topic": self.config.feed_topic,
            "state": self.supervisor.state.value,
            "connect_attempts": self.supervisor.connect_attempts,
            "last_error": self.supervisor.last_error,
            "last_event_at": self.supervisor.last_event_at,
            "subscribers": len(self.registry),
            "published": self.router.published,
            "dropped": self.router.dropped,
        }
