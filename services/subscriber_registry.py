"""
Subscriber Registry

Tracks the downstream connections currently attached to the relay. Each
Subscriber gets its own bounded asyncio.Queue, so the broadcast path only ever
does a non-blocking put and a slow client can't hold up anyone else.

Membership is the only state touched from many tasks at once (every session
registers and deregisters itself while the router iterates). It is guarded by
an asyncio.Lock, and broadcast iterates over a copy taken under that lock.
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Set

from core.errors import SubscriberSendFailure
from core.logging import get_logger


_ids = itertools.count(1)


class Subscriber:
    """
    Handle to one downstream connection.

    Attributes:
        connection_id: Label used in logs
        queue: Pending outbound wire messages, drained by the owning session
        alive: False once the session has closed; further offers fail
    """

    def __init__(self, max_queue_size: int = 100, connection_id: Optional[str] = None) -> None:
        self.connection_id = connection_id or f"client-{next(_ids)}"
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.alive = True

    def offer(self, message: Dict[str, Any]) -> None:
        """
        Hand a message to this subscriber without blocking.

        Raises:
            SubscriberSendFailure: Subscriber is closed or its queue is full
        """
        if not self.alive:
            raise SubscriberSendFailure(f"{self.connection_id} is closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull as e:
            raise SubscriberSendFailure(f"{self.connection_id} queue is full") from e

    def mark_dead(self) -> None:
        self.alive = False

    def __repr__(self) -> str:
        return f"Subscriber({self.connection_id}, alive={self.alive}, pending={self.queue.qsize()})"


class SubscriberRegistry:
    """
    Concurrency-safe set of connected subscribers.

    - register/deregister are idempotent
    - snapshot() returns a copy; mutations after the call don't affect it
    """

    def __init__(self) -> None:
        self._members: Set[Subscriber] = set()
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    async def register(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._members.add(subscriber)
            total = len(self._members)
        self._logger.info(f"Client connected: {subscriber.connection_id}. Total clients: {total}")

    async def deregister(self, subscriber: Subscriber) -> None:
        async with self._lock:
            if subscriber not in self._members:
                return
            self._members.remove(subscriber)
            total = len(self._members)
        self._logger.info(f"Client disconnected: {subscriber.connection_id}. Total clients: {total}")

    async def snapshot(self) -> List[Subscriber]:
        async with self._lock:
            return list(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return subscriber in self._members
