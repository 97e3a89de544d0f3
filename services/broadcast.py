"""
Broadcast Router

Fans each normalized LiveUpdate out to every registered subscriber.

The update is serialized once, then offered to each subscriber in a snapshot
of the registry. Offers never block: a stalled subscriber (full queue) or a
closed one is skipped for this message and logged, and the remaining
subscribers still get it.
"""

from core.errors import SubscriberSendFailure
from core.logging import get_logger
from core.schemas import LiveUpdate
from services.subscriber_registry import SubscriberRegistry


class BroadcastRouter:
    """
    Publishes live updates to all subscribers of a registry.

    Example:
        >>> router = BroadcastRouter(registry)
        >>> delivered = await router.publish(update)
    """

    def __init__(self, registry: SubscriberRegistry) -> None:
        self._registry = registry
        self._logger = get_logger(__name__)
        self.published = 0
        self.dropped = 0

    async def publish(self, update: LiveUpdate) -> int:
        """
        Offer one update to every current subscriber.

        Returns:
            int: Number of subscribers the update was queued for
        """
        message = update.to_wire()
        subscribers = await self._registry.snapshot()
        delivered = 0

        for subscriber in subscribers:
            try:
                subscriber.offer(message)
                delivered += 1
            except SubscriberSendFailure as e:
                self.dropped += 1
                if subscriber.alive:
                    self._logger.warning(f"Dropping update for stalled subscriber: {e}")
                else:
                    self._logger.debug(f"Skipping closed subscriber: {e}")

        self.published += 1
        self._logger.debug(f"Published {update.topic} @ {update.data.time} to {delivered}/{len(subscribers)}")
        return delivered
