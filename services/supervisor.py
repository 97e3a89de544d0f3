"""
Reconnection Supervisor

Keeps exactly one upstream feed connection alive for the lifetime of the relay.

Each connection attempt uses a fresh FeedAdapter from the factory. The
supervisor walks the UpstreamConnectionState machine, forwards every
LiveUpdate to the BroadcastRouter while LIVE, and schedules the next attempt
when anything goes wrong:

    bootstrap failure           -> DISCONNECTED, retry after bootstrap_retry_delay (10s)
    socket open/subscribe fails -> FAILED -> DISCONNECTED, retry after reconnect_delay (5s)
    stream ends while LIVE      -> DISCONNECTED, retry after reconnect_delay (5s)

Every upstream close is treated as unplanned; the relay can't tell the
difference. None of these failures stop the loop. Only stop() does.
"""

import asyncio
import contextlib
import time
from typing import Awaitable, Callable, Optional

from core.errors import BootstrapError, UpstreamConnectionError
from core.feed_interface import FeedAdapter, StateCallback
from core.logging import get_logger
from core.schemas import UpstreamConnectionState
from services.broadcast import BroadcastRouter


class ReconnectionSupervisor:
    """
    Background service owning the upstream connection state.

    Attributes:
        state: Current UpstreamConnectionState
        connect_attempts: Number of connection attempts started
        last_error: Description of the most recent failure, if any
        last_event_at: Unix time of the most recent published update
    """

    def __init__(
        self,
        feed_factory: Callable[[], FeedAdapter],
        router: BroadcastRouter,
        bootstrap_retry_delay: float = 10.0,
        reconnect_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._feed_factory = feed_factory
        self._router = router
        self.bootstrap_retry_delay = bootstrap_retry_delay
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._on_state_change = on_state_change

        self._logger = get_logger(__name__)
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._feed: Optional[FeedAdapter] = None

        self.state = UpstreamConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self.last_error: Optional[str] = None
        self.last_event_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running.is_set()

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.info("Starting reconnection supervisor...")
        self._task = asyncio.create_task(self._run(), name="reconnection_supervisor")

    async def stop(self) -> None:
        """Stop scheduling attempts and close the open connection, if any."""
        if not self._running.is_set():
            return
        self._logger.info("Stopping reconnection supervisor...")
        self._running.clear()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._close_feed()
        self._set_state(UpstreamConnectionState.DISCONNECTED)

    def _set_state(self, state: UpstreamConnectionState) -> None:
        if state == self.state:
            return
        self._logger.info(f"Upstream state: {self.state.value} -> {state.value}")
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)

    # ============================================
    # Core Loop
    # ============================================

    async def _run(self) -> None:
        while self._running.is_set():
            try:
                delay = await self._attempt()
            except Exception as e:
                # Anything the adapter didn't classify is still just a failed attempt
                self.last_error = str(e)
                self._logger.error(f"Upstream attempt failed unexpectedly: {e}")
                await self._close_feed()
                self._set_state(UpstreamConnectionState.DISCONNECTED)
                delay = self.reconnect_delay

            if not self._running.is_set():
                break
            self._logger.info(f"Reconnecting to upstream in {delay}s...")
            await self._sleep(delay)

    async def _attempt(self) -> float:
        """
        Run one connection attempt until it ends.

        Returns:
            float: Seconds to wait before the next attempt
        """
        self.connect_attempts += 1
        self._set_state(UpstreamConnectionState.CONNECTING)
        self._feed = self._feed_factory()

        try:
            stream = await self._feed.connect(on_state=self._set_state)
        except BootstrapError as e:
            self.last_error = str(e)
            self._logger.error(
                f"Failed to fetch upstream endpoint, retrying in {self.bootstrap_retry_delay}s: {e}"
            )
            await self._close_feed()
            self._set_state(UpstreamConnectionState.DISCONNECTED)
            return self.bootstrap_retry_delay
        except UpstreamConnectionError as e:
            self.last_error = str(e)
            self._logger.error(f"Upstream connection failed: {e}")
            self._set_state(UpstreamConnectionState.FAILED)
            await self._close_feed()
            self._set_state(UpstreamConnectionState.DISCONNECTED)
            return self.reconnect_delay

        reason: Optional[BaseException] = None
        try:
            async for update in stream.events:
                self.last_event_at = time.time()
                await self._router.publish(update)
        except UpstreamConnectionError as e:
            reason = e

        if reason is None and stream.lifecycle.done():
            reason = stream.lifecycle.result()

        self.last_error = str(reason) if reason else "upstream stream ended"
        self._logger.warning(
            f"Upstream connection ended ({self.last_error}). "
            f"Attempting reconnect in {self.reconnect_delay}s..."
        )
        await self._close_feed()
        self._set_state(UpstreamConnectionState.DISCONNECTED)
        return self.reconnect_delay

    async def _close_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.close()
