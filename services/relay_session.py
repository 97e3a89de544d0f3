"""
Relay Session Handler

Serves one downstream WebSocket connection:

- registers a Subscriber with the registry on start
- pumps queued LiveUpdates to the socket, in the order they were published
- answers {"topic": "request_history", ...} by calling the HistoryFetcher in
  its own task, so a slow REST round-trip never stalls live delivery
- ignores anything else the client sends
- on disconnect, send failure or cancellation: deregisters exactly once and
  releases its tasks and socket

Replies:
    {"topic": "history_data", "data": [...]}            oldest first
    {"topic": "error", "message": "Failed to fetch history."}
"""

import asyncio
import json
from enum import Enum
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from core.errors import HistoryFetchError, SubscriberSendFailure
from core.feed_interface import HistoryFetcher
from core.logging import get_logger
from core.schemas import ErrorMessage, HistoryRequest, HistoryResponse
from services.subscriber_registry import Subscriber, SubscriberRegistry


HISTORY_ERROR_MESSAGE = "Failed to fetch history."


class SessionState(str, Enum):
    CONNECTED = "connected"
    CLOSED = "closed"


class RelaySession:
    """
    Per-connection handler. The WebSocket must already be accepted.

    Example:
        >>> await websocket.accept()
        >>> await RelaySession(websocket, registry, fetcher).run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        registry: SubscriberRegistry,
        history_fetcher: HistoryFetcher,
        max_queue_size: int = 100,
        send_timeout: float = 5.0,
    ) -> None:
        self.websocket = websocket
        self.subscriber = Subscriber(max_queue_size)
        self.state = SessionState.CONNECTED
        self._registry = registry
        self._history_fetcher = history_fetcher
        self._send_timeout = send_timeout
        self._send_lock = asyncio.Lock()
        self._failed = asyncio.Event()
        self._history_tasks: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def connection_id(self) -> str:
        return self.subscriber.connection_id

    # ============================================
    # Lifecycle
    # ============================================

    async def run(self) -> None:
        """Serve the connection until the client leaves or a send fails."""
        await self._registry.register(self.subscriber)

        tasks = [
            asyncio.create_task(self._read_requests(), name=f"{self.connection_id}_reader"),
            asyncio.create_task(self._pump_updates(), name=f"{self.connection_id}_pump"),
            asyncio.create_task(self._failed.wait(), name=f"{self.connection_id}_failure"),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Runs even when the handler itself is cancelled, possibly more than once
            self.subscriber.mark_dead()
            for task in tasks:
                task.cancel()
            await asyncio.shield(self._shutdown(tasks))

    async def _shutdown(self, tasks) -> None:
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.close()

    async def close(self) -> None:
        """Release the connection. Idempotent."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.subscriber.mark_dead()
        await self._registry.deregister(self.subscriber)

        pending = list(self._history_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close()
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                self._logger.debug(f"{self.connection_id} socket already gone: {e}")

    # ============================================
    # Inbound Requests
    # ============================================

    async def _read_requests(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                self._logger.info(f"WS disconnected: {self.connection_id} (code={message.get('code')})")
                return

            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            if text is not None:
                self.handle_message(text)

    def handle_message(self, text: str) -> Optional[asyncio.Task]:
        """
        Interpret one inbound frame.

        Returns:
            The history task started for a history request, otherwise None
        """
        try:
            payload = json.loads(text)
        except ValueError:
            self._logger.debug(f"{self.connection_id} sent non-JSON message, ignoring")
            return None

        if not isinstance(payload, dict) or payload.get("topic") != "request_history":
            self._logger.debug(f"{self.connection_id} sent unrecognized message, ignoring")
            return None

        try:
            request = HistoryRequest.model_validate(payload)
        except ValidationError:
            self._logger.debug(f"{self.connection_id} sent incomplete history request, ignoring")
            return None

        task = asyncio.create_task(self._serve_history(request), name=f"{self.connection_id}_history")
        self._history_tasks.add(task)
        task.add_done_callback(self._history_tasks.discard)
        return task

    async def _serve_history(self, request: HistoryRequest) -> None:
        self._logger.info(f"Fetching historical data for {request.symbol}:{request.interval}...")
        try:
            candles = await self._history_fetcher.fetch(request.symbol, request.interval)
        except HistoryFetchError as e:
            self._logger.error(f"Error fetching historical data: {e}")
            await self._reply(ErrorMessage(message=HISTORY_ERROR_MESSAGE).model_dump())
            return
        except Exception as e:
            self._logger.exception(f"Unexpected error fetching historical data: {e}")
            await self._reply(ErrorMessage(message=HISTORY_ERROR_MESSAGE).model_dump())
            return

        if await self._reply(HistoryResponse(data=candles).model_dump(mode="json")):
            self._logger.info(f"Sent {len(candles)} historical candles to {self.connection_id}")

    async def _reply(self, payload: Dict[str, Any]) -> bool:
        try:
            await self._send(payload)
            return True
        except SubscriberSendFailure as e:
            self._logger.warning(f"Failed to reply: {e}")
            self._failed.set()
            return False

    # ============================================
    # Outbound Live Updates
    # ============================================

    async def _pump_updates(self) -> None:
        queue = self.subscriber.queue
        while self.state == SessionState.CONNECTED:
            message = await queue.get()
            try:
                await self._send(message)
            except SubscriberSendFailure as e:
                self._logger.warning(f"Dropping subscriber: {e}")
                return

    async def _send(self, payload: Dict[str, Any]) -> None:
        """
        Write one JSON message to the socket.

        Raises:
            SubscriberSendFailure: Socket closed, send failed, or took longer than send_timeout
        """
        if self.state == SessionState.CLOSED:
            raise SubscriberSendFailure(f"{self.connection_id} is closed")

        async with self._send_lock:
            try:
                await asyncio.wait_for(self.websocket.send_json(payload), timeout=self._send_timeout)
            except asyncio.TimeoutError as e:
                raise SubscriberSendFailure(f"{self.connection_id} send timed out") from e
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                raise SubscriberSendFailure(f"{self.connection_id} send failed: {e}") from e
