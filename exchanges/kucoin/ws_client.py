"""
KuCoin WebSocket Client

This module provides the low-level async WebSocket connection to the KuCoin
Futures public feed. It handles:
- Opening the socket at the endpoint returned by the bootstrap call
- Sending the subscribe command
- Application-level keep-alive pings (KuCoin drops idle sockets)
- Yielding raw JSON frames
- A one-shot lifecycle signal when the connection terminates

It does not reconnect. A terminated client is discarded and the
ReconnectionSupervisor builds a new one.

WebSocket Documentation:
    https://www.kucoin.com/docs/websocket/basic-info/create-connection

Usage:
    client = KucoinWSClient("wss://ws-api-futures.kucoin.com/endpoint?token=...")
    await client.connect()
    await client.subscribe("/contractMarket/limitCandle:SOLUSDTM_1min")
    async for frame in client.listen():
        print(frame)
"""

import aiohttp
import asyncio
import json
from typing import AsyncGenerator, Dict, Any, Optional
from core.errors import UpstreamConnectionError
from core.logging import get_logger, log_websocket_event
from core.utils.time import current_utc_timestamp


class KucoinWSClient:
    """
    Async WebSocket client for one KuCoin Futures connection.

    Attributes:
        url: Full socket URL including the connection token
        ping_interval: Seconds between keep-alive pings
        open_timeout: Seconds allowed for the socket handshake
        session: aiohttp ClientSession for WebSocket
        ws: Active WebSocket connection
        lifecycle: Future resolved once with the termination reason

    Notes:
        - lifecycle is not resolved when close() is called by the consumer
        - Call connect() before listen(); close() when done
    """

    def __init__(
        self,
        url: str,
        ping_interval: float = 25.0,
        open_timeout: float = 10.0
    ):
        self.url = url
        self.ping_interval = ping_interval
        self.open_timeout = open_timeout

        # Connection state
        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.lifecycle: Optional[asyncio.Future] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._closing = False

        self.logger = get_logger(__name__)

    # ============================================
    # WebSocket Connection Management
    # ============================================

    async def connect(self) -> None:
        """
        Open the WebSocket and start the keep-alive task.

        Raises:
            UpstreamConnectionError: If the handshake fails
        """
        loop = asyncio.get_running_loop()
        self.lifecycle = loop.create_future()

        if self.session is None:
            self.session = aiohttp.ClientSession()

        # The token is a credential; keep it out of the logs
        self.logger.info(f"Connecting to {self.url.split('?')[0]}")

        try:
            self.ws = await asyncio.wait_for(
                self.session.ws_connect(self.url),
                timeout=self.open_timeout
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._close_session()
            raise UpstreamConnectionError(f"Failed to open upstream socket: {e}") from e

        log_websocket_event("kucoin", "connected")
        self._keepalive_task = asyncio.create_task(self._keepalive(), name="kucoin_keepalive")

    async def send_json(self, payload: Dict[str, Any]) -> None:
        """
        Send one JSON command on the socket.

        Raises:
            UpstreamConnectionError: Socket not open or the send failed
        """
        if not self.ws or self.ws.closed:
            raise UpstreamConnectionError("Upstream socket is not open")
        try:
            await self.ws.send_str(json.dumps(payload))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise UpstreamConnectionError(f"Failed to send to upstream: {e}") from e

    async def subscribe(self, topic: str) -> None:
        """
        Subscribe to a public topic.

        Args:
            topic: e.g. "/contractMarket/limitCandle:SOLUSDTM_1min"
        """
        await self.send_json({
            "id": str(current_utc_timestamp(milliseconds=True)),
            "type": "subscribe",
            "topic": topic,
            "privateChannel": False,
            "response": True,
        })
        log_websocket_event("kucoin", "subscribed", details=topic)

    async def _keepalive(self) -> None:
        """Send {"type": "ping"} every ping_interval seconds while the socket is open."""
        try:
            while self.ws and not self.ws.closed:
                await asyncio.sleep(self.ping_interval)
                if not self.ws or self.ws.closed:
                    break
                await self.send_json({"id": str(current_utc_timestamp(milliseconds=True)), "type": "ping"})
                self.logger.debug("Keep-alive ping sent")
        except UpstreamConnectionError as e:
            # The receive loop sees the same failure and resolves lifecycle
            self.logger.warning(f"Keep-alive stopped: {e}")

    async def close(self) -> None:
        """
        Close WebSocket connection and session on behalf of the consumer.

        Notes:
            - Safe to call multiple times
            - Does not resolve lifecycle
        """
        self._closing = True

        if self._keepalive_task:
            self._keepalive_task.cancel()
            try:
                await self._keepalive_task
            except asyncio.CancelledError:
                pass
            self._keepalive_task = None

        if self.ws and not self.ws.closed:
            await self.ws.close()
            self.logger.debug("Upstream WebSocket closed")

        await self._close_session()

    async def _close_session(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    def _terminate(self, reason: Exception) -> None:
        """Resolve lifecycle once, unless the consumer closed us."""
        if self._keepalive_task:
            self._keepalive_task.cancel()
        if self._closing or self.lifecycle is None or self.lifecycle.done():
            return
        log_websocket_event("kucoin", "closed", details=str(reason))
        self.lifecycle.set_result(reason)

    # ============================================
    # Message Streaming
    # ============================================

    async def listen(self) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Yield raw JSON frames until the connection terminates.

        Yields:
            Dict[str, Any]: Parsed JSON frame from KuCoin (welcome, ack, pong, message, ...)

        Message Types:
            - WSMsgType.TEXT: JSON data (yielded; invalid JSON is logged and skipped)
            - WSMsgType.ERROR: Terminates with the socket exception
            - Close frames end the iteration

        Notes:
            - Non-restartable: once it returns, this client is finished
            - On termination lifecycle carries an UpstreamConnectionError
        """
        if not self.ws:
            raise RuntimeError("Client not connected. Call connect() first.")

        reason: Optional[Exception] = None
        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        self.logger.error(f"Failed to parse JSON: {msg.data[:100]}... Error: {e}")
                        continue
                    if isinstance(data, dict):
                        yield data

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = UpstreamConnectionError(f"Upstream socket error: {self.ws.exception()}")
                    break

                else:
                    self.logger.debug(f"Received message type: {msg.type}")

        except (aiohttp.ClientError, ConnectionError) as e:
            reason = UpstreamConnectionError(f"Upstream socket error: {e}")

        if reason is None:
            code = self.ws.close_code
            reason = UpstreamConnectionError(f"Upstream closed (code={code})", code=code)

        self._terminate(reason)
        await self._close_transport()

    async def _close_transport(self) -> None:
        """Release socket and session after a remote termination."""
        if self.ws and not self.ws.closed:
            await self.ws.close()
        await self._close_session()
