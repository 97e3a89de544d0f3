"""
Unit Tests for the FastAPI Application

These tests run the full application (lifespan, routes, WebSocket endpoint)
through Starlette's TestClient with a fake upstream feed and history fetcher.

Run with:
    pytest tests/unit/test_app.py -v
"""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from core.config import Settings
from core.errors import BootstrapError, HistoryFetchError
from core.feed_interface import FeedAdapter, FeedStream, HistoryFetcher
from core.schemas import Candle, LiveUpdate, UpstreamConnectionState


TOPIC = "/contractMarket/limitCandle:SOLUSDTM_1min"
HISTORY_REQUEST = {"topic": "request_history", "symbol": "SOLUSDTM", "interval": "1min"}


# ============================================
# Test Doubles
# ============================================

class IdleFeed(FeedAdapter):
    """Goes live and stays open until closed."""

    name = "idle"

    def __init__(self, error=None):
        self.error = error
        self._closed = None

    async def connect(self, on_state=None) -> FeedStream:
        if self.error:
            raise self.error
        self._closed = asyncio.Event()
        if on_state:
            on_state(UpstreamConnectionState.SUBSCRIBING)
            on_state(UpstreamConnectionState.LIVE)
        return FeedStream(self._events(), asyncio.get_running_loop().create_future())

    async def _events(self):
        await self._closed.wait()
        return
        yield

    async def close(self) -> None:
        if self._closed:
            self._closed.set()


class StaticHistory(HistoryFetcher):
    def __init__(self, candles=(), error=None):
        self.candles = list(candles)
        self.error = error

    async def fetch(self, symbol, interval):
        if self.error:
            raise self.error
        return self.candles


def make_client(feed_error=None, history=None):
    app = create_app(
        Settings(_env_file=None),
        feed_factory=lambda: IdleFeed(feed_error),
        history_fetcher=history or StaticHistory([Candle(time=1, open=8, high=9, low=7, close=9)]),
    )
    return TestClient(app)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


# ============================================
# Tests for HTTP Endpoints
# ============================================

class TestSystemEndpoints:
    """Tests for / and /health"""

    def test_root_describes_feed(self):
        with make_client() as client:
            response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["topic"] == TOPIC
        assert body["websocket"] == "/ws"

    def test_health_healthy_when_live(self):
        with make_client() as client:
            wait_for(lambda: client.get("/health").json()["status"] == "healthy")
            body = client.get("/health").json()

        assert body["upstream"]["state"] == "live"
        assert body["upstream"]["subscribers"] == 0

    def test_health_degraded_when_bootstrap_fails(self):
        with make_client(feed_error=BootstrapError("token request failed")) as client:
            wait_for(lambda: client.get("/health").json()["upstream"]["connect_attempts"] >= 1)
            body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["upstream"]["state"] == "disconnected"
        assert "token request failed" in body["upstream"]["last_error"]


# ============================================
# Tests for the WebSocket Endpoint
# ============================================

class TestWebSocketEndpoint:
    """Tests for the downstream relay protocol"""

    @pytest.mark.parametrize("path", ["/ws", "/"])
    def test_history_request(self, path):
        with make_client() as client:
            with client.websocket_connect(path) as ws:
                ws.send_json(HISTORY_REQUEST)
                reply = ws.receive_json()

        assert reply == {
            "topic": "history_data",
            "data": [{"time": 1, "open": 8.0, "high": 9.0, "low": 7.0, "close": 9.0}],
        }

    def test_history_failure(self):
        with make_client(history=StaticHistory(error=HistoryFetchError("HTTP 500"))) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_json(HISTORY_REQUEST)
                reply = ws.receive_json()

        assert reply == {"topic": "error", "message": "Failed to fetch history."}

    def test_live_update_reaches_every_client(self):
        update = LiveUpdate(topic=TOPIC, data=Candle(time=60, open=1, high=2, low=0.5, close=1.5))

        with make_client() as client:
            relay = client.app.state.relay
            with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
                wait_for(lambda: len(relay.registry) == 2)
                client.portal.call(relay.router.publish, update)

                assert first.receive_json() == update.to_wire()
                assert second.receive_json() == update.to_wire()

    def test_disconnect_deregisters(self):
        with make_client() as client:
            relay = client.app.state.relay
            with client.websocket_connect("/ws"):
                wait_for(lambda: len(relay.registry) == 1)
            wait_for(lambda: len(relay.registry) == 0)
