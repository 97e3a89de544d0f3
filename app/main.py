"""
FastAPI Application - Candle Relay

Relays one upstream KuCoin Futures candle feed to any number of WebSocket
clients and answers their historical-data requests.

Endpoints:
    - GET /            Service information
    - GET /health      Upstream connection state and subscriber count
    - WS  /ws (and /)  Live candle pushes + history requests

WebSocket protocol:
    -> {"topic": "request_history", "symbol": "SOLUSDTM", "interval": "1min"}
    <- {"topic": "history_data", "data": [{"time": ..., "open": ..., ...}, ...]}
    <- {"topic": "error", "message": "Failed to fetch history."}
    <- {"topic": "/contractMarket/limitCandle:SOLUSDTM_1min", "data": {...}}

Usage:
    uvicorn app.main:app --host 0.0.0.0 --port 3000
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, settings, validate_configuration
from core.feed_interface import FeedAdapter, HistoryFetcher
from core.logging import logger, set_log_level
from exchanges.kucoin import KucoinHistoryFetcher, create_candle_feed
from services.relay import Relay


router = APIRouter()


# ============================================
# System Endpoints
# ============================================

@router.get("/", tags=["System"])
async def root(request: Request):
    """Service information."""
    relay: Relay = request.app.state.relay
    return {
        "name": "Candle Relay",
        "version": "1.0.0",
        "topic": relay.config.feed_topic,
        "websocket": "/ws",
    }


@router.get("/health", tags=["System"])
async def health_check(request: Request):
    """Health check - reports whether the upstream feed is live."""
    relay: Relay = request.app.state.relay
    return {
        "status": "healthy" if relay.is_live else "degraded",
        "upstream": relay.status(),
    }


# ============================================
# WebSocket Endpoint
# ============================================

@router.websocket("/ws")
@router.websocket("/")
async def websocket_relay(websocket: WebSocket):
    """
    Downstream relay connection.

    Every connected client receives every live candle. History requests are
    answered on the requesting connection only.
    """
    relay: Relay = websocket.app.state.relay
    await websocket.accept()
    session = relay.open_session(websocket)
    logger.info(f"WS connected: {session.connection_id}")
    try:
        await session.run()
    finally:
        logger.info(f"WS ended: {session.connection_id}")


# ============================================
# Application Factory
# ============================================

def create_app(
    config: Settings = settings,
    feed_factory: Optional[Callable[[], FeedAdapter]] = None,
    history_fetcher: Optional[HistoryFetcher] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to run with
        feed_factory: Builds one upstream adapter per connection attempt
                      (defaults to the KuCoin candle feed)
        history_fetcher: Historical candle client (defaults to KuCoin REST)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=== Relay Starting ===")
        validate_configuration(config)
        set_log_level(config.log_level)
        relay = Relay(
            feed_factory or (lambda: create_candle_feed(config)),
            history_fetcher or KucoinHistoryFetcher(config.kucoin_base_url, config.request_timeout),
            config,
        )
        app.state.relay = relay
        await relay.start()
        logger.info("=== Started Successfully ===")

        yield

        logger.info("=== Shutting Down ===")
        await relay.stop()
        logger.info("=== Shutdown Complete ===")

    app = FastAPI(
        title="Candle Relay",
        description=(
            "Relays a live KuCoin Futures candle feed over WebSocket and serves "
            "historical candles on request.\n\n"
            "Connect to `ws://{host}/ws` and send "
            "`{\"topic\": \"request_history\", \"symbol\": \"SOLUSDTM\", \"interval\": \"1min\"}` "
            "for history; live candles are pushed automatically."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    app.include_router(router)
    return app


app = create_app()
