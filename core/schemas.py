"""
Normalized Data Schemas

This module defines Pydantic models for the data the relay moves around.
Whatever the upstream provider sends, it gets normalized into these schemas
before it reaches a downstream subscriber.

Models:
    - Candle: One OHLC record, time in Unix seconds
    - LiveUpdate: A Candle tagged with the provider topic it came from
    - HistoryRequest: Inbound downstream request for historical candles
    - HistoryResponse: Reply carrying an oldest-first batch of candles
    - ErrorMessage: Reply sent to the requester when a request fails
    - UpstreamConnectionState: Lifecycle states of the upstream connection

Downstream wire format:
    {"topic": "request_history", "symbol": "SOLUSDTM", "interval": "1min"}
    {"topic": "history_data", "data": [{"time": 1, "open": 8.0, ...}, ...]}
    {"topic": "error", "message": "Failed to fetch history."}
    {"topic": "/contractMarket/limitCandle:SOLUSDTM_1min", "data": {...}}
"""

import math
from enum import Enum
from typing import Any, Dict, List, Literal
from pydantic import BaseModel, Field, field_validator, ConfigDict


# ============================================
# Upstream Connection State
# ============================================

class UpstreamConnectionState(str, Enum):
    """
    Lifecycle of the single upstream feed connection.

    Owned by the ReconnectionSupervisor; nothing else changes it.

        DISCONNECTED -> CONNECTING -> SUBSCRIBING -> LIVE
              ^             |              |          |
              |             v              v          |
              +-------- (bootstrap) --- FAILED <------+ (close / error)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    LIVE = "live"
    FAILED = "failed"


# ============================================
# Candle Schema
# ============================================

class Candle(BaseModel):
    """
    Open-High-Low-Close record for one interval.

    Attributes:
        time: Interval open time in Unix seconds (integer)
        open: Opening price
        high: Highest price during the interval
        low: Lowest price during the interval
        close: Closing price (last trade so far for a forming candle)

    Example:
        >>> Candle(time=1700000000, open=8.0, high=9.0, low=7.0, close=9.0)

    Notes:
        - Prices must be finite; NaN/inf fail validation
        - A forming candle is re-sent with the same time; consumers replace it
    """

    time: int = Field(
        ...,
        ge=0,
        description="Interval open time in Unix seconds"
    )

    open: float = Field(..., description="Opening price")
    high: float = Field(..., description="Highest price during the interval")
    low: float = Field(..., description="Lowest price during the interval")
    close: float = Field(..., description="Closing price")

    @field_validator('open', 'high', 'low', 'close')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        """Reject NaN and infinite prices"""
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got {v}")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "time": 1700000000,
                "open": 58.12,
                "high": 58.40,
                "low": 58.01,
                "close": 58.33
            }
        }
    )


# ============================================
# Live Update Schema
# ============================================

class LiveUpdate(BaseModel):
    """
    A single candle pushed by the upstream feed.

    Attributes:
        topic: Provider topic the candle arrived on (symbol + interval provenance)
        data: The normalized candle
    """

    topic: str = Field(
        ...,
        description="Provider topic string",
        examples=["/contractMarket/limitCandle:SOLUSDTM_1min"]
    )

    data: Candle

    def to_wire(self) -> Dict[str, Any]:
        """Downstream push payload: {"topic": ..., "data": {...}}"""
        return self.model_dump(mode="json")


# ============================================
# Downstream Request / Response Schemas
# ============================================

class HistoryRequest(BaseModel):
    """Inbound request for historical candles of one symbol/interval."""

    topic: Literal["request_history"]
    symbol: str = Field(..., min_length=1)
    interval: str = Field(..., min_length=1)


class HistoryResponse(BaseModel):
    """Reply to a HistoryRequest; data is oldest first."""

    topic: Literal["history_data"] = "history_data"
    data: List[Candle] = Field(default_factory=list)


class ErrorMessage(BaseModel):
    """Request-scoped failure, delivered only to the requester."""

    topic: Literal["error"] = "error"
    message: str
