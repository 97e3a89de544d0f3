"""
Unit Tests for KuCoin REST API Client

These tests verify that KucoinAPIClient:
- Parses the bullet-public bootstrap response
- Maps interval names to kline granularity
- Normalizes historical candles oldest first, whatever order KuCoin sends
- Reports transport failures as HistoryFetchError / BootstrapError

All HTTP calls are mocked; no network access.

Run with:
    pytest tests/unit/test_kucoin_api_client.py -v
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

import aiohttp

from core.errors import BootstrapError, HistoryFetchError
from core.schemas import Candle
from exchanges.kucoin.api_client import KucoinAPIClient, normalize_history, parse_candle


# ============================================
# Tests for Candle Normalization
# ============================================

class TestParseCandle:
    """Tests for parse_candle()"""

    def test_field_order(self):
        """KuCoin arrays are [time_ms, open, close, high, low]"""
        candle = parse_candle([2000, 10, 12, 13, 9])
        assert candle == Candle(time=2, open=10, high=13, low=9, close=12)

    def test_numeric_strings(self):
        candle = parse_candle(["1700000040000", "58.12", "58.33", "58.40", "58.01", "1200", "69900"])
        assert candle.time == 1700000040
        assert candle.close == 58.33
        assert candle.high == 58.40

    def test_too_few_fields(self):
        with pytest.raises(ValueError):
            parse_candle([2000, 10, 12, 13])

    def test_non_numeric_field(self):
        with pytest.raises((ValueError, TypeError)):
            parse_candle([2000, "ten", 12, 13, 9])

    def test_none_field(self):
        with pytest.raises((ValueError, TypeError)):
            parse_candle([2000, 10, None, 13, 9])


class TestNormalizeHistory:
    """Tests for normalize_history()"""

    def test_newest_first_is_reversed(self):
        """Verify the documented newest-first response comes out ascending"""
        result = normalize_history([[2000, 10, 12, 13, 9], [1000, 8, 9, 9, 7]])
        assert [c.model_dump() for c in result] == [
            {"time": 1, "open": 8.0, "high": 9.0, "low": 7.0, "close": 9.0},
            {"time": 2, "open": 10.0, "high": 13.0, "low": 9.0, "close": 12.0},
        ]

    def test_ascending_input_kept(self):
        """Verify an already ascending response is not flipped"""
        result = normalize_history([[1000, 8, 9, 9, 7], [2000, 10, 12, 13, 9], [3000, 12, 11, 12, 10]])
        assert [c.time for c in result] == [1, 2, 3]

    @pytest.mark.parametrize("raw", [[], None, {"candles": []}, "oops"])
    def test_empty_or_non_array(self, raw):
        assert normalize_history(raw) == []

    def test_single_record(self):
        assert [c.time for c in normalize_history([[5000, 1, 1, 1, 1]])] == [5]

    def test_malformed_records_dropped(self):
        result = normalize_history([[3000, 1, 1, 1, 1], [2000, 1], None, [1000, 1, 1, 1, 1]])
        assert [c.time for c in result] == [1, 3]

    def test_duplicates_and_regressions_dropped(self):
        """Verify output is strictly ascending"""
        result = normalize_history([
            [1000, 1, 1, 1, 1],
            [2000, 2, 2, 2, 2],
            [2000, 9, 9, 9, 9],
            [1500, 3, 3, 3, 3],
            [3000, 4, 4, 4, 4],
        ])
        assert [c.time for c in result] == [1, 2, 3]
        assert result[1].open == 2.0


# ============================================
# Tests for API Methods
# ============================================

class TestGetPublicToken:
    """Tests for the bullet-public bootstrap"""

    @pytest.mark.asyncio
    async def test_returns_endpoint_and_token(self):
        client = KucoinAPIClient()
        payload = {
            "code": "200000",
            "data": {
                "token": "abc123",
                "instanceServers": [{"endpoint": "wss://ws-api-futures.kucoin.com/endpoint"}],
            },
        }
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)) as mock_request:
            endpoint, token = await client.get_public_token()

        mock_request.assert_awaited_once_with("POST", "/api/v1/bullet-public")
        assert endpoint == "wss://ws-api-futures.kucoin.com/endpoint"
        assert token == "abc123"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {},
        {"data": None},
        {"data": {"token": "abc", "instanceServers": []}},
        {"data": {"instanceServers": [{"endpoint": "wss://x"}]}},
        [],
    ])
    async def test_incomplete_response_raises(self, payload):
        client = KucoinAPIClient()
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)):
            with pytest.raises(BootstrapError):
                await client.get_public_token()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        aiohttp.ClientConnectionError("refused"),
        asyncio.TimeoutError(),
        RuntimeError("HTTP 503"),
    ])
    async def test_transport_failure_raises(self, error):
        client = KucoinAPIClient()
        with patch.object(client, "_request", new=AsyncMock(side_effect=error)):
            with pytest.raises(BootstrapError):
                await client.get_public_token()


class TestGetHistory:
    """Tests for kline fetching"""

    @pytest.mark.asyncio
    async def test_interval_mapped_to_granularity(self):
        client = KucoinAPIClient()
        with patch.object(client, "_request", new=AsyncMock(return_value={"data": []})) as mock_request:
            await client.get_history("SOLUSDTM", "1hour")

        mock_request.assert_awaited_once_with(
            "GET", "/api/v1/kline/query", {"symbol": "SOLUSDTM", "granularity": 60}
        )

    @pytest.mark.asyncio
    async def test_unknown_interval_passed_through(self):
        client = KucoinAPIClient()
        with patch.object(client, "_request", new=AsyncMock(return_value={"data": []})) as mock_request:
            await client.get_history("SOLUSDTM", "3min")

        assert mock_request.call_args[0][2]["granularity"] == "3min"

    @pytest.mark.asyncio
    async def test_returns_ascending_candles(self):
        client = KucoinAPIClient()
        payload = {"code": "200000", "data": [[2000, 10, 12, 13, 9], [1000, 8, 9, 9, 7]]}
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)):
            candles = await client.get_history("SOLUSDTM", "1min")

        assert [c.time for c in candles] == [1, 2]

    @pytest.mark.asyncio
    async def test_missing_data_is_empty(self):
        """Verify an error envelope without data yields an empty batch"""
        client = KucoinAPIClient()
        payload = {"code": "400100", "msg": "Invalid symbol"}
        with patch.object(client, "_request", new=AsyncMock(return_value=payload)):
            assert await client.get_history("NOPE", "1min") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        aiohttp.ClientConnectionError("reset"),
        asyncio.TimeoutError(),
        RuntimeError("HTTP 500"),
        ValueError("bad json"),
    ])
    async def test_failure_raises_history_fetch_error(self, error):
        client = KucoinAPIClient()
        with patch.object(client, "_request", new=AsyncMock(side_effect=error)):
            with pytest.raises(HistoryFetchError):
                await client.get_history("SOLUSDTM", "1min")


class TestSessionManagement:
    """Tests for client session lifecycle"""

    @pytest.mark.asyncio
    async def test_request_without_session_raises(self):
        client = KucoinAPIClient()
        with pytest.raises(RuntimeError, match="not initialized"):
            await client._request("GET", "/api/v1/kline/query")

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes_session(self):
        async with KucoinAPIClient() as client:
            assert client.session is not None
            assert not client.session.closed
        assert client.session.closed

    def test_base_url_override(self):
        client = KucoinAPIClient("http://localhost:8080/")
        assert client.base_url == "http://localhost:8080"
