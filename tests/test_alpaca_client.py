"""Tests for the Alpaca adapter with the HTTP layer replaced."""

from datetime import datetime, timedelta, timezone

import pytest

from hedgefund.core.errors import BrokerRejected, DataUnavailable
from hedgefund.core.types import OrderRequest
from hedgefund.exchange.alpaca_client import AlpacaAPIError, AlpacaClient, lookback_start


class FakeHTTP:
    """Stands in for AlpacaClient._request, returning canned (status, body) per call"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(self, method, url, params=None, payload=None):
        self.calls.append({"method": method, "url": url, "params": params, "payload": payload})
        return self.responses.pop(0)


def _client(*responses):
    client = AlpacaClient("key", "secret", paper=True)
    client._request = FakeHTTP(*responses)
    return client


def _raw_bar(day, close):
    return {"t": f"2024-01-{day:02d}T05:00:00Z", "o": close, "h": close + 1, "l": close - 1, "c": close, "v": 1000}


class TestLookbackStart:
    def test_daily(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert lookback_start("1Day", 100, now) == now - timedelta(days=205)

    def test_minutes(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert lookback_start("15Min", 10, now) == now - timedelta(minutes=600) - timedelta(days=5)

    def test_unsupported(self):
        with pytest.raises(ValueError):
            lookback_start("1Fortnight", 10)


class TestBars:
    @pytest.mark.asyncio
    async def test_stock_bars_sorted_and_limited(self):
        client = _client((200, {"bars": [_raw_bar(3, 103), _raw_bar(1, 101), _raw_bar(2, 102)]}))
        bars = await client.get_bars("AAPL", "1Day", 2)

        assert [b.close for b in bars] == [102, 103]
        call = client._request.calls[0]
        assert call["url"].endswith("/v2/stocks/AAPL/bars")
        assert call["params"]["feed"] == "iex"

    @pytest.mark.asyncio
    async def test_crypto_bars_keyed_by_symbol(self):
        client = _client((200, {"bars": {"BTC/USD": [_raw_bar(1, 40000)]}}))
        bars = await client.get_bars("BTC/USD", "1Day", 10)
        assert bars[0].close == 40000
        assert "/crypto/" in client._request.calls[0]["url"]

    @pytest.mark.asyncio
    async def test_unknown_symbol(self):
        with pytest.raises(DataUnavailable):
            await _client((422, {"message": "invalid symbol"})).get_bars("ZZZZ")

    @pytest.mark.asyncio
    async def test_empty_bars(self):
        with pytest.raises(DataUnavailable):
            await _client((200, {"bars": []})).get_bars("AAPL")

    @pytest.mark.asyncio
    async def test_server_error(self):
        with pytest.raises(AlpacaAPIError):
            await _client((500, None)).get_bars("AAPL")


class TestAccount:
    @pytest.mark.asyncio
    async def test_account(self):
        body = {"equity": "10000.5", "cash": "4000", "buying_power": "8000", "last_equity": "9900", "trading_blocked": False}
        account = await _client((200, body)).get_account()
        assert account.equity == 10000.5
        assert account.last_equity == 9900.0
        assert account.trading_blocked is False

    @pytest.mark.asyncio
    async def test_short_positions_negative(self):
        body = [
            {"symbol": "AAPL", "qty": "10", "side": "long", "avg_entry_price": "150", "unrealized_pl": "12", "market_value": "1512"},
            {"symbol": "TSLA", "qty": "5", "side": "short", "avg_entry_price": "200", "unrealized_pl": "-3", "market_value": "-1003"},
        ]
        positions = await _client((200, body)).get_positions()
        assert [p.quantity for p in positions] == [10.0, -5.0]
        assert positions[1].exposure == 1003.0


class TestOrders:
    @pytest.mark.asyncio
    async def test_submit(self):
        body = {"id": "abc", "status": "accepted", "symbol": "AAPL", "side": "buy", "submitted_at": "2024-01-02T15:00:00Z"}
        client = _client((200, body))
        result = await client.submit(OrderRequest(symbol="AAPL", side="buy", notional=100.0, time_in_force="day"))

        assert result.order_id == "abc"
        assert result.status == "accepted"
        assert result.submitted_at.year == 2024
        assert client._request.calls[0]["payload"]["notional"] == "100.0"

    @pytest.mark.asyncio
    async def test_submit_rejected(self):
        client = _client((403, {"message": "insufficient buying power"}))
        with pytest.raises(BrokerRejected) as excinfo:
            await client.submit(OrderRequest(symbol="AAPL", side="buy", quantity=1000))
        assert excinfo.value.status_code == 403
        assert "insufficient buying power" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_submit_server_error_is_not_rejection(self):
        with pytest.raises(AlpacaAPIError):
            await _client((503, None)).submit(OrderRequest(symbol="AAPL", side="buy", quantity=1))

    @pytest.mark.asyncio
    async def test_cancel(self):
        assert await _client((204, None)).cancel("abc") is True
        assert await _client((404, {"message": "order not found"})).cancel("abc") is False

    @pytest.mark.asyncio
    async def test_connection(self):
        client = _client((200, {"equity": "1", "cash": "1", "buying_power": "1"}), (200, {"is_open": True}))
        result = await client.test_connection()
        assert result["connected"] is True
        assert result["market_open"] is True

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        result = await _client((401, {"message": "unauthorized"})).test_connection()
        assert result["connected"] is False
        assert result["error"]


class FakeResponse:
    def __init__(self, status, text):
        self.status = status
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession, answering every request with one canned response"""

    def __init__(self, status, text):
        self.response = FakeResponse(status, text)

    def request(self, method, url, params=None, json=None):
        return self.response


class TestTransport:
    @pytest.mark.asyncio
    async def test_json_body_decoded(self):
        client = AlpacaClient("key", "secret", paper=True)
        client.session = FakeSession(200, '{"is_open": true}')
        assert await client._request("GET", "https://paper-api.alpaca.markets/v2/clock") == (200, {"is_open": True})

    @pytest.mark.asyncio
    async def test_html_gateway_page_is_api_error(self):
        client = AlpacaClient("key", "secret", paper=True)
        client.session = FakeSession(502, "<html><body>502 Bad Gateway</body></html>")
        with pytest.raises(AlpacaAPIError) as excinfo:
            await client._request("POST", "https://paper-api.alpaca.markets/v2/orders", payload={"symbol": "AAPL"})
        assert excinfo.value.status_code == 502
        assert not isinstance(excinfo.value, BrokerRejected)
