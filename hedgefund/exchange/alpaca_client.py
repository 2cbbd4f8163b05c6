"""
Alpaca Client - Market data, account and order access over the Alpaca REST API
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import aiohttp
import pandas as pd
from loguru import logger

from hedgefund.core.errors import BrokerRejected, DataUnavailable, HedgeFundError, PortTimeout
from hedgefund.core.ports import AccountPort, MarketDataPort, OrderPort
from hedgefund.core.types import Account, Bar, OrderRequest, OrderResult, Position

PAPER_BASE_URL = "https://paper-api.alpaca.markets"
LIVE_BASE_URL = "https://api.alpaca.markets"
DATA_BASE_URL = "https://data.alpaca.markets"

# Rough bar length per timeframe unit, used to pick a start date for bar queries
TIMEFRAME_UNITS = {"Min": timedelta(minutes=1), "Hour": timedelta(hours=1), "Day": timedelta(days=1), "Week": timedelta(weeks=1)}


class AlpacaAPIError(HedgeFundError):
    """Unexpected Alpaca API response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return pd.Timestamp(value).to_pydatetime()


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def lookback_start(timeframe: str, limit: int, now: Optional[datetime] = None) -> datetime:
    """Start time that comfortably covers ``limit`` bars, allowing for closed markets"""
    now = now or datetime.now(timezone.utc)
    for unit, length in TIMEFRAME_UNITS.items():
        if timeframe.endswith(unit):
            count = int(timeframe[: -len(unit)] or 1)
            # Equity sessions cover ~6.5h/day, 5 days/week
            padding = 4 if unit in ("Min", "Hour") else 2
            return now - length * count * limit * padding - timedelta(days=5)
    raise ValueError(f"Unsupported timeframe: {timeframe}")


class AlpacaClient(MarketDataPort, AccountPort, OrderPort):
    """aiohttp-based Alpaca trading and market data client"""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        paper: bool = True,
        base_url: Optional[str] = None,
        data_base_url: str = DATA_BASE_URL,
        data_feed: str = "iex",
        request_timeout: float = 10.0,
    ):
        """
        Initialize Alpaca client

        Args:
            api_key: Alpaca API key id
            api_secret: Alpaca API secret
            paper: Use the paper trading endpoint
            base_url: Override for the trading endpoint
            data_base_url: Market data endpoint
            data_feed: Stock data feed (iex or sip)
            request_timeout: Total seconds allowed per HTTP request
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.paper = paper
        self.base_url = (base_url or (PAPER_BASE_URL if paper else LIVE_BASE_URL)).rstrip("/")
        self.data_base_url = data_base_url.rstrip("/")
        self.data_feed = data_feed
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info(f"Alpaca client initialized ({'PAPER' if paper else 'LIVE'})")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "APCA-API-KEY-ID": self.api_key,
            "APCA-API-SECRET-KEY": self.api_secret,
            "Accept": "application/json",
        }

    async def initialize(self):
        """Open the HTTP session"""
        if not self.session:
            self.session = aiohttp.ClientSession(headers=self.headers, timeout=self.timeout)

    async def close(self):
        """Close the session"""
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request; returns (status, decoded body)"""
        await self.initialize()
        try:
            async with self.session.request(method, url, params=params, json=payload) as response:
                text = await response.text()
                try:
                    body = json.loads(text) if text else None
                except ValueError:
                    logger.error(f"Alpaca returned a non-JSON body ({response.status}): {method} {url}")
                    raise AlpacaAPIError(
                        f"Alpaca returned a non-JSON body ({response.status}) for {method} {url}",
                        status_code=response.status,
                    )
                return response.status, body
        except asyncio.TimeoutError:
            logger.error(f"Alpaca request timed out: {method} {url}")
            raise PortTimeout(f"Alpaca {method} {url} timed out")
        except aiohttp.ClientError as e:
            logger.error(f"Alpaca request failed: {method} {url}: {e}")
            raise AlpacaAPIError(f"Alpaca request failed: {e}")

    @staticmethod
    def _error_message(body: Any, status: int) -> str:
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"HTTP {status}"

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_bars(self, symbol: str, timeframe: str = "1Day", limit: int = 100) -> List[Bar]:
        """Latest ``limit`` bars, ascending"""
        params: Dict[str, Any] = {
            "timeframe": timeframe,
            "start": lookback_start(timeframe, limit).isoformat(),
            "limit": 10000,
        }
        if "/" in symbol:
            url = f"{self.data_base_url}/v1beta3/crypto/us/bars"
            params["symbols"] = symbol
        else:
            url = f"{self.data_base_url}/v2/stocks/{symbol}/bars"
            params["feed"] = self.data_feed
            params["adjustment"] = "raw"

        status, body = await self._request("GET", url, params=params)
        if status == 404 or status == 422:
            raise DataUnavailable(f"No market data for {symbol}: {self._error_message(body, status)}")
        if status >= 400:
            raise AlpacaAPIError(f"Failed to get bars for {symbol}: {self._error_message(body, status)}", status)

        raw = (body or {}).get("bars") or []
        if isinstance(raw, dict):
            raw = raw.get(symbol) or []
        if not raw:
            raise DataUnavailable(f"No {timeframe} bars returned for {symbol}")

        bars = [
            Bar(
                timestamp=_parse_time(item["t"]),
                open=_float(item.get("o")),
                high=_float(item.get("h")),
                low=_float(item.get("l")),
                close=_float(item.get("c")),
                volume=_float(item.get("v")),
            )
            for item in raw
        ]
        bars.sort(key=lambda b: b.timestamp)
        logger.debug(f"Fetched {len(bars)} {timeframe} bars for {symbol}")
        return bars[-limit:]

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_account(self) -> Account:
        status, body = await self._request("GET", f"{self.base_url}/v2/account")
        if status >= 400:
            logger.error(f"Failed to get account: {self._error_message(body, status)}")
            raise AlpacaAPIError(f"Failed to get account: {self._error_message(body, status)}", status)

        return Account(
            equity=_float(body.get("equity")),
            cash=_float(body.get("cash")),
            buying_power=_float(body.get("buying_power")),
            last_equity=_float(body.get("last_equity")) or None,
            trading_blocked=bool(body.get("trading_blocked") or body.get("account_blocked")),
        )

    async def get_positions(self) -> List[Position]:
        status, body = await self._request("GET", f"{self.base_url}/v2/positions")
        if status >= 400:
            logger.error(f"Failed to get positions: {self._error_message(body, status)}")
            raise AlpacaAPIError(f"Failed to get positions: {self._error_message(body, status)}", status)

        positions = []
        for item in body or []:
            qty = _float(item.get("qty"))
            if item.get("side") == "short" and qty > 0:
                qty = -qty
            positions.append(Position(
                symbol=item.get("symbol", ""),
                quantity=qty,
                avg_entry_price=_float(item.get("avg_entry_price")),
                unrealized_pnl=_float(item.get("unrealized_pl")),
                market_value=_float(item.get("market_value")),
            ))
        return positions

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    @staticmethod
    def _order_result(body: Dict[str, Any]) -> OrderResult:
        return OrderResult(
            order_id=str(body.get("id") or ""),
            status=str(body.get("status") or ""),
            symbol=body.get("symbol", ""),
            side=body.get("side", ""),
            filled_qty=_float(body.get("filled_qty")),
            filled_avg_price=_float(body.get("filled_avg_price")) or None,
            submitted_at=_parse_time(body.get("submitted_at")),
            raw=body,
        )

    async def submit(self, order: OrderRequest) -> OrderResult:
        payload = order.to_payload()
        status, body = await self._request("POST", f"{self.base_url}/v2/orders", payload=payload)
        if 400 <= status < 500:
            message = self._error_message(body, status)
            logger.error(f"Order rejected ({status}) for {order.symbol}: {message}")
            raise BrokerRejected(message, status_code=status, symbol=order.symbol)
        if status >= 500:
            raise AlpacaAPIError(f"Order submission failed: {self._error_message(body, status)}", status)

        result = self._order_result(body or {})
        logger.info(f"Order placed: {order.side.upper()} {order.symbol} -> {result.order_id} ({result.status})")
        return result

    async def cancel(self, order_id: str) -> bool:
        status, body = await self._request("DELETE", f"{self.base_url}/v2/orders/{order_id}")
        if status in (200, 204):
            return True
        if status in (404, 422):
            logger.warning(f"Order {order_id} not cancellable: {self._error_message(body, status)}")
            return False
        raise AlpacaAPIError(f"Failed to cancel order {order_id}: {self._error_message(body, status)}", status)

    async def get_order(self, order_id: str) -> OrderResult:
        status, body = await self._request("GET", f"{self.base_url}/v2/orders/{order_id}")
        if status >= 400:
            raise AlpacaAPIError(f"Failed to get order {order_id}: {self._error_message(body, status)}", status)
        return self._order_result(body or {})

    async def test_connection(self) -> Dict[str, Any]:
        """Account and market clock reachability"""
        try:
            account = await self.get_account()
            status, clock = await self._request("GET", f"{self.base_url}/v2/clock")
            return {
                "connected": True,
                "authenticated": True,
                "paper_trading": self.paper,
                "trading_blocked": account.trading_blocked,
                "market_open": bool(clock.get("is_open")) if status < 400 and clock else False,
            }
        except HedgeFundError as e:
            logger.error(f"Alpaca connection test failed: {e}")
            return {"connected": False, "authenticated": False, "paper_trading": self.paper, "error": str(e)}
