"""
Bybit V5 Order Gateway
======================

Stateless wrapper over the signed Bybit V5 endpoints the TP/SL synchronizer needs.

Endpoints used:
- POST /v5/position/trading-stop - Position-level stop-loss / primary take-profit
- POST /v5/order/cancel - Cancel order by client order id (orderLinkId)
- POST /v5/order/create - Reduce-only GTC limit order (TP ladder leg)
- GET  /v5/position/list - Open positions for a symbol

Every call is signed on its own, bounded by a timeout and never retried here.
Expected failures come back as GatewayResult(ok=False, error=ExchangeError).
"""
import time
import asyncio
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp
from aiohttp import ClientTimeout, TCPConnector
import orjson
import structlog

from config.settings import settings
from src.core.models import (
    ApiCredentials,
    ErrorKind,
    GatewayResult,
    OrderSide,
    PositionSide,
    VenueEnvironment,
    QUANTITY_DECIMALS,
)
from src.core.resilience import RateLimiter
from src.execution.errors import make_error
from src.execution.signer import canonical_body, canonical_query, sign_payload

logger = structlog.get_logger(__name__)

CATEGORY = "linear"
TRIGGER_BY = "MarkPrice"  # Both SL and TP trigger on mark price


def base_url_for(environment: VenueEnvironment) -> str:
    return {
        VenueEnvironment.MAINNET: settings.BYBIT_MAINNET_URL,
        VenueEnvironment.TESTNET: settings.BYBIT_TESTNET_URL,
        VenueEnvironment.DEMO: settings.BYBIT_DEMO_URL,
    }[environment]


def normalize_symbol(symbol: str) -> str:
    """BTC / btcusdt / ' BTCUSDT ' -> BTCUSDT"""
    clean = "".join((symbol or "").split()).upper()
    if not clean:
        raise ValueError("symbol is required")
    if clean.endswith("USDT"):
        return clean
    return f"{clean}USDT"


def format_price(value: float) -> str:
    """Plain decimal string without float noise or exponent"""
    return format(Decimal(str(value)).normalize(), "f")


def format_quantity(value: float) -> str:
    return f"{value:.{QUANTITY_DECIMALS}f}"


class BybitOrderGateway:
    """
    Bybit V5 linear futures client

    Handles authenticated requests for:
    - Setting position stop-loss / take-profit
    - Cancelling and creating reduce-only TP orders
    - Reading open positions

    Holds no state between reconciliations: create one per call with the
    caller's credentials and close it afterwards (async with).
    """

    def __init__(
        self,
        credentials: ApiCredentials,
        dry_run: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        recv_window_ms: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
        position_mode: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.time,
    ):
        if credentials is None:
            raise ValueError("credentials are required")
        self.credentials = credentials
        self.base_url = base_url_for(credentials.environment)
        self.dry_run = settings.DRY_RUN if dry_run is None else dry_run
        self.timeout_ms = timeout_ms or settings.REQUEST_TIMEOUT_MS
        self.recv_window_ms = recv_window_ms or settings.RECV_WINDOW_MS
        self.position_mode = (position_mode or settings.POSITION_MODE).lower()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_concurrent=settings.MAX_CONCURRENT_REQUESTS,
            min_interval_ms=settings.MIN_REQUEST_INTERVAL_MS,
        )
        self._clock = clock

        # Stats
        self.total_requests = 0
        self.total_failures = 0

        # Session (external sessions are not closed by us)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                ttl_dns_cache=300,
                limit=self.rate_limiter.max_concurrent,
                enable_cleanup_closed=True,
            )
            timeout = ClientTimeout(total=self.timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the session"""
        logger.debug("bybit_gateway_closed", **self.get_stats())
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BybitOrderGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _position_idx(self, side: Optional[PositionSide]) -> int:
        """0 in one-way mode; 1 (long) / 2 (short) in hedge mode"""
        if self.position_mode != "hedge" or side is None:
            return 0
        return 1 if side == PositionSide.LONG else 2

    def _get_headers(self, timestamp: int, signature: str) -> Dict[str, str]:
        """Get request headers with authentication"""
        return {
            "X-BAPI-API-KEY": self.credentials.api_key,
            "X-BAPI-TIMESTAMP": str(timestamp),
            "X-BAPI-SIGN": signature,
            "X-BAPI-RECV-WINDOW": str(self.recv_window_ms),
            "X-BAPI-SIGN-TYPE": "2",
            "Content-Type": "application/json",
        }

    async def _transport(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[str],
    ) -> Tuple[int, str]:
        """Single HTTP round-trip; returns (status, text)"""
        session = await self._get_session()
        async with session.request(
            method,
            url,
            headers=headers,
            data=body,
            timeout=ClientTimeout(total=self.timeout_ms / 1000),
        ) as response:
            return response.status, await response.text()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Dict[str, Any],
    ) -> GatewayResult:
        """Make one authenticated request and map the reply to a GatewayResult"""
        url = f"{self.base_url}{endpoint}"

        if method == "GET":
            payload = canonical_query(params)
            if payload:
                url = f"{url}?{payload}"
            body = None
        else:
            payload = canonical_body(params)
            body = payload

        self.total_requests += 1
        try:
            async with self.rate_limiter:
                # Timestamp and signature are taken after the pacing wait
                timestamp = int(self._clock() * 1000)
                signature = sign_payload(
                    self.credentials.api_secret,
                    self.credentials.api_key,
                    timestamp,
                    payload,
                    self.recv_window_ms,
                )
                headers = self._get_headers(timestamp, signature)
                status, text = await self._transport(method, url, headers, body)
        except asyncio.TimeoutError:
            self.total_failures += 1
            logger.error("bybit_request_timeout", endpoint=endpoint, timeout_ms=self.timeout_ms)
            return GatewayResult(
                ok=False,
                error=make_error("TIMEOUT", f"No response within {self.timeout_ms}ms", ErrorKind.TIMEOUT),
            )
        except aiohttp.ClientError as e:
            self.total_failures += 1
            logger.error("bybit_request_error", endpoint=endpoint, error=str(e))
            return GatewayResult(
                ok=False,
                error=make_error("NETWORK", str(e) or type(e).__name__, ErrorKind.NETWORK),
            )

        if status != 200:
            self.total_failures += 1
            if "<html" in text.lower() or "<!doctype html>" in text.lower():
                message = f"CloudFlare/WAF block ({status})"
            else:
                message = text[:500]
            logger.error("bybit_request_failed",
                         status=status,
                         endpoint=endpoint,
                         response=text[:500])
            return GatewayResult(ok=False, error=make_error(f"HTTP {status}", message))

        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError:
            self.total_failures += 1
            return GatewayResult(ok=False, error=make_error("INVALID_JSON", text[:200]))

        ret_code = data.get("retCode") if isinstance(data, dict) else None
        if ret_code != 0:
            self.total_failures += 1
            ret_msg = data.get("retMsg", "Unknown error") if isinstance(data, dict) else "Unknown error"
            logger.warning("bybit_api_error",
                           endpoint=endpoint,
                           ret_code=ret_code,
                           ret_msg=ret_msg)
            return GatewayResult(ok=False, error=make_error(str(ret_code), ret_msg), payload=data)

        return GatewayResult(ok=True, payload=data.get("result") or {})

    async def set_position_protection(
        self,
        symbol: str,
        side: PositionSide,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> GatewayResult:
        """
        Set stop-loss and/or primary take-profit on the position itself.

        A leg that is not being changed is omitted entirely; never sent as 0.
        """
        if stop_loss is None and take_profit is None:
            raise ValueError("set_position_protection needs stop_loss or take_profit")

        body: Dict[str, Any] = {
            "category": CATEGORY,
            "symbol": normalize_symbol(symbol),
            "tpslMode": "Full",
            "positionIdx": self._position_idx(side),
        }
        if stop_loss is not None:
            body["stopLoss"] = format_price(stop_loss)
            body["slTriggerBy"] = TRIGGER_BY
        if take_profit is not None:
            body["takeProfit"] = format_price(take_profit)
            body["tpTriggerBy"] = TRIGGER_BY

        logger.info("bybit_set_trading_stop",
                    symbol=body["symbol"],
                    side=side.value,
                    stop_loss=stop_loss,
                    take_profit=take_profit,
                    dry_run=self.dry_run)

        if self.dry_run:
            return GatewayResult(ok=True, payload={"dry_run": True})

        return await self._request("POST", "/v5/position/trading-stop", body)

    async def cancel_order(self, symbol: str, client_order_id: str) -> GatewayResult:
        """Cancel an order by its client order id"""
        if not client_order_id:
            raise ValueError("client_order_id is required")

        body = {
            "category": CATEGORY,
            "symbol": normalize_symbol(symbol),
            "orderLinkId": client_order_id,
        }

        logger.info("bybit_cancel_order",
                    symbol=body["symbol"],
                    client_order_id=client_order_id,
                    dry_run=self.dry_run)

        if self.dry_run:
            return GatewayResult(ok=True, client_order_id=client_order_id, payload={"dry_run": True})

        result = await self._request("POST", "/v5/order/cancel", body)
        result.client_order_id = client_order_id
        if result.ok:
            result.order_id = result.payload.get("orderId")
        return result

    async def create_reduce_limit_order(
        self,
        symbol: str,
        closing_side: OrderSide,
        quantity: float,
        price: float,
        client_order_id: str,
        position_side: Optional[PositionSide] = None,
    ) -> GatewayResult:
        """
        Place a reduce-only GTC limit order.

        Retrying after an ambiguous failure must reuse the same client_order_id.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        if price <= 0:
            raise ValueError("price must be positive")
        if not client_order_id:
            raise ValueError("client_order_id is required")

        body = {
            "category": CATEGORY,
            "symbol": normalize_symbol(symbol),
            "side": closing_side.value,
            "orderType": "Limit",
            "qty": format_quantity(quantity),
            "price": format_price(price),
            "timeInForce": "GTC",
            "reduceOnly": True,
            "orderLinkId": client_order_id,
            "positionIdx": self._position_idx(position_side),
        }

        logger.info("bybit_create_reduce_order",
                    symbol=body["symbol"],
                    side=body["side"],
                    qty=body["qty"],
                    price=body["price"],
                    client_order_id=client_order_id,
                    dry_run=self.dry_run)

        if self.dry_run:
            fake_order_id = f"dry_{int(self._clock() * 1000)}"
            return GatewayResult(
                ok=True,
                order_id=fake_order_id,
                client_order_id=client_order_id,
                payload={"dry_run": True},
            )

        result = await self._request("POST", "/v5/order/create", body)
        result.client_order_id = client_order_id
        if result.ok:
            result.order_id = result.payload.get("orderId")
        return result

    async def get_positions(self, symbol: str) -> GatewayResult:
        """Read open positions for a symbol; payload is the raw position list"""
        params = {
            "category": CATEGORY,
            "symbol": normalize_symbol(symbol),
        }
        result = await self._request("GET", "/v5/position/list", params)
        if result.ok:
            result.payload = result.payload.get("list") or []
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get gateway statistics"""
        return {
            "environment": self.credentials.environment.value,
            "total_requests": self.total_requests,
            "total_failures": self.total_failures,
            "dry_run": self.dry_run,
            "rate_limiter": self.rate_limiter.get_status(),
        }
