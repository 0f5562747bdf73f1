"""
Binance USD-M futures client acting as the maker venue.

- Maker orders are LIMIT GTX (post-only) priced off the ticker +/- spread
- Quantities and prices snap to the exchange LOT_SIZE / PRICE_FILTER steps
- Signed endpoints use HMAC-SHA256 over the query string
- Order ids are returned as ``<SYMBOL>:<orderId>`` so status queries do not
  need extra bookkeeping
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from hedgebot.core.errors import VenueError
from hedgebot.core.types import OrderSide, OrderStatus
from hedgebot.infra.clock import Clock
from hedgebot.state.position_ledger import Position
from hedgebot.venues.base import OrderAck, OrderStatusReport, maker_price

STATUS_MAP = {
    "NEW": OrderStatus.PENDING,
    "PARTIALLY_FILLED": OrderStatus.PARTIAL,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "EXPIRED": OrderStatus.CANCELLED,
    "EXPIRED_IN_MATCH": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.CANCELLED,
}


def _fmt(value: float) -> str:
    return format(Decimal(str(value)).normalize(), "f")


def snap(value: float, step: float, rounding: str = ROUND_DOWN) -> float:
    """Snap ``value`` to a multiple of ``step`` (Decimal math, no float drift)."""
    if step <= 0:
        return value
    d_step = Decimal(str(step))
    units = (Decimal(str(value)) / d_step).to_integral_value(rounding=rounding)
    return float(units * d_step)


class BinanceFuturesMaker:
    name = "binance"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://fapi.binance.com",
        quote_asset: str = "USDC",
        timeout: float = 5.0,
        recv_window: int = 5000,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._key = api_key
        self._clock = clock or Clock()
        self._secret = api_secret.encode()
        self.quote_asset = quote_asset.upper()
        self._recv_window = recv_window
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
            self._owns_client = True
        self._log = logger or logging.getLogger("hedgebot")
        self._filters: Dict[str, Tuple[float, float]] = {}  # exchange symbol -> (step, tick)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ─────────────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────────────

    def exchange_symbol(self, symbol: str) -> str:
        return f"{symbol.upper()}{self.quote_asset}"

    def base_symbol(self, exchange_symbol: str) -> str:
        if exchange_symbol.endswith(self.quote_asset):
            return exchange_symbol[: -len(self.quote_asset)]
        return exchange_symbol

    def _sign(self, params: Dict[str, Any]) -> str:
        params = dict(params)
        params["timestamp"] = int(self._clock.time() * 1000)
        params["recvWindow"] = self._recv_window
        query = urlencode(params)
        sig = hmac.new(self._secret, query.encode(), hashlib.sha256).hexdigest()
        return f"{query}&signature={sig}"

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       signed: bool = False, operation: str = "") -> Any:
        operation = operation or path
        params = params or {}
        headers = {"X-MBX-APIKEY": self._key} if signed else {}
        try:
            if signed:
                resp = await self.client.request(method, f"{path}?{self._sign(params)}", headers=headers)
            else:
                resp = await self.client.request(method, path, params=params)
        except httpx.HTTPError as exc:
            raise VenueError(self.name, operation, f"transport error: {exc}") from exc
        try:
            payload = resp.json()
        except ValueError:
            raise VenueError(self.name, operation, f"non-JSON response ({resp.status_code}): {resp.text[:200]}") from None
        if resp.status_code != 200:
            msg = payload.get("msg") if isinstance(payload, dict) else payload
            raise VenueError(self.name, operation, f"HTTP {resp.status_code}: {msg}")
        return payload

    async def _symbol_filters(self, ex_symbol: str) -> Tuple[float, float]:
        if not self._filters:
            info = await self._request("GET", "/fapi/v1/exchangeInfo", operation="exchange_info")
            for item in info.get("symbols", []):
                step, tick = 0.0, 0.0
                for f in item.get("filters", []):
                    if f.get("filterType") == "LOT_SIZE":
                        step = float(f.get("stepSize", 0))
                    elif f.get("filterType") == "PRICE_FILTER":
                        tick = float(f.get("tickSize", 0))
                self._filters[item["symbol"]] = (step, tick)
        if ex_symbol not in self._filters:
            raise VenueError(self.name, "exchange_info", f"unknown symbol {ex_symbol}")
        return self._filters[ex_symbol]

    # ─────────────────────────────────────────────────────────────────────
    # Contract
    # ─────────────────────────────────────────────────────────────────────

    async def get_current_price(self, symbol: str) -> float:
        data = await self._request(
            "GET", "/fapi/v1/ticker/price", {"symbol": self.exchange_symbol(symbol)}, operation="get_current_price"
        )
        return float(data["price"])

    async def _place_maker(self, symbol: str, side: OrderSide, notional: float, spread_percent: float) -> OrderAck:
        ex_symbol = self.exchange_symbol(symbol)
        step, tick = await self._symbol_filters(ex_symbol)
        ref = await self.get_current_price(symbol)
        raw_px = maker_price(ref, side, spread_percent)
        px = snap(raw_px, tick, ROUND_DOWN if side is OrderSide.BUY else ROUND_UP)
        qty = snap(notional / px, step, ROUND_DOWN)
        if qty <= 0:
            raise VenueError(self.name, "place_maker_order", f"notional {notional} too small for {ex_symbol}")
        data = await self._request(
            "POST",
            "/fapi/v1/order",
            {
                "symbol": ex_symbol,
                "side": side.value,
                "type": "LIMIT",
                "timeInForce": "GTX",
                "quantity": _fmt(qty),
                "price": _fmt(px),
            },
            signed=True,
            operation="place_maker_order",
        )
        order_id = f"{ex_symbol}:{data['orderId']}"
        self._log.info(json.dumps({
            "event": "maker_order_placed",
            "venue": self.name,
            "order_id": order_id,
            "side": side.value,
            "qty": qty,
            "px": px,
            "ref_px": ref,
        }))
        return OrderAck(order_id=order_id, price=px)

    async def place_maker_long(self, symbol: str, notional: float, spread_percent: float) -> OrderAck:
        return await self._place_maker(symbol, OrderSide.BUY, notional, spread_percent)

    async def place_maker_short(self, symbol: str, notional: float, spread_percent: float) -> OrderAck:
        return await self._place_maker(symbol, OrderSide.SELL, notional, spread_percent)

    async def get_order_status(self, order_id: str) -> OrderStatusReport:
        ex_symbol, _, raw_id = order_id.partition(":")
        if not raw_id:
            raise VenueError(self.name, "get_order_status", f"malformed order id {order_id!r}")
        data = await self._request(
            "GET", "/fapi/v1/order", {"symbol": ex_symbol, "orderId": raw_id}, signed=True,
            operation="get_order_status",
        )
        status = STATUS_MAP.get(data.get("status", ""))
        if status is None:
            raise VenueError(self.name, "get_order_status", f"unexpected status {data.get('status')!r}")
        return OrderStatusReport(status=status, filled_size=float(data.get("cumQuote", 0.0)))

    async def place_market_order(self, symbol: str, side: OrderSide, size: float) -> str:
        ex_symbol = self.exchange_symbol(symbol)
        step, _ = await self._symbol_filters(ex_symbol)
        qty = snap(size, step, ROUND_DOWN)
        if qty <= 0:
            raise VenueError(self.name, "place_market_order", f"size {size} below step {step}")
        data = await self._request(
            "POST",
            "/fapi/v1/order",
            {"symbol": ex_symbol, "side": side.value, "type": "MARKET", "quantity": _fmt(qty)},
            signed=True,
            operation="place_market_order",
        )
        return f"{ex_symbol}:{data['orderId']}"

    async def get_positions(self) -> Dict[str, Position]:
        rows = await self._request("GET", "/fapi/v2/positionRisk", signed=True, operation="get_positions")
        out: Dict[str, Position] = {}
        for row in rows:
            ex_symbol = row.get("symbol", "")
            if not ex_symbol.endswith(self.quote_asset):
                continue
            size = float(row.get("positionAmt", 0.0))
            out[self.base_symbol(ex_symbol)] = Position(
                symbol=self.base_symbol(ex_symbol),
                signed_size=size,
                notional_value=float(row.get("notional", 0.0)),
                entry_price=float(row.get("entryPrice", 0.0)),
            )
        return out

    async def get_equity(self) -> float:
        data = await self._request("GET", "/fapi/v2/account", signed=True, operation="get_equity")
        return float(data.get("totalMarginBalance", 0.0))
