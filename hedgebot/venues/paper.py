"""
In-memory venue implementing both the taker and maker contracts.

Used for dry runs (HEDGE_DRY_RUN=1) and throughout the test suite.

- Prices come from a settable table
- Maker orders rest until ``fill`` / ``cancel`` is called (or fill instantly
  with ``auto_fill=True``)
- Taker and market orders fill immediately at the table price
- ``fail_next(op, n)`` injects failures for retry testing
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from hedgebot.core.errors import VenueError
from hedgebot.core.types import OrderSide, OrderStatus
from hedgebot.state.position_ledger import Position
from hedgebot.venues.base import OrderAck, OrderStatusReport, maker_price


@dataclass
class PaperOrder:
    order_id: str
    symbol: str
    side: OrderSide
    notional: float
    price: float
    status: OrderStatus = OrderStatus.PENDING
    filled: float = 0.0
    kind: str = "maker"


class PaperVenue:
    def __init__(
        self,
        name: str,
        prices: Optional[Mapping[str, float]] = None,
        equity: float = 1000.0,
        auto_fill: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.prices: Dict[str, float] = {k.upper(): v for k, v in (prices or {"BTC": 60000.0, "ETH": 3000.0}).items()}
        self.equity = equity
        self.auto_fill = auto_fill
        self.orders: Dict[str, PaperOrder] = {}
        self.calls: List[tuple] = []
        self._sizes: Dict[str, float] = defaultdict(float)  # base units
        self._values: Dict[str, float] = defaultdict(float)  # quote units at fill prices
        self._ids = itertools.count(1)
        self._failures: Dict[str, int] = defaultdict(int)
        self._log = logger or logging.getLogger("hedgebot")

    # ─────────────────────────────────────────────────────────────────────
    # Test controls
    # ─────────────────────────────────────────────────────────────────────

    def set_price(self, symbol: str, price: float) -> None:
        self.prices[symbol.upper()] = price

    def fail_next(self, operation: str, times: int = 1) -> None:
        self._failures[operation] += times

    def set_position(self, symbol: str, size: float, price: Optional[float] = None) -> None:
        px = price or self.prices[symbol.upper()]
        self._sizes[symbol.upper()] = size
        self._values[symbol.upper()] = size * px

    def fill(self, order_id: str, notional: Optional[float] = None) -> None:
        """Fill a resting order fully, or by ``notional`` more."""
        order = self.orders[order_id]
        if order.status.is_terminal:
            raise ValueError(f"order {order_id} already {order.status.value}")
        amount = order.notional - order.filled if notional is None else min(notional, order.notional - order.filled)
        self._book(order.symbol, order.side, amount, order.price)
        order.filled += amount
        order.status = OrderStatus.FILLED if order.filled >= order.notional - 1e-9 else OrderStatus.PARTIAL

    def cancel(self, order_id: str) -> None:
        self.orders[order_id].status = OrderStatus.CANCELLED

    # ─────────────────────────────────────────────────────────────────────
    # Contract
    # ─────────────────────────────────────────────────────────────────────

    def _check(self, operation: str) -> None:
        self.calls.append((operation,))
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            raise VenueError(self.name, operation, "injected failure")

    def _price(self, symbol: str) -> float:
        try:
            return self.prices[symbol.upper()]
        except KeyError:
            raise VenueError(self.name, "get_current_price", f"unknown symbol {symbol}") from None

    def _book(self, symbol: str, side: OrderSide, notional: float, price: float) -> None:
        sym = symbol.upper()
        self._sizes[sym] += side.sign * notional / price
        self._values[sym] += side.sign * notional
        if abs(self._sizes[sym]) < 1e-12:
            self._sizes[sym] = 0.0
            self._values[sym] = 0.0

    def _new_id(self) -> str:
        return f"{self.name}-{next(self._ids)}"

    async def get_current_price(self, symbol: str) -> float:
        self._check("get_current_price")
        return self._price(symbol)

    async def get_order_status(self, order_id: str) -> OrderStatusReport:
        self._check("get_order_status")
        order = self.orders.get(order_id)
        if order is None:
            raise VenueError(self.name, "get_order_status", f"unknown order {order_id}")
        return OrderStatusReport(status=order.status, filled_size=order.filled)

    async def place_market_order(self, symbol: str, side: OrderSide, size: float) -> str:
        self._check("place_market_order")
        price = self._price(symbol)
        oid = self._new_id()
        notional = size * price
        self.orders[oid] = PaperOrder(oid, symbol.upper(), side, notional, price, OrderStatus.FILLED, notional, "market")
        self._book(symbol, side, notional, price)
        return oid

    async def _taker(self, operation: str, symbol: str, side: OrderSide, notional: float) -> OrderAck:
        self._check(operation)
        price = self._price(symbol)
        oid = self._new_id()
        self.orders[oid] = PaperOrder(oid, symbol.upper(), side, notional, price, OrderStatus.FILLED, notional, "taker")
        self._book(symbol, side, notional, price)
        return OrderAck(order_id=oid, price=price)

    async def place_taker_long(self, symbol: str, notional: float, leverage: int) -> OrderAck:
        return await self._taker("place_taker_long", symbol, OrderSide.BUY, notional)

    async def place_taker_short(self, symbol: str, notional: float, leverage: int) -> OrderAck:
        return await self._taker("place_taker_short", symbol, OrderSide.SELL, notional)

    async def _maker(self, operation: str, symbol: str, side: OrderSide, notional: float, spread: float) -> OrderAck:
        self._check(operation)
        price = round(maker_price(self._price(symbol), side, spread), 2)
        oid = self._new_id()
        self.orders[oid] = PaperOrder(oid, symbol.upper(), side, notional, price)
        if self.auto_fill:
            self.fill(oid)
        return OrderAck(order_id=oid, price=price)

    async def place_maker_long(self, symbol: str, notional: float, spread_percent: float) -> OrderAck:
        return await self._maker("place_maker_long", symbol, OrderSide.BUY, notional, spread_percent)

    async def place_maker_short(self, symbol: str, notional: float, spread_percent: float) -> OrderAck:
        return await self._maker("place_maker_short", symbol, OrderSide.SELL, notional, spread_percent)

    async def get_positions(self) -> Dict[str, Position]:
        self._check("get_positions")
        out: Dict[str, Position] = {}
        for sym, size in self._sizes.items():
            value = self._values[sym]
            entry = abs(value / size) if size else 0.0
            out[sym] = Position(symbol=sym, signed_size=size, notional_value=value, entry_price=entry)
        return out

    async def get_equity(self) -> float:
        self._check("get_equity")
        return self.equity

    async def close(self) -> None:
        return None
