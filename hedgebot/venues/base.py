"""
Venue contracts consumed by the hedge engine.

Units:
- ``notional`` arguments and ``filled_size`` are quote-currency amounts
- ``place_market_order`` size is in base units (used for emergency unwind)

Optional capabilities (``get_positions``, ``get_equity``) are discovered with
``isinstance`` against the runtime-checkable protocols below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol, runtime_checkable

from hedgebot.core.types import OrderSide, OrderStatus
from hedgebot.state.position_ledger import Position


@dataclass(frozen=True)
class OrderAck:
    order_id: str
    price: float


@dataclass(frozen=True)
class OrderStatusReport:
    status: OrderStatus
    filled_size: float  # cumulative, quote notional


@runtime_checkable
class CommonVenue(Protocol):
    name: str

    async def get_order_status(self, order_id: str) -> OrderStatusReport: ...

    async def get_current_price(self, symbol: str) -> float: ...

    async def place_market_order(self, symbol: str, side: OrderSide, size: float) -> str: ...


@runtime_checkable
class TakerVenue(CommonVenue, Protocol):
    async def place_taker_long(self, symbol: str, notional: float, leverage: int) -> OrderAck: ...

    async def place_taker_short(self, symbol: str, notional: float, leverage: int) -> OrderAck: ...


@runtime_checkable
class MakerVenue(CommonVenue, Protocol):
    async def place_maker_long(self, symbol: str, notional: float, spread_percent: float) -> OrderAck: ...

    async def place_maker_short(self, symbol: str, notional: float, spread_percent: float) -> OrderAck: ...


@runtime_checkable
class PositionSource(Protocol):
    async def get_positions(self) -> Dict[str, Position]: ...


@runtime_checkable
class EquityProvider(Protocol):
    async def get_equity(self) -> float: ...


def maker_price(reference: float, side: OrderSide, spread_percent: float) -> float:
    """Resting price: below market for buys, above for sells."""
    offset = spread_percent / 100.0
    if side is OrderSide.BUY:
        return reference * (1 - offset)
    return reference * (1 + offset)
