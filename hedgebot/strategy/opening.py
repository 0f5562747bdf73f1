"""
OpeningManager: grow the hedge one maker order at a time.

The symbol with the smallest absolute maker exposure is opened next (ties go
to the first configured symbol). Only the maker order is placed here; the
taker mirror follows when the order tracker sees the fill.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.core.types import OrderSide, OrderStatus, PositionDirection, Venue
from hedgebot.infra.clock import Clock
from hedgebot.state.order_registry import ActiveOrder, OrderRegistry
from hedgebot.state.position_ledger import ExchangePositions, PositionLedger
from hedgebot.venues.base import MakerVenue, OrderAck


async def place_maker_order(
    maker: MakerVenue, symbol: str, side: OrderSide, notional: float, spread_percent: float
) -> OrderAck:
    if side is OrderSide.BUY:
        return await maker.place_maker_long(symbol, notional, spread_percent)
    return await maker.place_maker_short(symbol, notional, spread_percent)


def register_maker_order(
    registry: OrderRegistry,
    clock: Clock,
    ack: OrderAck,
    symbol: str,
    side: OrderSide,
    notional: float,
    purpose: str,
) -> ActiveOrder:
    now = clock.time()
    order = ActiveOrder(
        order_id=ack.order_id,
        venue=Venue.MAKER,
        symbol=symbol,
        side=side,
        requested_size=notional,
        price=ack.price,
        status=OrderStatus.PENDING,
        created_at=now,
        updated_at=now,
        purpose=purpose,
    )
    registry.add(order)
    return order


class OpeningManager:
    def __init__(
        self,
        convention: HedgeConvention,
        ledger: PositionLedger,
        registry: OrderRegistry,
        maker: MakerVenue,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self.convention = convention
        self.ledger = ledger
        self.registry = registry
        self._maker = maker
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics

    def select_symbol(self, maker_positions: ExchangePositions) -> str:
        # min() keeps the first of equal keys, which is the configured priority
        return min(self.convention.symbols, key=maker_positions.abs_exposure)

    async def execute_opening(self, order_size: float, spread_percent: float) -> ActiveOrder:
        maker_positions = self.ledger.get_positions(Venue.MAKER)
        symbol = self.select_symbol(maker_positions)
        direction: PositionDirection = self.convention.direction(Venue.MAKER, symbol)
        side = direction.opening_side()
        self._log.info(json.dumps({
            "event": "opening_selected",
            "symbol": symbol,
            "maker_side": side.value,
            "exposures": {s: maker_positions.abs_exposure(s) for s in self.convention.symbols},
        }))

        ack = await place_maker_order(self._maker, symbol, side, order_size, spread_percent)
        order = register_maker_order(self.registry, self._clock, ack, symbol, side, order_size, "OPENING")
        if self._metrics is not None:
            try:
                self._metrics.orders_placed.labels(
                    venue=Venue.MAKER.value, symbol=symbol, side=side.value, purpose="OPENING"
                ).inc()
            except Exception:
                self._log.debug("order metric update failed", exc_info=True)
        return order
