"""
ClosingManager: unwind the largest maker exposure first.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.core.types import Venue
from hedgebot.infra.clock import Clock
from hedgebot.state.order_registry import ActiveOrder, OrderRegistry
from hedgebot.state.position_ledger import ExchangePositions, PositionLedger
from hedgebot.strategy.opening import place_maker_order, register_maker_order
from hedgebot.venues.base import MakerVenue


class ClosingManager:
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

    def select_symbol(self, maker_positions: ExchangePositions) -> Optional[str]:
        """Largest absolute maker exposure, or None when nothing is open."""
        open_symbols = [s for s in self.convention.symbols if not maker_positions.get(s).is_zero]
        if not open_symbols:
            return None
        # max() keeps the first of equal keys
        return max(open_symbols, key=maker_positions.abs_exposure)

    async def execute_closing(self, order_size: float, spread_percent: float) -> Optional[ActiveOrder]:
        maker_positions = self.ledger.get_positions(Venue.MAKER)
        symbol = self.select_symbol(maker_positions)
        if symbol is None:
            self._log.info(json.dumps({"event": "closing_nothing_open"}))
            return None

        pos = maker_positions.get(symbol)
        side = pos.direction.closing_side()
        size = min(pos.abs_notional, order_size)
        if size <= 0:
            return None
        self._log.info(json.dumps({
            "event": "closing_selected",
            "symbol": symbol,
            "maker_side": side.value,
            "position_value": pos.notional_value,
            "close_size": size,
        }))

        ack = await place_maker_order(self._maker, symbol, side, size, spread_percent)
        order = register_maker_order(self.registry, self._clock, ack, symbol, side, size, "CLOSING")
        if self._metrics is not None:
            try:
                self._metrics.orders_placed.labels(
                    venue=Venue.MAKER.value, symbol=symbol, side=side.value, purpose="CLOSING"
                ).inc()
            except Exception:
                self._log.debug("order metric update failed", exc_info=True)
        return order
