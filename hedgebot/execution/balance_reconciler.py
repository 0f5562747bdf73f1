"""
BalanceReconciler: restore per-symbol hedge balance between the venues.

For every configured symbol (venue A = taker, venue B = maker):
    expected = (|A| + |B|) / 2
    delta    = |A| - |B|
    pct      = |delta| / expected * 100
An adjustment of |delta| / 2 is needed when pct > tolerance and
|delta| > min_adjust_amount. The under-exposed venue grows by that amount in
its hedge-correct direction and the over-exposed venue gives back the same
amount, so both legs land on the expected balance. Adjustment orders are
placed immediately and are not handed to the order tracker.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from hedgebot.core.errors import VenueError
from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.core.types import AdjustmentSide, PositionDirection, Venue
from hedgebot.infra.clock import Clock
from hedgebot.state.position_ledger import ExchangePositions
from hedgebot.venues.base import MakerVenue, OrderAck, TakerVenue


@dataclass
class BalanceConfig:
    tolerance_percent: float = 5.0
    min_adjust_amount: float = 50.0  # quote notional
    leverage: int = 3  # taker-side adjustments
    spread_percent: float = 0.1  # maker-side adjustments


@dataclass(frozen=True)
class PositionImbalance:
    symbol: str
    taker_exposure: float
    maker_exposure: float
    expected_balance: float
    delta: float
    imbalance_percent: float
    needs_adjustment: bool
    adjustment_side: AdjustmentSide = AdjustmentSide.NONE
    adjustment_amount: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "taker_exposure": self.taker_exposure,
            "maker_exposure": self.maker_exposure,
            "expected_balance": self.expected_balance,
            "delta": self.delta,
            "imbalance_pct": round(self.imbalance_percent, 4),
            "needs_adjustment": self.needs_adjustment,
            "adjustment_side": self.adjustment_side.value,
            "adjustment_amount": self.adjustment_amount,
        }


@dataclass
class HedgeBalanceStatus:
    is_balanced: bool
    imbalances: List[PositionImbalance] = field(default_factory=list)
    total_imbalance_value: float = 0.0
    checked_at: float = 0.0
    recommendation: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_balanced": self.is_balanced,
            "imbalances": [i.to_dict() for i in self.imbalances],
            "total_imbalance_value": self.total_imbalance_value,
            "checked_at": self.checked_at,
            "recommendation": self.recommendation,
        }


def compute_imbalance(
    symbol: str,
    taker_exposure: float,
    maker_exposure: float,
    convention: HedgeConvention,
    tolerance_percent: float,
    min_adjust_amount: float,
) -> PositionImbalance:
    a, b = abs(taker_exposure), abs(maker_exposure)
    expected = (a + b) / 2
    delta = a - b
    pct = abs(delta) / expected * 100 if expected > 0 else 0.0
    needs = pct > tolerance_percent and abs(delta) > min_adjust_amount
    side = AdjustmentSide.NONE
    amount = 0.0
    if needs:
        # grow whichever venue is behind, in its own hedge-correct direction
        lagging = Venue.MAKER if a > b else Venue.TAKER
        side = AdjustmentSide.for_increase(lagging, convention.direction(lagging, symbol))
        amount = abs(delta) / 2
    return PositionImbalance(
        symbol=symbol,
        taker_exposure=a,
        maker_exposure=b,
        expected_balance=expected,
        delta=delta,
        imbalance_percent=pct,
        needs_adjustment=needs,
        adjustment_side=side,
        adjustment_amount=amount,
    )


class BalanceReconciler:
    def __init__(
        self,
        convention: HedgeConvention,
        taker: TakerVenue,
        maker: MakerVenue,
        config: Optional[BalanceConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self.convention = convention
        self._taker = taker
        self._maker = maker
        self.config = config or BalanceConfig()
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics

    def set_tolerance(self, tolerance_percent: float) -> None:
        if tolerance_percent < 0:
            raise ValueError("tolerance must be >= 0")
        self.config.tolerance_percent = tolerance_percent
        self._log.info(json.dumps({"event": "balance_tolerance_updated", "tolerance_pct": tolerance_percent}))

    def set_min_adjust_amount(self, amount: float) -> None:
        if amount < 0:
            raise ValueError("min adjust amount must be >= 0")
        self.config.min_adjust_amount = amount
        self._log.info(json.dumps({"event": "balance_min_adjust_updated", "min_adjust": amount}))

    def check_balance(self, taker: ExchangePositions, maker: ExchangePositions) -> HedgeBalanceStatus:
        imbalances: List[PositionImbalance] = []
        total = 0.0
        for symbol in self.convention.symbols:
            imb = compute_imbalance(
                symbol,
                taker.abs_exposure(symbol),
                maker.abs_exposure(symbol),
                self.convention,
                self.config.tolerance_percent,
                self.config.min_adjust_amount,
            )
            if self._metrics is not None:
                try:
                    self._metrics.imbalance_pct.labels(symbol=symbol).set(imb.imbalance_percent)
                except Exception:
                    self._log.debug("imbalance metric update failed", exc_info=True)
            if imb.needs_adjustment:
                imbalances.append(imb)
                total += abs(imb.delta)
        status = HedgeBalanceStatus(
            is_balanced=not imbalances,
            imbalances=imbalances,
            total_imbalance_value=total,
            checked_at=self._clock.time(),
        )
        status.recommendation = self.get_recommendation(status)
        return status

    def get_recommendation(self, status: HedgeBalanceStatus) -> str:
        if status.is_balanced:
            return "Positions are well balanced. No action required."
        parts = [
            f"{i.symbol}: {i.adjustment_side.value} ({i.adjustment_amount:.2f} adjustment)"
            for i in status.imbalances
        ]
        return "Balance adjustments needed: " + "; ".join(parts)

    async def execute_adjustment(self, status: HedgeBalanceStatus) -> List[OrderAck]:
        """Place the corrective pair of orders per imbalance; the first failure aborts the pass."""
        if status.is_balanced:
            self._log.debug(json.dumps({"event": "balance_ok"}))
            return []
        self._log.warning(json.dumps({
            "event": "balance_adjustment_started",
            "imbalances": len(status.imbalances),
            "total_imbalance": status.total_imbalance_value,
        }))
        acks: List[OrderAck] = []
        for imb in status.imbalances:
            try:
                placed = await self._adjust(imb)
            except VenueError:
                self._log.error(json.dumps({"event": "balance_adjustment_failed", **imb.to_dict()}))
                raise
            acks.extend(placed)
            if self._metrics is not None:
                try:
                    self._metrics.balance_adjustments.labels(
                        symbol=imb.symbol, side=imb.adjustment_side.value
                    ).inc()
                except Exception:
                    self._log.debug("balance metric update failed", exc_info=True)
            self._log.info(json.dumps({
                "event": "balance_adjusted",
                "order_ids": [a.order_id for a in placed],
                **imb.to_dict(),
            }))
        return acks

    async def _adjust(self, imb: PositionImbalance) -> List[OrderAck]:
        """Grow the lagging venue and shrink the leading one, each by the adjustment amount."""
        side = imb.adjustment_side
        amount = imb.adjustment_amount
        expected = self.convention.direction(side.venue, imb.symbol)
        if side.direction is not expected:
            raise ValueError(f"{side.value} contradicts hedge convention for {imb.symbol}")
        grow = await self._place(side.venue, imb.symbol, side.direction, amount)
        leading = side.venue.other()
        shrink_direction = self.convention.direction(leading, imb.symbol).inverse()
        shrink = await self._place(leading, imb.symbol, shrink_direction, amount)
        return [grow, shrink]

    async def _place(self, venue: Venue, symbol: str, direction: PositionDirection, amount: float) -> OrderAck:
        if venue is Venue.MAKER:
            if direction is PositionDirection.SHORT:
                return await self._maker.place_maker_short(symbol, amount, self.config.spread_percent)
            return await self._maker.place_maker_long(symbol, amount, self.config.spread_percent)
        if direction is PositionDirection.LONG:
            return await self._taker.place_taker_long(symbol, amount, self.config.leverage)
        return await self._taker.place_taker_short(symbol, amount, self.config.leverage)
