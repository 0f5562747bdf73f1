"""
OrderLifecycleTracker: poll active orders and hedge their fills.

Each tick:
- snapshot the registry
- query every order's venue concurrently
- on a status or filled-size change, update the registry, then
  FILLED    -> hedge everything not yet hedged
  PARTIAL   -> hedge the newly filled delta (subject to pre-execution)
  CANCELLED -> drop it; nothing new is hedged
- successful hedges update the ledger for both venues

Errors are contained per order: one failing status query or hedge never
stops the rest of the tick.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Dict, Mapping, Optional, Tuple

from hedgebot.core.errors import HedgeExecutionError, UnsupportedHedgeError
from hedgebot.core.types import OrderStatus, Venue
from hedgebot.execution.hedge_executor import ExecutionContext, FastExecutionConfig, HedgeExecutor
from hedgebot.infra.clock import CancelToken, Clock, PeriodicTask
from hedgebot.state.order_registry import ActiveOrder, OrderRegistry
from hedgebot.state.position_ledger import PositionLedger
from hedgebot.venues.base import CommonVenue

_EPS = 1e-9


class OrderLifecycleTracker:
    def __init__(
        self,
        registry: OrderRegistry,
        ledger: PositionLedger,
        executor: HedgeExecutor,
        venues: Mapping[Venue, CommonVenue],
        config: Optional[FastExecutionConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.executor = executor
        self._venues = dict(venues)
        self.config = config or executor.config
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics
        self._hedged: Dict[Tuple[Venue, str], float] = {}
        self._token: Optional[CancelToken] = None
        self.fills_detected = 0

    def hedged_size(self, venue: Venue, order_id: str) -> float:
        return self._hedged.get((venue, order_id), 0.0)

    # ─────────────────────────────────────────────────────────────────────
    # Loop
    # ─────────────────────────────────────────────────────────────────────

    async def run(self, token: CancelToken) -> None:
        self._token = token
        task = PeriodicTask(
            "order_tracker", self.config.check_interval, self.check_orders, self._clock, token, self._log
        )
        await task.run()

    async def check_orders(self) -> None:
        orders = self.registry.list_active()
        if self._metrics is not None:
            try:
                self._metrics.active_orders.set(len(orders))
            except Exception:
                self._log.debug("active order metric update failed", exc_info=True)
        if not orders:
            return
        results = await asyncio.gather(*(self._check_one(o) for o in orders), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _check_one(self, order: ActiveOrder) -> None:
        try:
            await self.check_order(order)
        except UnsupportedHedgeError:
            # configuration error: surface loudly, do not hide behind the per-order guard
            self._log.critical(json.dumps({"event": "unsupported_hedge", **order.to_dict()}))
            raise
        except Exception as exc:
            self._log.error(json.dumps({
                "event": "order_check_failed",
                "order_id": order.order_id,
                "venue": order.venue.value,
                "symbol": order.symbol,
                "err": str(exc),
            }))

    async def check_order(self, order: ActiveOrder) -> Optional[ExecutionContext]:
        """Poll one order and act on any change. Returns the hedge context, if any."""
        client = self._venues[order.venue]
        try:
            report = await client.get_order_status(order.order_id)
        except Exception as exc:
            if self._metrics is not None:
                try:
                    self._metrics.order_status_errors.labels(venue=order.venue.value).inc()
                except Exception:
                    self._log.debug("status error metric update failed", exc_info=True)
            self._log.warning(json.dumps({
                "event": "order_status_error",
                "order_id": order.order_id,
                "venue": order.venue.value,
                "symbol": order.symbol,
                "err": str(exc),
            }))
            return None

        detection = self._clock.monotonic()
        filled = max(report.filled_size, order.filled_size)
        if report.status is order.status and abs(filled - order.filled_size) < _EPS:
            return None

        updated = self.registry.update_status(order.order_id, report.status, filled, venue=order.venue)
        if updated is None:
            # removed concurrently (e.g. emergency path); forget its hedge progress
            self._hedged.pop(order.key, None)
            return None
        self._log.info(json.dumps({
            "event": "order_status_changed",
            "order_id": order.order_id,
            "symbol": order.symbol,
            "old_status": order.status.value,
            "new_status": report.status.value,
            "old_filled": order.filled_size,
            "new_filled": filled,
        }))

        if report.status is OrderStatus.FILLED:
            return await self._on_filled(updated, detection)
        if report.status is OrderStatus.PARTIAL:
            return await self._on_partial(updated, detection)
        if report.status is OrderStatus.CANCELLED:
            self._on_cancelled(updated)
        return None

    # ─────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────

    async def _on_filled(self, order: ActiveOrder, detection: float) -> Optional[ExecutionContext]:
        self.fills_detected += 1
        try:
            return await self._hedge_unhedged(order, detection)
        finally:
            self._hedged.pop(order.key, None)

    async def _on_partial(self, order: ActiveOrder, detection: float) -> Optional[ExecutionContext]:
        if not self.config.enable_pre_execution and order.fill_ratio < self.config.partial_fill_threshold:
            self._log.debug(json.dumps({
                "event": "partial_fill_deferred",
                "order_id": order.order_id,
                "fill_ratio": order.fill_ratio,
                "threshold": self.config.partial_fill_threshold,
            }))
            return None
        return await self._hedge_unhedged(order, detection)

    def _on_cancelled(self, order: ActiveOrder) -> None:
        unhedged = order.filled_size - self._hedged.pop(order.key, 0.0)
        payload = {
            "event": "order_cancelled",
            "order_id": order.order_id,
            "symbol": order.symbol,
            "filled_size": order.filled_size,
        }
        if unhedged > _EPS:
            # left for the balance reconciler
            self._log.warning(json.dumps({**payload, "unhedged": unhedged}))
        else:
            self._log.info(json.dumps(payload))

    async def _hedge_unhedged(self, order: ActiveOrder, detection: float) -> Optional[ExecutionContext]:
        delta = order.filled_size - self._hedged.get(order.key, 0.0)
        if delta <= _EPS:
            return None
        try:
            ctx = await self.executor.execute_fast_hedge(
                order.order_id,
                order.symbol,
                order.side,
                delta,
                order.price,
                venue=order.venue,
                detection_time=detection,
                token=self._token,
            )
        except HedgeExecutionError as exc:
            # ledger stays un-mirrored until the next detectable event or reconciliation
            self._log.error(json.dumps({
                "event": "hedge_gave_up",
                "order_id": order.order_id,
                "symbol": order.symbol,
                "size": delta,
                "err": str(exc),
            }))
            return exc.context
        self._hedged[order.key] = self._hedged.get(order.key, 0.0) + delta

        self.ledger.apply_fill(order.venue, order.symbol, order.side, delta, order.price)
        mirror_px = ctx.execution_price or order.price
        self.ledger.apply_fill(order.venue.other(), order.symbol, ctx.hedge_side, delta, mirror_px)
        return ctx
