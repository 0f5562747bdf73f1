"""
OrderRegistry: in-flight maker orders keyed by (venue, order id).

Orders are added when the opening/closing managers place them and leave the
registry the moment they reach a terminal status (FILLED or CANCELLED),
inside the same critical section as the status update.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from hedgebot.core.rwlock import ReadWriteLock
from hedgebot.core.types import OrderSide, OrderStatus, Venue
from hedgebot.infra.clock import Clock


@dataclass
class ActiveOrder:
    """An order the tracker is watching."""
    order_id: str
    venue: Venue
    symbol: str
    side: OrderSide
    requested_size: float  # quote notional
    price: float
    status: OrderStatus = OrderStatus.PENDING
    filled_size: float = 0.0  # cumulative, quote notional
    created_at: float = 0.0
    updated_at: float = 0.0
    purpose: str = "OPENING"

    @property
    def key(self) -> Tuple[Venue, str]:
        return (self.venue, self.order_id)

    @property
    def remaining(self) -> float:
        return max(0.0, self.requested_size - self.filled_size)

    @property
    def fill_ratio(self) -> float:
        if self.requested_size <= 0:
            return 0.0
        return min(1.0, self.filled_size / self.requested_size)

    def to_dict(self) -> Dict[str, object]:
        return {
            "order_id": self.order_id,
            "venue": self.venue.value,
            "symbol": self.symbol,
            "side": self.side.value,
            "size": self.requested_size,
            "price": self.price,
            "status": self.status.value,
            "filled_size": self.filled_size,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "purpose": self.purpose,
        }


class OrderRegistry:
    """
    Concurrency-safe store of active orders.

    Read contract: every read returns copies; a caller iterating the result of
    ``list_active`` is unaffected by later updates or removals.
    """

    def __init__(self, clock: Optional[Clock] = None, logger: Optional[logging.Logger] = None) -> None:
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._lock = ReadWriteLock()
        self._orders: Dict[Tuple[Venue, str], ActiveOrder] = {}

    def _key(self, order_id: str, venue: Optional[Venue]) -> Optional[Tuple[Venue, str]]:
        # caller must hold the lock
        if venue is not None:
            return (venue, order_id)
        for key in self._orders:
            if key[1] == order_id:
                return key
        return None

    def add(self, order: ActiveOrder) -> None:
        now = self._clock.time()
        stored = replace(order)
        if not stored.created_at:
            stored.created_at = now
        stored.updated_at = stored.updated_at or now
        with self._lock.write():
            if stored.key in self._orders:
                raise ValueError(f"Duplicate order id {order.order_id} on {order.venue.value}")
            self._orders[stored.key] = stored
        self._log.info(json.dumps({"event": "order_registered", **stored.to_dict()}))

    def get(self, order_id: str, venue: Optional[Venue] = None) -> Optional[ActiveOrder]:
        with self._lock.read():
            key = self._key(order_id, venue)
            order = self._orders.get(key) if key else None
            return replace(order) if order else None

    def list_active(self) -> List[ActiveOrder]:
        with self._lock.read():
            return [replace(o) for o in self._orders.values()]

    def count(self) -> int:
        with self._lock.read():
            return len(self._orders)

    def __len__(self) -> int:
        return self.count()

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        filled_size: float,
        venue: Optional[Venue] = None,
    ) -> Optional[ActiveOrder]:
        """
        Apply a status observation.

        Terminal statuses remove the order in the same critical section.
        Returns a copy of the updated order, or None if it is unknown.
        """
        with self._lock.write():
            key = self._key(order_id, venue)
            order = self._orders.get(key) if key else None
            if order is None:
                return None
            order.status = status
            order.filled_size = max(order.filled_size, filled_size)
            order.updated_at = self._clock.time()
            if status.is_terminal:
                del self._orders[key]
            result = replace(order)
        self._log.debug(json.dumps({
            "event": "order_status_updated",
            "order_id": order_id,
            "status": status.value,
            "filled_size": result.filled_size,
            "removed": status.is_terminal,
        }))
        return result

    def remove(self, order_id: str, venue: Optional[Venue] = None) -> Optional[ActiveOrder]:
        with self._lock.write():
            key = self._key(order_id, venue)
            order = self._orders.pop(key, None) if key else None
        if order is not None:
            self._log.info(json.dumps({"event": "order_removed", "order_id": order_id, "status": order.status.value}))
        return order

    def summary(self) -> Dict[str, object]:
        orders = self.list_active()
        return {
            "active_orders": len(orders),
            "orders": [o.to_dict() for o in orders],
        }
