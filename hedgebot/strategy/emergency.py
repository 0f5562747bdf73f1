"""
EmergencyCloser: flatten every open position on both venues at market.

Best effort: a failure on one position is logged and the sweep moves on.
Speed over completeness; whatever survives is retried on the next cycle.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from hedgebot.core.types import Venue
from hedgebot.state.position_ledger import PositionLedger
from hedgebot.venues.base import CommonVenue


@dataclass
class EmergencyCloseResult:
    attempted: int = 0
    closed: List[Tuple[Venue, str, str]] = field(default_factory=list)  # (venue, symbol, order id)
    failed: List[Tuple[Venue, str, str]] = field(default_factory=list)  # (venue, symbol, error)

    @property
    def complete(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, object]:
        return {
            "attempted": self.attempted,
            "closed": [(v.value, s, oid) for v, s, oid in self.closed],
            "failed": [(v.value, s, err) for v, s, err in self.failed],
        }


class EmergencyCloser:
    def __init__(
        self,
        ledger: PositionLedger,
        venues: Mapping[Venue, CommonVenue],
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self.ledger = ledger
        self._venues = dict(venues)
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics

    async def close_all(self) -> EmergencyCloseResult:
        result = EmergencyCloseResult()
        snap = self.ledger.snapshot()
        self._log.critical(json.dumps({"event": "emergency_close_started", "leverage": {
            v.value: lev for v, lev in snap.leverage_by_venue.items()
        }}))
        if self._metrics is not None:
            try:
                self._metrics.emergency_closes.inc()
            except Exception:
                self._log.debug("emergency metric update failed", exc_info=True)

        for venue in (Venue.TAKER, Venue.MAKER):
            client = self._venues[venue]
            for symbol, pos in snap.venue(venue).positions.items():
                if pos.is_zero or pos.direction is None:
                    continue
                side = pos.direction.closing_side()
                size = abs(pos.signed_size)
                result.attempted += 1
                try:
                    order_id = await client.place_market_order(symbol, side, size)
                except Exception as exc:
                    result.failed.append((venue, symbol, str(exc)))
                    self._log.error(json.dumps({
                        "event": "emergency_close_failed",
                        "venue": venue.value,
                        "symbol": symbol,
                        "side": side.value,
                        "size": size,
                        "err": str(exc),
                    }))
                    continue
                result.closed.append((venue, symbol, order_id))
                self._log.warning(json.dumps({
                    "event": "emergency_position_closed",
                    "venue": venue.value,
                    "symbol": symbol,
                    "side": side.value,
                    "size": size,
                    "order_id": order_id,
                }))

        self._log.critical(json.dumps({"event": "emergency_close_finished", **result.to_dict()}))
        return result
