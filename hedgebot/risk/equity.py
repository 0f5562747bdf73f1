"""
Equity sources for the leverage proxy.

StaticEquity returns a configured reference figure for both venues.
VenueEquity asks each venue that can report equity and falls back to the
static figure when a venue cannot (or the call fails).
"""

from __future__ import annotations

import json
import logging
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

from hedgebot.core.types import Venue


@runtime_checkable
class EquitySource(Protocol):
    async def get_equity(self, venue: Venue) -> float: ...


class StaticEquity:
    def __init__(self, amount: float = 1000.0, per_venue: Optional[Mapping[Venue, float]] = None) -> None:
        self.amount = amount
        self._per_venue: Dict[Venue, float] = dict(per_venue or {})

    async def get_equity(self, venue: Venue) -> float:
        return self._per_venue.get(venue, self.amount)


class VenueEquity:
    def __init__(
        self,
        venues: Mapping[Venue, object],
        fallback: Optional[StaticEquity] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._venues = dict(venues)
        self._fallback = fallback or StaticEquity()
        self._log = logger or logging.getLogger("hedgebot")

    async def get_equity(self, venue: Venue) -> float:
        client = self._venues.get(venue)
        getter = getattr(client, "get_equity", None)
        if getter is None:
            return await self._fallback.get_equity(venue)
        try:
            value = float(await getter())
        except Exception as exc:
            self._log.warning(json.dumps({"event": "equity_fetch_failed", "venue": venue.value, "err": str(exc)}))
            return await self._fallback.get_equity(venue)
        if value <= 0:
            return await self._fallback.get_equity(venue)
        return value


async def equity_by_venue(source: EquitySource) -> Dict[Venue, float]:
    return {v: await source.get_equity(v) for v in Venue}
