"""
PositionLedger: per-venue, per-symbol positions for both legs of the hedge.

Handles:
- Copy-on-read snapshots (callers never see a live reference)
- Position replacement from venue refreshes
- Incremental updates from own and mirrored fills
- Leverage proxy: sum(|notional|) / equity, per venue

Thread Safety:
    Single-writer/multi-reader via ReadWriteLock. Mutations are exclusive;
    reads share the lock and return frozen copies.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from hedgebot.core.rwlock import ReadWriteLock
from hedgebot.core.types import OrderSide, PositionDirection, Venue
from hedgebot.infra.clock import Clock

_EPS = 1e-12


@dataclass(frozen=True)
class Position:
    """Signed position. Positive size is long, negative is short."""
    symbol: str
    signed_size: float = 0.0  # base units
    notional_value: float = 0.0  # quote units, same sign as size
    leverage: float = 0.0
    entry_price: float = 0.0

    @property
    def is_zero(self) -> bool:
        return abs(self.signed_size) < _EPS and abs(self.notional_value) < _EPS

    @property
    def abs_notional(self) -> float:
        return abs(self.notional_value)

    @property
    def direction(self) -> Optional[PositionDirection]:
        if self.is_zero:
            return None
        ref = self.signed_size if abs(self.signed_size) >= _EPS else self.notional_value
        return PositionDirection.LONG if ref > 0 else PositionDirection.SHORT

    def to_dict(self) -> Dict[str, float | str]:
        return {
            "symbol": self.symbol,
            "size": self.signed_size,
            "value": self.notional_value,
            "leverage": self.leverage,
            "entry_price": self.entry_price,
        }


@dataclass(frozen=True)
class ExchangePositions:
    """Immutable per-venue snapshot."""
    venue: Venue
    positions: Mapping[str, Position]
    aggregate_leverage: float
    last_updated: float

    def get(self, symbol: str) -> Position:
        return self.positions.get(symbol, Position(symbol=symbol))

    def abs_exposure(self, symbol: str) -> float:
        return self.get(symbol).abs_notional

    @property
    def total_abs_notional(self) -> float:
        return sum(p.abs_notional for p in self.positions.values())

    @property
    def all_zero(self) -> bool:
        return all(p.is_zero for p in self.positions.values())

    def to_dict(self) -> Dict[str, object]:
        return {
            "venue": self.venue.value,
            "leverage": self.aggregate_leverage,
            "last_updated": self.last_updated,
            "positions": {s: p.to_dict() for s, p in self.positions.items()},
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    """Both venues, taken under one read lock."""
    taker: ExchangePositions
    maker: ExchangePositions
    taken_at: float

    def venue(self, venue: Venue) -> ExchangePositions:
        return self.taker if venue is Venue.TAKER else self.maker

    @property
    def leverage_by_venue(self) -> Dict[Venue, float]:
        return {Venue.TAKER: self.taker.aggregate_leverage, Venue.MAKER: self.maker.aggregate_leverage}

    @property
    def all_zero(self) -> bool:
        return self.taker.all_zero and self.maker.all_zero


@dataclass
class _VenueBook:
    positions: Dict[str, Position] = field(default_factory=dict)
    leverage: float = 0.0
    last_updated: float = 0.0


class PositionLedger:
    def __init__(
        self,
        symbols: Iterable[str],
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._symbols = [s.upper() for s in symbols]
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._lock = ReadWriteLock()
        self._books: Dict[Venue, _VenueBook] = {
            v: _VenueBook(positions={s: Position(symbol=s) for s in self._symbols}) for v in Venue
        }

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    # ─────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────

    def _freeze(self, venue: Venue) -> ExchangePositions:
        book = self._books[venue]
        return ExchangePositions(
            venue=venue,
            positions=MappingProxyType(dict(book.positions)),
            aggregate_leverage=book.leverage,
            last_updated=book.last_updated,
        )

    def get_positions(self, venue: Venue) -> ExchangePositions:
        with self._lock.read():
            return self._freeze(venue)

    def get_position(self, venue: Venue, symbol: str) -> Position:
        with self._lock.read():
            return self._books[venue].positions.get(symbol.upper(), Position(symbol=symbol.upper()))

    def snapshot(self) -> LedgerSnapshot:
        with self._lock.read():
            return LedgerSnapshot(
                taker=self._freeze(Venue.TAKER),
                maker=self._freeze(Venue.MAKER),
                taken_at=self._clock.time(),
            )

    def all_flat(self) -> bool:
        return self.snapshot().all_zero

    # ─────────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────────

    def update_position(self, venue: Venue, symbol: str, position: Position) -> None:
        symbol = symbol.upper()
        if position.symbol.upper() != symbol:
            position = replace(position, symbol=symbol)
        with self._lock.write():
            book = self._books[venue]
            book.positions[symbol] = position
            book.last_updated = self._clock.time()

    def replace_venue(self, venue: Venue, positions: Mapping[str, Position]) -> None:
        """Replace every tracked symbol for ``venue`` (missing symbols go flat)."""
        fresh = {s: Position(symbol=s) for s in self._symbols}
        for sym, pos in positions.items():
            key = sym.upper()
            fresh[key] = pos if pos.symbol == key else replace(pos, symbol=key)
        with self._lock.write():
            book = self._books[venue]
            # keep per-symbol leverage until the next recompute
            for key, pos in fresh.items():
                old = book.positions.get(key)
                if old is not None and pos.leverage == 0.0:
                    fresh[key] = replace(pos, leverage=old.leverage)
            book.positions = fresh
            book.last_updated = self._clock.time()

    def apply_fill(self, venue: Venue, symbol: str, side: OrderSide, notional: float, price: float) -> Position:
        """
        Add a fill of ``notional`` quote units at ``price`` to the position.

        Returns the resulting position.
        """
        if notional <= 0:
            raise ValueError("fill notional must be > 0")
        symbol = symbol.upper()
        size = notional / price if price > 0 else 0.0
        with self._lock.write():
            book = self._books[venue]
            cur = book.positions.get(symbol, Position(symbol=symbol))
            new_size = cur.signed_size + side.sign * size
            new_value = cur.notional_value + side.sign * notional
            entry = cur.entry_price
            # entry price moves only when the position grows in the same direction
            if price > 0 and (cur.signed_size == 0 or (cur.signed_size > 0) == (side is OrderSide.BUY)):
                total = abs(cur.signed_size) + size
                entry = (abs(cur.signed_size) * cur.entry_price + size * price) / total if total > 0 else price
            if abs(new_size) < _EPS:
                new_size, new_value, entry = 0.0, 0.0, 0.0
            pos = Position(
                symbol=symbol,
                signed_size=new_size,
                notional_value=new_value,
                leverage=cur.leverage,
                entry_price=entry,
            )
            book.positions[symbol] = pos
            book.last_updated = self._clock.time()
        self._log.debug(json.dumps({
            "event": "ledger_fill_applied",
            "venue": venue.value,
            "symbol": symbol,
            "side": side.value,
            "notional": notional,
            "size": pos.signed_size,
            "value": pos.notional_value,
        }))
        return pos

    def recompute_leverage(self, equity_by_venue: Mapping[Venue, float]) -> Dict[Venue, float]:
        """
        Leverage proxy per venue: sum of absolute notional over equity.

        Exposure against non-positive equity reports infinite leverage.
        """
        out: Dict[Venue, float] = {}
        with self._lock.write():
            for venue, book in self._books.items():
                equity = float(equity_by_venue.get(venue, 0.0))
                exposure = sum(p.abs_notional for p in book.positions.values())
                lev = _ratio(exposure, equity)
                book.leverage = lev
                book.positions = {
                    s: replace(p, leverage=_ratio(p.abs_notional, equity)) for s, p in book.positions.items()
                }
                out[venue] = lev
        for venue, lev in out.items():
            if math.isinf(lev):
                self._log.warning(json.dumps({
                    "event": "leverage_equity_missing",
                    "venue": venue.value,
                    "equity": equity_by_venue.get(venue, 0.0),
                }))
        return out

    def to_dict(self) -> Dict[str, object]:
        snap = self.snapshot()
        return {"taker": snap.taker.to_dict(), "maker": snap.maker.to_dict()}


def _ratio(exposure: float, equity: float) -> float:
    if exposure <= _EPS:
        return 0.0
    if equity <= 0:
        return math.inf
    return exposure / equity
