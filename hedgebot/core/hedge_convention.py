"""
Hedge convention: which direction each venue holds per symbol.

The maker venue holds the configured direction (default: short BTC, long ETH);
the taker venue always holds the inverse. A fill on one venue is mirrored by
the inverse order side on the other venue for the same symbol.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Tuple

from hedgebot.core.errors import UnsupportedHedgeError
from hedgebot.core.types import OrderSide, PositionDirection, Venue

DEFAULT_SYMBOLS = "BTC:short,ETH:long"


class HedgeConvention:
    def __init__(self, maker_directions: Mapping[str, PositionDirection]) -> None:
        if not maker_directions:
            raise ValueError("Hedge convention needs at least one symbol")
        # dict preserves insertion order: this is the tie-break priority
        self._maker: Dict[str, PositionDirection] = {s.upper(): d for s, d in maker_directions.items()}

    @classmethod
    def parse(cls, raw: str = DEFAULT_SYMBOLS) -> "HedgeConvention":
        """Parse 'BTC:short,ETH:long' (maker venue directions)."""
        pairs: List[Tuple[str, PositionDirection]] = []
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            if ":" not in item:
                raise ValueError(f"Expected SYMBOL:direction, got {item!r}")
            sym, direction = item.split(":", 1)
            pairs.append((sym.strip().upper(), PositionDirection.parse(direction)))
        seen = set()
        for sym, _ in pairs:
            if sym in seen:
                raise ValueError(f"Duplicate symbol in hedge convention: {sym}")
            seen.add(sym)
        return cls(dict(pairs))

    @property
    def symbols(self) -> List[str]:
        return list(self._maker)

    def supports(self, symbol: str) -> bool:
        return symbol.upper() in self._maker

    def direction(self, venue: Venue, symbol: str) -> PositionDirection:
        try:
            maker_dir = self._maker[symbol.upper()]
        except KeyError:
            raise UnsupportedHedgeError(f"Symbol {symbol!r} is not part of the hedge convention") from None
        return maker_dir if venue is Venue.MAKER else maker_dir.inverse()

    def hedge_side(self, symbol: str, side: OrderSide) -> OrderSide:
        """Order side on the other venue that mirrors ``side`` on this one."""
        if not self.supports(symbol):
            raise UnsupportedHedgeError(f"No hedge mapping for {symbol!r} {side.value}")
        return side.inverse()

    def to_dict(self) -> Dict[str, str]:
        return {s: d.value for s, d in self._maker.items()}
