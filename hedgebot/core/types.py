"""
Closed enum types shared by every hedge component.

Venue names, order sides, order statuses, risk actions and phases are all
parsed into these enums at the edges (config, venue responses) so the core
never handles free-form strings.
"""

from __future__ import annotations

from enum import Enum


class Venue(Enum):
    """The two sides of the hedge."""
    TAKER = "taker"  # immediate-execution venue
    MAKER = "maker"  # resting limit order venue

    def other(self) -> "Venue":
        return Venue.MAKER if self is Venue.TAKER else Venue.TAKER


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"

    def inverse(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY

    @property
    def sign(self) -> int:
        return 1 if self is OrderSide.BUY else -1

    @classmethod
    def parse(cls, raw: str) -> "OrderSide":
        try:
            return cls(raw.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown order side: {raw!r}") from None


class PositionDirection(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    def inverse(self) -> "PositionDirection":
        return PositionDirection.SHORT if self is PositionDirection.LONG else PositionDirection.LONG

    def opening_side(self) -> OrderSide:
        """Order side that grows a position in this direction."""
        return OrderSide.BUY if self is PositionDirection.LONG else OrderSide.SELL

    def closing_side(self) -> OrderSide:
        return self.opening_side().inverse()

    @classmethod
    def parse(cls, raw: str) -> "PositionDirection":
        try:
            return cls(raw.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown position direction: {raw!r}") from None


class OrderStatus(Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.CANCELLED)


class RiskAction(Enum):
    CONTINUE_OPENING = "CONTINUE_OPENING"
    STOP_OPENING = "STOP_OPENING"
    START_CLOSING = "START_CLOSING"
    EMERGENCY_CLOSE = "EMERGENCY_CLOSE"


class Phase(Enum):
    """Operating mode of the control loop."""
    INITIALIZED = "INITIALIZED"
    OPENING = "OPENING"
    STOP_LEVERAGE = "STOP_LEVERAGE"
    CLOSING = "CLOSING"
    READY_FOR_OPENING = "READY_FOR_OPENING"
    EMERGENCY_CLOSING = "EMERGENCY_CLOSING"
    BALANCE_ADJUSTING = "BALANCE_ADJUSTING"  # transient, inside one cycle
    BALANCE_ADJUSTED = "BALANCE_ADJUSTED"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    STOPPED = "STOPPED"


class AdjustmentSide(Enum):
    """Corrective trade chosen by the balance reconciler."""
    NONE = "NONE"
    MAKER_INCREASE_SHORT = "MAKER_INCREASE_SHORT"
    MAKER_INCREASE_LONG = "MAKER_INCREASE_LONG"
    TAKER_INCREASE_LONG = "TAKER_INCREASE_LONG"
    TAKER_INCREASE_SHORT = "TAKER_INCREASE_SHORT"

    @classmethod
    def for_increase(cls, venue: Venue, direction: PositionDirection) -> "AdjustmentSide":
        table = {
            (Venue.MAKER, PositionDirection.SHORT): cls.MAKER_INCREASE_SHORT,
            (Venue.MAKER, PositionDirection.LONG): cls.MAKER_INCREASE_LONG,
            (Venue.TAKER, PositionDirection.LONG): cls.TAKER_INCREASE_LONG,
            (Venue.TAKER, PositionDirection.SHORT): cls.TAKER_INCREASE_SHORT,
        }
        return table[(venue, direction)]

    @property
    def venue(self) -> Venue:
        if self is AdjustmentSide.NONE:
            raise ValueError("NONE adjustment has no venue")
        return Venue.MAKER if self.name.startswith("MAKER") else Venue.TAKER

    @property
    def direction(self) -> PositionDirection:
        if self is AdjustmentSide.NONE:
            raise ValueError("NONE adjustment has no direction")
        return PositionDirection.SHORT if self.name.endswith("SHORT") else PositionDirection.LONG
