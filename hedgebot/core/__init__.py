"""
Core package.

Shared enums, the hedge convention, the error taxonomy and the
readers-writer lock used by the state stores.
"""

from hedgebot.core.errors import (
    ConfigError,
    HedgeBotError,
    HedgeExecutionError,
    PriceProtectionError,
    UnsupportedHedgeError,
    VenueError,
)
from hedgebot.core.hedge_convention import DEFAULT_SYMBOLS, HedgeConvention
from hedgebot.core.rwlock import ReadWriteLock
from hedgebot.core.types import (
    AdjustmentSide,
    OrderSide,
    OrderStatus,
    Phase,
    PositionDirection,
    RiskAction,
    Venue,
)

__all__ = [
    "ConfigError",
    "HedgeBotError",
    "HedgeExecutionError",
    "PriceProtectionError",
    "UnsupportedHedgeError",
    "VenueError",
    "DEFAULT_SYMBOLS",
    "HedgeConvention",
    "ReadWriteLock",
    "AdjustmentSide",
    "OrderSide",
    "OrderStatus",
    "Phase",
    "PositionDirection",
    "RiskAction",
    "Venue",
]
