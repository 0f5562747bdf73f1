"""
State package.

Shared mutable stores: the position ledger and the active order registry.
"""

from hedgebot.state.order_registry import ActiveOrder, OrderRegistry
from hedgebot.state.position_ledger import (
    ExchangePositions,
    LedgerSnapshot,
    Position,
    PositionLedger,
)

__all__ = [
    "ActiveOrder",
    "OrderRegistry",
    "ExchangePositions",
    "LedgerSnapshot",
    "Position",
    "PositionLedger",
]
