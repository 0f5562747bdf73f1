"""
Error taxonomy for the hedge engine.

- VenueError: a single venue call failed (network/API). Logged, never fatal.
- HedgeExecutionError: the mirrored order could not be placed after retries.
- UnsupportedHedgeError: symbol/side outside the configured hedge convention.
- PriceProtectionError: reference price stale or outside the slippage band.
- ConfigError: invalid startup configuration; the process exits non-zero.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from hedgebot.core.types import Venue
    from hedgebot.execution.hedge_executor import ExecutionContext


class HedgeBotError(Exception):
    """Base class for all hedge engine errors."""


class VenueError(HedgeBotError):
    def __init__(self, venue: "Venue | str", operation: str, message: str) -> None:
        self.venue = venue
        self.operation = operation
        name = getattr(venue, "value", venue)
        super().__init__(f"{name}.{operation}: {message}")


class UnsupportedHedgeError(HedgeBotError):
    """Raised for symbols the hedge convention does not cover."""


class PriceProtectionError(HedgeBotError):
    pass


class HedgeExecutionError(HedgeBotError):
    def __init__(self, message: str, context: Optional["ExecutionContext"] = None) -> None:
        super().__init__(message)
        self.context = context


class ConfigError(HedgeBotError, ValueError):
    pass
