"""
Strategy package.

Opening, closing and emergency-unwind handlers dispatched by the phase
controller.
"""

from hedgebot.strategy.closing import ClosingManager
from hedgebot.strategy.emergency import EmergencyCloser, EmergencyCloseResult
from hedgebot.strategy.opening import OpeningManager

__all__ = [
    "ClosingManager",
    "EmergencyCloser",
    "EmergencyCloseResult",
    "OpeningManager",
]
