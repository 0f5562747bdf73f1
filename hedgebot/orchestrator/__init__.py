"""
Orchestration package.

The phase controller that drives opening, closing, balancing and emergency
handling across both venues.
"""

from hedgebot.orchestrator.hedge_strategy import DynamicHedgeStrategy, HedgeStrategyConfig

__all__ = [
    "DynamicHedgeStrategy",
    "HedgeStrategyConfig",
]
