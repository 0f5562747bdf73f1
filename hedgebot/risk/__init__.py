"""
Risk package.

Leverage-driven risk evaluation and pluggable equity sources.
"""

from hedgebot.risk.equity import EquitySource, StaticEquity, VenueEquity, equity_by_venue
from hedgebot.risk.risk_evaluator import RiskConfig, RiskEvaluator, RiskStatus

__all__ = [
    "EquitySource",
    "StaticEquity",
    "VenueEquity",
    "equity_by_venue",
    "RiskConfig",
    "RiskEvaluator",
    "RiskStatus",
]
