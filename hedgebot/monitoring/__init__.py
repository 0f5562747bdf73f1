"""
Monitoring and observability package.

This package contains the Prometheus collectors, the health/metrics HTTP
endpoint and the trading statistics manager.
"""

from hedgebot.monitoring.health import HealthChecker, HealthStatus, start_metrics_server
from hedgebot.monitoring.metrics_rich import HedgeMetrics
from hedgebot.monitoring.trading_stats import TradingStats, TradingStatsManager

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "start_metrics_server",
    "HedgeMetrics",
    "TradingStats",
    "TradingStatsManager",
]
