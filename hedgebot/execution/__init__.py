"""
Execution package.

Order lifecycle tracking, fast hedge execution and cross-venue balance
reconciliation.
"""

from hedgebot.execution.balance_reconciler import (
    BalanceConfig,
    BalanceReconciler,
    HedgeBalanceStatus,
    PositionImbalance,
    compute_imbalance,
)
from hedgebot.execution.hedge_executor import (
    ExecutionContext,
    ExecutionStats,
    FastExecutionConfig,
    HedgeExecutor,
    delay_bucket,
)
from hedgebot.execution.order_tracker import OrderLifecycleTracker

__all__ = [
    "BalanceConfig",
    "BalanceReconciler",
    "HedgeBalanceStatus",
    "PositionImbalance",
    "compute_imbalance",
    "ExecutionContext",
    "ExecutionStats",
    "FastExecutionConfig",
    "HedgeExecutor",
    "delay_bucket",
    "OrderLifecycleTracker",
]
