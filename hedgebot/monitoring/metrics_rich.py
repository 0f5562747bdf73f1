"""
Prometheus metrics for the hedge engine.

Organized into: orders, hedges, balance, risk, statistics.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from hedgebot.core.types import Phase


class HedgeMetrics:
    """All collectors live on a private registry (safe to build many in tests)."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self._registry = reg

        # === Orders ===
        self.orders_placed = Counter(
            'orders_placed_total',
            'Orders placed on a venue',
            labelnames=['venue', 'symbol', 'side', 'purpose'],
            registry=reg
        )
        self.order_status_errors = Counter(
            'order_status_errors_total',
            'Failed order status queries',
            labelnames=['venue'],
            registry=reg
        )
        self.active_orders = Gauge(
            'active_orders',
            'Orders currently tracked',
            registry=reg
        )

        # === Hedges ===
        self.hedges = Counter(
            'hedges_total',
            'Mirrored hedge executions',
            labelnames=['symbol', 'result'],
            registry=reg
        )
        self.hedge_retries = Counter(
            'hedge_retries_total',
            'Hedge attempts that were retried',
            labelnames=['symbol'],
            registry=reg
        )
        self.hedge_delay_ms = Histogram(
            'hedge_delay_ms',
            'Fill detection to mirrored order completion (milliseconds)',
            labelnames=['symbol'],
            buckets=[50, 100, 200, 500, 1000, 2000],
            registry=reg
        )

        # === Balance ===
        self.imbalance_pct = Gauge(
            'hedge_imbalance_pct',
            'Cross-venue imbalance per symbol (%)',
            labelnames=['symbol'],
            registry=reg
        )
        self.balance_adjustments = Counter(
            'balance_adjustments_total',
            'Corrective balance orders placed',
            labelnames=['symbol', 'side'],
            registry=reg
        )

        # === Risk ===
        self.venue_leverage = Gauge(
            'venue_leverage',
            'Leverage proxy per venue',
            labelnames=['venue'],
            registry=reg
        )
        self.position_notional = Gauge(
            'position_notional',
            'Signed notional per venue and symbol',
            labelnames=['venue', 'symbol'],
            registry=reg
        )
        self.emergency_closes = Counter(
            'emergency_closes_total',
            'Emergency unwind sweeps',
            registry=reg
        )
        self.phase = Gauge(
            'strategy_phase',
            'Current phase (one-hot)',
            labelnames=['phase'],
            registry=reg
        )

        # === Statistics ===
        self.daily_trades = Gauge(
            'daily_trades',
            'Trades recorded today (UTC)',
            registry=reg
        )
        self.daily_volume = Gauge(
            'daily_volume',
            'Volume recorded today (UTC, quote)',
            registry=reg
        )

    def set_phase(self, current: Phase) -> None:
        for p in Phase:
            self.phase.labels(phase=p.value).set(1 if p is current else 0)

    def get_registry(self) -> CollectorRegistry:
        return self._registry

    def render(self) -> bytes:
        return generate_latest(self._registry)
