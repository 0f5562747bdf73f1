"""
DynamicHedgeStrategy: the phase controller tying the hedge engine together.

Two cooperative loops share one CancelToken:
    controller loop  every monitor_interval  -> execute_cycle()
    tracker loop     every check_interval    -> OrderLifecycleTracker.check_orders()

One controller cycle:
    1. refresh trading stats (log them every stats_log_interval)
    2. continuous mode: stop trading for the day once max_daily_trades is
       reached; positions are still refreshed and EMERGENCY_CLOSE still fires
    3. refresh positions from the venues and recompute leverage
    4. balance check / adjustment every balance_check_interval
    5. risk evaluation and dispatch:
         CONTINUE_OPENING -> open one maker order (interval, no active orders, daily cap)
         STOP_OPENING     -> hold; escalates to START_CLOSING after stop_duration
         START_CLOSING    -> unwind one maker order per cycle until flat
         EMERGENCY_CLOSE  -> flatten everything at market

Once closing has started it continues on later cycles until every position
is flat, even if leverage has dropped back below the maximum in between.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.core.types import Phase, RiskAction, Venue
from hedgebot.execution.balance_reconciler import BalanceConfig, BalanceReconciler, HedgeBalanceStatus
from hedgebot.execution.hedge_executor import ExecutionStats, FastExecutionConfig, HedgeExecutor
from hedgebot.execution.order_tracker import OrderLifecycleTracker
from hedgebot.infra.clock import CancelToken, Clock, PeriodicTask
from hedgebot.monitoring.trading_stats import TradingStats, TradingStatsManager
from hedgebot.risk.equity import EquitySource, StaticEquity, equity_by_venue
from hedgebot.risk.risk_evaluator import RiskConfig, RiskEvaluator, RiskStatus
from hedgebot.state.order_registry import OrderRegistry
from hedgebot.state.position_ledger import PositionLedger
from hedgebot.strategy.closing import ClosingManager
from hedgebot.strategy.emergency import EmergencyCloser, EmergencyCloseResult
from hedgebot.strategy.opening import OpeningManager
from hedgebot.venues.base import MakerVenue, PositionSource, TakerVenue


@dataclass
class HedgeStrategyConfig:
    # sizing (quote notional)
    order_size: float = 1000.0
    leverage: int = 3
    spread_percent: float = 0.1

    # intervals (seconds)
    monitor_interval: float = 5.0
    balance_check_interval: float = 60.0
    trading_interval: float = 30.0
    stats_log_interval: float = 60.0

    # continuous trading
    continuous_mode: bool = True
    volume_target: float = 100000.0
    max_daily_trades: int = 1000

    enable_hedge_balancing: bool = True
    enable_fast_execution: bool = True

    risk: RiskConfig = field(default_factory=RiskConfig)
    balance: BalanceConfig = field(default_factory=BalanceConfig)
    fast_execution: FastExecutionConfig = field(default_factory=FastExecutionConfig)

    def __post_init__(self) -> None:
        if self.order_size <= 0:
            raise ValueError("order_size must be > 0")
        if self.leverage <= 0:
            raise ValueError("leverage must be > 0")
        if self.spread_percent < 0:
            raise ValueError("spread_percent must be >= 0")
        for name in ("monitor_interval", "balance_check_interval", "trading_interval", "stats_log_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.max_daily_trades < 0:
            raise ValueError("max_daily_trades must be >= 0")

    def effective_fast_execution(self) -> FastExecutionConfig:
        """Fast settings in force; the slow path polls at monitor_interval, one hedge at a time."""
        if self.enable_fast_execution:
            return replace(self.fast_execution, leverage=self.leverage)
        return replace(
            self.fast_execution,
            check_interval=self.monitor_interval,
            enable_price_protection=False,
            enable_concurrent_execution=False,
            enable_retry=False,
            leverage=self.leverage,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_size": self.order_size,
            "leverage": self.leverage,
            "spread_pct": self.spread_percent,
            "monitor_interval": self.monitor_interval,
            "balance_check_interval": self.balance_check_interval,
            "trading_interval": self.trading_interval,
            "continuous_mode": self.continuous_mode,
            "volume_target": self.volume_target,
            "max_daily_trades": self.max_daily_trades,
            "max_leverage": self.risk.max_leverage,
            "emergency_leverage": self.risk.emergency_leverage,
            "stop_duration": self.risk.stop_duration,
            "hedge_balancing": self.enable_hedge_balancing,
            "fast_execution": self.enable_fast_execution,
        }


class DynamicHedgeStrategy:
    def __init__(
        self,
        convention: HedgeConvention,
        taker: TakerVenue,
        maker: MakerVenue,
        config: Optional[HedgeStrategyConfig] = None,
        equity_source: Optional[EquitySource] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
        health=None,
    ) -> None:
        self.config = config or HedgeStrategyConfig()
        self.convention = convention
        self.taker = taker
        self.maker = maker
        self._venues = {Venue.TAKER: taker, Venue.MAKER: maker}
        self._equity = equity_source or StaticEquity()
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics
        self._health = health

        clk, log = self._clock, self._log
        self.ledger = PositionLedger(convention.symbols, clock=clk, logger=log)
        self.registry = OrderRegistry(clock=clk, logger=log)
        self.risk = RiskEvaluator(self.config.risk, logger=log)
        self.executor = HedgeExecutor(
            convention, taker, maker, self.config.effective_fast_execution(), clk, log, metrics
        )
        self.tracker = OrderLifecycleTracker(
            self.registry, self.ledger, self.executor, self._venues, clock=clk, logger=log, metrics=metrics
        )
        self.reconciler = BalanceReconciler(convention, taker, maker, self.config.balance, clk, log, metrics)
        self.opening = OpeningManager(convention, self.ledger, self.registry, maker, clk, log, metrics)
        self.closing = ClosingManager(convention, self.ledger, self.registry, maker, clk, log, metrics)
        self.emergency = EmergencyCloser(self.ledger, self._venues, log, metrics)
        self.stats = TradingStatsManager(self.config.volume_target, clk, log, metrics)

        self._phase = Phase.INITIALIZED
        self._token: Optional[CancelToken] = None
        self._tasks: List[asyncio.Task] = []
        self._opening_stopped_at: Optional[float] = None
        self._closing_latched = False
        self._last_trade_at: Optional[float] = None
        self._last_balance_check: Optional[float] = None
        self._last_stats_log: Optional[float] = None
        self._last_risk: Optional[RiskStatus] = None
        self._last_balance: Optional[HedgeBalanceStatus] = None

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def start(self, config: Optional[HedgeStrategyConfig] = None) -> None:
        if self.is_running():
            raise RuntimeError("strategy is already running")
        if config is not None:
            self._apply_config(config)
        self.executor.configure(self.config.effective_fast_execution())
        self.tracker.config = self.executor.config

        self._log.info(json.dumps({
            "event": "strategy_starting",
            "symbols": self.convention.to_dict(),
            **self.config.to_dict(),
        }))
        self._token = CancelToken()
        controller = PeriodicTask(
            "controller", self.config.monitor_interval, self.execute_cycle, self._clock, self._token, self._log
        )
        self._tasks = [
            asyncio.create_task(controller.run(), name="hedge-controller"),
            asyncio.create_task(self.tracker.run(self._token), name="hedge-tracker"),
        ]
        if self._health is not None:
            self._health.set_ready(True)

    def _apply_config(self, config: HedgeStrategyConfig) -> None:
        self.config = config
        self.risk.config = config.risk
        self.reconciler.config = config.balance
        self.stats.volume_target = config.volume_target

    async def stop(self) -> None:
        if not self._tasks:
            return
        self._log.info(json.dumps({"event": "strategy_stopping"}))
        if self._token is not None:
            self._token.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                self._log.error(json.dumps({"event": "loop_crashed", "task": task.get_name(), "err": str(result)}))
        self._tasks = []
        if self._health is not None:
            self._health.set_ready(False)
        self._set_phase(Phase.STOPPED)

    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def wait(self) -> None:
        """Block until both loops have exited; a crashed loop's exception propagates."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    # ─────────────────────────────────────────────────────────────────────
    # Controller cycle
    # ─────────────────────────────────────────────────────────────────────

    async def execute_cycle(self) -> None:
        cfg = self.config
        now = self._clock.time()
        if self._health is not None:
            self._health.beat("controller")

        # 1. stats
        self.stats.update_active_orders(self.registry.count())
        self.stats.update_volume_progress()
        if self._last_stats_log is None or now - self._last_stats_log >= cfg.stats_log_interval:
            self._last_stats_log = now
            self.stats.log_stats()

        # 2. daily cap: no new trades, the emergency rule still applies
        daily_capped = cfg.continuous_mode and self.stats.should_pause_for_day(cfg.max_daily_trades)
        if daily_capped:
            if self._phase is not Phase.DAILY_LIMIT_REACHED:
                self._log.info(json.dumps({
                    "event": "daily_limit_reached",
                    "max_daily_trades": cfg.max_daily_trades,
                }))
            self._set_phase(Phase.DAILY_LIMIT_REACHED)

        # 3. positions and leverage
        await self.refresh_positions()

        # 4. balance
        if not daily_capped and cfg.enable_hedge_balancing and (
            self._last_balance_check is None or now - self._last_balance_check >= cfg.balance_check_interval
        ):
            self._last_balance_check = now
            await self._check_and_adjust_balance()

        # 5. risk
        status = self.risk.check(self.ledger.snapshot(), self._opening_stopped_at, now)
        self._last_risk = status
        if status.action is RiskAction.EMERGENCY_CLOSE:
            self._set_phase(Phase.EMERGENCY_CLOSING)
            await self.emergency.close_all()
        elif daily_capped:
            return
        elif status.action is RiskAction.START_CLOSING or self._closing_latched:
            await self._continue_closing()
        elif status.action is RiskAction.STOP_OPENING:
            if self._opening_stopped_at is None:
                self._opening_stopped_at = now
                self._log.warning(json.dumps({"event": "opening_stopped", **status.to_dict()}))
            self._set_phase(Phase.STOP_LEVERAGE)
        else:
            self._opening_stopped_at = None
            await self._continue_opening(now)

    async def refresh_positions(self) -> None:
        for venue, client in self._venues.items():
            if not isinstance(client, PositionSource):
                continue
            try:
                positions = await client.get_positions()
            except Exception as exc:
                # keep the fill-driven ledger state for this venue
                self._log.warning(json.dumps({
                    "event": "position_refresh_failed",
                    "venue": venue.value,
                    "err": str(exc),
                }))
                self._set_component_health(f"{venue.value}_positions", False, str(exc))
                continue
            tracked = {s: p for s, p in positions.items() if self.convention.supports(s)}
            self.ledger.replace_venue(venue, tracked)
            self._set_component_health(f"{venue.value}_positions", True)

        leverage = self.ledger.recompute_leverage(await equity_by_venue(self._equity))
        if self._metrics is not None:
            try:
                for venue, lev in leverage.items():
                    self._metrics.venue_leverage.labels(venue=venue.value).set(lev)
                snap = self.ledger.snapshot()
                for venue in Venue:
                    for symbol, pos in snap.venue(venue).positions.items():
                        self._metrics.position_notional.labels(venue=venue.value, symbol=symbol).set(
                            pos.notional_value
                        )
            except Exception:
                self._log.debug("position metric update failed", exc_info=True)

    async def _check_and_adjust_balance(self) -> None:
        self._set_phase(Phase.BALANCE_ADJUSTING)
        try:
            status = self.reconciler.check_balance(
                self.ledger.get_positions(Venue.TAKER), self.ledger.get_positions(Venue.MAKER)
            )
            self._last_balance = status
            if not status.is_balanced:
                await self.reconciler.execute_adjustment(status)
                # adjustment orders are not tracked; pick up their effect from the venues
                await self.refresh_positions()
        except Exception as exc:
            self._log.error(json.dumps({"event": "balance_check_failed", "err": str(exc)}))
        self._set_phase(Phase.BALANCE_ADJUSTED)

    def can_start_new_trade(self, now: Optional[float] = None) -> bool:
        now = self._clock.time() if now is None else now
        if self._last_trade_at is not None and now - self._last_trade_at < self.config.trading_interval:
            return False
        if self.registry.count() > 0:
            return False
        max_trades = self.config.max_daily_trades
        if max_trades > 0 and self.stats.get_stats().daily_trades >= max_trades:
            return False
        return True

    async def _continue_opening(self, now: float) -> None:
        if not self.can_start_new_trade(now):
            return
        try:
            order = await self.opening.execute_opening(self.config.order_size, self.config.spread_percent)
        except Exception as exc:
            self._log.error(json.dumps({"event": "opening_failed", "err": str(exc)}))
            return
        self._last_trade_at = now
        self._set_phase(Phase.OPENING)
        self.stats.record_trade(order.requested_size, "OPENING")
        self._log.info(json.dumps({"event": "opening_placed", **order.to_dict()}))

    async def _continue_closing(self) -> None:
        if not self._closing_latched:
            self._log.warning(json.dumps({"event": "closing_started"}))
        self._closing_latched = True
        if self.ledger.all_flat():
            self._finish_closing()
            return
        self._set_phase(Phase.CLOSING)
        if self.registry.count() > 0:
            return
        try:
            order = await self.closing.execute_closing(self.config.order_size, self.config.spread_percent)
        except Exception as exc:
            self._log.error(json.dumps({"event": "closing_failed", "err": str(exc)}))
            return
        if order is None:
            # maker already flat; taker leg is left to the balance reconciler
            return
        self._last_trade_at = self._clock.time()
        self.stats.record_trade(order.requested_size, "CLOSING")
        self._log.info(json.dumps({"event": "closing_placed", **order.to_dict()}))

    def _finish_closing(self) -> None:
        self._closing_latched = False
        self._opening_stopped_at = None
        self._set_phase(Phase.READY_FOR_OPENING)
        self._log.info(json.dumps({"event": "closing_complete"}))

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    def _set_phase(self, phase: Phase) -> None:
        self._phase = phase
        self.stats.update_phase(phase)
        if self._metrics is not None:
            try:
                self._metrics.set_phase(phase)
            except Exception:
                self._log.debug("phase metric update failed", exc_info=True)

    def _set_component_health(self, name: str, healthy: bool, detail: Optional[str] = None) -> None:
        if self._health is not None:
            self._health.set_component_health(name, healthy, detail)

    # ─────────────────────────────────────────────────────────────────────
    # Queries / operator actions
    # ─────────────────────────────────────────────────────────────────────

    @property
    def current_phase(self) -> Phase:
        return self._phase

    @property
    def closing_in_progress(self) -> bool:
        return self._closing_latched

    def get_position_summary(self) -> Dict[str, Any]:
        snap = self.ledger.snapshot()
        return {
            "taker": snap.taker.to_dict(),
            "maker": snap.maker.to_dict(),
            "all_flat": snap.all_zero,
            "risk": self._last_risk.to_dict() if self._last_risk else None,
        }

    def get_order_summary(self) -> Dict[str, Any]:
        return self.registry.summary()

    def get_stats(self) -> TradingStats:
        return self.stats.get_stats()

    def get_execution_stats(self) -> ExecutionStats:
        return self.executor.get_execution_stats()

    def get_hedge_balance_status(self) -> HedgeBalanceStatus:
        return self.reconciler.check_balance(
            self.ledger.get_positions(Venue.TAKER), self.ledger.get_positions(Venue.MAKER)
        )

    async def force_balance_adjustment(self) -> HedgeBalanceStatus:
        self._log.info(json.dumps({"event": "balance_adjustment_forced"}))
        await self.refresh_positions()
        status = self.get_hedge_balance_status()
        self._last_balance = status
        await self.reconciler.execute_adjustment(status)
        return status

    async def force_emergency_close(self) -> EmergencyCloseResult:
        self._set_phase(Phase.EMERGENCY_CLOSING)
        return await self.emergency.close_all()

    def log_execution_performance(self) -> None:
        self.executor.log_performance_metrics()

    def get_state(self) -> Dict[str, Any]:
        return {
            "phase": self._phase.value,
            "running": self.is_running(),
            "closing_in_progress": self._closing_latched,
            "opening_stopped_at": self._opening_stopped_at,
            "positions": self.get_position_summary(),
            "orders": self.get_order_summary(),
            "stats": self.stats.get_stats().to_dict(),
            "daily": self.stats.get_daily_stats(),
            "execution": self.executor.get_execution_stats().to_dict(),
            "balance": self._last_balance.to_dict() if self._last_balance else None,
            "config": self.config.to_dict(),
        }
