"""
Trading statistics with UTC daily rollover.

Tracks daily and lifetime volume / trade counts for reporting and daily
limit enforcement. Daily counters reset the first time they are touched on a
new UTC calendar day (recording a trade, checking the daily limit, or
reading the daily stats).

Thread Safety:
    All state is guarded by a threading.RLock; readers receive copies.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from hedgebot.core.types import Phase
from hedgebot.infra.clock import Clock


@dataclass
class TradingStats:
    daily_volume: float = 0.0
    daily_trades: int = 0
    daily_start: float = 0.0
    total_volume: float = 0.0
    total_trades: int = 0
    start_time: float = 0.0
    last_trade_time: float = 0.0
    current_phase: Phase = Phase.INITIALIZED
    active_orders: int = 0
    avg_trade_size: float = 0.0
    trade_frequency: float = 0.0  # trades per hour since start
    volume_progress: float = 0.0  # percent of daily volume target, capped at 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_volume": self.daily_volume,
            "daily_trades": self.daily_trades,
            "daily_start": self.daily_start,
            "total_volume": self.total_volume,
            "total_trades": self.total_trades,
            "start_time": self.start_time,
            "last_trade_time": self.last_trade_time,
            "current_phase": self.current_phase.value,
            "active_orders": self.active_orders,
            "avg_trade_size": self.avg_trade_size,
            "trade_frequency": self.trade_frequency,
            "volume_progress": self.volume_progress,
        }


def _utc_day(ts: float) -> Tuple[int, int, int]:
    d = datetime.fromtimestamp(ts, tz=timezone.utc)
    return (d.year, d.month, d.day)


class TradingStatsManager:
    def __init__(
        self,
        volume_target: float = 0.0,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics
        self.volume_target = volume_target
        now = self._clock.time()
        self._stats = TradingStats(daily_start=now, start_time=now)
        self._lock = threading.RLock()

    # ─────────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────────

    def _rollover(self, now: float) -> None:
        # caller holds the lock
        s = self._stats
        if _utc_day(now) == _utc_day(s.daily_start):
            return
        self._log.info(json.dumps({
            "event": "daily_stats_reset",
            "previous_daily_volume": s.daily_volume,
            "previous_daily_trades": s.daily_trades,
        }))
        s.daily_volume = 0.0
        s.daily_trades = 0
        s.daily_start = now
        s.volume_progress = 0.0

    def record_trade(self, volume: float, trade_type: str) -> None:
        now = self._clock.time()
        with self._lock:
            self._rollover(now)
            s = self._stats
            s.daily_volume += volume
            s.daily_trades += 1
            s.total_volume += volume
            s.total_trades += 1
            s.last_trade_time = now
            s.avg_trade_size = s.total_volume / s.total_trades
            hours = (now - s.start_time) / 3600
            if hours > 0:
                s.trade_frequency = s.total_trades / hours
            snapshot = replace(s)
        self._log.info(json.dumps({
            "event": "trade_recorded",
            "type": trade_type,
            "volume": volume,
            "daily_volume": snapshot.daily_volume,
            "daily_trades": snapshot.daily_trades,
        }))
        self._publish(snapshot)

    def update_phase(self, phase: Phase) -> None:
        with self._lock:
            old = self._stats.current_phase
            self._stats.current_phase = phase
        if old is not phase:
            self._log.info(json.dumps({"event": "phase_changed", "old_phase": old.value, "new_phase": phase.value}))

    def update_active_orders(self, count: int) -> None:
        with self._lock:
            self._stats.active_orders = count

    def update_volume_progress(self, target: Optional[float] = None) -> None:
        target = self.volume_target if target is None else target
        with self._lock:
            self._rollover(self._clock.time())
            if target > 0:
                self._stats.volume_progress = min(100.0, self._stats.daily_volume / target * 100)

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def get_stats(self) -> TradingStats:
        with self._lock:
            return replace(self._stats)

    def get_daily_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._rollover(self._clock.time())
            s = self._stats
            return {
                "daily_volume": s.daily_volume,
                "daily_trades": s.daily_trades,
                "daily_start": s.daily_start,
                "volume_progress": s.volume_progress,
                "avg_trade_size": s.avg_trade_size,
                "trade_frequency": s.trade_frequency,
            }

    def check_daily_targets(self, max_daily_trades: int, volume_target: Optional[float] = None) -> Tuple[bool, bool]:
        """Return (volume_reached, trades_reached) for today."""
        target = self.volume_target if volume_target is None else volume_target
        with self._lock:
            self._rollover(self._clock.time())
            s = self._stats
            volume_reached = target > 0 and s.daily_volume >= target
            trades_reached = max_daily_trades > 0 and s.daily_trades >= max_daily_trades
            return volume_reached, trades_reached

    def should_pause_for_day(self, max_daily_trades: int) -> bool:
        if max_daily_trades <= 0:
            return False
        with self._lock:
            self._rollover(self._clock.time())
            return self._stats.daily_trades >= max_daily_trades

    def get_trade_velocity(self) -> float:
        """Trades per minute since the current stats day started."""
        now = self._clock.time()
        with self._lock:
            s = self._stats
            minutes = (now - s.daily_start) / 60
            if s.daily_trades == 0 or minutes <= 0:
                return 0.0
            return s.daily_trades / minutes

    def log_stats(self) -> None:
        stats = self.get_stats()
        self._log.info(json.dumps({"event": "trading_stats", **stats.to_dict()}))
        self._publish(stats)

    def _publish(self, stats: TradingStats) -> None:
        if self._metrics is None:
            return
        try:
            self._metrics.daily_trades.set(stats.daily_trades)
            self._metrics.daily_volume.set(stats.daily_volume)
        except Exception:
            self._log.debug("stats metric update failed", exc_info=True)
