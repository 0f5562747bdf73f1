"""
Tests for TradingStatsManager.
"""

import pytest

from hedgebot.core.types import Phase
from hedgebot.infra.clock import ManualClock
from hedgebot.monitoring.metrics_rich import HedgeMetrics
from hedgebot.monitoring.trading_stats import TradingStatsManager

# 2024-06-01 23:00:00 UTC
LATE = 1_717_282_800.0


@pytest.fixture
def stats(clock):
    return TradingStatsManager(volume_target=10_000.0, clock=clock)


class TestRecording:
    def test_record_trade_updates_counters(self, stats, clock):
        clock.advance(1800)
        stats.record_trade(1000.0, "OPENING")
        stats.record_trade(500.0, "CLOSING")
        s = stats.get_stats()
        assert s.daily_trades == 2
        assert s.total_trades == 2
        assert s.daily_volume == pytest.approx(1500.0)
        assert s.avg_trade_size == pytest.approx(750.0)
        # two trades in half an hour
        assert s.trade_frequency == pytest.approx(4.0)
        assert s.last_trade_time == clock.time()

    def test_get_stats_returns_copy(self, stats):
        copy = stats.get_stats()
        copy.daily_trades = 42
        assert stats.get_stats().daily_trades == 0

    def test_volume_progress_is_capped(self, stats):
        stats.record_trade(4000.0, "OPENING")
        stats.update_volume_progress()
        assert stats.get_stats().volume_progress == pytest.approx(40.0)
        stats.record_trade(20_000.0, "OPENING")
        stats.update_volume_progress()
        assert stats.get_stats().volume_progress == 100.0

    def test_phase_and_active_orders(self, stats, caplog):
        with caplog.at_level("INFO"):
            stats.update_phase(Phase.OPENING)
            stats.update_phase(Phase.OPENING)
        assert sum('"phase_changed"' in r.getMessage() for r in caplog.records) == 1
        stats.update_active_orders(3)
        s = stats.get_stats()
        assert s.current_phase is Phase.OPENING
        assert s.active_orders == 3
        assert s.to_dict()["current_phase"] == Phase.OPENING.value

    def test_metrics_published(self, clock):
        metrics = HedgeMetrics()
        stats = TradingStatsManager(clock=clock, metrics=metrics)
        stats.record_trade(250.0, "OPENING")
        reg = metrics.get_registry()
        assert reg.get_sample_value("daily_trades") == 1.0
        assert reg.get_sample_value("daily_volume") == 250.0


class TestDailyLimits:
    def test_pause_after_max_trades(self, stats):
        for _ in range(9):
            stats.record_trade(100.0, "OPENING")
        assert not stats.should_pause_for_day(10)
        stats.record_trade(100.0, "OPENING")
        assert stats.should_pause_for_day(10)

    def test_zero_max_never_pauses(self, stats):
        stats.record_trade(100.0, "OPENING")
        assert not stats.should_pause_for_day(0)

    def test_check_daily_targets(self, stats):
        assert stats.check_daily_targets(2) == (False, False)
        stats.record_trade(6000.0, "OPENING")
        stats.record_trade(6000.0, "OPENING")
        assert stats.check_daily_targets(2) == (True, True)
        assert stats.check_daily_targets(0, volume_target=0.0) == (False, False)

    def test_utc_rollover_resets_daily_counters(self):
        clock = ManualClock(start=LATE)
        stats = TradingStatsManager(clock=clock)
        for _ in range(10):
            stats.record_trade(100.0, "OPENING")
        assert stats.should_pause_for_day(10)

        clock.advance(3600)  # 00:00 UTC next day
        assert not stats.should_pause_for_day(10)
        daily = stats.get_daily_stats()
        assert daily["daily_trades"] == 0
        assert daily["daily_volume"] == 0.0
        assert daily["daily_start"] == clock.time()
        # lifetime totals survive the reset
        assert stats.get_stats().total_trades == 10

    def test_same_day_keeps_counters(self):
        clock = ManualClock(start=LATE)
        stats = TradingStatsManager(clock=clock)
        stats.record_trade(100.0, "OPENING")
        clock.advance(3599)
        assert stats.get_daily_stats()["daily_trades"] == 1


class TestVelocity:
    def test_no_trades(self, stats, clock):
        clock.advance(600)
        assert stats.get_trade_velocity() == 0.0

    def test_trades_per_minute(self, stats, clock):
        for _ in range(5):
            stats.record_trade(100.0, "OPENING")
        clock.advance(600)
        assert stats.get_trade_velocity() == pytest.approx(0.5)
