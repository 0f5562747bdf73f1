"""
Tests for HedgeExecutor.

Tests cover:
- Mirror direction per venue (maker fill -> taker order and vice versa)
- Price protection against the mirror venue's reference price
- Retry with linear backoff and exhaustion
- Execution statistics and delay buckets
- Metrics publication
"""

from unittest.mock import AsyncMock

import pytest

from hedgebot.core.errors import HedgeExecutionError, UnsupportedHedgeError
from hedgebot.core.types import OrderSide, Venue
from hedgebot.execution.hedge_executor import (
    FastExecutionConfig,
    HedgeExecutor,
    delay_bucket,
)
from hedgebot.monitoring.metrics_rich import HedgeMetrics


class TestDelayBuckets:
    @pytest.mark.parametrize("ms,bucket", [
        (0, "<100ms"), (99.9, "<100ms"), (100, "100-200ms"), (250, "200-500ms"), (500, ">500ms"),
    ])
    def test_bucket_edges(self, ms, bucket):
        assert delay_bucket(ms) == bucket


class TestMirror:
    @pytest.mark.asyncio
    async def test_maker_fill_goes_to_taker(self, executor, taker):
        ctx = await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        assert ctx.success
        assert ctx.hedge_side is OrderSide.BUY
        assert ctx.hedge_venue is Venue.TAKER
        assert ctx.execution_price == 60000.0
        assert ctx.attempts == 1
        order = taker.orders[ctx.hedge_order_id]
        assert order.side is OrderSide.BUY
        assert order.notional == pytest.approx(1000.0)

    @pytest.mark.asyncio
    async def test_eth_buy_is_hedged_with_taker_short(self, executor, taker):
        ctx = await executor.execute_fast_hedge("m-2", "ETH", OrderSide.BUY, 300.0, 3000.0)
        assert ctx.hedge_side is OrderSide.SELL
        assert ("place_taker_short",) in taker.calls

    @pytest.mark.asyncio
    async def test_taker_fill_goes_to_maker_market(self, executor, maker):
        ctx = await executor.execute_fast_hedge(
            "t-1", "ETH", OrderSide.SELL, 3000.0, 3000.0, venue=Venue.TAKER
        )
        assert ctx.hedge_venue is Venue.MAKER
        assert ctx.hedge_side is OrderSide.BUY
        order = maker.orders[ctx.hedge_order_id]
        assert order.kind == "market"
        assert order.notional == pytest.approx(3000.0)

    @pytest.mark.asyncio
    async def test_unsupported_symbol_is_not_retried(self, executor, taker):
        with pytest.raises(UnsupportedHedgeError):
            await executor.execute_fast_hedge("m-3", "SOL", OrderSide.BUY, 100.0, 150.0)
        assert taker.calls == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_size(self, executor):
        with pytest.raises(ValueError):
            await executor.execute_fast_hedge("m-4", "BTC", OrderSide.SELL, 0.0, 60000.0)


class TestPriceProtection:
    @pytest.mark.asyncio
    async def test_deviation_beyond_slippage_rejected(self, executor, taker):
        with pytest.raises(HedgeExecutionError) as exc_info:
            await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 61000.0)
        ctx = exc_info.value.context
        assert ctx is not None and not ctx.success
        assert "deviates" in ctx.error_message
        assert all(c[0] == "get_current_price" for c in taker.calls)
        assert executor.get_execution_stats().failed_executions == 1

    @pytest.mark.asyncio
    async def test_within_slippage_accepted(self, executor):
        # 0.05% away from the 60000 reference
        ctx = await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60030.0)
        assert ctx.success

    @pytest.mark.asyncio
    async def test_reference_fetch_failure_rejects(self, executor, taker):
        taker.fail_next("get_current_price")
        with pytest.raises(HedgeExecutionError):
            await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        assert ("place_taker_long",) not in taker.calls

    @pytest.mark.asyncio
    async def test_unknown_original_price_skips_check(self, executor):
        ctx = await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 0.0)
        assert ctx.success

    @pytest.mark.asyncio
    async def test_disabled_protection_skips_reference(self, convention, taker, maker, clock):
        cfg = FastExecutionConfig(enable_price_protection=False)
        executor = HedgeExecutor(convention, taker, maker, cfg, clock)
        ctx = await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 99999.0)
        assert ctx.success
        assert ("get_current_price",) not in taker.calls


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, executor, taker):
        taker.fail_next("place_taker_long", 2)
        ctx = await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        assert ctx.success
        assert ctx.attempts == 3
        # backoff 0.05s then 0.10s on the virtual clock
        assert ctx.total_delay == pytest.approx(0.15)
        stats = executor.get_execution_stats()
        assert stats.delay_distribution["100-200ms"] == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_context(self, executor, taker):
        taker.fail_next("place_taker_long", 3)
        with pytest.raises(HedgeExecutionError) as exc_info:
            await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        ctx = exc_info.value.context
        assert ctx.attempts == 3
        assert "injected failure" in ctx.error_message

    @pytest.mark.asyncio
    async def test_retry_disabled_single_attempt(self, convention, maker, clock):
        taker = AsyncMock()
        taker.get_current_price.return_value = 60000.0
        taker.place_taker_long.side_effect = RuntimeError("down")
        cfg = FastExecutionConfig(enable_retry=False)
        executor = HedgeExecutor(convention, taker, maker, cfg, clock)
        with pytest.raises(HedgeExecutionError):
            await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        assert taker.place_taker_long.await_count == 1


class TestStats:
    @pytest.mark.asyncio
    async def test_running_stats(self, executor, clock):
        detection = clock.monotonic()
        await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0, detection_time=detection)
        clock.advance(0.3)
        await executor.execute_fast_hedge(
            "m-2", "ETH", OrderSide.BUY, 300.0, 3000.0, detection_time=clock.monotonic() - 0.3
        )
        stats = executor.get_execution_stats()
        assert stats.total_executions == 2
        assert stats.successful_executions == 2
        assert stats.success_rate == 100.0
        assert stats.min_delay == pytest.approx(0.0)
        assert stats.max_delay == pytest.approx(0.3)
        assert stats.average_delay == pytest.approx(0.15)
        assert stats.delay_distribution["<100ms"] == 1
        assert stats.delay_distribution["200-500ms"] == 1

    def test_stats_copy_is_detached(self, executor):
        stats = executor.get_execution_stats()
        stats.delay_distribution["<100ms"] = 99
        assert executor.get_execution_stats().delay_distribution["<100ms"] == 0

    def test_delay_excessive(self, executor):
        assert executor.is_delay_excessive(0.6)
        assert not executor.is_delay_excessive(0.5)

    @pytest.mark.asyncio
    async def test_metrics_published(self, convention, taker, maker, clock, fast_config):
        metrics = HedgeMetrics()
        executor = HedgeExecutor(convention, taker, maker, fast_config, clock, metrics=metrics)
        await executor.execute_fast_hedge("m-1", "BTC", OrderSide.SELL, 1000.0, 60000.0)
        reg = metrics.get_registry()
        assert reg.get_sample_value("hedges_total", {"symbol": "BTC", "result": "ok"}) == 1.0
        assert reg.get_sample_value("hedge_delay_ms_count", {"symbol": "BTC"}) == 1.0


class TestConfig:
    def test_validation(self):
        with pytest.raises(ValueError):
            FastExecutionConfig(partial_fill_threshold=1.5)
        with pytest.raises(ValueError):
            FastExecutionConfig(max_concurrent=0)
