"""
HedgeExecutor: mirror a fill onto the other venue as fast as possible.

Flow per fill:
1. Resolve the hedge side from the hedge convention (unsupported symbols are
   a hard error and propagate unchanged)
2. Optional price protection against a freshly fetched reference price
3. Place the mirrored order through RetryPolicy (linear backoff)
4. Record latency (detection -> completion) into buckets and running stats

Failures after retries surface as HedgeExecutionError carrying the
ExecutionContext; the caller decides what to log.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from hedgebot.core.errors import HedgeExecutionError, PriceProtectionError, UnsupportedHedgeError, VenueError
from hedgebot.core.hedge_convention import HedgeConvention
from hedgebot.core.types import OrderSide, Venue
from hedgebot.infra.clock import CancelToken, Clock
from hedgebot.infra.retry import RetryCancelledError, RetryExhaustedError, RetryPolicy
from hedgebot.venues.base import MakerVenue, OrderAck, TakerVenue

DELAY_BUCKETS = ("<100ms", "100-200ms", "200-500ms", ">500ms")


def delay_bucket(delay_ms: float) -> str:
    if delay_ms < 100:
        return "<100ms"
    if delay_ms < 200:
        return "100-200ms"
    if delay_ms < 500:
        return "200-500ms"
    return ">500ms"


@dataclass
class FastExecutionConfig:
    """Fast hedge settings (times in seconds)."""
    check_interval: float = 0.2
    max_execution_delay: float = 0.5
    enable_pre_execution: bool = True  # hedge partial fills as they arrive
    partial_fill_threshold: float = 0.5  # fill ratio that triggers hedging when pre-execution is off
    enable_price_protection: bool = True
    max_slippage_percent: float = 0.1
    price_validity_window: float = 1.0
    enable_concurrent_execution: bool = True
    max_concurrent: int = 3
    enable_retry: bool = True
    max_retry_attempts: int = 3
    retry_backoff: float = 0.1
    leverage: int = 3

    def __post_init__(self) -> None:
        if self.check_interval <= 0:
            raise ValueError("check_interval must be > 0")
        if not 0.0 <= self.partial_fill_threshold <= 1.0:
            raise ValueError("partial_fill_threshold must be within [0, 1]")
        if self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be >= 1")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")


@dataclass
class ExecutionContext:
    order_id: str
    symbol: str
    original_side: OrderSide
    hedge_side: Optional[OrderSide]
    size: float
    original_price: float
    hedge_venue: Optional[Venue] = None
    execution_price: float = 0.0
    hedge_order_id: Optional[str] = None
    start_time: float = 0.0
    detection_time: float = 0.0
    execution_time: float = 0.0
    total_delay: float = 0.0  # seconds
    attempts: int = 0
    success: bool = False
    error_message: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "original_side": self.original_side.value,
            "hedge_side": self.hedge_side.value if self.hedge_side else None,
            "hedge_venue": self.hedge_venue.value if self.hedge_venue else None,
            "size": self.size,
            "original_price": self.original_price,
            "execution_price": self.execution_price,
            "hedge_order_id": self.hedge_order_id,
            "delay_ms": round(self.total_delay * 1000, 3),
            "attempts": self.attempts,
            "success": self.success,
            "error": self.error_message,
        }


@dataclass
class ExecutionStats:
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_delay: float = 0.0  # seconds
    min_delay: float = 0.0
    max_delay: float = 0.0
    last_execution_time: float = 0.0
    delay_distribution: Dict[str, int] = field(default_factory=lambda: {b: 0 for b in DELAY_BUCKETS})

    @property
    def success_rate(self) -> float:
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions * 100

    def copy(self) -> "ExecutionStats":
        return replace(self, delay_distribution=dict(self.delay_distribution))

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total_executions,
            "successful": self.successful_executions,
            "failed": self.failed_executions,
            "success_rate_pct": round(self.success_rate, 2),
            "avg_delay_ms": round(self.average_delay * 1000, 3),
            "min_delay_ms": round(self.min_delay * 1000, 3),
            "max_delay_ms": round(self.max_delay * 1000, 3),
            "last_execution_time": self.last_execution_time,
            "delay_distribution": dict(self.delay_distribution),
        }


class HedgeExecutor:
    def __init__(
        self,
        convention: HedgeConvention,
        taker: TakerVenue,
        maker: MakerVenue,
        config: Optional[FastExecutionConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        metrics=None,
    ) -> None:
        self.convention = convention
        self._venues = {Venue.TAKER: taker, Venue.MAKER: maker}
        self._clock = clock or Clock()
        self._log = logger or logging.getLogger("hedgebot")
        self._metrics = metrics
        self._stats = ExecutionStats()
        self.config = config or FastExecutionConfig()
        self._semaphore = asyncio.Semaphore(self._concurrency(self.config))

    @staticmethod
    def _concurrency(config: FastExecutionConfig) -> int:
        return config.max_concurrent if config.enable_concurrent_execution else 1

    def configure(self, config: FastExecutionConfig) -> None:
        """Swap settings; only call while no hedge is in flight (e.g. on start)."""
        self.config = config
        self._semaphore = asyncio.Semaphore(self._concurrency(config))
        self._log.info(json.dumps({
            "event": "fast_execution_configured",
            "max_delay_ms": config.max_execution_delay * 1000,
            "price_protection": config.enable_price_protection,
            "max_slippage_pct": config.max_slippage_percent,
            "retry": config.enable_retry,
            "max_retries": config.max_retry_attempts,
            "pre_execution": config.enable_pre_execution,
            "partial_threshold": config.partial_fill_threshold,
            "max_concurrent": self._concurrency(config),
        }))

    def retry_policy(self, label: str) -> RetryPolicy:
        attempts = self.config.max_retry_attempts if self.config.enable_retry else 1
        return RetryPolicy(
            max_attempts=attempts,
            backoff=self.config.retry_backoff,
            give_up_on=(UnsupportedHedgeError, PriceProtectionError),
            clock=self._clock,
            logger=self._log,
            label=label,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────

    async def execute_fast_hedge(
        self,
        order_id: str,
        symbol: str,
        original_side: OrderSide,
        size: float,
        original_price: float,
        venue: Venue = Venue.MAKER,
        detection_time: Optional[float] = None,
        token: Optional[CancelToken] = None,
    ) -> ExecutionContext:
        """
        Mirror ``size`` (quote notional) filled on ``venue`` onto the other venue.

        Raises UnsupportedHedgeError for symbols outside the convention and
        HedgeExecutionError when protection rejects or retries run out.
        """
        start = self._clock.monotonic()
        hedge_side = self.convention.hedge_side(symbol, original_side)
        mirror = venue.other()
        ctx = ExecutionContext(
            order_id=order_id,
            symbol=symbol,
            original_side=original_side,
            hedge_side=hedge_side,
            hedge_venue=mirror,
            size=size,
            original_price=original_price,
            start_time=start,
            detection_time=start if detection_time is None else detection_time,
        )
        if size <= 0:
            raise ValueError(f"hedge size must be > 0, got {size}")

        async with self._semaphore:
            try:
                ref_price = await self._reference_price(ctx, mirror)
                policy = self.retry_policy(f"hedge:{symbol}")

                async def _attempt() -> OrderAck:
                    ctx.attempts += 1
                    return await self._place_mirror(mirror, symbol, hedge_side, size, ref_price)

                ack = await policy.run(_attempt, token=token, on_retry=lambda n, e: self._on_retry(symbol))
            except PriceProtectionError as exc:
                self._finish(ctx, error=str(exc))
                raise HedgeExecutionError(f"price protection rejected hedge for {order_id}: {exc}", ctx) from exc
            except RetryExhaustedError as exc:
                self._finish(ctx, error=str(exc.last_error))
                raise HedgeExecutionError(f"hedge for {order_id} failed after {exc.attempts} attempts", ctx) from exc
            except RetryCancelledError as exc:
                self._finish(ctx, error="cancelled")
                raise HedgeExecutionError(f"hedge for {order_id} cancelled", ctx) from exc

        ctx.execution_price = ack.price
        ctx.hedge_order_id = ack.order_id
        self._finish(ctx)
        return ctx

    async def _reference_price(self, ctx: ExecutionContext, mirror: Venue) -> Optional[float]:
        if not self.config.enable_price_protection:
            return None
        client = self._venues[mirror]
        try:
            ref = await asyncio.wait_for(
                client.get_current_price(ctx.symbol), timeout=self.config.price_validity_window
            )
        except asyncio.TimeoutError:
            raise PriceProtectionError(
                f"reference price for {ctx.symbol} not received within {self.config.price_validity_window}s"
            ) from None
        except VenueError as exc:
            self._log.warning(json.dumps({"event": "price_fetch_failed", "symbol": ctx.symbol, "err": str(exc)}))
            raise PriceProtectionError(f"reference price unavailable: {exc}") from exc
        if ctx.original_price <= 0 or ref <= 0:
            return ref if ref > 0 else None
        deviation = abs(ctx.original_price - ref) / ref * 100
        if deviation > self.config.max_slippage_percent:
            raise PriceProtectionError(
                f"{ctx.symbol} price {ctx.original_price} deviates {deviation:.4f}% from reference {ref} "
                f"(max {self.config.max_slippage_percent}%)"
            )
        return ref

    async def _place_mirror(
        self, venue: Venue, symbol: str, side: OrderSide, notional: float, ref_price: Optional[float]
    ) -> OrderAck:
        client = self._venues[venue]
        if venue is Venue.TAKER:
            if side is OrderSide.BUY:
                return await client.place_taker_long(symbol, notional, self.config.leverage)
            return await client.place_taker_short(symbol, notional, self.config.leverage)
        # fills on the taker venue are mirrored on the maker venue at market
        price = ref_price or await client.get_current_price(symbol)
        order_id = await client.place_market_order(symbol, side, notional / price)
        return OrderAck(order_id=order_id, price=price)

    def _on_retry(self, symbol: str) -> None:
        if self._metrics is not None:
            try:
                self._metrics.hedge_retries.labels(symbol=symbol).inc()
            except Exception:
                self._log.debug("hedge retry metric update failed", exc_info=True)

    # ─────────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────────

    def _finish(self, ctx: ExecutionContext, error: str = "") -> None:
        ctx.execution_time = self._clock.monotonic()
        ctx.total_delay = max(0.0, ctx.execution_time - ctx.detection_time)
        ctx.success = not error
        ctx.error_message = error
        self._record(ctx)

        payload = {"event": "hedge_executed" if ctx.success else "hedge_failed", **ctx.to_dict()}
        if not ctx.success:
            self._log.error(json.dumps(payload))
        elif self.is_delay_excessive(ctx.total_delay):
            self._log.warning(json.dumps({**payload, "event": "hedge_delay_excessive"}))
        else:
            self._log.info(json.dumps(payload))

        if self._metrics is not None:
            try:
                self._metrics.hedges.labels(symbol=ctx.symbol, result="ok" if ctx.success else "error").inc()
                if ctx.success:
                    self._metrics.hedge_delay_ms.labels(symbol=ctx.symbol).observe(ctx.total_delay * 1000)
            except Exception:
                self._log.debug("hedge metric update failed", exc_info=True)

    def _record(self, ctx: ExecutionContext) -> None:
        s = self._stats
        s.total_executions += 1
        s.last_execution_time = self._clock.time()
        if not ctx.success:
            s.failed_executions += 1
            return
        s.successful_executions += 1
        delay = ctx.total_delay
        n = s.successful_executions
        s.average_delay += (delay - s.average_delay) / n
        s.min_delay = delay if n == 1 else min(s.min_delay, delay)
        s.max_delay = max(s.max_delay, delay)
        s.delay_distribution[delay_bucket(delay * 1000)] += 1

    def get_execution_stats(self) -> ExecutionStats:
        return self._stats.copy()

    def is_delay_excessive(self, delay: float) -> bool:
        return delay > self.config.max_execution_delay

    def log_performance_metrics(self) -> None:
        self._log.info(json.dumps({"event": "fast_execution_performance", **self._stats.to_dict()}))
