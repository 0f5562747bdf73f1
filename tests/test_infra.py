"""
Tests for the infrastructure layer: clock, cancellation, periodic loops,
retry policy and structured logging.
"""

import asyncio
import json
import logging
import sys
from unittest.mock import AsyncMock

import pytest

from hedgebot.infra.clock import CancelToken, ManualClock, PeriodicTask
from hedgebot.infra.logging_cfg import AsyncQueueHandler, JsonFormatter, ThrottledFilter, log_event
from hedgebot.infra.retry import RetryCancelledError, RetryExhaustedError, RetryPolicy


def _record(msg, level=logging.WARNING):
    return logging.LogRecord("hedgebot", level, __file__, 1, msg, None, None)


# ─────────────────────────────────────────────────────────────────────────────
# Clock / CancelToken
# ─────────────────────────────────────────────────────────────────────────────


class TestManualClock:
    @pytest.mark.asyncio
    async def test_sleep_advances_time(self):
        clock = ManualClock(start=100.0)
        await clock.sleep(2.5)
        assert clock.time() == 102.5
        assert clock.monotonic() == 2.5

    def test_utcnow(self):
        clock = ManualClock(start=0.0)
        assert clock.utcnow().year == 1970

    def test_set_time_only_moves_monotonic_forward(self):
        clock = ManualClock(start=100.0)
        clock.set_time(50.0)
        assert clock.time() == 50.0
        assert clock.monotonic() == 0.0


class TestCancelToken:
    @pytest.mark.asyncio
    async def test_wait_returns_false_when_not_cancelled(self):
        token = CancelToken()
        assert await token.wait(ManualClock(), 1.0) is False

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_when_cancelled(self):
        token = CancelToken()
        token.cancel()
        clock = ManualClock(start=0.0)
        assert await token.wait(clock, 10.0) is True
        assert clock.time() == 0.0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_real_sleep(self):
        from hedgebot.infra.clock import Clock

        token = CancelToken()
        waiter = asyncio.create_task(token.wait(Clock(), 30.0))
        await asyncio.sleep(0.01)
        token.cancel()
        assert await asyncio.wait_for(waiter, timeout=1.0) is True


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_runs_until_cancelled(self):
        clock = ManualClock()
        token = CancelToken()
        calls = []

        async def tick():
            calls.append(clock.time())
            if len(calls) == 3:
                token.cancel()

        task = PeriodicTask("test", 5.0, tick, clock, token)
        await task.run()
        assert task.tick_count == 3
        assert calls[1] - calls[0] == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_tick_errors_do_not_stop_loop(self):
        token = CancelToken()
        fn = AsyncMock(side_effect=[RuntimeError("boom"), None, None])

        async def tick():
            await fn()
            if fn.await_count == 3:
                token.cancel()

        task = PeriodicTask("test", 1.0, tick, ManualClock(), token)
        await task.run()
        assert task.error_count == 1
        assert task.tick_count == 3

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PeriodicTask("bad", 0.0, AsyncMock())


# ─────────────────────────────────────────────────────────────────────────────
# RetryPolicy
# ─────────────────────────────────────────────────────────────────────────────


class TestRetryPolicy:
    def test_linear_backoff(self):
        policy = RetryPolicy(backoff=0.1)
        assert policy.delay_for(1) == pytest.approx(0.1)
        assert policy.delay_for(3) == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        clock = ManualClock(start=0.0)
        fn = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        retries = []
        policy = RetryPolicy(max_attempts=3, backoff=0.1, clock=clock)
        assert await policy.run(fn, on_retry=lambda n, e: retries.append(n)) == "ok"
        assert fn.await_count == 3
        assert retries == [1, 2]
        # waited 0.1 then 0.2
        assert clock.time() == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_exhausted(self):
        fn = AsyncMock(side_effect=RuntimeError("down"))
        policy = RetryPolicy(max_attempts=2, backoff=0.0, clock=ManualClock())
        with pytest.raises(RetryExhaustedError) as exc_info:
            await policy.run(fn)
        assert exc_info.value.attempts == 2
        assert str(exc_info.value.last_error) == "down"

    @pytest.mark.asyncio
    async def test_give_up_on_propagates_immediately(self):
        fn = AsyncMock(side_effect=KeyError("fatal"))
        policy = RetryPolicy(max_attempts=5, give_up_on=(KeyError,), clock=ManualClock())
        with pytest.raises(KeyError):
            await policy.run(fn)
        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_between_attempts(self):
        token = CancelToken()
        token.cancel()
        fn = AsyncMock(side_effect=RuntimeError("down"))
        policy = RetryPolicy(max_attempts=3, backoff=1.0, clock=ManualClock())
        with pytest.raises(RetryCancelledError):
            await policy.run(fn, token=token)
        assert fn.await_count == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────


class TestLogging:
    def test_json_formatter_nests_event_payload(self):
        line = JsonFormatter().format(_record('{"event": "hedge_executed", "symbol": "BTC"}', logging.INFO))
        data = json.loads(line)
        assert data["level"] == "INFO"
        assert data["event"] == "hedge_executed"
        assert data["data"] == {"symbol": "BTC"}
        assert "msg" not in data

    def test_json_formatter_plain_message(self):
        data = json.loads(JsonFormatter().format(_record("Shutdown complete", logging.INFO)))
        assert data["msg"] == "Shutdown complete"
        assert "event" not in data

    def test_json_formatter_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("hedgebot", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        data = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in data["exc"]

    def test_async_queue_handler_writes_file(self, tmp_path):
        path = tmp_path / "hedgebot.log"
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        handler = AsyncQueueHandler(file_handler)
        handler.handle(_record('{"event": "opening_placed", "symbol": "ETH"}', logging.INFO))
        handler.close()
        (line,) = path.read_text().splitlines()
        assert json.loads(line)["event"] == "opening_placed"
        assert handler.dropped == 0

    def test_throttled_filter_suppresses_repeats(self):
        flt = ThrottledFilter(cooldown_sec=60.0)
        msg = json.dumps({"event": "hedge_retry", "symbol": "BTC"})
        assert flt.filter(_record(msg)) is True
        assert flt.filter(_record(msg)) is False
        # different symbol has its own key
        assert flt.filter(_record(json.dumps({"event": "hedge_retry", "symbol": "ETH"}))) is True

    def test_throttled_filter_passes_other_events(self):
        flt = ThrottledFilter(cooldown_sec=60.0)
        msg = json.dumps({"event": "hedge_executed"})
        assert flt.filter(_record(msg)) is True
        assert flt.filter(_record(msg)) is True
        assert flt.filter(_record("plain text")) is True

    def test_log_event(self, caplog):
        logger = logging.getLogger("hedgebot.test.events")
        with caplog.at_level(logging.INFO, logger="hedgebot.test.events"):
            log_event(logger, "hedge_executed", symbol="BTC", delay_ms=84.2)
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload == {"event": "hedge_executed", "symbol": "BTC", "delay_ms": 84.2}
