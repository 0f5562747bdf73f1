"""
Timer abstraction for the strategy loops.

- Clock: wall time, monotonic time and an awaitable sleep
- ManualClock: virtual clock for tests (sleep advances time instantly)
- CancelToken: single cancellation signal shared by every loop
- PeriodicTask: run a coroutine every ``interval`` until cancelled
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional


class Clock:
    """Real time."""

    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.perf_counter()

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.time(), tz=timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


SystemClock = Clock


class ManualClock(Clock):
    """
    Virtual clock.

    ``sleep`` advances the clock by the requested amount and yields once to
    the event loop, so loops driven by this clock run as fast as the test
    can schedule them.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)
        self._mono = 0.0

    def time(self) -> float:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += seconds
        self._mono += seconds

    def set_time(self, ts: float) -> None:
        self._mono += max(0.0, ts - self._now)
        self._now = ts

    async def sleep(self, seconds: float) -> None:
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)


class CancelToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, clock: Clock, seconds: float) -> bool:
        """
        Sleep on ``clock`` for ``seconds`` unless cancelled first.

        Returns True if the token was cancelled (before or during the wait).
        """
        if self.cancelled:
            return True
        sleeper = asyncio.ensure_future(clock.sleep(seconds))
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, waiter):
                if not fut.done():
                    fut.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        return self.cancelled


class PeriodicTask:
    """
    Cooperative periodic loop.

    Each tick runs to completion before the next wait starts. An exception
    inside a tick is logged and the loop keeps going; only the token stops it.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        fn: Callable[[], Awaitable[None]],
        clock: Optional[Clock] = None,
        token: Optional[CancelToken] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"{name}: interval must be > 0")
        self.name = name
        self.interval = interval
        self._fn = fn
        self._clock = clock or Clock()
        self._token = token or CancelToken()
        self._log = logger or logging.getLogger("hedgebot")
        self.tick_count = 0
        self.error_count = 0

    @property
    def token(self) -> CancelToken:
        return self._token

    async def run(self) -> None:
        self._log.info(json.dumps({"event": "loop_started", "loop": self.name, "interval": self.interval}))
        while not self._token.cancelled:
            try:
                await self._fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.error_count += 1
                self._log.exception(json.dumps({"event": "loop_tick_error", "loop": self.name, "err": str(exc)}))
            self.tick_count += 1
            if await self._token.wait(self._clock, self.interval):
                break
        self._log.info(json.dumps({"event": "loop_stopped", "loop": self.name, "ticks": self.tick_count}))
