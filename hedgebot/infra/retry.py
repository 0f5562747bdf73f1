"""
Reusable retry policy with linear backoff and cancellation-aware waits.

Used by HedgeExecutor for mirrored orders; any other retrying call should go
through the same object instead of sleeping inline.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from hedgebot.infra.clock import CancelToken, Clock


class RetryExhaustedError(Exception):
    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")


class RetryCancelledError(Exception):
    """The cancellation token fired while waiting between attempts."""


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: float = 0.1  # seconds; wait before attempt n+1 is backoff * n
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    give_up_on: Tuple[Type[BaseException], ...] = ()
    clock: Optional[Clock] = None
    logger: Optional[logging.Logger] = None
    label: str = "call"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff < 0:
            raise ValueError("backoff must be >= 0")
        self.clock = self.clock or Clock()
        self.logger = self.logger or logging.getLogger("hedgebot")

    def delay_for(self, attempt: int) -> float:
        """Wait after failed attempt ``attempt`` (1-based)."""
        return self.backoff * attempt

    async def run(
        self,
        fn: Callable[[], Awaitable[Any]],
        token: Optional[CancelToken] = None,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> Any:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn()
            except asyncio.CancelledError:
                raise
            except self.give_up_on:
                raise
            except self.retry_on as exc:
                last_error = exc
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                self.logger.warning(json.dumps({
                    "event": "hedge_retry",
                    "label": self.label,
                    "attempt": attempt,
                    "next_delay_s": delay,
                    "err": str(exc),
                }))
                if on_retry is not None:
                    on_retry(attempt, exc)
                if token is not None:
                    if await token.wait(self.clock, delay):
                        raise RetryCancelledError(f"{self.label}: cancelled after attempt {attempt}") from exc
                else:
                    await self.clock.sleep(delay)
        raise RetryExhaustedError(self.max_attempts, last_error)
