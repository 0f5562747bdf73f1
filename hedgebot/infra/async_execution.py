"""
Async wrapper around the blocking Hyperliquid Exchange using a shared thread pool.

The SDK signs and posts synchronously; every call is pushed onto a small
executor with a per-call timeout. Transport-level retries here are kept short
(the hedge executor owns the business-level retry policy).
"""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional


class AsyncExchange:
    def __init__(self, exchange, timeout: float = 2.0, max_workers: int = 4, retries: int = 1) -> None:
        self._exchange = exchange
        self._timeout = timeout
        self._retries = retries
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="hl-exec")

    async def market_open(
        self,
        coin: str,
        is_buy: bool,
        sz: float,
        px: Optional[float] = None,
        slippage: float = 0.01,
    ) -> Any:
        # market_open is not idempotent: never retry at this layer
        return await self._call(lambda: self._exchange.market_open(coin, is_buy, sz, px, slippage), retries=0)

    async def update_leverage(self, leverage: int, coin: str, is_cross: bool = True) -> Any:
        return await self._call(lambda: self._exchange.update_leverage(leverage, coin, is_cross))

    async def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    async def _call(self, fn: Callable[[], Any], retries: Optional[int] = None) -> Any:
        loop = asyncio.get_running_loop()
        retries = self._retries if retries is None else retries
        backoff = 0.2
        for attempt in range(retries + 1):
            try:
                return await asyncio.wait_for(loop.run_in_executor(self._executor, fn), timeout=self._timeout)
            except Exception:
                if attempt >= retries:
                    raise
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
