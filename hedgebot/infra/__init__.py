"""
Infrastructure package.

This package contains infrastructure components: logging configuration,
the timer/cancellation abstraction, the retry policy and async wrappers
around the Hyperliquid SDK.
"""

from hedgebot.infra.async_execution import AsyncExchange
from hedgebot.infra.async_info import AsyncInfo
from hedgebot.infra.clock import CancelToken, Clock, ManualClock, PeriodicTask, SystemClock
from hedgebot.infra.logging_cfg import build_logger, log_event
from hedgebot.infra.retry import RetryCancelledError, RetryExhaustedError, RetryPolicy

__all__ = [
    "AsyncExchange",
    "AsyncInfo",
    "CancelToken",
    "Clock",
    "ManualClock",
    "PeriodicTask",
    "SystemClock",
    "build_logger",
    "log_event",
    "RetryCancelledError",
    "RetryExhaustedError",
    "RetryPolicy",
]
