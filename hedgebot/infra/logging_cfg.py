"""
Structured logging setup for the hedge bot.

- Rich console handler for humans, JSON lines in the log file
- File writes go through a background queue so the event loop never blocks
- Throttling for events that can fire every tracker tick (retries, status errors)
"""

from __future__ import annotations

import atexit
import copy
import json
import logging
import queue
import sys
import time
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional, Set

from rich.logging import RichHandler


def _event_payload(message: str) -> Optional[Dict[str, Any]]:
    if not message.startswith("{"):
        return None
    try:
        data = json.loads(message)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Messages that are themselves JSON events (``json.dumps({"event": ...})``)
    are nested under ``data`` so the file stays queryable by event name;
    anything else is kept verbatim under ``msg``.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        line: Dict[str, Any] = {
            "ts": round(record.created, 3),
            "utc": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3],
            "level": record.levelname,
            "logger": record.name,
        }
        data = _event_payload(message)
        if data is not None and "event" in data:
            line["event"] = data["event"]
            line["data"] = {k: v for k, v in data.items() if k != "event"}
        else:
            line["msg"] = message
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        elif record.exc_text:
            line["exc"] = record.exc_text
        return json.dumps(line, separators=(",", ":"), default=str)


class AsyncQueueHandler(QueueHandler):
    """
    Hand records to a listener thread that owns the real (file) handler.

    ``emit`` never blocks: when the bounded queue is full the record is
    dropped and counted.
    """

    def __init__(self, target_handler: logging.Handler, max_queue_size: int = 10000):
        super().__init__(queue.Queue(maxsize=max_queue_size))
        self.target = target_handler
        self.dropped = 0
        self._listener: Optional[QueueListener] = QueueListener(
            self.queue, target_handler, respect_handler_level=True
        )
        self._listener.start()
        atexit.register(self.close)

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # freeze the message and traceback text; the formatter runs on another thread
        record = copy.copy(record)
        record.msg = record.getMessage()
        record.args = None
        if record.exc_info:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
            record.exc_info = None
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def close(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()
            if self.dropped:
                sys.stderr.write(f"[hedgebot] {self.dropped} log records dropped (queue full)\n")
            self.target.close()
        super().close()


class ThrottledFilter(logging.Filter):
    """
    Suppress repeats of noisy JSON events for ``cooldown_sec``.

    The throttle key is event name plus symbol/venue when present.
    """

    DEFAULT_EVENTS = {"hedge_retry", "order_status_error", "price_fetch_failed", "position_refresh_failed"}

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[Set[str]] = None):
        super().__init__()
        self._cooldown = cooldown_sec
        self._last_seen: Dict[str, float] = {}
        self._throttled_events = throttled_events or set(self.DEFAULT_EVENTS)

    def filter(self, record: logging.LogRecord) -> bool:
        data = _event_payload(record.getMessage())
        if data is None or data.get("event") not in self._throttled_events:
            return True

        key = f"{data['event']}:{data.get('symbol', '')}:{data.get('venue', '')}"
        now = time.monotonic()
        last = self._last_seen.get(key)
        if last is not None and now - last < self._cooldown:
            return False
        self._last_seen[key] = now
        return True


def build_logger(
    name: str = "hedgebot",
    level: int = logging.INFO,
    file_path: Optional[str] = "hedgebot.log",
    async_file: bool = True,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Build the process logger.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: JSON log file (None disables file logging)
        async_file: Write the file through AsyncQueueHandler
        throttle_warnings: Attach ThrottledFilter to the console handler

    Returns:
        Configured logger instance (idempotent per name: a second call only
        adjusts the level)
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    console = RichHandler(show_time=True, show_level=True, show_path=False, markup=False, rich_tracebacks=False)
    console.setFormatter(logging.Formatter("%(message)s"))
    if throttle_warnings:
        console.addFilter(ThrottledFilter(cooldown_sec=30.0))
    handlers = [console]

    if file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        handlers.append(AsyncQueueHandler(file_handler) if async_file else file_handler)

    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **data,
) -> None:
    """
    Log a structured event.

    Usage:
        log_event(log, "hedge_executed", symbol="BTC", delay_ms=84.2)
    """
    payload = {"event": event, **data}
    logger.log(level, json.dumps(payload, default=str))
