"""
Health checks and the HTTP endpoint for metrics and status.

- /health  liveness, no auth (503 when a component reports unhealthy)
- /ready   readiness, no auth (503 until the strategy loops are running)
- /status  strategy state JSON (bearer token when configured)
- /metrics Prometheus exposition (bearer token when configured)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from prometheus_client import CONTENT_TYPE_LATEST

from hedgebot.monitoring.metrics_rich import HedgeMetrics


@dataclass
class HealthStatus:
    healthy: bool = True
    ready: bool = False
    components: Dict[str, bool] = field(default_factory=dict)
    details: Dict[str, str] = field(default_factory=dict)
    loop_age_sec: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "ready": self.ready,
            "components": dict(self.components),
            "details": dict(self.details),
            "loop_age_sec": {k: round(v, 3) for k, v in self.loop_age_sec.items()},
        }


class HealthChecker:
    """
    Component and loop health for the /health and /ready probes.

    Components (venue position feeds, config) report in with
    set_component_health. Loops call beat() once per iteration; with
    ``stale_after`` set, a loop that has not beaten for that many seconds
    makes the process unhealthy even if every component says otherwise.
    """

    def __init__(self, stale_after: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.stale_after = stale_after
        self._clock = clock
        self._components: Dict[str, bool] = {}
        self._details: Dict[str, str] = {}
        self._beats: Dict[str, float] = {}
        self._ready = False

    def set_component_health(self, name: str, healthy: bool, detail: Optional[str] = None) -> None:
        self._components[name] = healthy
        if detail:
            self._details[name] = detail
        else:
            self._details.pop(name, None)

    def set_ready(self, ready: bool) -> None:
        self._ready = ready

    def beat(self, loop: str) -> None:
        self._beats[loop] = self._clock()

    def loop_ages(self) -> Dict[str, float]:
        now = self._clock()
        return {loop: now - ts for loop, ts in self._beats.items()}

    def stale_loops(self) -> Dict[str, float]:
        if self.stale_after is None:
            return {}
        return {loop: age for loop, age in self.loop_ages().items() if age > self.stale_after}

    def is_healthy(self) -> bool:
        return all(self._components.values()) and not self.stale_loops()

    def is_ready(self) -> bool:
        return self._ready and self.is_healthy()

    def get_status(self) -> HealthStatus:
        details = dict(self._details)
        for loop, age in self.stale_loops().items():
            details[f"{loop}_loop"] = f"no heartbeat for {age:.1f}s"
        return HealthStatus(
            healthy=self.is_healthy(),
            ready=self.is_ready(),
            components=dict(self._components),
            details=details,
            loop_age_sec=self.loop_ages(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.get_status().to_dict()


def _parse_request(req: bytes) -> Tuple[str, Dict[str, list], Dict[bytes, bytes]]:
    lines = req.split(b"\r\n") if b"\r\n" in req else [req]
    path_raw = b"/"
    if lines and b" " in lines[0]:
        parts = lines[0].split(b" ")
        if len(parts) > 1:
            path_raw = parts[1]
    headers: Dict[bytes, bytes] = {}
    for line in lines[1:]:
        if b":" in line:
            k, v = line.split(b":", 1)
            headers[k.strip().lower()] = v.strip()
    parsed = urlparse(path_raw.decode("utf-8", errors="ignore"))
    return parsed.path, parse_qs(parsed.query), headers


def _response(status: str, body: bytes = b"", content_type: str = "application/json") -> bytes:
    head = f"HTTP/1.1 {status}\r\nContent-Type: {content_type}\r\nContent-Length: {len(body)}\r\nConnection: close\r\n\r\n"
    return head.encode() + body


async def start_metrics_server(
    metrics: HedgeMetrics,
    port: int,
    status_provider: Optional[Callable[[], Dict[str, Any]]] = None,
    auth_token: Optional[str] = None,
    health_checker: Optional[HealthChecker] = None,
    host: str = "0.0.0.0",
    logger: Optional[logging.Logger] = None,
) -> asyncio.AbstractServer:
    log = logger or logging.getLogger("hedgebot")

    def _route(path: str, query: Dict[str, list], headers: Dict[bytes, bytes]) -> bytes:
        if path == "/health":
            healthy = health_checker.is_healthy() if health_checker else True
            body = health_checker.to_dict() if health_checker else {"healthy": True, "ready": True}
            return _response("200 OK" if healthy else "503 Service Unavailable", json.dumps(body).encode())

        if path == "/ready":
            ready = health_checker.is_ready() if health_checker else True
            return _response("200 OK" if ready else "503 Service Unavailable", json.dumps({"ready": ready}).encode())

        if auth_token:
            header_auth = headers.get(b"authorization", b"").decode("utf-8", errors="ignore")
            if header_auth != f"Bearer {auth_token}" and query.get("token", [""])[0] != auth_token:
                return _response("401 Unauthorized")

        if path.startswith("/status"):
            if status_provider is None:
                return _response("404 Not Found")
            try:
                body = json.dumps(status_provider(), default=str).encode()
            except Exception:
                log.warning(json.dumps({"event": "status_render_failed"}), exc_info=True)
                return _response("500 Internal Server Error")
            return _response("200 OK", body)

        return _response("200 OK", metrics.render(), CONTENT_TYPE_LATEST)

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            req = await reader.read(2048)
            path, query, headers = _parse_request(req)
            writer.write(_route(path, query, headers))
            await writer.drain()
        finally:
            writer.close()

    server = await asyncio.start_server(handle, host, port)
    log.info(json.dumps({"event": "metrics_server_started", "host": host, "port": port}))
    return server
