"""HTTP health check: ``GET /health`` and ``GET /metrics``."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from aiohttp import web

from .circuit_breaker import CircuitState

log = logging.getLogger(__name__)

_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
    "Cache-Control": "no-store",
}

SnapshotFn = Callable[[], Dict[str, Any]]


class HealthServer:
    def __init__(
        self,
        port: int,
        *,
        host: str = "0.0.0.0",
        ledger_configured: bool = False,
        metrics: Optional[SnapshotFn] = None,
        circuit: Optional[SnapshotFn] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.port = int(port)
        self.host = host
        self.ledger_configured = ledger_configured
        self._metrics = metrics
        self._circuit = circuit
        self._clock = clock
        self._started_at = clock()
        self._runner: Optional[web.AppRunner] = None

        self.app = web.Application()
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/metrics", self.handle_metrics)

    def _uptime(self) -> int:
        return int(self._clock() - self._started_at)

    def _timestamp(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()

    def health_status(self) -> Tuple[int, Dict[str, Any]]:
        circuit = self._circuit() if self._circuit is not None else {}
        healthy = circuit.get("state") != CircuitState.OPEN.value
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime": self._uptime(),
            "timestamp": self._timestamp(),
            "ledger": "connected" if self.ledger_configured else "not_configured",
            "metrics": self._metrics() if self._metrics is not None else {},
            "circuit": circuit,
        }
        return (200 if healthy else 503), body

    async def handle_health(self, request: web.Request) -> web.Response:
        status, body = self.health_status()
        return web.json_response(body, status=status, headers=_HEADERS)

    async def handle_metrics(self, request: web.Request) -> web.Response:
        body: Dict[str, Any] = {"timestamp": self._timestamp(), "uptime": self._uptime()}
        if self._metrics is not None:
            body.update(self._metrics())
        return web.json_response(body, headers=_HEADERS)

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("health check listening on http://%s:%d/health", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        log.info("health check server stopped")
