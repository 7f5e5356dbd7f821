from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

from .runner import AlertRunner

log = logging.getLogger("health")


class HealthServer:
    def __init__(self, runner: AlertRunner, *, host: str = "0.0.0.0", port: int = 3000):
        self.runner = runner
        self.host = host
        self.port = int(port)
        self.app = self.build_app()
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.handle_root)
        app.router.add_get("/healthz", self.handle_healthz)
        return app

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.Response(text=f"{self.runner.cfg.app.name} is alive", content_type="text/plain")

    async def handle_healthz(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "cycles": self.runner.metrics["cycles_total"],
                "last_cycle_ms": self.runner.last_cycle_ms,
            }
        )

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("health_server_started host=%s port=%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
