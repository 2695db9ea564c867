"""HTTP health endpoint for the process supervisor."""

from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

from bitredict.oracle.runner import ComponentRunner

logger = logging.getLogger(__name__)

_RUNNER_KEY = web.AppKey("runner", ComponentRunner)


async def _handle_health(request: web.Request) -> web.Response:
    snapshot = request.app[_RUNNER_KEY].snapshot()
    status = 200 if snapshot["status"] == "ok" else 503
    return web.json_response(snapshot, status=status)


def build_health_app(runner: ComponentRunner) -> web.Application:
    app = web.Application()
    app[_RUNNER_KEY] = runner
    app.router.add_get("/health", _handle_health)
    return app


class HealthServer:
    def __init__(self, runner: ComponentRunner, *, host: str = "0.0.0.0", port: int = 8088) -> None:
        self.host = host
        self.port = port
        self._app = build_health_app(runner)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info({"health_server": {"host": self.host, "port": self.port}})

    async def stop(self) -> None:
        if self._site is not None:
            await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None


__all__ = ["build_health_app", "HealthServer"]
