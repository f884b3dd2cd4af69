from __future__ import annotations

import logging
from datetime import datetime, timezone

from aiohttp import web

from relay_bot.registry import ChatRegistry

logger = logging.getLogger(__name__)


class HealthServer:
    def __init__(self, host: str, port: int, registry: ChatRegistry, relay_active: bool) -> None:
        self.host = host
        self.port = port
        self.registry = registry
        self.relay_active = relay_active
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes(
            [
                web.get("/", self._index),
                web.get("/health", self._health),
            ]
        )
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host=self.host, port=self.port)
        await self._site.start()
        logger.info("health_server_started", extra={"action": "health", "reason": f"{self.host}:{self.port}"})

    async def stop(self) -> None:
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _index(self, _: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "OK",
                "message": "Relay bot is running",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "target_chats": self.registry.size(),
                "relay_active": self.relay_active,
            }
        )

    async def _health(self, _: web.Request) -> web.Response:
        return web.Response(text="OK")
