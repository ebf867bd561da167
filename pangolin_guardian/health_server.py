"""Tiny HTTP liveness endpoint for the container healthcheck."""

import logging

from aiohttp import web

logger = logging.getLogger(__name__)


async def health(request: web.Request) -> web.Response:
    return web.Response(text="OK")


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health", health)
    return app


async def start_health_server(port: int = 3000, host: str = "0.0.0.0") -> web.AppRunner:
    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Health check server listening on port %d", port)
    return runner
