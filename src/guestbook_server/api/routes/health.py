"""Health check endpoint."""

from aiohttp import web


async def handle_health(request: web.Request) -> web.Response:
    """GET /health: no rate limiting."""
    return web.json_response({"status": "ok"})
