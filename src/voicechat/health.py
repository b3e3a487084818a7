"""Health and metadata endpoints for the gateway.

Provides read-only HTTP endpoints for load balancers, monitoring systems and
orchestration tools (e.g., Docker healthcheck, Kubernetes liveness probe).
None of them mutate session state.
"""

import logging
import time
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from voicechat import __version__

logger = logging.getLogger(__name__)

SERVICE_NAME = "Revolt Motors Voice Chat API"


class HealthCheckHandler:
    """Health check handler for the gateway.

    Provides:
    - /health: process status and active session count
    - /liveness: process is up
    - /api/info: static service metadata
    """

    def __init__(self, registry: Any = None, websocket_path: str = "/voice-chat") -> None:
        """Initialize health check handler.

        Args:
            registry: SessionRegistry instance (optional)
            websocket_path: Path of the WebSocket endpoint, reported by /api/info
        """
        self.registry = registry
        self.websocket_path = websocket_path
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Response format:
        {
            "status": "healthy",
            "activeSessions": int,
            "uptime_seconds": float,
            "timestamp": ISO-8601 string
        }
        """
        active_sessions = self.registry.active_count if self.registry is not None else 0

        response_data = {
            "status": "healthy",
            "activeSessions": active_sessions,
            "uptime_seconds": time.time() - self.start_time,
            "timestamp": datetime.now(UTC).isoformat(),
        }

        logger.debug("Health check performed", extra={"active_sessions": active_sessions})

        return web.json_response(response_data, status=200)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness check endpoint.

        Returns OK if the process is running, regardless of collaborators.
        """
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )

    async def api_info(self, request: web.Request) -> web.Response:
        """Static service metadata."""
        return web.json_response(
            {
                "name": SERVICE_NAME,
                "version": __version__,
                "endpoints": {
                    "websocket": self.websocket_path,
                    "health": "/health",
                    "liveness": "/liveness",
                },
            },
            status=200,
        )


def setup_health_routes(
    app: web.Application,
    registry: Any = None,
    websocket_path: str = "/voice-chat",
) -> HealthCheckHandler:
    """Set up health check routes on application.

    Args:
        app: aiohttp Application instance
        registry: SessionRegistry instance (optional)
        websocket_path: Path of the WebSocket endpoint

    Returns:
        The handler serving the routes
    """
    handler = HealthCheckHandler(registry=registry, websocket_path=websocket_path)

    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)
    app.router.add_get("/api/info", handler.api_info)

    logger.info("Health check endpoints configured: /health, /liveness, /api/info")
    return handler
