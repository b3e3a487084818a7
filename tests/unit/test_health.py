"""Unit tests for the health and metadata endpoints."""

import json
from unittest.mock import MagicMock

import pytest
from aiohttp import web

from tests.helpers.fakes import FakeConnection
from voicechat import __version__
from voicechat.health import SERVICE_NAME, HealthCheckHandler, setup_health_routes
from voicechat.registry import SessionRegistry


class TestHealthCheckHandler:
    """Test the endpoint handlers."""

    @pytest.mark.asyncio
    async def test_health_without_registry(self) -> None:
        """Test /health reports zero sessions when no registry is attached."""
        handler = HealthCheckHandler()

        response = await handler.health_check(MagicMock())
        body = json.loads(response.text)

        assert response.status == 200
        assert body["status"] == "healthy"
        assert body["activeSessions"] == 0
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_health_counts_sessions(self, registry: SessionRegistry) -> None:
        """Test /health reports the live session count."""
        await registry.create(FakeConnection())
        closing = await registry.create(FakeConnection())
        await closing.close()
        handler = HealthCheckHandler(registry=registry)

        response = await handler.health_check(MagicMock())

        assert json.loads(response.text)["activeSessions"] == 1

    @pytest.mark.asyncio
    async def test_liveness(self) -> None:
        """Test /liveness always answers alive."""
        handler = HealthCheckHandler()

        response = await handler.liveness_check(MagicMock())
        body = json.loads(response.text)

        assert body["status"] == "alive"
        assert body["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_api_info(self) -> None:
        """Test /api/info describes the service."""
        handler = HealthCheckHandler(websocket_path="/voice-chat")

        response = await handler.api_info(MagicMock())
        body = json.loads(response.text)

        assert body == {
            "name": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "websocket": "/voice-chat",
                "health": "/health",
                "liveness": "/liveness",
            },
        }


class TestSetupHealthRoutes:
    """Test route registration."""

    def test_routes_registered(self) -> None:
        """Test all three endpoints are mounted."""
        app = web.Application()

        handler = setup_health_routes(app, websocket_path="/chat")

        paths = {route.resource.canonical for route in app.router.routes()}
        assert {"/health", "/liveness", "/api/info"} <= paths
        assert handler.websocket_path == "/chat"
