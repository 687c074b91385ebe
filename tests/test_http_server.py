#!/usr/bin/env python3
"""
Integration tests for the /mcp-tools HTTP backend.

Tests the routes and the bearer-token check through starlette's TestClient.
"""

import httpx
import pytest
from unittest.mock import AsyncMock
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from starlette.testclient import TestClient

from mcp_registry.auth import AuthManager
from mcp_registry.connection_check import ConnectionTestResult
from mcp_registry.errors import PersistenceError
from mcp_registry.models import Authentication, Registry, Tool, ToolServer
from mcp_registry.service import McpToolsService
from mcp_registry.storage import MemoryRegistryStorage

TOKEN = "test-session-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


def seeded_storage():
    return MemoryRegistryStorage(Registry(enabled=True, servers=[
        ToolServer(name="weather", url="https://w.test", tools=[Tool("get_weather", "Weather")]),
    ]))


@pytest.fixture
def checker():
    return AsyncMock(return_value=ConnectionTestResult(True, "Connected to weather", server="weather"))


@pytest.fixture
def service(checker):
    return McpToolsService(seeded_storage(), connection_checker=checker)


@pytest.fixture
def client(service):
    """Test client with auth enabled."""
    import http_server

    app = http_server.create_app(service, AuthManager([TOKEN]))
    return TestClient(app)


@pytest.fixture
def open_client(service):
    """Test client with auth disabled."""
    import http_server

    return TestClient(http_server.create_app(service))


class TestAuth:
    """Bearer token checks."""

    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "UP"

    def test_missing_header(self, client):
        response = client.get("/mcp-tools")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_malformed_header(self, client):
        response = client.get("/mcp-tools", headers={"Authorization": TOKEN})
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/mcp-tools", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["ok"] is False

    def test_valid_token(self, client):
        assert client.get("/mcp-tools", headers=AUTH).status_code == 200

    def test_auth_disabled(self, open_client):
        assert open_client.get("/mcp-tools").status_code == 200


class TestRegistryRoutes:
    """Registry CRUD routes."""

    def test_get_registry(self, client):
        body = client.get("/mcp-tools", headers=AUTH).json()

        assert body["enabled"] is True
        assert body["servers"][0]["name"] == "weather"
        assert body["servers"][0]["connectionType"] == "http"

    def test_put_registry(self, client):
        response = client.put("/mcp-tools", headers=AUTH, json={"enabled": False, "servers": []})

        assert response.status_code == 200
        assert client.get("/mcp-tools", headers=AUTH).json() == {"enabled": False, "servers": []}

    def test_put_invalid_registry(self, client):
        response = client.put("/mcp-tools", headers=AUTH, json={
            "enabled": True,
            "servers": [{"name": "a", "url": "https://a.test"}, {"name": "a", "url": "https://b.test"}],
        })

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_put_non_object(self, client):
        response = client.put("/mcp-tools", headers=AUTH, json=[1, 2])
        assert response.status_code == 400

    def test_put_invalid_json(self, client):
        response = client.put("/mcp-tools", headers={**AUTH, "Content-Type": "application/json"},
                              content=b"{nope")
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [
        {"servers": ["weather"]},
        {"enabled": "false", "servers": []},
        {"servers": {"name": "weather"}},
    ])
    def test_put_malformed_shapes(self, client, body):
        response = client.put("/mcp-tools", headers=AUTH, json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.parametrize("field,value", [
        ("authentication", "bearer"),
        ("name", 5),
        ("tools", ["get_weather"]),
        ("tools", {"name": "get_weather"}),
        ("enabled", "false"),
        ("timeout", True),
    ])
    def test_upsert_malformed_fields(self, client, field, value):
        body = {"name": "maps", "url": "https://m.test", field: value}

        response = client.post("/mcp-tools/servers", headers=AUTH, json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        names = [s["name"] for s in client.get("/mcp-tools", headers=AUTH).json()["servers"]]
        assert names == ["weather"]

    def test_upsert_server(self, client):
        response = client.post("/mcp-tools/servers", headers=AUTH, json={
            "name": "maps",
            "url": "https://m.test",
            "authentication": {"type": "api_key", "apiKey": "k"},
            "timeout": 5000,
        })

        assert response.status_code == 200
        assert response.json()["name"] == "maps"
        names = [s["name"] for s in client.get("/mcp-tools", headers=AUTH).json()["servers"]]
        assert names == ["weather", "maps"]

    def test_upsert_missing_url(self, client):
        response = client.post("/mcp-tools/servers", headers=AUTH, json={"name": "maps"})

        assert response.status_code == 400
        assert "URL" in response.json()["message"]

    def test_delete_server(self, client):
        response = client.delete("/mcp-tools/servers/weather", headers=AUTH)

        assert response.status_code == 200
        assert client.get("/mcp-tools", headers=AUTH).json()["servers"] == []

    def test_delete_unknown(self, client):
        response = client.delete("/mcp-tools/servers/ghost", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_storage_failure_is_500(self, service, client):
        service.storage.save = AsyncMock(side_effect=PersistenceError("disk full"))

        response = client.post("/mcp-tools/servers", headers=AUTH, json={"name": "a", "url": "https://a.test"})

        assert response.status_code == 500
        assert response.json()["message"] == "disk full"


class TestTestAndAvailableRoutes:
    """Connection test and tool listing routes."""

    def test_connection_test(self, client, checker):
        response = client.post("/mcp-tools/servers/weather/test", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == "Connected to weather"
        checker.assert_awaited_once()

    def test_connection_test_unknown(self, client):
        response = client.post("/mcp-tools/servers/ghost/test", headers=AUTH)
        assert response.status_code == 404

    def test_connection_test_non_ascii_token(self):
        import http_server

        storage = MemoryRegistryStorage(Registry(servers=[
            ToolServer(name="weather", url="https://w.test",
                       authentication=Authentication(type="bearer", bearer_token="tok’")),
        ]))
        service = McpToolsService(storage, transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        response = TestClient(http_server.create_app(service)).post("/mcp-tools/servers/weather/test")

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["details"]["kind"] == "invalid_request"

    def test_available(self, client):
        response = client.get("/mcp-tools/available", headers=AUTH)

        assert response.json() == [{
            "name": "get_weather",
            "description": "Weather",
            "parameters": {},
            "server": "weather",
        }]

    def test_available_openai(self, client):
        response = client.get("/mcp-tools/available?format=openai", headers=AUTH)

        assert response.json() == [{
            "name": "get_weather",
            "description": "Weather",
            "parameters": {"type": "object", "properties": {}, "required": []},
        }]

    def test_available_live_flag(self, client, service):
        service.available_tools = AsyncMock(return_value=[])

        client.get("/mcp-tools/available?live=true", headers=AUTH)

        service.available_tools.assert_awaited_once_with(live=True)
