#!/usr/bin/env python3
"""
Tests for the remote-first ServerRegistry and the ConnectionTester client.

The backend is faked with httpx.MockTransport.

Tests:
- Validation happens before any request
- Local snapshot changes only after backend confirmation
- Removal requires explicit confirmation
- Global and per-server toggles
- Connection test results and failures
"""

import json

import httpx
import pytest
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp_registry.errors import NotFoundError, PersistenceError, RemovalNotConfirmed, ValidationError
from mcp_registry.models import Registry, ToolServer
from mcp_registry.registry_client import BackendClient, ConnectionTester, ServerRegistry


INITIAL = {
    "enabled": True,
    "servers": [
        {"name": "weather", "url": "https://x.test/mcp", "tools": [{"name": "get_weather"}]},
        {"name": "search", "url": "https://s.test", "enabled": False},
    ],
}


class FakeBackend:
    """Records requests and answers them with canned responses."""

    def __init__(self, registry=None):
        self.registry = json.loads(json.dumps(registry or INITIAL))
        self.requests = []
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status, message = self.fail_with
            return httpx.Response(status, json={"ok": False, "error": "x", "message": message, "data": {}})

        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if request.method == "GET" and path == "/mcp-tools":
            return httpx.Response(200, json=self.registry)
        if request.method == "PUT" and path == "/mcp-tools":
            self.registry = body
            return httpx.Response(200, json=body)
        if request.method == "POST" and path == "/mcp-tools/servers":
            return httpx.Response(200, json=body)
        if request.method == "DELETE" and path.startswith("/mcp-tools/servers/"):
            return httpx.Response(200, json={"success": True})
        if request.method == "POST" and path.endswith("/test"):
            return httpx.Response(200, json={"success": True, "message": "Connected"})
        if request.method == "GET" and path == "/mcp-tools/available":
            return httpx.Response(200, json=[{"name": "get_weather", "server": "weather"}])
        return httpx.Response(404, json={"message": "no route"})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    return BackendClient("http://backend.test", token="session-token",
                         transport=httpx.MockTransport(backend))


class TestServerRegistry:
    """Test suite for ServerRegistry."""

    @pytest.mark.asyncio
    async def test_list(self, backend, client):
        registry = ServerRegistry(client)

        snapshot = await registry.list()

        assert snapshot.enabled is True
        assert [s.name for s in snapshot.servers] == ["weather", "search"]
        assert backend.requests[0].headers["Authorization"] == "Bearer session-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        ["weather"],
        {"enabled": True, "servers": ["weather"]},
        {"enabled": True, "servers": [{"name": "w", "url": "https://w.test", "authentication": "bearer"}]},
    ])
    async def test_list_malformed_registry(self, payload):
        backend = FakeBackend()
        backend.registry = payload
        registry = ServerRegistry(BackendClient("http://backend.test", transport=httpx.MockTransport(backend)))

        with pytest.raises(PersistenceError, match="invalid registry"):
            await registry.list()
        assert registry.servers == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("server", [
        ToolServer(name="", url="https://x.test"),
        ToolServer(name="weather", url=""),
    ])
    async def test_upsert_validation_sends_nothing(self, backend, client, server):
        registry = ServerRegistry(client)

        with pytest.raises(ValidationError):
            await registry.upsert(server)

        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_upsert_appends_and_replaces(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()

        await registry.upsert(ToolServer(name="maps", url="https://m.test"))
        await registry.upsert(ToolServer(name="weather", url="https://x2.test"))

        assert [s.name for s in registry.servers] == ["weather", "search", "maps"]
        assert registry.get("weather").url == "https://x2.test"
        post = backend.requests[-1]
        assert post.method == "POST"
        assert json.loads(post.content)["url"] == "https://x2.test"

    @pytest.mark.asyncio
    async def test_upsert_rejected_leaves_snapshot(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        before = registry.snapshot()
        backend.fail_with = (500, "storage down")

        with pytest.raises(PersistenceError, match="storage down") as exc_info:
            await registry.upsert(ToolServer(name="maps", url="https://m.test"))

        assert exc_info.value.status_code == 500
        assert registry.snapshot() == before

    @pytest.mark.asyncio
    async def test_upsert_unreachable_backend(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        registry = ServerRegistry(BackendClient("http://backend.test", transport=httpx.MockTransport(refuse)))

        with pytest.raises(PersistenceError, match="unreachable"):
            await registry.upsert(ToolServer(name="maps", url="https://m.test"))
        assert registry.servers == []

    @pytest.mark.asyncio
    async def test_remove_requires_confirmation(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        calls = len(backend.requests)

        with pytest.raises(RemovalNotConfirmed):
            await registry.remove("weather")
        with pytest.raises(RemovalNotConfirmed):
            await registry.remove("weather", confirm=lambda name: False)

        assert len(backend.requests) == calls
        assert registry.get("weather") is not None

    @pytest.mark.asyncio
    async def test_remove_confirmed(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        asked = []

        await registry.remove("weather", confirm=lambda name: asked.append(name) or True)

        assert asked == ["weather"]
        assert registry.get("weather") is None
        assert backend.requests[-1].method == "DELETE"
        assert backend.requests[-1].url.path == "/mcp-tools/servers/weather"

    @pytest.mark.asyncio
    async def test_remove_quotes_name(self, backend, client):
        registry = ServerRegistry(client)

        await registry.remove("my tools/v2", confirm=True)

        assert backend.requests[-1].url.raw_path.startswith(b"/mcp-tools/servers/my%20tools%2Fv2")

    @pytest.mark.asyncio
    async def test_remove_rejected_leaves_list_identical(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        before = [s.to_dict() for s in registry.servers]
        backend.fail_with = (500, "nope")

        with pytest.raises(PersistenceError):
            await registry.remove("weather", confirm=True)

        assert [s.to_dict() for s in registry.servers] == before

    @pytest.mark.asyncio
    async def test_remove_unknown(self, backend, client):
        registry = ServerRegistry(client)
        backend.fail_with = (404, "Server 'ghost' not found")

        with pytest.raises(NotFoundError):
            await registry.remove("ghost", confirm=True)

    @pytest.mark.asyncio
    async def test_set_global_enabled_loads_first(self, backend, client):
        registry = ServerRegistry(client)

        snapshot = await registry.set_global_enabled(False)

        assert [r.method for r in backend.requests] == ["GET", "PUT"]
        sent = json.loads(backend.requests[-1].content)
        assert sent["enabled"] is False
        assert len(sent["servers"]) == 2
        assert snapshot.enabled is False
        assert registry.enabled is False

    @pytest.mark.asyncio
    async def test_set_server_enabled(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()

        await registry.set_server_enabled("search", True)

        assert registry.get("search").enabled is True
        assert backend.registry["servers"][1]["enabled"] is True

    @pytest.mark.asyncio
    async def test_set_server_enabled_unknown(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        calls = len(backend.requests)

        with pytest.raises(ValidationError):
            await registry.set_server_enabled("ghost", True)
        assert len(backend.requests) == calls

    @pytest.mark.asyncio
    async def test_toggle_rejected_keeps_flag(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()
        backend.fail_with = (400, "bad registry")

        with pytest.raises(PersistenceError, match="bad registry"):
            await registry.set_global_enabled(False)

        assert registry.enabled is True

    @pytest.mark.asyncio
    async def test_available_tools_params(self, backend, client):
        registry = ServerRegistry(client)

        tools = await registry.available_tools(live=True, openai_format=True)

        assert tools == [{"name": "get_weather", "server": "weather"}]
        params = backend.requests[-1].url.params
        assert params["live"] == "true"
        assert params["format"] == "openai"

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, backend, client):
        registry = ServerRegistry(client)
        await registry.list()

        snapshot = registry.snapshot()
        snapshot.servers.clear()

        assert len(registry.servers) == 2
        assert isinstance(snapshot, Registry)


class TestConnectionTester:
    """Test suite for the backend-mediated ConnectionTester."""

    @pytest.mark.asyncio
    async def test_success(self, backend, client):
        result = await ConnectionTester(client).test("weather")

        assert result.success is True
        assert result.message == "Connected"
        assert result.server == "weather"
        assert backend.requests[-1].url.path == "/mcp-tools/servers/weather/test"

    @pytest.mark.asyncio
    async def test_backend_failure_is_a_failed_result(self, backend, client):
        backend.fail_with = (404, "Server 'ghost' not found")

        result = await ConnectionTester(client).test("ghost")

        assert result.success is False
        assert "not found" in result.message
