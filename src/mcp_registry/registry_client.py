"""
Client side of the registry: remote-first CRUD and backend-mediated tests.

ServerRegistry keeps a local snapshot of the registry and only changes it
after the backend confirms a write. Any backend rejection or transport
failure raises PersistenceError and leaves the snapshot exactly as it was.

Usage:
    async with BackendClient("http://localhost:5555", token="...") as backend:
        registry = ServerRegistry(backend)
        await registry.list()
        await registry.upsert(ToolServer(name="weather", url="https://x.test/mcp"))
        result = await ConnectionTester(backend).test("weather")
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import quote

import httpx

from mcp_registry.connection_check import ConnectionTestResult
from mcp_registry.errors import NotFoundError, PersistenceError, RemovalNotConfirmed, ValidationError
from mcp_registry.models import Registry, ToolServer

logger = logging.getLogger(__name__)

Confirmation = Union[bool, Callable[[str], bool]]


class BackendClient:
    """Thin httpx client for the application backend's /mcp-tools API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            PersistenceError: on transport failure, non-2xx status or a
                non-JSON body
        """
        try:
            response = await self.client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Backend request {method} {path} failed: {e}")
            raise PersistenceError(f"Backend unreachable: {e}")

        if not response.is_success:
            message = _error_message(response)
            logger.error(f"Backend rejected {method} {path}: HTTP {response.status_code} {message}")
            raise PersistenceError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise PersistenceError(f"Backend returned a non-JSON response for {method} {path}",
                                   status_code=response.status_code)

    async def aclose(self):
        await self.client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Backend returned HTTP {response.status_code}"


def _server_path(name: str) -> str:
    return f"/mcp-tools/servers/{quote(name, safe='')}"


class ServerRegistry:
    """Remote-first view of the configured tool servers."""

    def __init__(self, backend: BackendClient):
        self.backend = backend
        self._registry = Registry()
        self._loaded = False

    @property
    def enabled(self) -> bool:
        return self._registry.enabled

    @property
    def servers(self) -> List[ToolServer]:
        return [server.copy() for server in self._registry.servers]

    def snapshot(self) -> Registry:
        return self._registry.copy()

    def get(self, name: str) -> Optional[ToolServer]:
        server = self._registry.get(name)
        return server.copy() if server else None

    async def list(self) -> Registry:
        """Refresh the snapshot from the backend and return it."""
        body = await self.backend.request("GET", "/mcp-tools")
        try:
            registry = Registry.from_dict(body)
        except ValidationError as e:
            raise PersistenceError(f"Backend returned an invalid registry: {e}")
        self._registry = registry
        self._loaded = True
        return self.snapshot()

    async def _ensure_loaded(self):
        # PUT replaces the whole registry, so never write from an unloaded snapshot
        if not self._loaded:
            await self.list()

    async def upsert(self, server: ToolServer) -> ToolServer:
        """
        Save a server. Name and URL are checked before any request is sent.

        Returns:
            The server as confirmed by the backend
        """
        server.validate()

        body = await self.backend.request("POST", "/mcp-tools/servers", json=server.to_dict())

        saved = server.copy()
        if isinstance(body, dict) and body.get("name"):
            try:
                saved = ToolServer.from_dict(body)
            except ValidationError as e:
                raise PersistenceError(f"Backend returned an invalid server: {e}")

        self._registry.upsert(saved)
        logger.info(f"Server saved: {saved.name}")
        return saved.copy()

    async def remove(self, name: str, confirm: Confirmation = False) -> None:
        """
        Remove a server after explicit confirmation.

        Args:
            name: Server name
            confirm: True, or a callable asked with the server name
        """
        confirmed = confirm(name) if callable(confirm) else bool(confirm)
        if not confirmed:
            raise RemovalNotConfirmed(f"Removal of '{name}' was not confirmed")

        try:
            await self.backend.request("DELETE", _server_path(name))
        except PersistenceError as e:
            if e.status_code == 404:
                raise NotFoundError(f"Server '{name}' not found")
            raise

        self._registry.remove(name)
        logger.info(f"Server removed: {name}")

    async def set_global_enabled(self, enabled: bool) -> Registry:
        await self._ensure_loaded()
        candidate = self.snapshot()
        candidate.enabled = enabled
        return await self._persist(candidate)

    async def set_server_enabled(self, name: str, enabled: bool) -> Registry:
        await self._ensure_loaded()
        candidate = self.snapshot()
        server = candidate.get(name)
        if server is None:
            raise ValidationError(f"Server '{name}' is not in the registry")
        server.enabled = enabled
        return await self._persist(candidate)

    async def _persist(self, candidate: Registry) -> Registry:
        body = await self.backend.request("PUT", "/mcp-tools", json=candidate.to_dict())
        if isinstance(body, dict) and "servers" in body:
            try:
                candidate = Registry.from_dict(body)
            except ValidationError as e:
                raise PersistenceError(f"Backend returned an invalid registry: {e}")
        self._registry = candidate
        return self.snapshot()

    async def available_tools(self, live: bool = False, openai_format: bool = False) -> List[Dict[str, Any]]:
        """Flattened tool list currently exposed to the agent."""
        params = {}
        if live:
            params["live"] = "true"
        if openai_format:
            params["format"] = "openai"
        body = await self.backend.request("GET", "/mcp-tools/available", params=params or None)
        return body if isinstance(body, list) else []


class ConnectionTester:
    """Backend-mediated, fully authenticated connection test for saved servers."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def test(self, name: str) -> ConnectionTestResult:
        try:
            body = await self.backend.request("POST", f"{_server_path(name)}/test")
        except PersistenceError as e:
            return ConnectionTestResult(False, str(e), server=name)

        if not isinstance(body, dict):
            return ConnectionTestResult(False, "Backend returned an unexpected test result", server=name)
        result = ConnectionTestResult.from_dict(body)
        result.server = result.server or name
        return result
