"""
Registry operations behind the /mcp-tools backend routes.

McpToolsService owns the load-modify-save cycle against a RegistryStorage,
validates records before anything is persisted, runs connection tests on
saved servers, and builds the flattened tool list exposed to the agent.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from mcp_registry.connection_check import ConnectionTestResult, check_connection
from mcp_registry.errors import NotFoundError
from mcp_registry.models import Registry, Tool, ToolServer
from mcp_registry.probes import discover_tools
from mcp_registry.storage import RegistryStorage

logger = logging.getLogger(__name__)

ConnectionChecker = Callable[..., Awaitable[ConnectionTestResult]]

EMPTY_OBJECT_SCHEMA = {"type": "object", "properties": {}, "required": []}


def merge_available_tools(
    registry: Registry,
    discovered: Optional[Dict[str, List[Tool]]] = None,
) -> List[Dict[str, Any]]:
    """
    Flatten the tools of every enabled server into one list.

    Only enabled tools are included and the first server to expose a name
    wins. discovered maps server name to freshly discovered tools and takes
    precedence over the persisted list; a tool disabled in the persisted list
    stays disabled.
    """
    if not registry.enabled:
        return []

    available: List[Dict[str, Any]] = []
    seen = set()

    for server in registry.servers:
        if not server.enabled:
            continue

        disabled = {tool.name for tool in server.tools if not tool.enabled}
        tools = server.tools
        if discovered is not None and server.name in discovered:
            tools = discovered[server.name]

        for tool in tools:
            if not tool.enabled or tool.name in disabled:
                continue
            if tool.name in seen:
                logger.warning(f"Tool '{tool.name}' from {server.name} shadowed by an earlier server")
                continue
            seen.add(tool.name)
            available.append({
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
                "server": server.name,
            })

    return available


def to_openai_functions(tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert flattened tools into OpenAI function definitions."""
    functions = []
    for index, tool in enumerate(tools):
        name = str(tool.get("name") or "").strip()
        if not name:
            logger.error(f"Tool at index {index} is missing a name, dropping it")
            continue
        description = str(tool.get("description") or "").strip()
        functions.append({
            "name": name,
            "description": description or f"Tool: {name}",
            "parameters": tool.get("parameters") or dict(EMPTY_OBJECT_SCHEMA),
        })
    return functions


class McpToolsService:
    """Backend-side registry CRUD, connection tests and tool listing."""

    def __init__(
        self,
        storage: RegistryStorage,
        connection_checker: ConnectionChecker = check_connection,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.connection_checker = connection_checker
        self.transport = transport
        self._lock = asyncio.Lock()

    async def get_registry(self) -> Registry:
        return await self.storage.load()

    async def replace_registry(self, registry: Registry) -> Registry:
        registry.validate()
        async with self._lock:
            await self.storage.save(registry)
        logger.info(f"Registry replaced: {len(registry.servers)} servers, enabled={registry.enabled}")
        return registry

    async def upsert_server(self, server: ToolServer) -> ToolServer:
        server.validate()
        async with self._lock:
            registry = await self.storage.load()
            existed = registry.get(server.name) is not None
            registry.upsert(server)
            await self.storage.save(registry)
        logger.info(f"Server {'updated' if existed else 'added'}: {server.name} ({server.url})")
        return server

    async def remove_server(self, name: str) -> None:
        async with self._lock:
            registry = await self.storage.load()
            if not registry.remove(name):
                raise NotFoundError(f"Server '{name}' not found")
            await self.storage.save(registry)
        logger.info(f"Server removed: {name}")

    async def test_server(self, name: str) -> ConnectionTestResult:
        registry = await self.storage.load()
        server = registry.get(name)
        if server is None:
            raise NotFoundError(f"Server '{name}' not found")
        return await self.connection_checker(server, transport=self.transport)

    async def available_tools(self, live: bool = False) -> List[Dict[str, Any]]:
        """
        Flattened list of tools currently exposed to the agent.

        Args:
            live: Discover tools from every enabled http server instead of
                  reading the persisted lists
        """
        registry = await self.storage.load()
        discovered = None

        if live and registry.enabled:
            servers = [s for s in registry.servers if s.enabled and s.connection_type == "http"]
            results = await asyncio.gather(*(
                discover_tools(s.url, s.authentication, s.timeout_ms, self.transport)
                for s in servers
            ))
            discovered = {}
            for server, result in zip(servers, results):
                if result.success:
                    discovered[server.name] = result.tools
                else:
                    discovered[server.name] = []
                    logger.info(f"Live discovery for {server.name} failed: {result.message}")

        return merge_available_tools(registry, discovered)
