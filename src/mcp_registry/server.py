#!/usr/bin/env python3
"""
Tool Server Registry MCP Server

Exposes read-only registry checks as MCP tools over stdio:
- list_tool_servers:      configured servers and the global enable flag
- check_server_health:    health probe against one or all saved servers
- discover_server_tools:  tool discovery against a saved server (not persisted)
- test_server_connection: full connection test of a saved server
- list_available_tools:   flattened tool list exposed to the agent
- export_registry:        registry export (json/yaml/markdown)

The registry is read through the storage configured by REGISTRY_STORAGE.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import sentry_sdk
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from mcp_registry.config_export import RENDERERS, export_registry, redact_secrets
from mcp_registry.env_config import DEFAULT_REGISTRY_FILE, get_env
from mcp_registry.errors import NotFoundError, RegistryError, ValidationError
from mcp_registry.probes import discover_tools, health_probe
from mcp_registry.response import ErrorCodes, ResponseEnvelope
from mcp_registry.service import McpToolsService, to_openai_functions
from mcp_registry.storage import create_storage

logger = logging.getLogger(__name__)

app = Server("mcp-registry")

service: Optional[McpToolsService] = None


def get_service() -> McpToolsService:
    """Build the registry service from the environment on first use."""
    global service
    if service is None:
        storage = create_storage(
            get_env("REGISTRY_STORAGE", "file"),
            path=get_env("REGISTRY_FILE", DEFAULT_REGISTRY_FILE),
            supabase_url=get_env("SUPABASE_URL"),
            supabase_key=get_env("SUPABASE_KEY"),
        )
        service = McpToolsService(storage)
    return service


def format_response(response: dict) -> list[types.TextContent]:
    """Format response as MCP TextContent."""
    return [types.TextContent(type="text", text=json.dumps(response, indent=2))]


def probe_response(result) -> list[types.TextContent]:
    """Envelope a probe result, using its typed error code when it failed."""
    error = result.to_error()
    if error is None:
        return format_response(ResponseEnvelope.success(result.message, data=result.to_dict()))
    return format_response(ResponseEnvelope.error(error.code, result.message, data=result.to_dict()))


def _name_schema(description: str, required: bool = True) -> dict:
    return {
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": description},
            "timeout_ms": {
                "type": "integer",
                "description": "Override the server's timeout in milliseconds",
            },
        },
        "required": ["name"] if required else [],
    }


@app.list_tools()
async def list_tools() -> list[types.Tool]:
    """List all available tools."""
    return [
        types.Tool(
            name="list_tool_servers",
            description="List configured tool servers and the global enable flag (credentials redacted)",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        types.Tool(
            name="check_server_health",
            description="Run a health probe against a saved tool server, or against every http server when no name is given",
            inputSchema=_name_schema("Server name (omit to check all http servers)", required=False),
        ),
        types.Tool(
            name="discover_server_tools",
            description="Discover the tools a saved server currently exposes. Results are reported, not saved.",
            inputSchema=_name_schema("Server name"),
        ),
        types.Tool(
            name="test_server_connection",
            description="Test connectivity to a saved server using its declared auth and connection type",
            inputSchema=_name_schema("Server name"),
        ),
        types.Tool(
            name="list_available_tools",
            description="Flattened list of tools exposed to the agent across enabled servers",
            inputSchema={
                "type": "object",
                "properties": {
                    "live": {
                        "type": "boolean",
                        "description": "Discover tools live instead of using saved lists (default: false)",
                        "default": False,
                    },
                    "format": {
                        "type": "string",
                        "enum": ["default", "openai"],
                        "description": "Output format (default: default)",
                        "default": "default",
                    },
                },
                "required": [],
            },
        ),
        types.Tool(
            name="export_registry",
            description="Export the registry as json, yaml or markdown (credentials redacted)",
            inputSchema={
                "type": "object",
                "properties": {
                    "format": {
                        "type": "string",
                        "enum": list(RENDERERS),
                        "default": "json",
                    },
                    "include_health": {"type": "boolean", "default": False},
                },
                "required": [],
            },
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[types.TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "list_tool_servers":
            return await handle_list_tool_servers(arguments)
        elif name == "check_server_health":
            return await handle_check_server_health(arguments)
        elif name == "discover_server_tools":
            return await handle_discover_server_tools(arguments)
        elif name == "test_server_connection":
            return await handle_test_server_connection(arguments)
        elif name == "list_available_tools":
            return await handle_list_available_tools(arguments)
        elif name == "export_registry":
            return await handle_export_registry(arguments)
        else:
            return format_response(
                ResponseEnvelope.error(
                    ErrorCodes.INVALID_ARGUMENT,
                    f"Unknown tool: {name}"
                )
            )
    except RegistryError as e:
        return format_response(ResponseEnvelope.error(e.code, str(e)))
    except Exception as e:
        logger.exception(f"Tool {name} failed")
        sentry_sdk.capture_exception(e)
        return format_response(
            ResponseEnvelope.error(
                ErrorCodes.UNEXPECTED_EXCEPTION,
                f"Tool execution failed: {str(e)}"
            )
        )


async def _saved_server(arguments: dict):
    name = arguments.get("name")
    if not name:
        raise ValidationError("A server name is required")
    registry = await get_service().get_registry()
    server = registry.get(name)
    if server is None:
        raise NotFoundError(f"Server '{name}' not found")
    return server


async def handle_list_tool_servers(arguments: dict) -> list[types.TextContent]:
    registry = await get_service().get_registry()
    data = redact_secrets(registry.to_dict())
    data["summary"] = {
        "total_servers": len(registry.servers),
        "enabled_servers": len([s for s in registry.servers if s.enabled]),
        "total_tools": sum(len(s.tools) for s in registry.servers),
    }
    return format_response(
        ResponseEnvelope.success(f"{len(registry.servers)} tool servers configured", data=data)
    )


async def handle_check_server_health(arguments: dict) -> list[types.TextContent]:
    """
    Handle check_server_health tool.

    With a name, probes that server; without one, probes every http server
    concurrently and reports online/offline counts.
    """
    timeout_ms = arguments.get("timeout_ms")

    if arguments.get("name"):
        server = await _saved_server(arguments)
        result = await health_probe(server.url, server.authentication, timeout_ms or server.timeout_ms)
        return probe_response(result)

    registry = await get_service().get_registry()
    servers = [s for s in registry.servers if s.connection_type == "http"]
    results = await asyncio.gather(*(
        health_probe(s.url, s.authentication, timeout_ms or s.timeout_ms) for s in servers
    ))

    online = [s.name for s, r in zip(servers, results) if r.success]
    offline = [
        {"name": s.name, "message": r.message, "kind": r.kind}
        for s, r in zip(servers, results) if not r.success
    ]
    logger.info(f"Health check: {len(online)}/{len(servers)} servers online")

    return format_response(
        ResponseEnvelope.success(
            f"{len(online)}/{len(servers)} servers online",
            data={
                "total_checked": len(servers),
                "servers_online": len(online),
                "servers_offline": len(offline),
                "online_servers": online,
                "offline_servers": offline,
            }
        )
    )


async def handle_discover_server_tools(arguments: dict) -> list[types.TextContent]:
    server = await _saved_server(arguments)
    result = await discover_tools(server.url, server.authentication,
                                  arguments.get("timeout_ms") or server.timeout_ms)
    return probe_response(result)


async def handle_test_server_connection(arguments: dict) -> list[types.TextContent]:
    name = arguments.get("name")
    if not name:
        raise ValidationError("A server name is required")
    result = await get_service().test_server(name)
    if not result.success:
        return format_response(
            ResponseEnvelope.error(ErrorCodes.EXTERNAL_SERVICE_ERROR, result.message, data=result.to_dict())
        )
    return format_response(ResponseEnvelope.success(result.message, data=result.to_dict()))


async def handle_list_available_tools(arguments: dict) -> list[types.TextContent]:
    tools = await get_service().available_tools(live=bool(arguments.get("live", False)))
    if arguments.get("format") == "openai":
        tools = to_openai_functions(tools)
    return format_response(
        ResponseEnvelope.success(f"{len(tools)} tools available", data={"tools": tools})
    )


async def handle_export_registry(arguments: dict) -> list[types.TextContent]:
    export_format = arguments.get("format", "json")
    renderer = RENDERERS.get(export_format)
    if renderer is None:
        return format_response(
            ResponseEnvelope.error(ErrorCodes.INVALID_ARGUMENT, f"Unsupported export format: {export_format}")
        )

    registry = await get_service().get_registry()
    export_data = await export_registry(registry, include_health=bool(arguments.get("include_health")))
    return format_response(
        ResponseEnvelope.success(
            f"Exported {export_data['total_servers']} servers as {export_format}",
            data={"format": export_format, "content": renderer(export_data)}
        )
    )


async def _run():
    """Run the MCP server (async)."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def main():
    """Entry point for the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    sentry_dsn = get_env("SENTRY_DSN")
    if sentry_dsn:
        sentry_sdk.init(
            dsn=sentry_dsn,
            traces_sample_rate=1.0,
            environment=get_env("SENTRY_ENVIRONMENT", "development"),
            release=get_env("SENTRY_RELEASE", "mcp-registry@0.1.0"),
        )
        logger.info("Sentry monitoring enabled")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
