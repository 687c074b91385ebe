#!/usr/bin/env python3
"""
HTTP backend for the tool server registry

Persists the registry and serves the /mcp-tools API used by the CLI and the
agent runtime. Every route except /health requires a bearer token when
AUTH_TOKENS is set.

Endpoints:
  GET    /health                        - Backend liveness
  GET    /mcp-tools                     - Registry: {enabled, servers[]}
  PUT    /mcp-tools                     - Replace the whole registry
  POST   /mcp-tools/servers             - Upsert one server
  DELETE /mcp-tools/servers/{name}      - Remove one server
  POST   /mcp-tools/servers/{name}/test - Backend-mediated connection test
  GET    /mcp-tools/available           - Flattened tools exposed to the agent
                                          (?live=true, ?format=openai)

Usage:
  python http_server.py                          # Default port 5555, file storage
  python http_server.py --port 5555 --storage memory
  REGISTRY_STORAGE=supabase python http_server.py
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import sentry_sdk
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

# Add src directory to path for imports
src_path = Path(__file__).parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from mcp_registry.auth import AuthManager, parse_bearer
from mcp_registry.env_config import (
    DEFAULT_HTTP_PORT,
    DEFAULT_REGISTRY_FILE,
    get_env,
    get_int_env,
    get_list_env,
)
from mcp_registry.errors import NotFoundError, PersistenceError, RegistryError, ValidationError
from mcp_registry.models import Registry, ToolServer
from mcp_registry.response import ErrorCodes, ResponseEnvelope
from mcp_registry.service import McpToolsService, to_openai_functions
from mcp_registry.storage import create_storage

logger = logging.getLogger("mcp-registry-http")

EXEMPT_PATHS = ("/health",)


def error_response(e: RegistryError) -> JSONResponse:
    """Map a registry error onto an HTTP status and the response envelope."""
    if isinstance(e, ValidationError):
        status_code = 400
    elif isinstance(e, NotFoundError):
        status_code = 404
    elif isinstance(e, PersistenceError):
        status_code = 500
    else:
        status_code = 500
    return JSONResponse(ResponseEnvelope.error(e.code, str(e)), status_code=status_code)


async def read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


def create_app(service: McpToolsService, auth_manager: Optional[AuthManager] = None) -> Starlette:
    """Create the Starlette app with the /mcp-tools routes, auth and CORS."""

    async def auth_middleware(request, call_next):
        """
        Authentication middleware.

        Checks the Authorization header for a Bearer token.
        Exempt endpoints: /health
        """
        if not auth_manager or not auth_manager.enabled:
            return await call_next(request)

        if request.method == "OPTIONS" or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return JSONResponse(
                ResponseEnvelope.error(ErrorCodes.UNAUTHORIZED, "Missing Authorization header"),
                status_code=401,
            )

        token = parse_bearer(auth_header)
        if token is None:
            return JSONResponse(
                ResponseEnvelope.error(ErrorCodes.UNAUTHORIZED, "Must be 'Bearer <token>'"),
                status_code=401,
            )

        if not auth_manager.validate_token(token):
            logger.warning(f"Invalid token from {request.client.host if request.client else 'unknown'}")
            return JSONResponse(
                ResponseEnvelope.error(ErrorCodes.UNAUTHORIZED, "Invalid or expired token"),
                status_code=401,
            )

        return await call_next(request)

    async def health(request):
        """Basic health check - always returns UP."""
        return JSONResponse({
            "status": "UP",
            "server": "mcp-registry",
            "transport": "http",
            "timestamp": datetime.now().isoformat()
        })

    async def get_registry(request):
        try:
            registry = await service.get_registry()
        except RegistryError as e:
            return error_response(e)
        return JSONResponse(registry.to_dict())

    async def put_registry(request):
        try:
            body = await read_json(request)
            if not isinstance(body, dict):
                raise ValidationError("Registry must be a JSON object")
            registry = await service.replace_registry(Registry.from_dict(body))
        except RegistryError as e:
            return error_response(e)
        return JSONResponse(registry.to_dict())

    async def upsert_server(request):
        try:
            body = await read_json(request)
            if not isinstance(body, dict):
                raise ValidationError("Server must be a JSON object")
            server = await service.upsert_server(ToolServer.from_dict(body))
        except RegistryError as e:
            return error_response(e)
        return JSONResponse(server.to_dict())

    async def delete_server(request):
        name = request.path_params["name"]
        try:
            await service.remove_server(name)
        except RegistryError as e:
            return error_response(e)
        return JSONResponse({"success": True, "message": f"Server '{name}' removed"})

    async def test_server(request):
        name = request.path_params["name"]
        try:
            result = await service.test_server(name)
        except RegistryError as e:
            return error_response(e)
        return JSONResponse(result.to_dict())

    async def available_tools(request):
        live = request.query_params.get("live", "").lower() in ("1", "true", "yes")
        try:
            tools = await service.available_tools(live=live)
        except RegistryError as e:
            return error_response(e)
        if request.query_params.get("format") == "openai":
            tools = to_openai_functions(tools)
        return JSONResponse(tools)

    routes = [
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/mcp-tools", endpoint=get_registry, methods=["GET"]),
        Route("/mcp-tools", endpoint=put_registry, methods=["PUT"]),
        Route("/mcp-tools/available", endpoint=available_tools, methods=["GET"]),
        Route("/mcp-tools/servers", endpoint=upsert_server, methods=["POST"]),
        Route("/mcp-tools/servers/{name}", endpoint=delete_server, methods=["DELETE"]),
        Route("/mcp-tools/servers/{name}/test", endpoint=test_server, methods=["POST"]),
    ]

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    ]

    if auth_manager and auth_manager.enabled:
        class AuthMiddleware(BaseHTTPMiddleware):
            async def dispatch(self, request, call_next):
                return await auth_middleware(request, call_next)

        middleware.append(Middleware(AuthMiddleware))
        logger.info("Authentication middleware enabled")

    return Starlette(routes=routes, middleware=middleware)


def main():
    """Run the registry HTTP backend."""
    parser = argparse.ArgumentParser(
        description="HTTP backend for the tool server registry"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=get_int_env("MCP_HTTP_PORT", DEFAULT_HTTP_PORT),
        help=f"HTTP port to listen on (default: {DEFAULT_HTTP_PORT})"
    )
    parser.add_argument(
        "--host",
        default=get_env("MCP_HTTP_HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--storage",
        choices=["memory", "file", "supabase"],
        default=get_env("REGISTRY_STORAGE", "file"),
        help="Registry storage backend (default: file)"
    )
    parser.add_argument(
        "--registry-file",
        default=get_env("REGISTRY_FILE", DEFAULT_REGISTRY_FILE),
        help=f"Registry file for --storage file (default: {DEFAULT_REGISTRY_FILE})"
    )

    args = parser.parse_args()

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

    storage = create_storage(
        args.storage,
        path=args.registry_file,
        supabase_url=get_env("SUPABASE_URL"),
        supabase_key=get_env("SUPABASE_KEY"),
    )

    auth_manager = AuthManager(get_list_env("AUTH_TOKENS"))
    if auth_manager.enabled:
        logger.info(f"Authentication enabled ({len(auth_manager.token_hashes)} tokens)")
    else:
        logger.warning("Authentication disabled (set AUTH_TOKENS to enable)")

    app = create_app(McpToolsService(storage), auth_manager)

    logger.info(f"Starting mcp-registry HTTP server on {args.host}:{args.port}")
    logger.info(f"Registry API: http://{args.host}:{args.port}/mcp-tools")
    logger.info(f"Health check: http://{args.host}:{args.port}/health")

    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
