"""
Backend-side connection test for saved tool servers.

Runs the same request path the agent runtime uses: the server's declared
auth, its own timeout, and its connection type. For http servers the
/health endpoint is tried first and the base URL second; websocket and
stdio servers are reported as not implemented.

Usage:
    from mcp_registry.connection_check import check_connection

    result = await check_connection(server)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from mcp_registry.models import ToolServer
from mcp_registry.probes import bounded_get, health_probe

logger = logging.getLogger(__name__)


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    server: str = ""
    transport: str = "http"
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success, "message": self.message, "transport": self.transport}
        if self.server:
            result["server"] = self.server
        if self.details:
            result["details"] = self.details
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionTestResult":
        return cls(
            success=bool(data.get("success")),
            message=str(data.get("message") or ""),
            server=data.get("server") or "",
            details=data.get("details"),
        )


async def _check_http_server(
    server: ToolServer,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ConnectionTestResult:
    health = await health_probe(server.url, server.authentication, server.timeout_ms, transport)
    if health.success:
        return ConnectionTestResult(
            True,
            f"Connected to {server.name}: {health.message}",
            server=server.name,
            details={"endpoint": health.url, "status_code": health.status_code,
                     "elapsed_ms": health.elapsed_ms},
        )

    # These fail identically against any endpoint
    if health.kind in ("unsupported_auth", "invalid_request"):
        return ConnectionTestResult(False, health.message, server=server.name,
                                    details={"kind": health.kind})

    logger.info(f"Health endpoint failed for {server.name} ({health.message}), trying base URL")

    response, failure = await bounded_get(server.url, server.authentication, server.timeout_ms, transport)
    if failure is not None:
        details = {"kind": failure.kind, "health_check": health.message}
        if failure.hint:
            details["hint"] = failure.hint
        return ConnectionTestResult(False, failure.message, server=server.name, details=details)

    if response.is_success:
        return ConnectionTestResult(
            True,
            f"Connected to {server.name} (HTTP {response.status_code})",
            server=server.name,
            details={"endpoint": server.url, "status_code": response.status_code,
                     "health_check": health.message},
        )

    return ConnectionTestResult(
        False,
        f"Connection failed: HTTP {response.status_code}",
        server=server.name,
        details={"kind": "http_status", "status_code": response.status_code,
                 "health_check": health.message},
    )


async def check_connection(
    server: ToolServer,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ConnectionTestResult:
    """
    Test connectivity to a saved server.

    Args:
        server: The persisted server record
        transport: Optional httpx transport (tests, proxies)

    Returns:
        ConnectionTestResult; never raises for network conditions
    """
    logger.info(f"Testing connection to {server.name} ({server.connection_type}: {server.url})")

    if server.connection_type != "http":
        return ConnectionTestResult(
            False,
            f"Connection type {server.connection_type} not yet implemented",
            server=server.name,
            transport=server.connection_type,
        )

    result = await _check_http_server(server, transport)
    level = logging.INFO if result.success else logging.WARNING
    logger.log(level, f"Connection test for {server.name}: {result.message}")
    return result
