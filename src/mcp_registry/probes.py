"""
Direct probes against a tool server.

Two bounded-time checks run straight against a server's URL with its declared
auth headers, without touching the registry:

- health_probe:   GET {url}/health, liveness only
- discover_tools: GET {url}/tools, normalized into a canonical tool list

Neither ever raises. Every failure (HTTP status, timeout, network, missing
tools, unsupported auth) comes back as a result value.

Usage:
    from mcp_registry.probes import health_probe, discover_tools

    result = await health_probe("https://x.test/mcp", Authentication(), timeout_ms=5000)
    if not result.success:
        print(result.message, result.hint)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from mcp_registry.auth_strategy import resolve_auth_headers
from mcp_registry.discovery import normalize_tools
from mcp_registry.errors import (
    ProbeTimeoutError,
    ProtocolError,
    RegistryError,
    TransportError,
    UnsupportedAuthError,
    ValidationError,
)
from mcp_registry.models import Authentication, Tool

logger = logging.getLogger(__name__)

HEALTH_SUFFIX = "/health"
TOOLS_SUFFIX = "/tools"

CORS_HINT = (
    "No HTTP response was received. Check that the URL is correct, that the "
    "server is running, and that it accepts cross-origin (CORS) requests if it "
    "is called from a browser."
)

# Failure text produced by browsers and fetch-style clients when a request is
# blocked before any status is seen.
FETCH_FAILED_SIGNATURES = ("fetch failed", "failed to fetch", "networkerror")

FAILURE_ERRORS = {
    "http_status": ProtocolError,
    "protocol": ProtocolError,
    "timeout": ProbeTimeoutError,
    "transport": TransportError,
    "invalid_request": ValidationError,
}


@dataclass
class ProbeResult:
    """Outcome of a single probe. kind is one of: ok, http_status, timeout,
    transport, protocol, unsupported_auth, invalid_request."""
    success: bool
    message: str
    kind: str = "ok"
    url: str = ""
    status_code: Optional[int] = None
    data: Any = None
    hint: Optional[str] = None
    elapsed_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "message": self.message,
            "kind": self.kind,
            "url": self.url,
            "status_code": self.status_code,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.data is not None:
            result["data"] = self.data
        if self.hint:
            result["hint"] = self.hint
        return result

    def to_error(self) -> Optional[RegistryError]:
        """The typed error a failed probe corresponds to; None on success."""
        if self.success:
            return None
        if self.kind == "unsupported_auth":
            return UnsupportedAuthError((self.data or {}).get("auth_type", "unknown"))
        return FAILURE_ERRORS.get(self.kind, RegistryError)(self.message)


@dataclass
class DiscoveryResult(ProbeResult):
    tools: List[Tool] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.pop("data", None)
        result["tools"] = [tool.to_dict() for tool in self.tools]
        return result


def health_check_url(url: str) -> str:
    """
    Derive the health-check URL.

    A URL already ending in /health (with or without a trailing slash) is used
    unchanged; otherwise trailing slashes are stripped and /health appended.
    """
    if url.endswith(HEALTH_SUFFIX) or url.endswith(HEALTH_SUFFIX + "/"):
        return url
    return url.rstrip("/") + HEALTH_SUFFIX


def tools_url(url: str) -> str:
    """Derive the tools-listing URL: strip trailing slashes, append /tools unless present."""
    base = url.rstrip("/")
    if base.endswith(TOOLS_SUFFIX):
        return base
    return base + TOOLS_SUFFIX


def looks_like_cors(exc: Exception) -> bool:
    """
    Classify a transport failure as a likely CORS/reachability problem.

    Only called for failures where no HTTP status was obtained and that were
    not timeouts.
    """
    if isinstance(exc, httpx.ConnectError):
        return True
    text = str(exc).lower()
    return any(signature in text for signature in FETCH_FAILED_SIGNATURES)


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def bounded_get(
    url: str,
    authentication: Authentication,
    timeout_ms: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[Optional[httpx.Response], Optional[ProbeResult]]:
    """
    GET url with resolved auth headers, bounded by timeout_ms.

    Returns (response, None) when an HTTP response arrived, or (None, failure)
    otherwise. The client is closed on every path.
    """
    if not url:
        return None, ProbeResult(False, "Server URL is required", kind="invalid_request", url=url)
    if timeout_ms <= 0:
        return None, ProbeResult(False, f"Timeout must be positive, got {timeout_ms}ms",
                                 kind="invalid_request", url=url)

    try:
        headers = resolve_auth_headers(authentication)
    except UnsupportedAuthError as e:
        logger.warning(f"Probe of {url} skipped: {e}")
        return None, ProbeResult(False, str(e), kind="unsupported_auth", url=url,
                                 data={"auth_type": e.auth_type})

    headers["Accept"] = "application/json"
    timeout = timeout_ms / 1000
    loop = asyncio.get_running_loop()
    start_time = loop.time()

    def elapsed() -> int:
        return int((loop.time() - start_time) * 1000)

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await asyncio.wait_for(client.get(url, headers=headers), timeout=timeout)
        return response, None

    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.info(f"Probe of {url} timed out after {timeout_ms}ms")
        return None, ProbeResult(
            False,
            f"Request timed out after {timeout_ms}ms",
            kind="timeout",
            url=url,
            elapsed_ms=elapsed(),
        )

    except UnicodeEncodeError as e:
        # httpx encodes header values as ASCII while building the request
        logger.warning(f"Probe of {url} not sent: credential is not ASCII ({e.reason})")
        return None, ProbeResult(
            False,
            "Credentials contain characters that cannot be sent in an HTTP header",
            kind="invalid_request",
            url=url,
        )

    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.info(f"Probe of {url} failed: {e!r}")
        return None, ProbeResult(
            False,
            f"Network error: could not reach {url}",
            kind="transport",
            url=url,
            data={"error": str(e) or type(e).__name__},
            hint=CORS_HINT if looks_like_cors(e) else None,
            elapsed_ms=elapsed(),
        )


async def health_probe(
    url: str,
    authentication: Optional[Authentication] = None,
    timeout_ms: int = 5000,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProbeResult:
    """
    Liveness check against a single tool server.

    Args:
        url: Server base URL (or its /health URL)
        authentication: Declared auth, resolved into headers
        timeout_ms: Hard bound for the whole request
        transport: Optional httpx transport (tests, proxies)

    Returns:
        ProbeResult; success only on a 2xx status
    """
    target = health_check_url(url) if url else url
    authentication = authentication or Authentication()

    loop = asyncio.get_running_loop()
    start_time = loop.time()
    response, failure = await bounded_get(target, authentication, timeout_ms, transport)
    if failure is not None:
        return failure

    elapsed_ms = int((loop.time() - start_time) * 1000)
    body = _parse_body(response)

    if response.is_success:
        logger.info(f"Health check OK for {target}: HTTP {response.status_code} ({elapsed_ms}ms)")
        return ProbeResult(
            True,
            f"Server is healthy (HTTP {response.status_code})",
            url=target,
            status_code=response.status_code,
            data=body,
            elapsed_ms=elapsed_ms,
        )

    logger.info(f"Health check failed for {target}: HTTP {response.status_code}")
    return ProbeResult(
        False,
        f"Health check failed: HTTP {response.status_code}",
        kind="http_status",
        url=target,
        status_code=response.status_code,
        data=body,
        elapsed_ms=elapsed_ms,
    )


async def discover_tools(
    url: str,
    authentication: Optional[Authentication] = None,
    timeout_ms: int = 5000,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DiscoveryResult:
    """
    List the tools a server exposes and normalize them.

    A response that yields no usable descriptors is reported as "No tools
    found" (kind=protocol), not raised.
    """
    target = tools_url(url) if url else url
    authentication = authentication or Authentication()

    loop = asyncio.get_running_loop()
    start_time = loop.time()
    response, failure = await bounded_get(target, authentication, timeout_ms, transport)
    if failure is not None:
        return DiscoveryResult(**vars(failure))

    elapsed_ms = int((loop.time() - start_time) * 1000)

    if not response.is_success:
        logger.info(f"Tool discovery failed for {target}: HTTP {response.status_code}")
        return DiscoveryResult(
            False,
            f"Tool discovery failed: HTTP {response.status_code}",
            kind="http_status",
            url=target,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    tools = normalize_tools(_parse_body(response))

    if not tools:
        logger.info(f"No tools found at {target}")
        return DiscoveryResult(
            False,
            "No tools found",
            kind="protocol",
            url=target,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    logger.info(f"Discovered {len(tools)} tools from {target} ({elapsed_ms}ms)")
    return DiscoveryResult(
        True,
        f"Discovered {len(tools)} tools",
        url=target,
        status_code=response.status_code,
        elapsed_ms=elapsed_ms,
        tools=tools,
    )
