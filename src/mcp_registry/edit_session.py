"""
The single edit buffer for a tool server being configured.

Only one server can be under edit at a time. Probes and discovery run against
the buffer without touching the registry; only commit() persists it, through
ServerRegistry.upsert. A failed commit or a failed discovery leaves the buffer
exactly as it was.

Transitions:
    begin -> update / discovery_update ... -> commit | discard
"""

import copy
import logging
from typing import Any, Optional

import httpx

from mcp_registry.errors import UnsavedChangesError, ValidationError
from mcp_registry.models import Authentication, ToolServer
from mcp_registry.probes import DiscoveryResult, ProbeResult, discover_tools, health_probe
from mcp_registry.registry_client import ServerRegistry

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "url", "connection_type", "authentication", "tools",
    "enabled", "timeout_ms", "retry_attempts",
}


class EditSession:
    """Holds at most one unsaved ToolServer."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.current: Optional[ToolServer] = None
        self.original_name: Optional[str] = None
        self.dirty = False
        self.transport = transport

    @property
    def active(self) -> bool:
        return self.current is not None

    def _require_active(self) -> ToolServer:
        if self.current is None:
            raise ValidationError("No server is being edited")
        return self.current

    def begin(self, server: Optional[ToolServer] = None, discard_unsaved: bool = False) -> ToolServer:
        """
        Start editing a copy of server, or a blank server when None.

        Raises:
            UnsavedChangesError: if unsaved edits exist and discard_unsaved is False
        """
        if self.dirty and not discard_unsaved:
            name = self.current.name if self.current else ""
            raise UnsavedChangesError(f"Unsaved changes to '{name or 'new server'}' would be lost")

        if self.dirty:
            logger.info(f"Discarding unsaved edits to '{self.current.name}'")

        self.current = server.copy() if server else ToolServer()
        self.original_name = server.name if server else None
        self.dirty = False
        return self.current

    def update(self, **fields: Any) -> ToolServer:
        server = self._require_active()
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown server fields: {', '.join(sorted(unknown))}")

        for key, value in fields.items():
            setattr(server, key, value)
        self.dirty = True
        return server

    def discovery_update(self, result: DiscoveryResult) -> bool:
        """
        Replace the buffer's tools with a successful discovery result.

        Returns:
            True if the tools were replaced; an unsuccessful or empty result
            leaves the buffer untouched
        """
        server = self._require_active()
        if not result.success or not result.tools:
            return False

        replaced = []
        for tool in result.tools:
            tool = copy.deepcopy(tool)
            tool.enabled = True
            replaced.append(tool)

        server.tools = replaced
        self.dirty = True
        logger.info(f"Edit buffer for '{server.name}' now has {len(replaced)} discovered tools")
        return True

    async def probe_health(self, timeout_ms: Optional[int] = None) -> ProbeResult:
        server = self._require_active()
        return await health_probe(
            server.url,
            server.authentication or Authentication(),
            timeout_ms or server.timeout_ms,
            self.transport,
        )

    async def discover(self, timeout_ms: Optional[int] = None, apply: bool = True) -> DiscoveryResult:
        """Run discovery against the buffer and, if apply, feed it to discovery_update."""
        server = self._require_active()
        result = await discover_tools(
            server.url,
            server.authentication or Authentication(),
            timeout_ms or server.timeout_ms,
            self.transport,
        )
        if apply:
            self.discovery_update(result)
        return result

    async def commit(self, registry: ServerRegistry) -> ToolServer:
        """
        Persist the buffer. On success the session is cleared; on any error
        the buffer is kept and the error propagates.
        """
        server = self._require_active()
        saved = await registry.upsert(server.copy())

        if self.original_name and self.original_name != saved.name:
            logger.warning(
                f"Server renamed from '{self.original_name}' to '{saved.name}'; "
                f"the old entry is kept until removed"
            )

        self.current = None
        self.original_name = None
        self.dirty = False
        return saved

    def discard(self):
        self.current = None
        self.original_name = None
        self.dirty = False
