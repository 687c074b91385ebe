"""
Data model for the tool server registry.

A Registry holds a global enable switch and an ordered list of ToolServer
records keyed by name. Records travel over the wire in camelCase
(connectionType, apiKey, bearerToken, timeout, retryAttempts), with the
timeout expressed in milliseconds.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mcp_registry.errors import ValidationError

CONNECTION_TYPES = ("http", "websocket", "stdio")
AUTH_TYPES = ("none", "api_key", "bearer", "oauth2")

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_DESCRIPTION = "No description available"


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    """None reads as empty; anything else must be a JSON object."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _items(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _text(value: Any, what: str, default: Optional[str] = None) -> Optional[str]:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{what} must be a string, got {type(value).__name__}")
    return value


def _flag(value: Any, what: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{what} must be true or false, got {value!r}")
    return value


@dataclass
class OAuth2Config:
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
            "tokenUrl": self.token_url,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OAuth2Config":
        data = _mapping(data, "oauth2Config")
        return cls(
            client_id=_text(data.get("clientId"), "clientId"),
            client_secret=_text(data.get("clientSecret"), "clientSecret"),
            token_url=_text(data.get("tokenUrl"), "tokenUrl"),
        )


@dataclass
class Authentication:
    """Declared authentication for outbound requests to a tool server."""
    type: str = "none"
    api_key: Optional[str] = None
    bearer_token: Optional[str] = None
    oauth2_config: Optional[OAuth2Config] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.api_key is not None:
            data["apiKey"] = self.api_key
        if self.bearer_token is not None:
            data["bearerToken"] = self.bearer_token
        if self.oauth2_config is not None:
            data["oauth2Config"] = self.oauth2_config.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Authentication":
        data = _mapping(data, "authentication")
        oauth2 = data.get("oauth2Config")
        return cls(
            type=_text(data.get("type"), "authentication type", "none"),
            api_key=_text(data.get("apiKey"), "apiKey"),
            bearer_token=_text(data.get("bearerToken"), "bearerToken"),
            oauth2_config=OAuth2Config.from_dict(oauth2) if oauth2 is not None else None,
        )


@dataclass
class Tool:
    name: str
    description: str = DEFAULT_DESCRIPTION
    enabled: bool = True
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tool":
        data = _mapping(data, "tool")
        return cls(
            name=_text(data.get("name"), "tool name", ""),
            description=_text(data.get("description"), "tool description", DEFAULT_DESCRIPTION),
            enabled=_flag(data.get("enabled"), "tool enabled", True),
            parameters=_mapping(data.get("parameters"), "tool parameters"),
        )


@dataclass
class ToolServer:
    """A configured, externally hosted tool server."""
    name: str = ""
    url: str = ""
    connection_type: str = "http"
    authentication: Authentication = field(default_factory=Authentication)
    tools: List[Tool] = field(default_factory=list)
    enabled: bool = True
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS

    def require_identity(self):
        """Check the fields that must be present before anything is sent."""
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Server name is required")
        if not isinstance(self.url, str) or not self.url.strip():
            raise ValidationError("Server URL is required")

    def validate(self):
        """Raise ValidationError if the record violates a registry invariant."""
        self.require_identity()

        if self.connection_type not in CONNECTION_TYPES:
            raise ValidationError(
                f"Invalid connection type '{self.connection_type}' "
                f"(expected one of: {', '.join(CONNECTION_TYPES)})"
            )
        if self.authentication.type not in AUTH_TYPES:
            raise ValidationError(
                f"Invalid authentication type '{self.authentication.type}' "
                f"(expected one of: {', '.join(AUTH_TYPES)})"
            )
        if not isinstance(self.timeout_ms, int) or self.timeout_ms <= 0:
            raise ValidationError(f"Timeout must be a positive number of milliseconds, got {self.timeout_ms}")
        if not isinstance(self.retry_attempts, int) or self.retry_attempts < 0:
            raise ValidationError(f"Retry attempts must be zero or more, got {self.retry_attempts}")

        seen = set()
        for tool in self.tools:
            if not tool.name:
                raise ValidationError(f"Server '{self.name}' has a tool without a name")
            if tool.name in seen:
                raise ValidationError(f"Duplicate tool name '{tool.name}' on server '{self.name}'")
            seen.add(tool.name)

    def copy(self) -> "ToolServer":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "connectionType": self.connection_type,
            "authentication": self.authentication.to_dict(),
            "tools": [tool.to_dict() for tool in self.tools],
            "enabled": self.enabled,
            "timeout": self.timeout_ms,
            "retryAttempts": self.retry_attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolServer":
        data = _mapping(data, "server")
        timeout = data.get("timeout", data.get("timeoutMs", DEFAULT_TIMEOUT_MS))
        retry_attempts = data.get("retryAttempts", DEFAULT_RETRY_ATTEMPTS)
        if isinstance(timeout, bool) or isinstance(retry_attempts, bool):
            raise ValidationError("timeout and retryAttempts must be integers")
        try:
            timeout = int(timeout)
            retry_attempts = int(retry_attempts)
        except (TypeError, ValueError):
            raise ValidationError("timeout and retryAttempts must be integers")

        return cls(
            name=_text(data.get("name"), "server name", ""),
            url=_text(data.get("url"), "server url", ""),
            connection_type=_text(data.get("connectionType"), "connectionType", "http"),
            authentication=Authentication.from_dict(data.get("authentication")),
            tools=[Tool.from_dict(tool) for tool in _items(data.get("tools"), "tools")],
            enabled=_flag(data.get("enabled"), "server enabled", True),
            timeout_ms=timeout,
            retry_attempts=retry_attempts,
        )


@dataclass
class Registry:
    """The global enable switch plus the configured tool servers."""
    enabled: bool = False
    servers: List[ToolServer] = field(default_factory=list)

    def get(self, name: str) -> Optional[ToolServer]:
        for server in self.servers:
            if server.name == name:
                return server
        return None

    def upsert(self, server: ToolServer):
        """Replace the entry with the same name, or append."""
        for i, existing in enumerate(self.servers):
            if existing.name == server.name:
                self.servers[i] = server
                return
        self.servers.append(server)

    def remove(self, name: str) -> bool:
        before = len(self.servers)
        self.servers = [server for server in self.servers if server.name != name]
        return len(self.servers) != before

    def validate(self):
        seen = set()
        for server in self.servers:
            server.validate()
            if server.name in seen:
                raise ValidationError(f"Duplicate server name '{server.name}'")
            seen.add(server.name)

    def copy(self) -> "Registry":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "servers": [server.to_dict() for server in self.servers],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Registry":
        data = _mapping(data, "registry")
        return cls(
            enabled=_flag(data.get("enabled"), "registry enabled", False),
            servers=[ToolServer.from_dict(server) for server in _items(data.get("servers"), "servers")],
        )
