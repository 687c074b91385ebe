#!/usr/bin/env python3
"""
Tests for outbound auth resolution and the registry data model.

Tests:
- Header synthesis per auth type
- Missing credentials degrade to no headers
- oauth2 and unknown types are rejected explicitly
- ToolServer / Registry validation and wire format
"""

import pytest
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp_registry.auth_strategy import resolve_auth_headers
from mcp_registry.errors import UnsupportedAuthError, ValidationError
from mcp_registry.models import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_MS,
    Authentication,
    OAuth2Config,
    Registry,
    Tool,
    ToolServer,
)


class TestResolveAuthHeaders:
    """Test suite for resolve_auth_headers."""

    def test_none(self):
        assert resolve_auth_headers(Authentication()) == {}

    def test_api_key(self):
        auth = Authentication(type="api_key", api_key="k-123")
        assert resolve_auth_headers(auth) == {"X-API-Key": "k-123"}

    def test_bearer(self):
        auth = Authentication(type="bearer", bearer_token="abc")
        assert resolve_auth_headers(auth) == {"Authorization": "Bearer abc"}

    @pytest.mark.parametrize("auth_type", ["api_key", "bearer"])
    def test_missing_credential_sends_no_header(self, auth_type):
        """Absent credentials are a silent no-auth attempt, not an error."""
        assert resolve_auth_headers(Authentication(type=auth_type)) == {}

    def test_empty_credential_sends_no_header(self):
        auth = Authentication(type="bearer", bearer_token="")
        assert resolve_auth_headers(auth) == {}

    def test_oauth2_is_unsupported(self):
        auth = Authentication(type="oauth2", oauth2_config=OAuth2Config(client_id="c"))

        with pytest.raises(UnsupportedAuthError) as exc_info:
            resolve_auth_headers(auth)

        assert exc_info.value.auth_type == "oauth2"
        assert "oauth2" in str(exc_info.value)

    def test_unknown_type_is_unsupported(self):
        with pytest.raises(UnsupportedAuthError):
            resolve_auth_headers(Authentication(type="kerberos"))


class TestToolServer:
    """Test suite for ToolServer validation and serialization."""

    def test_defaults(self):
        server = ToolServer(name="weather", url="https://x.test/mcp")

        assert server.connection_type == "http"
        assert server.authentication.type == "none"
        assert server.enabled is True
        assert server.timeout_ms == DEFAULT_TIMEOUT_MS
        assert server.retry_attempts == DEFAULT_RETRY_ATTEMPTS
        server.validate()

    @pytest.mark.parametrize("name,url,message", [
        ("", "https://x.test", "name"),
        ("   ", "https://x.test", "name"),
        ("weather", "", "URL"),
    ])
    def test_identity_required(self, name, url, message):
        with pytest.raises(ValidationError, match=message):
            ToolServer(name=name, url=url).validate()

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError, match="Timeout"):
            ToolServer(name="a", url="https://x.test", timeout_ms=0).validate()

    def test_retry_attempts_not_negative(self):
        with pytest.raises(ValidationError, match="Retry"):
            ToolServer(name="a", url="https://x.test", retry_attempts=-1).validate()
        ToolServer(name="a", url="https://x.test", retry_attempts=0).validate()

    def test_invalid_connection_type(self):
        with pytest.raises(ValidationError, match="connection type"):
            ToolServer(name="a", url="https://x.test", connection_type="grpc").validate()

    def test_duplicate_tool_names(self):
        server = ToolServer(name="a", url="https://x.test", tools=[Tool("t"), Tool("t")])
        with pytest.raises(ValidationError, match="Duplicate tool"):
            server.validate()

    def test_wire_format_is_camel_case(self):
        server = ToolServer(
            name="weather",
            url="https://x.test/mcp",
            authentication=Authentication(type="bearer", bearer_token="abc"),
            tools=[Tool("get_weather", "d", True, {"type": "object"})],
            timeout_ms=1500,
            retry_attempts=2,
        )

        data = server.to_dict()

        assert data["connectionType"] == "http"
        assert data["authentication"] == {"type": "bearer", "bearerToken": "abc"}
        assert data["timeout"] == 1500
        assert data["retryAttempts"] == 2
        assert data["tools"][0]["parameters"] == {"type": "object"}
        assert ToolServer.from_dict(data) == server

    def test_from_dict_accepts_timeout_ms_alias(self):
        server = ToolServer.from_dict({"name": "a", "url": "https://x.test", "timeoutMs": 700})
        assert server.timeout_ms == 700

    def test_from_dict_rejects_non_integer_timeout(self):
        with pytest.raises(ValidationError):
            ToolServer.from_dict({"name": "a", "url": "https://x.test", "timeout": "soon"})

    @pytest.mark.parametrize("data", [
        {"name": "a", "url": "https://x.test", "enabled": "false"},
        {"name": "a", "url": "https://x.test", "tools": [{"name": "t", "enabled": 0}]},
        {"name": "a", "url": "https://x.test", "authentication": {"type": "bearer", "bearerToken": 42}},
        {"name": ["a"], "url": "https://x.test"},
        {"name": "a", "url": "https://x.test", "tools": [{"name": "t", "parameters": ["x"]}]},
    ])
    def test_from_dict_rejects_wrong_types(self, data):
        with pytest.raises(ValidationError):
            ToolServer.from_dict(data)

    def test_require_identity_rejects_non_string_name(self):
        with pytest.raises(ValidationError, match="name"):
            ToolServer(name=5, url="https://x.test").require_identity()

    def test_copy_is_independent(self):
        server = ToolServer(name="a", url="https://x.test", tools=[Tool("t")])
        clone = server.copy()
        clone.tools[0].enabled = False

        assert server.tools[0].enabled is True


class TestRegistry:
    """Test suite for Registry."""

    def test_upsert_replaces_by_name_or_appends(self):
        registry = Registry()
        registry.upsert(ToolServer(name="a", url="https://a.test"))
        registry.upsert(ToolServer(name="b", url="https://b.test"))
        registry.upsert(ToolServer(name="a", url="https://a2.test"))

        assert [s.name for s in registry.servers] == ["a", "b"]
        assert registry.get("a").url == "https://a2.test"

    def test_remove(self):
        registry = Registry(servers=[ToolServer(name="a", url="https://a.test")])

        assert registry.remove("missing") is False
        assert registry.remove("a") is True
        assert registry.servers == []

    def test_duplicate_server_names_rejected(self):
        registry = Registry(servers=[
            ToolServer(name="a", url="https://a.test"),
            ToolServer(name="a", url="https://b.test"),
        ])
        with pytest.raises(ValidationError, match="Duplicate server"):
            registry.validate()

    def test_from_empty(self):
        registry = Registry.from_dict(None)
        assert registry.enabled is False
        assert registry.servers == []

    def test_enabled_must_be_boolean(self):
        with pytest.raises(ValidationError, match="true or false"):
            Registry.from_dict({"enabled": "false"})

        assert Registry.from_dict({"enabled": False}).enabled is False

    def test_non_object_rejected(self):
        with pytest.raises(ValidationError):
            Registry.from_dict(["weather"])
