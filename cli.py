#!/usr/bin/env python3
"""
CLI for the tool server registry

Drives the registry client against a running backend (see http_server.py) and
runs direct health/discovery probes against tool servers.

Usage:
  python cli.py list                                   # Show the registry
  python cli.py add weather https://x.test/mcp         # Add or update a server
  python cli.py add weather https://x.test/mcp --auth-type bearer --bearer-token T --discover
  python cli.py remove weather                         # Asks for confirmation
  python cli.py remove weather --yes                   # No prompt
  python cli.py enable                                 # Enable the registry globally
  python cli.py disable weather                        # Disable one server
  python cli.py test weather                           # Backend-mediated connection test
  python cli.py health https://x.test/mcp              # Direct health probe
  python cli.py discover https://x.test/mcp            # Direct tool discovery
  python cli.py available --live --openai              # Tools exposed to the agent
  python cli.py export --export-format markdown --output registry.md
  python cli.py --format json list                     # JSON output

The backend URL and session token come from --backend-url/--token or
MCP_REGISTRY_URL/MCP_REGISTRY_TOKEN.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Add src directory to path
src_path = Path(__file__).parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from mcp_registry.config_export import EXPORT_FORMATS, RENDERERS, export_registry, save_export
from mcp_registry.edit_session import EditSession
from mcp_registry.env_config import get_env
from mcp_registry.errors import RegistryError
from mcp_registry.models import (
    AUTH_TYPES,
    CONNECTION_TYPES,
    DEFAULT_TIMEOUT_MS,
    Authentication,
    Registry,
    ToolServer,
)
from mcp_registry.probes import DiscoveryResult, ProbeResult, discover_tools, health_probe
from mcp_registry.registry_client import BackendClient, ConnectionTester, ServerRegistry

# Configure logging
logging.basicConfig(
    level=logging.WARNING,  # Only show warnings/errors in CLI mode
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger("mcp-registry-cli")

DEFAULT_BACKEND_URL = "http://localhost:5555"
PROBE_TIMEOUT_MS = 5000

# Commands that only talk to tool servers directly
DIRECT_COMMANDS = ("health", "discover")


def auth_from_args(args, base: Optional[Authentication] = None) -> Authentication:
    """Build the authentication config from --auth-type/--api-key/--bearer-token."""
    auth = Authentication(**vars(base)) if base else Authentication()

    auth_type = args.auth_type
    if auth_type is None:
        if args.api_key:
            auth_type = "api_key"
        elif args.bearer_token:
            auth_type = "bearer"
        else:
            auth_type = auth.type

    auth.type = auth_type
    if args.api_key:
        auth.api_key = args.api_key
    if args.bearer_token:
        auth.bearer_token = args.bearer_token
    return auth


def confirm_removal(name: str) -> bool:
    """Interactive confirmation used by `remove` without --yes."""
    try:
        answer = input(f"Remove server '{name}'? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class RegistryCLI:
    """CLI interface for the tool server registry."""

    def __init__(self, args):
        self.args = args
        self.backend: Optional[BackendClient] = None
        self.registry: Optional[ServerRegistry] = None

    async def run(self) -> int:
        """Run the selected command and return the exit code."""
        handler = getattr(self, f"cmd_{self.args.command}")

        if self.args.command in DIRECT_COMMANDS:
            return await handler()

        logger.info(f"Using backend {self.args.backend_url}")
        async with BackendClient(self.args.backend_url, token=self.args.token) as backend:
            self.backend = backend
            self.registry = ServerRegistry(backend)
            return await handler()

    # Output helpers

    def emit(self, payload: Dict[str, Any], text_lines):
        """Print payload as JSON, or the given text lines."""
        if self.args.format == "json":
            print(json.dumps(payload, indent=2))
        else:
            for line in text_lines:
                print(line)

    @staticmethod
    def describe_server(server: ToolServer) -> str:
        symbol = "✓" if server.enabled else "✗"
        enabled_tools = len([t for t in server.tools if t.enabled])
        return (
            f"  {symbol} {server.name:<20} {server.connection_type:<9} {server.url}  "
            f"auth={server.authentication.type} tools={enabled_tools}/{len(server.tools)}"
        )

    def probe_lines(self, result: ProbeResult):
        symbol = "✓" if result.success else "✗"
        lines = [f"{symbol} {result.message}"]
        if result.url:
            lines.append(f"  URL: {result.url}")
        if result.elapsed_ms is not None:
            lines.append(f"  Elapsed: {result.elapsed_ms}ms")
        if result.hint:
            lines.append(f"  Hint: {result.hint}")
        return lines

    @staticmethod
    def tool_lines(result: DiscoveryResult):
        lines = []
        for tool in result.tools:
            lines.append(f"    - {tool.name}: {tool.description}")
        return lines

    # Registry commands

    async def cmd_list(self) -> int:
        registry = await self.registry.list()
        lines = [
            "=" * 80,
            f"Tool Server Registry - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "=" * 80,
            f"Registry: {'ENABLED' if registry.enabled else 'DISABLED'} ({len(registry.servers)} servers)",
            "",
        ]
        if not registry.servers:
            lines.append("  No servers configured")
        lines.extend(self.describe_server(server) for server in registry.servers)
        self.emit(registry.to_dict(), lines)
        return 0

    async def cmd_add(self) -> int:
        """Create or update a server through the edit session, then commit it."""
        args = self.args
        ToolServer(name=args.name, url=args.url).require_identity()
        await self.registry.list()
        existing = self.registry.get(args.name)

        session = EditSession()
        server = session.begin(existing)

        fields: Dict[str, Any] = {
            "name": args.name,
            "url": args.url,
            "authentication": auth_from_args(args, server.authentication),
        }
        if args.connection_type:
            fields["connection_type"] = args.connection_type
        if args.timeout_ms is not None:
            fields["timeout_ms"] = args.timeout_ms
        if args.retry_attempts is not None:
            fields["retry_attempts"] = args.retry_attempts
        if args.disabled:
            fields["enabled"] = False
        session.update(**fields)

        discovery = None
        if args.discover:
            discovery = await session.discover()
            if not discovery.success:
                logger.warning(f"Discovery for '{args.name}' failed, keeping existing tools: {discovery.message}")

        saved = await session.commit(self.registry)

        action = "Updated" if existing else "Added"
        lines = [f"✓ {action} server '{saved.name}'", self.describe_server(saved)]
        if discovery is not None:
            lines.extend(self.probe_lines(discovery))
            lines.extend(self.tool_lines(discovery))

        payload: Dict[str, Any] = {"action": action.lower(), "server": saved.to_dict()}
        if discovery is not None:
            payload["discovery"] = discovery.to_dict()
        self.emit(payload, lines)
        return 0

    async def cmd_remove(self) -> int:
        confirm = True if self.args.yes else confirm_removal
        await self.registry.remove(self.args.name, confirm=confirm)
        self.emit(
            {"removed": self.args.name},
            [f"✓ Removed server '{self.args.name}'"],
        )
        return 0

    async def _toggle(self, enabled: bool) -> int:
        state = "enabled" if enabled else "disabled"
        if self.args.name:
            registry = await self.registry.set_server_enabled(self.args.name, enabled)
            message = f"✓ Server '{self.args.name}' {state}"
        else:
            registry = await self.registry.set_global_enabled(enabled)
            message = f"✓ Registry {state}"
        self.emit(registry.to_dict(), [message])
        return 0

    async def cmd_enable(self) -> int:
        return await self._toggle(True)

    async def cmd_disable(self) -> int:
        return await self._toggle(False)

    async def cmd_test(self) -> int:
        result = await ConnectionTester(self.backend).test(self.args.name)
        symbol = "✓" if result.success else "✗"
        self.emit(result.to_dict(), [f"{symbol} {self.args.name}: {result.message}"])
        return 0 if result.success else 1

    async def cmd_available(self) -> int:
        tools = await self.registry.available_tools(live=self.args.live, openai_format=self.args.openai)
        lines = [f"{len(tools)} tools available"]
        for tool in tools:
            origin = f" ({tool['server']})" if "server" in tool else ""
            lines.append(f"  - {tool.get('name')}{origin}: {tool.get('description', '')}")
        self.emit({"tools": tools}, lines)
        return 0

    async def cmd_export(self) -> int:
        args = self.args
        registry: Registry = await self.registry.list()
        export_data = await export_registry(
            registry,
            include_health=args.include_health,
            redact=not args.include_secrets,
        )

        if args.output:
            if not await save_export(export_data, args.output, format=args.export_format):
                print(f"✗ Failed to export registry to {args.output}")
                return 1
            print(f"✓ Registry exported to {args.output}")
            return 0

        print(RENDERERS[args.export_format](export_data))
        return 0

    # Direct probes

    async def cmd_health(self) -> int:
        result = await health_probe(self.args.url, auth_from_args(self.args), self.args.timeout_ms)
        self.emit(result.to_dict(), self.probe_lines(result))
        return 0 if result.success else 1

    async def cmd_discover(self) -> int:
        result = await discover_tools(self.args.url, auth_from_args(self.args), self.args.timeout_ms)
        self.emit(result.to_dict(), self.probe_lines(result) + self.tool_lines(result))
        return 0 if result.success else 1


def add_auth_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--auth-type",
        choices=AUTH_TYPES,
        help="Authentication type (inferred from --api-key/--bearer-token when omitted)"
    )
    parser.add_argument("--api-key", help="API key, sent as X-API-Key")
    parser.add_argument("--bearer-token", help="Bearer token, sent as Authorization: Bearer")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CLI interface for the tool server registry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py list                               # Show the registry
  python cli.py add weather https://x.test/mcp --discover
  python cli.py remove weather --yes
  python cli.py health https://x.test/mcp --timeout-ms 2000
  python cli.py --format json available --live
        """
    )

    parser.add_argument(
        "--backend-url",
        default=get_env("MCP_REGISTRY_URL", DEFAULT_BACKEND_URL),
        help=f"Registry backend base URL (default: $MCP_REGISTRY_URL or {DEFAULT_BACKEND_URL})"
    )
    parser.add_argument(
        "--token",
        default=get_env("MCP_REGISTRY_TOKEN"),
        help="Bearer token for the backend (default: $MCP_REGISTRY_TOKEN)"
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (show info logs)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="Show the registry")

    add = subparsers.add_parser("add", aliases=["upsert"], help="Add or update a server")
    add.add_argument("name", help="Server name (unique)")
    add.add_argument("url", help="Server base URL")
    add.add_argument("--connection-type", choices=CONNECTION_TYPES, help="Connection type (default: http)")
    add.add_argument("--timeout-ms", type=int, help=f"Request timeout in ms (default: {DEFAULT_TIMEOUT_MS})")
    add.add_argument("--retry-attempts", type=int, help="Retry attempts (stored, default: 3)")
    add.add_argument("--disabled", action="store_true", help="Save the server disabled")
    add.add_argument("--discover", action="store_true", help="Discover tools before saving")
    add_auth_arguments(add)

    remove = subparsers.add_parser("remove", help="Remove a server")
    remove.add_argument("name", help="Server name")
    remove.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    for command, verb in (("enable", "Enable"), ("disable", "Disable")):
        toggle = subparsers.add_parser(command, help=f"{verb} the registry, or one server")
        toggle.add_argument("name", nargs="?", help="Server name (omit for the global flag)")

    test = subparsers.add_parser("test", help="Backend-mediated connection test of a saved server")
    test.add_argument("name", help="Server name")

    available = subparsers.add_parser("available", help="Tools exposed to the agent")
    available.add_argument("--live", action="store_true", help="Discover tools live")
    available.add_argument("--openai", action="store_true", help="OpenAI function-calling format")

    export = subparsers.add_parser("export", help="Export the registry")
    export.add_argument("--export-format", choices=EXPORT_FORMATS, default="json",
                        help="Export format (default: json)")
    export.add_argument("--output", "-o", metavar="PATH", help="Write to a file instead of stdout")
    export.add_argument("--include-health", action="store_true", help="Probe servers and include results")
    export.add_argument("--include-secrets", action="store_true", help="Do not redact credentials")

    for command, help_text in (("health", "Direct health probe of a URL"),
                               ("discover", "Direct tool discovery against a URL")):
        probe = subparsers.add_parser(command, help=help_text)
        probe.add_argument("url", help="Server base URL")
        probe.add_argument("--timeout-ms", type=int, default=PROBE_TIMEOUT_MS,
                           help=f"Probe timeout in ms (default: {PROBE_TIMEOUT_MS})")
        add_auth_arguments(probe)

    return parser


async def main_async(argv=None) -> int:
    """Async main function."""
    args = build_parser().parse_args(argv)
    if args.command == "upsert":
        args.command = "add"

    # Adjust logging level if verbose
    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)
        logger.setLevel(logging.INFO)

    cli = RegistryCLI(args)
    try:
        return await cli.run()
    except RegistryError as e:
        print(f"✗ {e}")
        return 1


def main():
    """Main entry point."""
    try:
        exit_code = asyncio.run(main_async())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
