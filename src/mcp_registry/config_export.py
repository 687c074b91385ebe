"""
Registry Export Module

Exports the tool server registry for backup, migration, and documentation.
Credentials are redacted unless explicitly requested.

Usage:
    from mcp_registry.config_export import export_registry, save_export

    export_data = await export_registry(registry, include_health=True)
    await save_export(export_data, "registry.md", format="markdown")
"""

import asyncio
import copy
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import yaml

from mcp_registry.models import Registry
from mcp_registry.probes import health_probe

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"
SECRET_FIELDS = ("apiKey", "bearerToken", "clientSecret")
EXPORT_FORMATS = ("json", "yaml", "markdown")


def redact_secrets(data: Any) -> Any:
    """Return a copy of data with every credential field masked."""
    data = copy.deepcopy(data)

    def walk(node):
        if isinstance(node, dict):
            for key, value in node.items():
                if key in SECRET_FIELDS and value:
                    node[key] = REDACTED
                else:
                    walk(value)
        elif isinstance(node, list):
            for item in node:
                walk(item)

    walk(data)
    return data


async def export_registry(
    registry: Registry,
    include_health: bool = False,
    redact: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Build an export document for the registry.

    Args:
        registry: Registry to export
        include_health: Probe every http server and include the results
        redact: Mask apiKey, bearerToken and clientSecret values
        transport: Optional httpx transport for the health probes

    Returns:
        Dictionary containing the exported registry
    """
    configuration = registry.to_dict()
    if redact:
        configuration = redact_secrets(configuration)

    export_data: Dict[str, Any] = {
        "timestamp": datetime.now().isoformat(),
        "source": "mcp-registry",
        "version": "1.0.0",
        "total_servers": len(registry.servers),
        "total_tools": sum(len(server.tools) for server in registry.servers),
        "configuration": configuration,
    }

    if include_health:
        http_servers = [s for s in registry.servers if s.connection_type == "http"]
        results = await asyncio.gather(*(
            health_probe(s.url, s.authentication, s.timeout_ms, transport)
            for s in http_servers
        ))
        export_data["health_status"] = {
            server.name: result.to_dict()
            for server, result in zip(http_servers, results)
        }

    return export_data


def export_to_json(export_data: Dict[str, Any], indent: int = 2) -> str:
    return json.dumps(export_data, indent=indent, ensure_ascii=False)


def export_to_yaml(export_data: Dict[str, Any]) -> str:
    return yaml.dump(export_data, default_flow_style=False, sort_keys=False)


def export_to_markdown(export_data: Dict[str, Any]) -> str:
    """
    Convert export data to Markdown documentation.

    Args:
        export_data: Export data dictionary

    Returns:
        Markdown string
    """
    md_lines = []
    configuration = export_data.get("configuration", {})
    servers = configuration.get("servers", [])

    md_lines.append("# Tool Server Registry Export")
    md_lines.append(f"\n**Generated**: {export_data.get('timestamp', 'unknown')}")
    md_lines.append(f"**Source**: {export_data.get('source', 'unknown')}")
    md_lines.append(f"**Registry Enabled**: {'yes' if configuration.get('enabled') else 'no'}")
    md_lines.append(f"**Total Servers**: {export_data.get('total_servers', 0)}")
    md_lines.append(f"**Total Tools**: {export_data.get('total_tools', 0)}")
    md_lines.append("")

    md_lines.append("## Servers")
    md_lines.append("")

    for server in servers:
        auth = server.get("authentication", {})
        md_lines.append(f"### {server.get('name')}")
        md_lines.append("")
        md_lines.append(f"- **URL**: `{server.get('url')}`")
        md_lines.append(f"- **Connection Type**: {server.get('connectionType')}")
        md_lines.append(f"- **Authentication**: {auth.get('type', 'none')}")
        md_lines.append(f"- **Enabled**: {'yes' if server.get('enabled') else 'no'}")
        md_lines.append(f"- **Timeout**: {server.get('timeout')}ms")
        md_lines.append(f"- **Retry Attempts**: {server.get('retryAttempts')}")
        md_lines.append("")

        tools = server.get("tools", [])
        if tools:
            md_lines.append("| Tool | Enabled | Description |")
            md_lines.append("|------|---------|-------------|")
            for tool in tools:
                description = str(tool.get("description", "")).replace("|", "\\|")
                enabled = "yes" if tool.get("enabled") else "no"
                md_lines.append(f"| `{tool.get('name')}` | {enabled} | {description} |")
            md_lines.append("")

        md_lines.append("---")
        md_lines.append("")

    if "health_status" in export_data:
        md_lines.append("## Health Status")
        md_lines.append("")
        for name, result in export_data["health_status"].items():
            symbol = "✓" if result.get("success") else "✗"
            md_lines.append(f"- {symbol} **{name}**: {result.get('message')}")
        md_lines.append("")

    return "\n".join(md_lines)


RENDERERS = {
    "json": export_to_json,
    "yaml": export_to_yaml,
    "markdown": export_to_markdown,
}


async def save_export(
    export_data: Dict[str, Any],
    output_path: str,
    format: str = "json"
) -> bool:
    """
    Save export data to a file.

    Returns:
        True if save succeeded, False otherwise
    """
    renderer = RENDERERS.get(format)
    if renderer is None:
        logger.error(f"Unsupported export format: {format}")
        return False

    try:
        content = renderer(export_data)
        with open(output_path, 'w') as f:
            f.write(content)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save export to {output_path}: {e}")
        return False

    logger.info(f"Exported registry to {output_path} ({format} format)")
    return True
