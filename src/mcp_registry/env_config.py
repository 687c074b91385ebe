"""
Environment configuration for mcp-registry.

Loads environment variables from:
1. The .env file named by MCP_REGISTRY_ENV_FILE (default: ./.env), if it exists
2. System environment variables (which override .env values)
"""

import os
from pathlib import Path
from typing import Optional

ENV_FILE = Path(os.environ.get("MCP_REGISTRY_ENV_FILE", ".env"))

DEFAULT_HTTP_PORT = 5555
DEFAULT_REGISTRY_FILE = "mcp_registry.json"


def load_env_file(path: Optional[Path] = None):
    """Load environment variables from .env file if it exists."""
    env_file = path or ENV_FILE
    if not env_file.exists():
        return

    with open(env_file) as f:
        for line in f:
            line = line.strip()

            # Skip comments and empty lines
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                # Only set if not already in environment
                if key not in os.environ:
                    os.environ[key] = value


# Load .env file when module is imported
load_env_file()


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_int_env(key: str, default: int) -> int:
    """Get integer environment variable, falling back to default when unset."""
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def get_list_env(key: str) -> list[str]:
    """Get a comma-separated environment variable as a list of non-empty items."""
    value = os.getenv(key, "")
    return [item.strip() for item in value.split(",") if item.strip()]
