"""
Registry persistence backends for the mcp-tools backend.

The whole registry (global enable flag + server list) is stored as one
document. Backends:

- MemoryRegistryStorage:   process-local, not persistent across restarts
- JsonFileRegistryStorage: a JSON file on disk, replaced atomically
- SupabaseRegistryStorage: one row in a Supabase table (JSONB column)

Every backend raises PersistenceError when it cannot load or save.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from mcp_registry.errors import PersistenceError, ValidationError
from mcp_registry.models import Registry

logger = logging.getLogger(__name__)


class RegistryStorage:
    """Base class for registry storage backends."""

    async def load(self) -> Registry:
        """Return the persisted registry (an empty, disabled one if none exists)."""
        raise NotImplementedError

    async def save(self, registry: Registry) -> None:
        """Persist the whole registry."""
        raise NotImplementedError


class MemoryRegistryStorage(RegistryStorage):
    """In-memory registry storage (not persistent across restarts)."""

    def __init__(self, registry: Optional[Registry] = None):
        self.registry = registry.copy() if registry else Registry()

    async def load(self) -> Registry:
        return self.registry.copy()

    async def save(self, registry: Registry) -> None:
        self.registry = registry.copy()
        logger.info(f"Registry saved (memory): {len(registry.servers)} servers, enabled={registry.enabled}")


class JsonFileRegistryStorage(RegistryStorage):
    """Registry stored as a JSON document on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def load(self) -> Registry:
        if not self.path.exists():
            return Registry()

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            return Registry.from_dict(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Failed to load registry from {self.path}: {e}")
            raise PersistenceError(f"Failed to load registry from {self.path}: {e}")

    async def save(self, registry: Registry) -> None:
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, 'w') as f:
                json.dump(registry.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
            tmp_path = None
            logger.info(f"Registry saved (file): {self.path} ({len(registry.servers)} servers)")
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save registry to {self.path}: {e}")
            raise PersistenceError(f"Failed to save registry to {self.path}: {e}")
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)


class SupabaseRegistryStorage(RegistryStorage):
    """Supabase-backed registry storage (persistent)."""

    def __init__(self, supabase_client, table: str = "mcp_tool_registry", row_id: str = "global"):
        self.supabase = supabase_client
        self.table = table
        self.row_id = row_id

    async def load(self) -> Registry:
        try:
            result = self.supabase.table(self.table).select("*").eq("id", self.row_id).execute()
        except Exception as e:
            logger.error(f"Failed to load registry from Supabase: {e}")
            raise PersistenceError(f"Failed to load registry from Supabase: {e}")

        if not result.data:
            return Registry()

        try:
            return Registry.from_dict(result.data[0].get("config"))
        except ValidationError as e:
            raise PersistenceError(f"Stored registry is invalid: {e}")

    async def save(self, registry: Registry) -> None:
        data = {
            "id": self.row_id,
            "config": registry.to_dict(),
            "updated_at": datetime.now().isoformat(),
        }

        try:
            self.supabase.table(self.table).upsert(data).execute()
            logger.info(f"Registry saved (Supabase): {len(registry.servers)} servers")
        except Exception as e:
            logger.error(f"Failed to save registry to Supabase: {e}")
            raise PersistenceError(f"Failed to save registry to Supabase: {e}")


def create_storage(
    kind: str = "memory",
    path: Optional[str] = None,
    supabase_url: Optional[str] = None,
    supabase_key: Optional[str] = None,
) -> RegistryStorage:
    """
    Build a storage backend by name.

    Args:
        kind: 'memory', 'file' or 'supabase'
        path: JSON file path for 'file'
        supabase_url: Supabase project URL for 'supabase'
        supabase_key: Supabase service key for 'supabase'
    """
    kind = kind.lower()

    if kind == "memory":
        logger.info("Using in-memory registry storage (not persistent)")
        return MemoryRegistryStorage()

    if kind == "file":
        if not path:
            raise ValueError("A file path is required for REGISTRY_STORAGE=file")
        logger.info(f"Using JSON file registry storage: {path}")
        return JsonFileRegistryStorage(path)

    if kind == "supabase":
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for REGISTRY_STORAGE=supabase")
        from supabase import create_client

        logger.info("Using Supabase registry storage")
        return SupabaseRegistryStorage(create_client(supabase_url, supabase_key))

    raise ValueError(f"Unknown registry storage: {kind}")
