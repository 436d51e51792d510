"""
Runtime configuration for EntityDB.
Settings come from the environment; per-store options are parsed into StoreConfig.
"""

import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Database path configuration
DB_PATH = os.getenv("ENTITYDB_DB_PATH", "./data/entitydb.db")

# Backend selection (memory|sqlite)
BACKEND = os.getenv("ENTITYDB_BACKEND", "sqlite")

# Store defaults
DEFAULT_DB_NAME = os.getenv("ENTITYDB_NAME", "EntityDB")
DEFAULT_VECTOR_FIELD = os.getenv("ENTITYDB_VECTOR_FIELD", "vector")
DEFAULT_MODEL_ID = os.getenv("ENTITYDB_MODEL_ID", "sentence-transformers/all-MiniLM-L6-v2")

# Accelerated distance kernel
KERNEL_MODULE = os.getenv("ENTITYDB_KERNEL_MODULE", "entitydb.vector._kernel")
KERNEL_PAGES = int(os.getenv("ENTITYDB_KERNEL_PAGES", "1"))


class StoreConfig(BaseModel):
    """Options recognized by a store instance.

    Accepts both snake_case names and the camelCase option keys
    (`vectorField`, `modelId`). Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True, protected_namespaces=())

    name: str = DEFAULT_DB_NAME
    vector_field: str = Field(default=DEFAULT_VECTOR_FIELD, alias="vectorField")
    model_id: str = Field(default=DEFAULT_MODEL_ID, alias="modelId")

    @field_validator("name", "vector_field", "model_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "StoreConfig":
        """Build a config from a caller mapping, dropping None values so defaults apply."""
        options = options or {}
        return cls(**{k: v for k, v in options.items() if v is not None})


def get_db_path() -> str:
    """Get the SQLite database path."""
    return os.getenv("ENTITYDB_DB_PATH", DB_PATH)


def get_backend_kind() -> str:
    """Get configured backend kind (memory|sqlite)."""
    return os.getenv("ENTITYDB_BACKEND", BACKEND).lower().strip()


def get_kernel_module() -> str:
    """Get the import path of the accelerated distance kernel."""
    return os.getenv("ENTITYDB_KERNEL_MODULE", KERNEL_MODULE)


def get_kernel_pages() -> int:
    """Get the initial number of 64 KiB pages for the kernel's linear memory."""
    return int(os.getenv("ENTITYDB_KERNEL_PAGES", str(KERNEL_PAGES)))


def debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(path: Optional[str] = None):
    """Ensure the database directory exists."""
    Path(path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate environment configuration and return any issues."""
    issues = []

    if get_backend_kind() not in ["memory", "sqlite"]:
        issues.append(f"Invalid ENTITYDB_BACKEND: {get_backend_kind()}")

    try:
        if get_kernel_pages() < 1:
            issues.append("ENTITYDB_KERNEL_PAGES must be >= 1")
    except ValueError:
        issues.append("ENTITYDB_KERNEL_PAGES must be an integer")

    if not get_kernel_module().strip():
        issues.append("ENTITYDB_KERNEL_MODULE must not be empty")

    return issues


def get_backend(store_config: Optional[StoreConfig] = None):
    """Get configured record backend implementation for a store."""
    store_config = store_config or StoreConfig()
    kind = get_backend_kind()

    if kind == "memory":
        from .backend import MemoryBackend
        return MemoryBackend(store_config.name)
    elif kind == "sqlite":
        from .db import SQLiteBackend
        return SQLiteBackend(get_db_path(), store_config.name)
    else:
        raise ValueError(f"Unknown ENTITYDB_BACKEND: {kind!r}. Valid values are: 'memory', 'sqlite'.")
