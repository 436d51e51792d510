"""
Ordered, transactional key-value backend interface and an in-memory implementation.

Backends store one JSON-safe document per record id. Work happens inside
`readonly` or `readwrite` transaction scopes: leaving a scope normally
commits it, an exception inside it rolls the whole scope back.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from .errors import BackendFailure, DuplicateIdentifier

READONLY = "readonly"
READWRITE = "readwrite"
TRANSACTION_MODES = (READONLY, READWRITE)


def key_order(key: Any):
    """Sort key matching SQLite's ordering: numbers before text."""
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return (0, key, "")
    return (1, 0, str(key))


def check_mode(mode: str) -> str:
    if mode not in TRANSACTION_MODES:
        raise ValueError(f"Unknown transaction mode: {mode!r}")
    return mode


class ITransaction(ABC):
    """Operations available inside one transaction scope."""

    mode: str = READONLY

    @abstractmethod
    async def add(self, document: Dict[str, Any]) -> Any:
        """Insert a document; fails with DuplicateIdentifier if its id exists."""
        pass

    @abstractmethod
    async def put(self, document: Dict[str, Any]) -> Any:
        """Insert or replace a document."""
        pass

    @abstractmethod
    async def get(self, key: Any) -> Optional[Dict[str, Any]]:
        """Get a document by id, None when absent."""
        pass

    @abstractmethod
    async def delete(self, key: Any) -> None:
        """Delete a document by id; absent ids are ignored."""
        pass

    @abstractmethod
    async def get_all(self) -> List[Dict[str, Any]]:
        """All documents in key order."""
        pass

    @abstractmethod
    async def get_all_keys(self) -> List[Any]:
        """All ids in key order."""
        pass

    def _check_writable(self, operation: str, key: Any = None) -> None:
        if self.mode != READWRITE:
            raise BackendFailure("Write attempted in a readonly transaction", operation=operation, key=key)


class IRecordBackend(ABC):
    """Abstract interface for record persistence."""

    name: str

    @abstractmethod
    def transaction(self, mode: str = READONLY):
        """Async context manager yielding an ITransaction."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        pass


class _MemoryTransaction(ITransaction):

    def __init__(self, data: Dict[Any, Dict[str, Any]], mode: str):
        self._data = data
        self.mode = mode

    async def add(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        self._check_writable("add", key)
        await asyncio.sleep(0)
        if key in self._data:
            raise DuplicateIdentifier("Key already exists in the object store", operation="add", key=key)
        self._data[key] = copy.deepcopy(document)
        return key

    async def put(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        self._check_writable("put", key)
        await asyncio.sleep(0)
        self._data[key] = copy.deepcopy(document)
        return key

    async def get(self, key: Any) -> Optional[Dict[str, Any]]:
        await asyncio.sleep(0)
        document = self._data.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def delete(self, key: Any) -> None:
        self._check_writable("delete", key)
        await asyncio.sleep(0)
        self._data.pop(key, None)

    async def get_all(self) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        return [copy.deepcopy(self._data[k]) for k in sorted(self._data, key=key_order)]

    async def get_all_keys(self) -> List[Any]:
        await asyncio.sleep(0)
        return sorted(self._data, key=key_order)


class MemoryBackend(IRecordBackend):
    """In-memory backend.

    Readwrite scopes work on a private copy that replaces the committed data
    only when the scope exits cleanly, and they are serialized by a lock.
    Readonly scopes see the committed data as of the moment they opened.

    The copy is shallow: stored documents are never mutated in place (writes
    store a deep copy, reads return one), so a scope costs one dict copy of
    the id index rather than a copy of every document.
    """

    def __init__(self, name: str = "EntityDB"):
        self.name = name
        self._data: Dict[Any, Dict[str, Any]] = {}
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self, mode: str = READONLY) -> AsyncIterator[ITransaction]:
        check_mode(mode)
        if mode == READONLY:
            # Commits swap in a new dict, so this reference stays a stable snapshot
            yield _MemoryTransaction(self._data, READONLY)
            return

        async with self._write_lock:
            working = dict(self._data)
            yield _MemoryTransaction(working, READWRITE)
            self._data = working

    async def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._data)
