"""
SQLite-backed record persistence.

Each collection is one table of `(id, document)` rows, the document being the
record serialized as JSON. All SQLite calls run on one dedicated worker
thread so the event loop never blocks on disk I/O.
"""

import asyncio
import json
import re
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager, contextmanager
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, Generator, List, Optional

from .backend import READONLY, READWRITE, IRecordBackend, ITransaction, check_mode
from .config import ensure_db_directory, get_db_path
from .errors import BackendFailure, DuplicateIdentifier

_TABLE_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


def _table_name(name: str) -> str:
    if not _TABLE_NAME_RE.match(name):
        raise ValueError(f"Invalid collection name: {name!r}")
    return f'"records_{name}"'


@contextmanager
def get_db(path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a short-lived SQLite database connection."""
    path = path or get_db_path()
    if path != ":memory:":
        ensure_db_directory(path)
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(conn: sqlite3.Connection, name: str) -> None:
    """Create the record table for a collection if needed."""
    conn.execute(f'''
        CREATE TABLE IF NOT EXISTS {_table_name(name)} (
            id PRIMARY KEY,
            document TEXT NOT NULL
        )
    ''')


def health_check(path: Optional[str] = None, name: str = "EntityDB") -> bool:
    """Check that the collection table exists."""
    try:
        with get_db(path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
                (f"records_{name}",),
            )
            return cursor.fetchone() is not None
    except sqlite3.Error:
        return False


class _SQLiteTransaction(ITransaction):

    def __init__(self, backend: "SQLiteBackend", mode: str):
        self._backend = backend
        self.mode = mode

    async def add(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        self._check_writable("add", key)
        return await self._backend._call(self._backend._add, document, operation="add", key=key)

    async def put(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        self._check_writable("put", key)
        return await self._backend._call(self._backend._put, document, operation="put", key=key)

    async def get(self, key: Any) -> Optional[Dict[str, Any]]:
        return await self._backend._call(self._backend._get, key, operation="get", key=key)

    async def delete(self, key: Any) -> None:
        self._check_writable("delete", key)
        await self._backend._call(self._backend._delete, key, operation="delete", key=key)

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self._backend._call(self._backend._get_all, operation="get_all")

    async def get_all_keys(self) -> List[Any]:
        return await self._backend._call(self._backend._get_all_keys, operation="get_all_keys")


class SQLiteBackend(IRecordBackend):
    """SQLite implementation of IRecordBackend.

    Transaction scopes are serialized: one connection, one worker thread,
    one scope at a time. Readwrite scopes take the write lock up front with
    BEGIN IMMEDIATE.
    """

    def __init__(self, path: Optional[str] = None, name: str = "EntityDB"):
        self.path = path or get_db_path()
        self.name = name
        self._table = _table_name(name)
        self._conn: Optional[sqlite3.Connection] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="entitydb-sqlite")
        self._scope_lock = asyncio.Lock()
        self._closed = False

    # ---------------- worker-thread helpers ----------------

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.path != ":memory:":
                ensure_db_directory(self.path)
            # Autocommit mode; scopes issue BEGIN/COMMIT explicitly
            self._conn = sqlite3.connect(self.path, isolation_level=None)
            init_db(self._conn, self.name)
        return self._conn

    def _begin(self, mode: str) -> None:
        self._connection().execute("BEGIN IMMEDIATE" if mode == READWRITE else "BEGIN DEFERRED")

    def _commit(self) -> None:
        self._connection().execute("COMMIT")

    def _rollback(self) -> None:
        conn = self._connection()
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _add(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        try:
            self._connection().execute(
                f"INSERT INTO {self._table} (id, document) VALUES (?, ?)",
                (key, json.dumps(document)),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateIdentifier("Key already exists in the object store", operation="add", key=key) from e
        return key

    def _put(self, document: Dict[str, Any]) -> Any:
        key = document["id"]
        self._connection().execute(
            f"INSERT OR REPLACE INTO {self._table} (id, document) VALUES (?, ?)",
            (key, json.dumps(document)),
        )
        return key

    def _get(self, key: Any) -> Optional[Dict[str, Any]]:
        row = self._connection().execute(
            f"SELECT document FROM {self._table} WHERE id = ?", (key,)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def _delete(self, key: Any) -> None:
        self._connection().execute(f"DELETE FROM {self._table} WHERE id = ?", (key,))

    def _get_all(self) -> List[Dict[str, Any]]:
        rows = self._connection().execute(f"SELECT document FROM {self._table} ORDER BY id").fetchall()
        return [json.loads(row[0]) for row in rows]

    def _get_all_keys(self) -> List[Any]:
        rows = self._connection().execute(f"SELECT id FROM {self._table} ORDER BY id").fetchall()
        return [row[0] for row in rows]

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ---------------- async surface ----------------

    async def _call(self, fn: Callable, *args, operation: str, key: Any = None):
        if self._closed:
            raise BackendFailure("Backend is closed", operation=operation, key=key)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(fn, *args))
        except sqlite3.Error as e:
            raise BackendFailure(f"SQLite error: {e}", operation=operation, key=key) from e
        except (TypeError, ValueError) as e:
            # Unserializable attributes or unsupported key types
            raise BackendFailure(f"Invalid document: {e}", operation=operation, key=key) from e

    @asynccontextmanager
    async def transaction(self, mode: str = READONLY) -> AsyncIterator[ITransaction]:
        check_mode(mode)
        async with self._scope_lock:
            await self._call(self._begin, mode, operation="begin")
            try:
                yield _SQLiteTransaction(self, mode)
            except BaseException:
                await self._call(self._rollback, operation="rollback")
                raise
            try:
                await self._call(self._commit, operation="commit")
            except BackendFailure:
                await self._call(self._rollback, operation="rollback")
                raise

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self._close)
        self._closed = True
        self._executor.shutdown(wait=True)
