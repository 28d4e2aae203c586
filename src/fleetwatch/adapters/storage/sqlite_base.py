"""Connection management shared by SQLite storage adapters."""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite


def _safe_json_loads(
    data: str | None, default: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Safely parse JSON data, returning default on decode error.

    Args:
        data: JSON string to parse.
        default: Value to return if parsing fails. Defaults to empty dict.

    Returns:
        Parsed JSON as dict, or default if parsing fails.
    """
    if default is None:
        default = {}
    if not data:
        return default
    try:
        result: dict[str, Any] = json.loads(data)
        return result
    except json.JSONDecodeError:
        return default


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.

    ``timeout`` is the number of seconds a connection waits on a locked
    database before the statement fails.
    """

    def __init__(self, db_path: str, schema: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._schema = schema
        self._timeout = timeout
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _should_close_connection(self) -> bool:
        """Return True if connections should be closed after use."""
        return self._db_path != ":memory:"

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = await aiosqlite.connect(
                    ":memory:", timeout=self._timeout
                )
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(
                    self._db_path, timeout=self._timeout
                ) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a database connection."""
        await self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path, timeout=self._timeout)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if self._should_close_connection:
                await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager. Subclasses
    provide the schema and implement domain-specific read/write methods.
    """

    def __init__(self, db_path: str, schema: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._schema = schema
        self._async_manager = AsyncConnectionManager(db_path, schema, timeout)

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._async_manager.close()

    async def aclose(self) -> None:
        await self.close()

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections."""
        async with self._async_manager.connection() as conn:
            yield conn

    async def _fetch_all(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> list[aiosqlite.Row]:
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                return list(await cursor.fetchall())

    async def _execute(self, query: str, params: tuple[Any, ...] = ()) -> int:
        """Execute a write statement and return the affected row count."""
        async with self.async_connection() as db:
            cursor = await db.execute(query, params)
            affected = cursor.rowcount
            await db.commit()
            return affected

    async def _execute_many(self, query: str, rows: list[tuple[Any, ...]]) -> int:
        """Execute a batched write in a single transaction."""
        if not rows:
            return 0
        async with self.async_connection() as db:
            await db.executemany(query, rows)
            await db.commit()
            return len(rows)
