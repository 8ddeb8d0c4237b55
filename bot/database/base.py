from __future__ import annotations

import asyncio
import itertools
import logging
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite
import asyncpg

LOGGER = logging.getLogger(__name__)

# Raised by either driver when a UNIQUE constraint rejects a write.
UNIQUE_VIOLATIONS: tuple[type[Exception], ...] = (aiosqlite.IntegrityError, asyncpg.UniqueViolationError)

_QMARK = re.compile(r"\?")


@dataclass(slots=True, frozen=True)
class DatabaseUrl:
    driver: str
    target: str


def parse_database_url(url: str) -> DatabaseUrl:
    if url.startswith("sqlite:///"):
        return DatabaseUrl(driver="sqlite", target=url[len("sqlite:///") :])
    if url.startswith(("postgresql://", "postgres://")):
        return DatabaseUrl(driver="postgresql", target=url)
    raise ValueError("Unsupported database URL. Use sqlite:/// or postgresql://")


def to_numbered_params(query: str) -> str:
    counter = itertools.count(1)
    return _QMARK.sub(lambda _match: f"${next(counter)}", query)


class Database:
    """Thin async wrapper that speaks qmark SQL to either SQLite or PostgreSQL.

    SQLite access is serialised through a single connection guarded by a lock;
    PostgreSQL queries are rewritten to ``$n`` placeholders and run on a pool.
    """

    def __init__(self, url: str, timeout_seconds: int = 30, pool_min_size: int = 2, pool_max_size: int = 10) -> None:
        self.url = parse_database_url(url)
        self.timeout_seconds = timeout_seconds
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self._sqlite: aiosqlite.Connection | None = None
        self._pool: asyncpg.Pool | None = None
        self._lock = asyncio.Lock()

    @property
    def driver(self) -> str:
        return self.url.driver

    async def connect(self) -> None:
        if self.driver == "sqlite":
            await self._connect_sqlite(Path(self.url.target))
        else:
            await self._connect_postgres()

    async def _connect_sqlite(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(path, timeout=self.timeout_seconds)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode = WAL;")
        await conn.execute("PRAGMA foreign_keys = ON;")
        await conn.commit()
        self._sqlite = conn
        LOGGER.info("Connected to SQLite: %s", path)

    async def _connect_postgres(self) -> None:
        self._pool = await asyncpg.create_pool(
            dsn=self.url.target,
            min_size=self.pool_min_size,
            max_size=self.pool_max_size,
            timeout=self.timeout_seconds,
        )
        LOGGER.info("Connected to PostgreSQL")

    async def close(self) -> None:
        if self._sqlite is not None:
            await self._sqlite.close()
            self._sqlite = None
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def _sqlite_conn(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._sqlite is None:
            raise RuntimeError("Database is not connected")
        async with self._lock:
            yield self._sqlite

    @asynccontextmanager
    async def _pg_conn(self) -> AsyncIterator[asyncpg.Connection]:
        if self._pool is None:
            raise RuntimeError("Database is not connected")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        args = tuple(params or ())
        if self.driver == "sqlite":
            async with self._sqlite_conn() as conn:
                try:
                    await conn.execute(query, args)
                except aiosqlite.Error:
                    await conn.rollback()
                    raise
                await conn.commit()
            return
        async with self._pg_conn() as conn:
            await conn.execute(to_numbered_params(query), *args)

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        args = tuple(params or ())
        if self.driver == "sqlite":
            async with self._sqlite_conn() as conn:
                async with conn.execute(query, args) as cursor:
                    rows = await cursor.fetchall()
        else:
            async with self._pg_conn() as conn:
                rows = await conn.fetch(to_numbered_params(query), *args)
        return [dict(row) for row in rows]

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    async def fetchval(self, query: str, params: Sequence[Any] | None = None, default: Any = None) -> Any:
        row = await self.fetchone(query, params)
        if not row:
            return default
        value = next(iter(row.values()), None)
        return default if value is None else value

    async def executescript(self, script: str) -> None:
        if self.driver == "sqlite":
            async with self._sqlite_conn() as conn:
                await conn.executescript(script)
                await conn.commit()
            return
        async with self._pg_conn() as conn:
            await conn.execute(script)
