from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite
import asyncpg

LOGGER = logging.getLogger(__name__)

SQLITE = "sqlite"
POSTGRES = "postgresql"

_PG_SCHEMES = ("postgresql://", "postgres://")
_SQLITE_SCHEME = "sqlite:///"


@dataclass(slots=True, frozen=True)
class DatabaseDsn:
    driver: str
    value: str


def parse_database_dsn(url: str) -> DatabaseDsn:
    if url.startswith(_SQLITE_SCHEME):
        return DatabaseDsn(driver=SQLITE, value=url[len(_SQLITE_SCHEME):])
    if url.startswith(_PG_SCHEMES):
        return DatabaseDsn(driver=POSTGRES, value=url)
    raise ValueError(f"Unsupported database URL {url!r}; expected sqlite:/// or postgresql://")


def _qmark_to_dollar(query: str) -> str:
    counter = 0

    def _next(_: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"${counter}"

    return re.sub(r"\?", _next, query)


def _affected_rows(status: str) -> int:
    # asyncpg reports e.g. "UPDATE 1" or "INSERT 0 1"; the count is the last token.
    tail = status.rsplit(maxsplit=1)[-1] if status.strip() else ""
    return int(tail) if tail.isdigit() else 0


class Database:
    """Thin async facade over SQLite (aiosqlite) or PostgreSQL (asyncpg).

    Queries are written with ``?`` placeholders and rewritten for asyncpg.
    ``execute`` returns the number of affected rows so callers can build
    conditional updates (``UPDATE ... WHERE <guard>``) and learn whether the
    guard held.
    """

    def __init__(self, url: str, timeout_seconds: int = 30, pool_min_size: int = 2, pool_max_size: int = 10) -> None:
        self._dsn = parse_database_dsn(url)
        self._timeout_seconds = timeout_seconds
        self._pool_bounds = (pool_min_size, pool_max_size)
        self._sqlite: aiosqlite.Connection | None = None
        self._pg_pool: asyncpg.Pool | None = None
        # A single aiosqlite connection is shared, so statements are serialized.
        self._sqlite_lock = asyncio.Lock()

    @property
    def driver(self) -> str:
        return self._dsn.driver

    @property
    def is_sqlite(self) -> bool:
        return self.driver == SQLITE

    async def connect(self) -> None:
        if self.is_sqlite:
            await self._connect_sqlite(Path(self._dsn.value))
        else:
            await self._connect_postgres()

    async def _connect_sqlite(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        connection = await aiosqlite.connect(path, timeout=self._timeout_seconds)
        connection.row_factory = aiosqlite.Row
        for pragma in ("PRAGMA journal_mode = WAL;", "PRAGMA foreign_keys = ON;"):
            await connection.execute(pragma)
        await connection.commit()
        self._sqlite = connection
        LOGGER.info("Database ready (sqlite at %s)", path)

    async def _connect_postgres(self) -> None:
        min_size, max_size = self._pool_bounds
        self._pg_pool = await asyncpg.create_pool(
            dsn=self._dsn.value,
            min_size=min_size,
            max_size=max_size,
            timeout=self._timeout_seconds,
        )
        LOGGER.info("Database ready (postgresql pool %d-%d)", min_size, max_size)

    async def close(self) -> None:
        if self._sqlite is not None:
            await self._sqlite.close()
            self._sqlite = None
        if self._pg_pool is not None:
            await self._pg_pool.close()
            self._pg_pool = None

    def _require_sqlite(self) -> aiosqlite.Connection:
        if self._sqlite is None:
            raise RuntimeError("Database.connect() has not been awaited")
        return self._sqlite

    def _require_pool(self) -> asyncpg.Pool:
        if self._pg_pool is None:
            raise RuntimeError("Database.connect() has not been awaited")
        return self._pg_pool

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> int:
        """Run a write statement and return the affected row count."""
        args = tuple(params or ())
        if self.is_sqlite:
            connection = self._require_sqlite()
            async with self._sqlite_lock:
                cursor = await connection.execute(query, args)
                await connection.commit()
                return max(cursor.rowcount, 0)

        async with self._require_pool().acquire() as conn:
            status = await conn.execute(_qmark_to_dollar(query), *args)
        return _affected_rows(status)

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        args = tuple(params or ())
        if self.is_sqlite:
            connection = self._require_sqlite()
            async with self._sqlite_lock:
                cursor = await connection.execute(query, args)
                row = await cursor.fetchone()
        else:
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(_qmark_to_dollar(query), *args)
        return dict(row) if row is not None else None

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        args = tuple(params or ())
        if self.is_sqlite:
            connection = self._require_sqlite()
            async with self._sqlite_lock:
                cursor = await connection.execute(query, args)
                rows = await cursor.fetchall()
        else:
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch(_qmark_to_dollar(query), *args)
        return [dict(row) for row in rows]

    async def executescript(self, sql_script: str) -> None:
        if self.is_sqlite:
            connection = self._require_sqlite()
            async with self._sqlite_lock:
                await connection.executescript(sql_script)
                await connection.commit()
            return

        async with self._require_pool().acquire() as conn:
            await conn.execute(sql_script)
