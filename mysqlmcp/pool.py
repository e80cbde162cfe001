"""Per-database connection pools for a single data source."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable
from urllib.parse import quote, urlsplit

import pymysql
import pymysql.cursors

from .errors import ConnectionFailedError, McpError, QueryExecutionError

logger = logging.getLogger(__name__)

Connector = Callable[..., Any]


def _default_connect(*, host, port, user, password, database, connect_timeout):
    return pymysql.connect(
        host=host,
        port=port,
        user=user,
        password=password,
        database=database,
        connect_timeout=connect_timeout,
        cursorclass=pymysql.cursors.DictCursor,
        autocommit=True,
    )


def _close_quietly(raw: Any) -> None:
    with contextlib.suppress(Exception):
        raw.close()


def _run_query(raw: Any, query: str) -> list:
    with raw.cursor() as cursor:
        cursor.execute(query)
        return list(cursor.fetchall())


@dataclass(frozen=True)
class PoolStats:
    """Connection counts for one database pool."""

    database: str
    active_connections: int
    idle_connections: int
    total_connections: int


@dataclass
class _Entry:
    raw: Any
    created_at: float
    idle_since: float


class DatabasePool:
    """A bounded pool of connections to one database."""

    def __init__(self, database: str, config: Any, connect: Connector) -> None:
        self.database = database
        self._config = config
        self._settings = config.pool_config
        self._connect = connect
        self._idle: deque[_Entry] = deque()
        self._in_use: dict[int, _Entry] = {}
        self._opening = 0
        self._closed = False
        self._cond = asyncio.Condition()

    def _open_raw(self) -> Any:
        password = self._config.password
        return self._connect(
            host=self._config.host,
            port=self._config.port,
            user=self._config.username,
            password=password,
            database=self.database,
            connect_timeout=self._settings.connection_timeout_secs,
        )

    async def _open_entry(self) -> _Entry:
        raw = await asyncio.to_thread(self._open_raw)
        now = time.monotonic()
        return _Entry(raw, now, now)

    async def _warm_up(self) -> None:
        target = max(1, min(self._settings.min_connections, self._settings.max_connections))
        opened: list[_Entry] = []
        try:
            for _ in range(target):
                opened.append(await self._open_entry())
        except Exception as exc:
            for entry in opened:
                _close_quietly(entry.raw)
            raise ConnectionFailedError(
                f"Failed to create connection pool for database '{self.database}': {exc}"
            ) from exc
        self._idle.extend(opened)

    def _total(self) -> int:
        return len(self._idle) + len(self._in_use) + self._opening

    def _prune_idle(self) -> None:
        now = time.monotonic()
        kept: deque[_Entry] = deque()
        total = self._total()
        for entry in self._idle:
            too_old = now - entry.created_at >= self._settings.max_lifetime_secs
            too_idle = (
                now - entry.idle_since >= self._settings.idle_timeout_secs
                and total > self._settings.min_connections
            )
            if too_old or too_idle:
                _close_quietly(entry.raw)
                total -= 1
            else:
                kept.append(entry)
        self._idle = kept

    async def acquire(self) -> Any:
        """Take a connection, opening one or waiting for one as needed."""
        timeout = self._settings.connection_timeout_secs
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        async with self._cond:
            while True:
                if self._closed:
                    raise ConnectionFailedError("Failed to acquire connection: pool is closed")
                self._prune_idle()
                if self._idle:
                    entry = self._idle.pop()
                    self._in_use[id(entry.raw)] = entry
                    return entry.raw
                if self._total() < self._settings.max_connections:
                    self._opening += 1
                    break
                remaining = deadline - loop.time()
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError
                    await asyncio.wait_for(self._cond.wait(), remaining)
                except asyncio.TimeoutError:
                    raise ConnectionFailedError(
                        f"Failed to acquire connection: timed out after {timeout}s "
                        f"waiting for database '{self.database}'"
                    ) from None
        try:
            entry = await self._open_entry()
        except Exception as exc:
            async with self._cond:
                self._opening -= 1
                self._cond.notify_all()
            raise ConnectionFailedError(f"Failed to acquire connection: {exc}") from exc
        async with self._cond:
            self._opening -= 1
            self._in_use[id(entry.raw)] = entry
            self._cond.notify_all()
        return entry.raw

    async def release(self, connection: Any) -> None:
        """Return a connection taken with acquire()."""
        async with self._cond:
            entry = self._in_use.pop(id(connection), None)
            if entry is None:
                raise ValueError("connection does not belong to this pool")
            now = time.monotonic()
            if self._closed or now - entry.created_at >= self._settings.max_lifetime_secs:
                _close_quietly(entry.raw)
            else:
                entry.idle_since = now
                self._idle.append(entry)
            self._cond.notify_all()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Hold a connection for the duration of the block."""
        raw = await self.acquire()
        try:
            yield raw
        finally:
            await self.release(raw)

    async def fetch_all(self, query: str) -> list:
        """Run a query and return all its rows."""
        async with self.connection() as raw:
            try:
                return await asyncio.to_thread(_run_query, raw, query)
            except Exception as exc:
                raise QueryExecutionError(str(exc)) from exc

    def size(self) -> int:
        """Number of open connections, idle or in use."""
        return len(self._idle) + len(self._in_use)

    def num_idle(self) -> int:
        """Number of open connections not in use."""
        return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the pool, waiting for borrowed connections to come back."""
        async with self._cond:
            self._closed = True
            while self._idle:
                _close_quietly(self._idle.popleft().raw)
            self._cond.notify_all()
            while self._in_use or self._opening:
                await self._cond.wait()


class ConnectionPoolManager:
    """Keeps one connection pool per database of a data source."""

    def __init__(self, config: Any, connect: Connector | None = None) -> None:
        self.config = config
        self._connect = connect if connect is not None else _default_connect
        self._pools: dict[str, DatabasePool] = {}
        self._creation_lock = asyncio.Lock()
        logger.info(
            "Creating connection pool manager key=%s host=%s port=%s",
            config.key,
            config.host,
            config.port,
        )

    def _check_connection_url(self, database: str) -> None:
        cfg = self.config
        url = (
            f"mysql://{quote(str(cfg.username), safe='')}:{quote(str(cfg.password), safe='')}"
            f"@{cfg.host}:{cfg.port}/{quote(database, safe='')}"
        )
        try:
            parts = urlsplit(url)
            port = parts.port
            if not parts.hostname:
                raise ValueError("missing host")
            if port is None:
                raise ValueError("missing port")
        except ValueError as exc:
            raise ConnectionFailedError(f"Invalid connection URL: {exc}") from exc

    async def _create_pool(self, database: str) -> DatabasePool:
        self._check_connection_url(database)
        pool = DatabasePool(database, self.config, self._connect)
        await pool._warm_up()
        settings = self.config.pool_config
        logger.info(
            "Connection pool created key=%s database=%s max_connections=%s min_connections=%s",
            self.config.key,
            database,
            settings.max_connections,
            settings.min_connections,
        )
        return pool

    async def get_pool(self, database: str) -> DatabasePool:
        """Return the pool for a database, creating it on first use."""
        pool = self._pools.get(database)
        if pool is not None:
            return pool
        async with self._creation_lock:
            pool = self._pools.get(database)
            if pool is None:
                logger.info(
                    "Creating new connection pool key=%s database=%s", self.config.key, database
                )
                pool = await self._create_pool(database)
                self._pools[database] = pool
        return pool

    @asynccontextmanager
    async def get_connection(self, database: str) -> AsyncIterator[Any]:
        """Hold a connection to a database for the duration of the block."""
        pool = await self.get_pool(database)
        async with pool.connection() as raw:
            yield raw

    async def health_check(self) -> None:
        """Run a trivial query against every pool."""
        for database, pool in list(self._pools.items()):
            try:
                await pool.fetch_all("SELECT 1")
            except McpError as exc:
                raise ConnectionFailedError(
                    f"Health check failed for database '{database}': {exc.detail}"
                ) from exc
            logger.debug("Health check passed key=%s database=%s", self.config.key, database)

    @staticmethod
    def _stats_for(database: str, pool: DatabasePool) -> PoolStats:
        size = pool.size()
        idle = pool.num_idle()
        return PoolStats(
            database=database,
            active_connections=max(0, size - idle),
            idle_connections=idle,
            total_connections=size,
        )

    def get_stats(self) -> list[PoolStats]:
        """Statistics for every pool."""
        return [self._stats_for(database, pool) for database, pool in self._pools.items()]

    def get_database_stats(self, database: str) -> PoolStats | None:
        """Statistics for one database's pool, or None if it has none."""
        pool = self._pools.get(database)
        return None if pool is None else self._stats_for(database, pool)

    async def close_all(self) -> None:
        """Close every pool."""
        for database, pool in self._pools.items():
            logger.info("Closing connection pool key=%s database=%s", self.config.key, database)
            await pool.close()

    def active_databases(self) -> list[str]:
        """Names of the databases that have a pool."""
        return list(self._pools)

    def has_pool(self, database: str) -> bool:
        return database in self._pools