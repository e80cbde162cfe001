import asyncio
from dataclasses import dataclass, field

import pytest

from mysqlmcp.errors import ConnectionFailedError, QueryExecutionError
from mysqlmcp.pool import ConnectionPoolManager, PoolStats

PASSWORD = "password"


@dataclass
class PoolSettings:
    max_connections: int = 5
    min_connections: int = 1
    connection_timeout_secs: float = 10
    idle_timeout_secs: float = 300
    max_lifetime_secs: float = 1800


@dataclass
class SourceConfig:
    key: str = "test"
    name: str = "Test Database"
    host: str = "localhost"
    port: int = 3306
    username: str = "test"
    password: str = PASSWORD
    databases: list = field(default_factory=list)
    pool_config: PoolSettings = field(default_factory=PoolSettings)


def make_config(host="localhost", port=3306, **pool_kwargs):
    return SourceConfig(host=host, port=port, pool_config=PoolSettings(**pool_kwargs))


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query):
        self._conn.queries.append(query)
        if self._conn.owner.failing:
            raise RuntimeError("query failed")

    def fetchall(self):
        return list(self._conn.owner.rows)


class FakeConnection:
    def __init__(self, owner, database):
        self.owner = owner
        self.database = database
        self.closed = False
        self.queries = []

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self, rows=None, refuse=False):
        self.rows = rows or []
        self.refuse = refuse
        self.failing = False
        self.calls = []
        self.connections = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.refuse:
            raise OSError("connection refused")
        conn = FakeConnection(self, kwargs["database"])
        self.connections.append(conn)
        return conn


def test_new_pool_manager_has_no_pools():
    manager = ConnectionPoolManager(make_config(), connect=FakeConnector())
    assert manager.active_databases() == []
    assert manager.get_stats() == []


@pytest.mark.parametrize("database", ["test_db", "db-1", "A_b_9", "x"])
def test_unknown_database_has_no_pool_or_stats(database):
    manager = ConnectionPoolManager(make_config(), connect=FakeConnector())
    assert not manager.has_pool(database)
    assert manager.get_database_stats(database) is None
    assert not manager.has_pool(database)
    assert len(manager.active_databases()) == 0


@pytest.mark.parametrize("names", [("db1", "db2", "db3"), ("alpha", "beta")])
def test_databases_tracked_independently(names):
    manager = ConnectionPoolManager(make_config(), connect=FakeConnector())
    assert [manager.has_pool(n) for n in names] == [False] * len(names)
    assert [manager.get_database_stats(n) for n in names] == [None] * len(names)


@pytest.mark.asyncio
async def test_get_pool_creates_pool_with_config_values():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    await manager.get_pool("db1")
    assert manager.has_pool("db1")
    assert manager.active_databases() == ["db1"]
    assert connector.calls[0] == {
        "host": "localhost",
        "port": 3306,
        "user": "test",
        "password": PASSWORD,
        "database": "db1",
        "connect_timeout": 10,
    }


@pytest.mark.asyncio
async def test_get_pool_reuses_existing_pool():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(min_connections=2), connect=connector)
    first = await manager.get_pool("db1")
    second = await manager.get_pool("db1")
    assert first is second
    assert len(connector.calls) == 2


@pytest.mark.asyncio
async def test_pools_are_isolated_per_database():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    pool1 = await manager.get_pool("db1")
    pool2 = await manager.get_pool("db2")
    assert pool1 is not pool2
    assert sorted(manager.active_databases()) == ["db1", "db2"]
    async with manager.get_connection("db1") as conn:
        assert conn.database == "db1"
        assert manager.get_database_stats("db1").active_connections == 1
        assert manager.get_database_stats("db2").active_connections == 0


@pytest.mark.asyncio
async def test_stats_reflect_borrowed_connections():
    manager = ConnectionPoolManager(make_config(min_connections=2), connect=FakeConnector())
    await manager.get_pool("db1")
    assert manager.get_database_stats("db1") == PoolStats("db1", 0, 2, 2)
    async with manager.get_connection("db1"):
        assert manager.get_database_stats("db1") == PoolStats("db1", 1, 1, 2)
    assert manager.get_stats() == [PoolStats("db1", 0, 2, 2)]


@pytest.mark.asyncio
async def test_min_connections_capped_by_max():
    connector = FakeConnector()
    manager = ConnectionPoolManager(
        make_config(min_connections=3, max_connections=2), connect=connector
    )
    pool = await manager.get_pool("db1")
    assert pool.size() == 2
    assert len(connector.calls) == 2


@pytest.mark.asyncio
async def test_connect_failure_raises_and_leaves_no_pool():
    manager = ConnectionPoolManager(make_config(), connect=FakeConnector(refuse=True))
    with pytest.raises(ConnectionFailedError) as info:
        await manager.get_pool("db1")
    assert "Failed to create connection pool for database 'db1'" in info.value.detail
    assert "connection refused" in info.value.detail
    assert not manager.has_pool("db1")


@pytest.mark.asyncio
@pytest.mark.parametrize("host,port", [("localhost", 70000), ("", 3306)])
async def test_invalid_connection_url_is_rejected(host, port):
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(host=host, port=port), connect=connector)
    with pytest.raises(ConnectionFailedError, match="Invalid connection URL"):
        await manager.get_pool("db1")
    assert connector.calls == []


@pytest.mark.asyncio
async def test_fetch_all_returns_rows_and_releases():
    connector = FakeConnector(rows=[{"name": "users"}, {"name": "orders"}])
    manager = ConnectionPoolManager(make_config(), connect=connector)
    pool = await manager.get_pool("db1")
    rows = await pool.fetch_all("SHOW TABLES")
    assert rows == [{"name": "users"}, {"name": "orders"}]
    assert pool.num_idle() == pool.size()
    assert connector.connections[0].queries == ["SHOW TABLES"]


@pytest.mark.asyncio
async def test_fetch_all_wraps_query_errors():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    pool = await manager.get_pool("db1")
    connector.failing = True
    with pytest.raises(QueryExecutionError, match="query failed"):
        await pool.fetch_all("SELECT broken")
    assert pool.num_idle() == pool.size()


@pytest.mark.asyncio
async def test_health_check_runs_select_one_on_every_pool():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    await manager.get_pool("db1")
    await manager.get_pool("db2")
    await manager.health_check()
    assert [c.queries for c in connector.connections] == [["SELECT 1"], ["SELECT 1"]]


@pytest.mark.asyncio
async def test_health_check_failure_names_database():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    await manager.get_pool("db1")
    connector.failing = True
    with pytest.raises(ConnectionFailedError, match="Health check failed for database 'db1'"):
        await manager.health_check()


@pytest.mark.asyncio
async def test_acquire_times_out_when_pool_exhausted():
    manager = ConnectionPoolManager(
        make_config(max_connections=1, connection_timeout_secs=0.05), connect=FakeConnector()
    )
    pool = await manager.get_pool("db1")
    held = await pool.acquire()
    with pytest.raises(ConnectionFailedError, match="Failed to acquire connection"):
        await pool.acquire()
    await pool.release(held)
    assert pool.num_idle() == 1


@pytest.mark.asyncio
async def test_waiting_acquire_receives_released_connection():
    manager = ConnectionPoolManager(make_config(max_connections=1), connect=FakeConnector())
    pool = await manager.get_pool("db1")
    first = await pool.acquire()
    waiter = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0.01)
    assert not waiter.done()
    await pool.release(first)
    second = await asyncio.wait_for(waiter, 1)
    assert second is first


@pytest.mark.asyncio
async def test_expired_lifetime_connections_are_closed():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(max_lifetime_secs=0), connect=connector)
    pool = await manager.get_pool("db1")
    conn = await pool.acquire()
    assert connector.connections[0].closed
    assert conn is connector.connections[1]
    await pool.release(conn)
    assert conn.closed
    assert pool.size() == 0


@pytest.mark.asyncio
async def test_idle_timeout_closes_connections_above_minimum():
    connector = FakeConnector()
    manager = ConnectionPoolManager(
        make_config(idle_timeout_secs=0, min_connections=0), connect=connector
    )
    pool = await manager.get_pool("db1")
    conn = await pool.acquire()
    assert connector.connections[0].closed
    assert conn is connector.connections[1]


@pytest.mark.asyncio
async def test_idle_timeout_keeps_minimum_connections():
    connector = FakeConnector()
    manager = ConnectionPoolManager(
        make_config(idle_timeout_secs=0, min_connections=1), connect=connector
    )
    pool = await manager.get_pool("db1")
    conn = await pool.acquire()
    assert conn is connector.connections[0]
    assert not conn.closed


@pytest.mark.asyncio
async def test_release_of_foreign_connection_is_rejected():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    pool = await manager.get_pool("db1")
    with pytest.raises(ValueError):
        await pool.release(FakeConnection(connector, "db1"))


@pytest.mark.asyncio
async def test_close_all_closes_connections():
    connector = FakeConnector()
    manager = ConnectionPoolManager(make_config(), connect=connector)
    pool = await manager.get_pool("db1")
    await manager.get_pool("db2")
    await manager.close_all()
    assert all(conn.closed for conn in connector.connections)
    assert pool.closed
    with pytest.raises(ConnectionFailedError, match="pool is closed"):
        await pool.acquire()