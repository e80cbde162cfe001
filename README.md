# mysqlmcp

`mysqlmcp` is an asyncio library for servers that expose several MySQL data
sources. It keeps a separate connection pool for each database of a data
source. It also serves database metadata, read-only, through `mysql://`
resource URIs.

## Installation

```
pip install mysqlmcp
```

To install the test dependencies as well:

```
pip install "mysqlmcp[test]"
```

## Data source configuration

The package does not define or load a configuration format. Any object with
the following attributes can describe a data source:

- `key`, `host`, `port`, `username`, `password`
- `pool_config`, an object with `max_connections`, `min_connections`,
  `connection_timeout_secs`, `idle_timeout_secs` and `max_lifetime_secs`

```python
from dataclasses import dataclass, field

@dataclass
class PoolConfig:
    max_connections: int = 10
    min_connections: int = 2
    connection_timeout_secs: float = 30
    idle_timeout_secs: float = 300
    max_lifetime_secs: float = 1800

password = "password"

@dataclass
class DataSourceConfig:
    key: str
    host: str
    port: int
    username: str
    password: str
    pool_config: PoolConfig = field(default_factory=PoolConfig)

config = DataSourceConfig("main", "localhost", 3306, "user", password)
```

## Connection pools (`mysqlmcp.pool`)

A `ConnectionPoolManager(config, connect=None)` belongs to one data source and
keeps one `DatabasePool` per database. Pools are created lazily and are never
shared between databases. `connect` is a callable that takes the keyword
arguments `host`, `port`, `user`, `password`, `database` and
`connect_timeout` and returns a DB-API connection. By default it is
`pymysql.connect` with dictionary cursors and autocommit.

- `await get_pool(database)` returns the pool for a database. On first use it
  creates the pool and opens `max(1, min(min_connections, max_connections))`
  connections. If any of them fails to open, it raises `ConnectionFailedError`.
- `async with get_connection(database) as conn:` borrows a connection for the
  duration of the block.
- `await health_check()` runs `SELECT 1` against every pool. It raises
  `ConnectionFailedError` on the first failure.
- `get_stats()` returns a list of `PoolStats`, one per pool.
  `get_database_stats(database)` returns the `PoolStats` for one pool, or
  `None` if the database has no pool. Each `PoolStats` gives `database`,
  `active_connections`, `idle_connections` and `total_connections`.
- `has_pool(database)` and `active_databases()` report which pools exist.
  Neither call creates a pool.
- `await close_all()` closes every pool.

A `DatabasePool` holds at most `max_connections` connections.

- `await acquire()` takes a connection. It reuses an idle one, opens a new one,
  or waits up to `connection_timeout_secs` for one to be released. If the wait
  runs out, it raises `ConnectionFailedError`.
- `await release(conn)` returns a connection to the pool.
- `async with pool.connection() as conn:` acquires a connection and releases it
  when the block ends.
- `await fetch_all(query)` runs a query and returns its rows. Any failure is
  raised as `QueryExecutionError`.
- `size()` and `num_idle()` report connection counts.
- `await close()` closes the pool. It waits for borrowed connections to come
  back first.

Connections older than `max_lifetime_secs` are closed. Connections idle longer
than `idle_timeout_secs` are closed too, as long as more than
`min_connections` remain.

## Resource URIs (`mysqlmcp.uri`)

`parse_uri(uri)` returns a `ParsedUri`, which has a `kind` (a `UriKind`) and,
depending on the kind, `datasource_key`, `database` and `table`. Trailing
slashes are removed and empty path segments are ignored. A URI that does not
start with `mysql://`, or that has an unsupported shape, raises
`InvalidResourceUriError`.

## Resources (`mysqlmcp.resources`)

`ResourceProvider(manager, pool_managers, connect=None)` serves these URIs:

| URI | Content |
| --- | --- |
| `mysql://datasources` | all configured data sources |
| `mysql://{datasource_key}/databases` | databases with charset, collation and size; system schemas are left out |
| `mysql://{datasource_key}/{database}/tables` | tables with row counts, sizes and engines |
| `mysql://{datasource_key}/{database}/tables/{table}` | columns, primary key, foreign keys and indexes of one table |
| `mysql://{datasource_key}/{database}/schema` | the schema of every table in a database |

`await get_resource(uri)` returns a `ResourceContent` with the fields `uri`,
`mime_type` (`application/json`) and `content` (JSON indented by two spaces).
`list_resource_templates()` returns the five templates as `ResourceTemplate`
values.

`pool_managers` is a dictionary from data source key to
`ConnectionPoolManager`. When a data source is used for the first time, the
provider creates its manager and adds it to this dictionary. `manager` is an
object you supply. It must provide:

- `validate_key(key)`: raises if the key is not valid
- `async is_available(key)`: whether the data source may be used
- `get_source(key)`: the data source configuration, or `None`
- `async list_sources()`: JSON-serialisable values (dataclasses are allowed)

The helpers `get_columns`, `get_primary_key`, `get_foreign_keys` and
`get_indexes` each take `(pool, database, table)`. They read
`information_schema` and return `ColumnSchema`, `ForeignKey` and `Index`
values from `mysqlmcp.models`. `to_json_dict` converts dataclasses, enums and
containers into plain JSON values.

## Errors (`mysqlmcp.errors`)

Every failure raises a subclass of `McpError`. Its `str()` reads
`"<summary>: <detail>"`, and `detail` holds the message.

- `ConnectionFailedError`
- `InvalidResourceUriError`
- `QueryExecutionError`
- `DataSourceUnavailableError`: the manager reports the data source as not available
- `InvalidDataSourceKeyError`
- `DatabaseNotFoundError`: a table or schema listing failed with "Unknown database"
- `TableNotFoundError`

## What this package does not do

It has no command line and no MCP server or transport. It provides no data
source manager: the object that validates keys, tracks availability and lists
data sources must be supplied by the caller. It also does not read
configuration files, and it has no query, execute or statistics tools beyond
the pools and resources described above.