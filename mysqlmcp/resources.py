"""Read-only access to database metadata through ``mysql://`` resource URIs."""

from __future__ import annotations

import asyncio
import datetime
import decimal
import json
import logging
from typing import Any, Callable

from .errors import (
    DatabaseNotFoundError,
    DataSourceUnavailableError,
    InvalidDataSourceKeyError,
    McpError,
    QueryExecutionError,
    TableNotFoundError,
)
from .models import (
    ColumnSchema,
    DatabaseInfo,
    ForeignKey,
    Index,
    ResourceContent,
    ResourceTemplate,
    TableInfo,
    TableSchema,
    to_json_dict,
)
from .pool import ConnectionPoolManager, DatabasePool
from .uri import UriKind, parse_uri

logger = logging.getLogger(__name__)

JSON_MIME = "application/json"

_DATABASES_QUERY = """SELECT
                SCHEMA_NAME as name,
                DEFAULT_CHARACTER_SET_NAME as charset,
                DEFAULT_COLLATION_NAME as collation
             FROM information_schema.SCHEMATA
             WHERE SCHEMA_NAME NOT IN ('information_schema', 'performance_schema', 'mysql', 'sys')
             ORDER BY SCHEMA_NAME"""


def _quote(value: str) -> str:
    return value.replace("'", "''")


def _text(row: dict, key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _optional_text(row: dict, key: str) -> str | None:
    return None if row.get(key) is None else _text(row, key)


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _json_default(value: Any) -> Any:
    if isinstance(value, decimal.Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime.date, datetime.time, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(payload: Any) -> str:
    try:
        return json.dumps(to_json_dict(payload), indent=2, default=_json_default)
    except (TypeError, ValueError) as exc:
        raise QueryExecutionError(f"Failed to serialize: {exc}") from exc


async def _fetch_in_database(pool: DatabasePool, database: str, query: str) -> list:
    try:
        return await pool.fetch_all(query)
    except QueryExecutionError as exc:
        if "Unknown database" in exc.detail:
            raise DatabaseNotFoundError(database) from exc
        raise


async def get_columns(pool: DatabasePool, database: str, table: str) -> list[ColumnSchema]:
    """Columns of a table in ordinal order."""
    query = f"""SELECT
            COLUMN_NAME as name,
            COLUMN_TYPE as data_type,
            IS_NULLABLE as nullable,
            COLUMN_DEFAULT as default_value,
            COLUMN_COMMENT as comment
         FROM information_schema.COLUMNS
         WHERE TABLE_SCHEMA = '{_quote(database)}' AND TABLE_NAME = '{_quote(table)}'
         ORDER BY ORDINAL_POSITION"""
    rows = await pool.fetch_all(query)
    return [
        ColumnSchema(
            name=_text(row, "name"),
            data_type=_text(row, "data_type"),
            nullable=_text(row, "nullable") == "YES",
            default_value=_optional_text(row, "default_value"),
            comment=_optional_text(row, "comment"),
        )
        for row in rows
    ]


async def get_primary_key(pool: DatabasePool, database: str, table: str) -> list[str] | None:
    """Primary key columns of a table, or None if it has no primary key."""
    query = f"""SELECT COLUMN_NAME
         FROM information_schema.KEY_COLUMN_USAGE
         WHERE TABLE_SCHEMA = '{_quote(database)}'
           AND TABLE_NAME = '{_quote(table)}'
           AND CONSTRAINT_NAME = 'PRIMARY'
         ORDER BY ORDINAL_POSITION"""
    rows = await pool.fetch_all(query)
    if not rows:
        return None
    return [_text(row, "COLUMN_NAME") for row in rows]


async def get_foreign_keys(pool: DatabasePool, database: str, table: str) -> list[ForeignKey]:
    """Foreign keys of a table, with the columns of each constraint grouped together."""
    query = f"""SELECT
            CONSTRAINT_NAME as name,
            COLUMN_NAME as column_name,
            REFERENCED_TABLE_NAME as referenced_table,
            REFERENCED_COLUMN_NAME as referenced_column
         FROM information_schema.KEY_COLUMN_USAGE
         WHERE TABLE_SCHEMA = '{_quote(database)}'
           AND TABLE_NAME = '{_quote(table)}'
           AND REFERENCED_TABLE_NAME IS NOT NULL
         ORDER BY CONSTRAINT_NAME, ORDINAL_POSITION"""
    rows = await pool.fetch_all(query)
    grouped: dict[str, ForeignKey] = {}
    for row in rows:
        name = _text(row, "name")
        key = grouped.setdefault(
            name, ForeignKey(name=name, referenced_table=_text(row, "referenced_table"))
        )
        key.columns.append(_text(row, "column_name"))
        key.referenced_columns.append(_text(row, "referenced_column"))
    return list(grouped.values())


async def get_indexes(pool: DatabasePool, database: str, table: str) -> list[Index]:
    """Secondary indexes of a table, with the columns of each index grouped together."""
    query = f"""SELECT
            INDEX_NAME as name,
            COLUMN_NAME as column_name,
            NON_UNIQUE as non_unique,
            INDEX_TYPE as index_type
         FROM information_schema.STATISTICS
         WHERE TABLE_SCHEMA = '{_quote(database)}'
           AND TABLE_NAME = '{_quote(table)}'
           AND INDEX_NAME != 'PRIMARY'
         ORDER BY INDEX_NAME, SEQ_IN_INDEX"""
    rows = await pool.fetch_all(query)
    grouped: dict[str, Index] = {}
    for row in rows:
        name = _text(row, "name")
        non_unique = _optional_int(row.get("non_unique"))
        index = grouped.setdefault(
            name,
            Index(
                name=name,
                unique=(1 if non_unique is None else non_unique) == 0,
                index_type=_text(row, "index_type"),
            ),
        )
        index.columns.append(_text(row, "column_name"))
    return list(grouped.values())


async def _table_schema(pool: DatabasePool, database: str, table: str) -> TableSchema:
    return TableSchema(
        table_name=table,
        columns=await get_columns(pool, database, table),
        primary_key=await get_primary_key(pool, database, table),
        foreign_keys=await get_foreign_keys(pool, database, table),
        indexes=await get_indexes(pool, database, table),
    )


class ResourceProvider:
    """Serves database metadata for the MCP resources interface."""

    def __init__(
        self,
        manager: Any,
        pool_managers: dict[str, ConnectionPoolManager],
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self._manager = manager
        self._pool_managers = pool_managers
        self._connect = connect
        self._lock = asyncio.Lock()

    async def get_resource(self, uri: str) -> ResourceContent:
        """Return the content addressed by a resource URI."""
        logger.info("Getting resource uri=%s", uri)
        parsed = parse_uri(uri)
        if parsed.kind is UriKind.DATASOURCES:
            return await self._datasources()
        if parsed.kind is UriKind.DATABASES:
            return await self._databases(parsed.datasource_key)
        if parsed.kind is UriKind.TABLES:
            return await self._tables(parsed.datasource_key, parsed.database)
        if parsed.kind is UriKind.TABLE_SCHEMA:
            return await self._table(parsed.datasource_key, parsed.database, parsed.table)
        return await self._database_schema(parsed.datasource_key, parsed.database)

    async def _pool(self, datasource_key: str, database: str) -> DatabasePool:
        self._manager.validate_key(datasource_key)
        if not await self._manager.is_available(datasource_key):
            raise DataSourceUnavailableError(
                f"Data source '{datasource_key}' is currently unavailable"
            )
        async with self._lock:
            pool_manager = self._pool_managers.get(datasource_key)
            if pool_manager is None:
                config = self._manager.get_source(datasource_key)
                if config is None:
                    raise InvalidDataSourceKeyError(datasource_key)
                pool_manager = ConnectionPoolManager(config, self._connect)
                self._pool_managers[datasource_key] = pool_manager
        return await pool_manager.get_pool(database)

    async def _datasources(self) -> ResourceContent:
        datasources = await self._manager.list_sources()
        return ResourceContent(
            uri="mysql://datasources",
            mime_type=JSON_MIME,
            content=_to_json({"datasources": datasources}),
        )

    async def _databases(self, datasource_key: str) -> ResourceContent:
        pool = await self._pool(datasource_key, "information_schema")
        rows = await pool.fetch_all(_DATABASES_QUERY)

        databases = []
        for row in rows:
            name = _text(row, "name")
            size_query = f"""SELECT SUM(DATA_LENGTH + INDEX_LENGTH) as size_bytes
                 FROM information_schema.TABLES
                 WHERE TABLE_SCHEMA = '{_quote(name)}'"""
            try:
                size_rows = await pool.fetch_all(size_query)
            except McpError:
                size_rows = []
            size_bytes = _optional_int(size_rows[0].get("size_bytes")) if size_rows else None
            databases.append(
                DatabaseInfo(
                    name=name,
                    size_bytes=size_bytes,
                    charset=_text(row, "charset"),
                    collation=_text(row, "collation"),
                )
            )

        return ResourceContent(
            uri=f"mysql://{datasource_key}/databases",
            mime_type=JSON_MIME,
            content=_to_json({"datasource_key": datasource_key, "databases": databases}),
        )

    async def _tables(self, datasource_key: str, database: str) -> ResourceContent:
        pool = await self._pool(datasource_key, database)
        query = f"""SELECT
                TABLE_NAME as name,
                TABLE_ROWS as row_count,
                DATA_LENGTH + INDEX_LENGTH as size_bytes,
                ENGINE as engine
             FROM information_schema.TABLES
             WHERE TABLE_SCHEMA = '{_quote(database)}'
             ORDER BY TABLE_NAME"""
        rows = await _fetch_in_database(pool, database, query)
        tables = [
            TableInfo(
                name=_text(row, "name"),
                row_count=_optional_int(row.get("row_count")),
                size_bytes=_optional_int(row.get("size_bytes")),
                engine=_optional_text(row, "engine"),
            )
            for row in rows
        ]
        return ResourceContent(
            uri=f"mysql://{datasource_key}/{database}/tables",
            mime_type=JSON_MIME,
            content=_to_json(
                {"datasource_key": datasource_key, "database": database, "tables": tables}
            ),
        )

    async def _table(self, datasource_key: str, database: str, table: str) -> ResourceContent:
        pool = await self._pool(datasource_key, database)
        exists_query = f"""SELECT COUNT(*) as count FROM information_schema.TABLES
             WHERE TABLE_SCHEMA = '{_quote(database)}' AND TABLE_NAME = '{_quote(table)}'"""
        rows = await pool.fetch_all(exists_query)
        if not rows:
            raise QueryExecutionError("no rows returned by a query that expected to return one")
        if (_optional_int(rows[0].get("count")) or 0) == 0:
            raise TableNotFoundError(f"Table '{table}' not found in database '{database}'")

        schema = await _table_schema(pool, database, table)
        return ResourceContent(
            uri=f"mysql://{datasource_key}/{database}/tables/{table}",
            mime_type=JSON_MIME,
            content=_to_json(schema),
        )

    async def _database_schema(self, datasource_key: str, database: str) -> ResourceContent:
        pool = await self._pool(datasource_key, database)
        query = f"""SELECT TABLE_NAME as name
             FROM information_schema.TABLES
             WHERE TABLE_SCHEMA = '{_quote(database)}'
             ORDER BY TABLE_NAME"""
        rows = await _fetch_in_database(pool, database, query)
        schemas = [await _table_schema(pool, database, _text(row, "name")) for row in rows]
        return ResourceContent(
            uri=f"mysql://{datasource_key}/{database}/schema",
            mime_type=JSON_MIME,
            content=_to_json(
                {"datasource_key": datasource_key, "database": database, "tables": schemas}
            ),
        )

    def list_resource_templates(self) -> list[ResourceTemplate]:
        """The URI templates this provider understands."""
        return [
            ResourceTemplate(
                uri_template="mysql://datasources",
                name="Data Sources",
                description="List all configured data sources",
                mime_type=JSON_MIME,
            ),
            ResourceTemplate(
                uri_template="mysql://{datasource_key}/databases",
                name="Databases",
                description="List all databases for a data source",
                mime_type=JSON_MIME,
            ),
            ResourceTemplate(
                uri_template="mysql://{datasource_key}/{database}/tables",
                name="Tables",
                description="List all tables in a database",
                mime_type=JSON_MIME,
            ),
            ResourceTemplate(
                uri_template="mysql://{datasource_key}/{database}/tables/{table}",
                name="Table Schema",
                description="Get complete schema for a specific table",
                mime_type=JSON_MIME,
            ),
            ResourceTemplate(
                uri_template="mysql://{datasource_key}/{database}/schema",
                name="Database Schema",
                description="Get complete schema for all tables in a database",
                mime_type=JSON_MIME,
            ),
        ]