"""Error types raised by the MySQL MCP server."""

from __future__ import annotations


class McpError(Exception):
    """Base class for every error the server reports."""

    summary = "MCP error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.summary}: {self.detail}"


class ConnectionFailedError(McpError):
    """A connection or connection pool could not be established or used."""

    summary = "Connection failed"


class InvalidResourceUriError(McpError):
    """A resource URI is malformed or not supported."""

    summary = "Invalid resource URI"


class QueryExecutionError(McpError):
    """A query failed while running or its result could not be serialized."""

    summary = "Query execution error"


class DataSourceUnavailableError(McpError):
    """The data source is currently marked as unavailable."""

    summary = "Data source unavailable"


class InvalidDataSourceKeyError(McpError):
    """No data source is configured under the given key."""

    summary = "Invalid data source key"


class DatabaseNotFoundError(McpError):
    """The requested database does not exist."""

    summary = "Database not found"


class TableNotFoundError(McpError):
    """The requested table does not exist."""

    summary = "Table not found"