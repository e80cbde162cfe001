"""Parsing of ``mysql://`` resource URIs."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import InvalidResourceUriError

SCHEME_PREFIX = "mysql://"


class UriKind(enum.Enum):
    """The kinds of resource a URI can address."""

    DATASOURCES = "datasources"
    DATABASES = "databases"
    TABLES = "tables"
    TABLE_SCHEMA = "table_schema"
    DATABASE_SCHEMA = "database_schema"


@dataclass(frozen=True)
class ParsedUri:
    """A resource URI broken into its kind and the names it carries."""

    kind: UriKind
    datasource_key: str | None = None
    database: str | None = None
    table: str | None = None


def parse_uri(uri: str) -> ParsedUri:
    """Parse a resource URI.

    Supported forms:
    ``mysql://datasources``, ``mysql://{key}/databases``,
    ``mysql://{key}/{db}/tables``, ``mysql://{key}/{db}/tables/{table}`` and
    ``mysql://{key}/{db}/schema``.
    """
    uri = uri.rstrip("/")
    if not uri.startswith(SCHEME_PREFIX):
        raise InvalidResourceUriError(f"URI must start with 'mysql://': {uri}")

    segments = [segment for segment in uri[len(SCHEME_PREFIX):].split("/") if segment]

    match segments:
        case ["datasources"]:
            return ParsedUri(UriKind.DATASOURCES)
        case [key, "databases"]:
            return ParsedUri(UriKind.DATABASES, datasource_key=key)
        case [key, database, "tables"]:
            return ParsedUri(UriKind.TABLES, datasource_key=key, database=database)
        case [key, database, "tables", table]:
            return ParsedUri(
                UriKind.TABLE_SCHEMA, datasource_key=key, database=database, table=table
            )
        case [key, database, "schema"]:
            return ParsedUri(UriKind.DATABASE_SCHEMA, datasource_key=key, database=database)
        case _:
            raise InvalidResourceUriError(f"Invalid resource URI format: {uri}")