"""Data structures describing databases, tables and resources."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class DatabaseInfo:
    """A database with its size and default character set."""

    name: str
    size_bytes: int | None
    charset: str
    collation: str


@dataclass
class TableInfo:
    """A table with its approximate row count, size and engine."""

    name: str
    row_count: int | None = None
    size_bytes: int | None = None
    engine: str | None = None


@dataclass
class ColumnSchema:
    """One column of a table."""

    name: str
    data_type: str
    nullable: bool
    default_value: str | None = None
    comment: str | None = None


@dataclass
class ForeignKey:
    """A foreign key constraint, possibly spanning several columns."""

    name: str
    columns: list[str] = field(default_factory=list)
    referenced_table: str = ""
    referenced_columns: list[str] = field(default_factory=list)


@dataclass
class Index:
    """A secondary index of a table."""

    name: str
    columns: list[str] = field(default_factory=list)
    unique: bool = False
    index_type: str = ""


@dataclass
class TableSchema:
    """The complete schema of one table."""

    table_name: str
    columns: list[ColumnSchema] = field(default_factory=list)
    primary_key: list[str] | None = None
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    indexes: list[Index] = field(default_factory=list)


@dataclass
class ResourceContent:
    """The content returned for a resource URI."""

    uri: str
    mime_type: str
    content: str


@dataclass
class ResourceTemplate:
    """A URI template describing a family of resources."""

    uri_template: str
    name: str
    description: str
    mime_type: str


def to_json_dict(obj: Any) -> Any:
    """Convert dataclasses, enums and containers into JSON-ready values."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_json_dict(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, enum.Enum):
        return to_json_dict(obj.value)
    if isinstance(obj, Mapping):
        return {str(key): to_json_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_dict(item) for item in obj]
    return obj