"""Schema metadata produced by a crawl.

The ``from_dict`` constructors are tolerant: a list field that is missing or
not a list becomes an empty list, so a partially broken metadata dump still
yields chunks for whatever it does describe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _list_of(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def _text(raw: Any, default: str = "") -> str:
    return default if raw is None else str(raw)


def _timestamp(raw: Any) -> str | None:
    # YAML loads unquoted ISO timestamps as datetime objects.
    if raw is None:
        return None
    return raw.isoformat() if hasattr(raw, "isoformat") else str(raw)


@dataclass
class ColumnMeta:
    name: str
    data_type: str
    nullable: bool = False
    is_primary_key: bool = False
    is_foreign_key: bool = False
    referenced_table: str | None = None
    referenced_column: str | None = None
    default_value: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ColumnMeta:
        return cls(
            name=_text(data.get("name")),
            data_type=_text(data.get("data_type", data.get("dataType"))),
            nullable=bool(data.get("nullable", False)),
            is_primary_key=bool(data.get("is_primary_key", data.get("isPrimaryKey", False))),
            is_foreign_key=bool(data.get("is_foreign_key", data.get("isForeignKey", False))),
            referenced_table=data.get("referenced_table", data.get("referencedTable")),
            referenced_column=data.get("referenced_column", data.get("referencedColumn")),
            default_value=data.get("default_value", data.get("defaultValue")),
        )


@dataclass
class ParameterMeta:
    name: str
    data_type: str
    direction: str = "IN"  # IN | OUT | INOUT

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterMeta:
        return cls(
            name=_text(data.get("name")),
            data_type=_text(data.get("data_type", data.get("dataType"))),
            direction=_text(data.get("direction"), "IN").upper() or "IN",
        )


@dataclass
class TableMeta:
    schema: str
    name: str
    columns: list[ColumnMeta] = field(default_factory=list)
    row_count: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableMeta:
        return cls(
            schema=_text(data.get("schema")),
            name=_text(data.get("name")),
            columns=[ColumnMeta.from_dict(c) for c in _list_of(data.get("columns"))],
            row_count=data.get("row_count", data.get("rowCount")),
        )


@dataclass
class ViewMeta:
    schema: str
    name: str
    columns: list[ColumnMeta] = field(default_factory=list)
    definition: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViewMeta:
        return cls(
            schema=_text(data.get("schema")),
            name=_text(data.get("name")),
            columns=[ColumnMeta.from_dict(c) for c in _list_of(data.get("columns"))],
            definition=_text(data.get("definition")),
        )


@dataclass
class RoutineMeta:
    """A stored procedure or a function."""

    schema: str
    name: str
    definition: str = ""
    parameters: list[ParameterMeta] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RoutineMeta:
        return cls(
            schema=_text(data.get("schema")),
            name=_text(data.get("name")),
            definition=_text(data.get("definition")),
            parameters=[ParameterMeta.from_dict(p) for p in _list_of(data.get("parameters"))],
        )


@dataclass
class DatabaseSchema:
    """Full result of one crawl."""

    source_id: str
    database_name: str = ""
    tables: list[TableMeta] = field(default_factory=list)
    views: list[ViewMeta] = field(default_factory=list)
    procedures: list[RoutineMeta] = field(default_factory=list)
    functions: list[RoutineMeta] = field(default_factory=list)
    crawled_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_id: str | None = None) -> DatabaseSchema:
        """Build a schema from a metadata dump (snake_case or camelCase keys)."""
        return cls(
            source_id=source_id or _text(data.get("source_id", data.get("connectionId"))),
            database_name=_text(data.get("database_name", data.get("databaseName"))),
            tables=[TableMeta.from_dict(t) for t in _list_of(data.get("tables"))],
            views=[ViewMeta.from_dict(v) for v in _list_of(data.get("views"))],
            procedures=[
                RoutineMeta.from_dict(p)
                for p in _list_of(data.get("procedures", data.get("storedProcedures")))
            ],
            functions=[RoutineMeta.from_dict(f) for f in _list_of(data.get("functions"))],
            crawled_at=_timestamp(data.get("crawled_at", data.get("crawledAt"))),
        )

    @property
    def object_count(self) -> int:
        return len(self.tables) + len(self.views) + len(self.procedures) + len(self.functions)
