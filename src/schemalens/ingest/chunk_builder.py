"""Chunk builder: schema metadata to retrievable text units.

One chunk per schema object, in the order tables, views, procedures,
functions. ``content`` is rendered from metadata alone, so identical metadata
always yields byte-identical content and identical chunk ids.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from schemalens.db.models import ObjectType, SchemaChunk
from schemalens.schema.models import (
    ColumnMeta,
    DatabaseSchema,
    ParameterMeta,
    RoutineMeta,
    TableMeta,
    ViewMeta,
)

_ROUTINE_LABELS: dict[ObjectType, str] = {
    ObjectType.STORED_PROCEDURE: "Stored procedure",
    ObjectType.FUNCTION: "Function",
}


def build_chunks(schema: DatabaseSchema, crawled_at: str | None = None) -> list[SchemaChunk]:
    """Render every object in *schema* as a SchemaChunk with empty enrichment.

    Args:
        schema: Crawl result.
        crawled_at: ISO timestamp stamped on every chunk; defaults to
            ``schema.crawled_at``, then to the current UTC time.
    """
    stamp = crawled_at or schema.crawled_at or datetime.now(timezone.utc).isoformat()
    objects: list[tuple[ObjectType, TableMeta | ViewMeta | RoutineMeta]] = [
        *((ObjectType.TABLE, t) for t in schema.tables),
        *((ObjectType.VIEW, v) for v in schema.views),
        *((ObjectType.STORED_PROCEDURE, p) for p in schema.procedures),
        *((ObjectType.FUNCTION, f) for f in schema.functions),
    ]
    return [
        SchemaChunk(
            id=_chunk_id(schema.source_id, object_type, obj.schema, obj.name, ordinal),
            source_id=schema.source_id,
            object_type=object_type,
            object_name=obj.name,
            schema_name=obj.schema,
            content=render_content(object_type, obj),
            indexed_at=stamp,
        )
        for ordinal, (object_type, obj) in enumerate(objects)
    ]


def render_content(object_type: ObjectType, obj: TableMeta | ViewMeta | RoutineMeta) -> str:
    """Deterministic text rendering of one schema object."""
    return _RENDERERS[object_type](object_type, obj)


# ------------------------------------------------------------------
# Renderers
# ------------------------------------------------------------------


def _render_table(object_type: ObjectType, table: TableMeta) -> str:
    return f"Table {table.schema}.{table.name}\nColumns: {_columns(table.columns)}"


def _render_view(object_type: ObjectType, view: ViewMeta) -> str:
    return (
        f"View {view.schema}.{view.name}\n"
        f"Columns: {_columns(view.columns)}\n\n"
        f"Definition:\n{view.definition}"
    )


def _render_routine(object_type: ObjectType, routine: RoutineMeta) -> str:
    label = _ROUTINE_LABELS[object_type]
    return (
        f"{label} {routine.schema}.{routine.name}\n"
        f"Parameters: {_parameters(routine.parameters)}\n\n"
        f"Definition:\n{routine.definition}"
    )


_RENDERERS: dict[ObjectType, Callable[..., str]] = {
    ObjectType.TABLE: _render_table,
    ObjectType.VIEW: _render_view,
    ObjectType.STORED_PROCEDURE: _render_routine,
    ObjectType.FUNCTION: _render_routine,
}


def _columns(columns: list[ColumnMeta]) -> str:
    if not columns:
        return "none"
    return "; ".join(_column(c) for c in columns)


def _column(col: ColumnMeta) -> str:
    text = f"{col.name} ({col.data_type}{', nullable' if col.nullable else ''})"
    if col.is_primary_key:
        text += " PK"
    if col.is_foreign_key and col.referenced_table:
        text += f" FK -> {col.referenced_table}.{col.referenced_column or ''}"
    return text


def _parameters(parameters: list[ParameterMeta]) -> str:
    if not parameters:
        return "none"
    return ", ".join(f"{p.name} ({p.data_type}, {p.direction})" for p in parameters)


def _chunk_id(
    source_id: str, object_type: ObjectType, schema: str, name: str, ordinal: int
) -> str:
    key = f"schemalens:{source_id}/{object_type.value}/{schema}.{name}/{ordinal}"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, key))
