"""Database schema metadata types."""

from schemalens.schema.models import (
    ColumnMeta,
    DatabaseSchema,
    ParameterMeta,
    RoutineMeta,
    TableMeta,
    ViewMeta,
)

__all__ = [
    "ColumnMeta",
    "DatabaseSchema",
    "ParameterMeta",
    "RoutineMeta",
    "TableMeta",
    "ViewMeta",
]
