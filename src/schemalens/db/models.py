"""Domain models for the SchemaLens storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class ObjectType(StrEnum):
    TABLE = "table"
    VIEW = "view"
    STORED_PROCEDURE = "stored_procedure"
    FUNCTION = "function"


@dataclass
class SchemaChunk:
    """One retrievable unit: a single table, view, procedure or function.

    ``content`` is rendered from metadata only. ``summary`` and ``embedding``
    are filled in once by the enrichment pipeline and never patched afterwards;
    the next crawl replaces the whole chunk set.
    """

    id: str
    source_id: str
    object_type: ObjectType
    object_name: str
    schema_name: str
    content: str
    summary: str = ""
    embedding: list[float] = field(default_factory=list)
    indexed_at: str = ""
    rowid: int | None = None  # set when read back from a collection

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.object_name}"

    @property
    def heading(self) -> str:
        return f"[{self.object_type.value}] {self.qualified_name}"


@dataclass
class IndexStats:
    """Aggregate counts over the chunks stored for one source."""

    total_chunks: int = 0
    table_chunks: int = 0
    view_chunks: int = 0
    sp_chunks: int = 0
    function_chunks: int = 0
    chunks_with_summary: int = 0
    chunks_with_embedding: int = 0
    last_indexed_at: str | None = None

    def by_type(self) -> dict[str, int]:
        return {
            ObjectType.TABLE.value: self.table_chunks,
            ObjectType.VIEW.value: self.view_chunks,
            ObjectType.STORED_PROCEDURE.value: self.sp_chunks,
            ObjectType.FUNCTION.value: self.function_chunks,
        }
