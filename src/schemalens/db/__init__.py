"""SchemaLens storage layer."""

from schemalens.db.collections import source_to_slug
from schemalens.db.connection import Database
from schemalens.db.migrations import MIGRATIONS, run_migrations
from schemalens.db.models import IndexStats, ObjectType, SchemaChunk
from schemalens.db.vector_store import ScoredChunk, VectorStore

__all__ = [
    "Database",
    "IndexStats",
    "MIGRATIONS",
    "ObjectType",
    "SchemaChunk",
    "ScoredChunk",
    "VectorStore",
    "run_migrations",
    "source_to_slug",
]
