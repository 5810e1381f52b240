"""SchemaLens: ask questions about a database schema with local RAG."""

__version__ = "0.1.0"
