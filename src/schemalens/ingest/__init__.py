"""Index-time pipeline: crawl, chunk, enrich, store."""

from schemalens.ingest.chunk_builder import build_chunks
from schemalens.ingest.crawler import ConnectionConfig, JsonSchemaCrawler, SchemaCrawler
from schemalens.ingest.enrichment import EnrichmentPipeline
from schemalens.ingest.indexer import IndexJob, SchemaIndexer
from schemalens.ingest.progress import CancelToken, CrawlPhase, ProgressEvent
from schemalens.ingest.summarizer import ChunkSummarizer

__all__ = [
    "CancelToken",
    "ChunkSummarizer",
    "ConnectionConfig",
    "CrawlPhase",
    "EnrichmentPipeline",
    "IndexJob",
    "JsonSchemaCrawler",
    "ProgressEvent",
    "SchemaCrawler",
    "SchemaIndexer",
    "build_chunks",
]
