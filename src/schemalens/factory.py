"""Factory functions wiring services from a loaded ``SchemaLensConfig``."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from schemalens.config import SchemaLensConfig
from schemalens.db.connection import Database
from schemalens.db.vector_store import VectorStore
from schemalens.ingest.crawler import JsonSchemaCrawler, SchemaCrawler
from schemalens.ingest.enrichment import EnrichmentPipeline
from schemalens.ingest.indexer import SchemaIndexer
from schemalens.ingest.summarizer import ChunkSummarizer
from schemalens.rag.context_window import ContextWindowManager, LLMConversationSummarizer
from schemalens.rag.llm_client import EmbeddingService, GenerationService
from schemalens.rag.retriever import ChatService


def create_database(cfg: SchemaLensConfig, db_path: Path | None = None) -> Database:
    return Database(db_path if db_path is not None else Path(cfg.storage.db))


def create_generation_service(cfg: SchemaLensConfig) -> GenerationService:
    return GenerationService(
        model=cfg.generation.model,
        api_base=cfg.generation.api_base,
        context_length=cfg.generation.context_length,
    )


def create_embedding_service(cfg: SchemaLensConfig) -> EmbeddingService:
    return EmbeddingService(model=cfg.embedding.model, api_base=cfg.embedding.api_base)


def store_options(cfg: SchemaLensConfig) -> dict[str, Any]:
    return {
        "ann_min_rows": cfg.indexing.ann_min_rows,
        "rrf_k": cfg.retrieval.rrf_k,
        "candidate_floor": cfg.retrieval.candidate_floor,
    }


def create_vector_store(cfg: SchemaLensConfig, conn: sqlite3.Connection) -> VectorStore:
    return VectorStore(conn, **store_options(cfg))


def create_indexer(
    cfg: SchemaLensConfig,
    database: Database,
    crawler: SchemaCrawler | None = None,
    concurrency: int | None = None,
) -> SchemaIndexer:
    """Indexer with the configured summarizer, embedder and store settings.

    Args:
        crawler: Defaults to the metadata-dump crawler.
        concurrency: Overrides ``indexing.concurrency``.
    """
    pipeline = EnrichmentPipeline(
        summarizer=ChunkSummarizer(create_generation_service(cfg)),
        embedder=create_embedding_service(cfg),
        concurrency=concurrency or cfg.indexing.concurrency,
        batch_size=cfg.embedding.batch_size,
    )
    return SchemaIndexer(
        database=database,
        crawler=crawler or JsonSchemaCrawler(),
        pipeline=pipeline,
        store_options=store_options(cfg),
    )


def create_chat_service(cfg: SchemaLensConfig, conn: sqlite3.Connection) -> ChatService:
    generator = create_generation_service(cfg)
    context_manager = ContextWindowManager(
        LLMConversationSummarizer(generator),
        summarize_ratio=cfg.conversation.summarize_ratio,
        first_keep=cfg.conversation.first_keep,
        subsequent_keep=cfg.conversation.subsequent_keep,
    )
    return ChatService(
        store=create_vector_store(cfg, conn),
        generator=generator,
        embedder=create_embedding_service(cfg),
        context_manager=context_manager,
        top_k=cfg.retrieval.top_k,
        broad_limit=cfg.retrieval.broad_limit,
        excerpt_chars=cfg.retrieval.excerpt_chars,
    )
