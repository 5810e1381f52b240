"""Enrichment pipeline: summarize chunks, embed them, replace the collection.

Summaries are produced by a bounded worker pool pulling from a shared queue.
Embeddings follow in fixed-size batches. The collection is only written once
every chunk is enriched, in a single atomic replace; a cancelled or failed run
leaves the previous index as it was.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

import structlog

from schemalens.db.models import SchemaChunk
from schemalens.db.vector_store import VectorStore
from schemalens.errors import IndexCancelled, MalformedResponse
from schemalens.ingest.progress import (
    CancelToken,
    CrawlPhase,
    ProgressCallback,
    ProgressEvent,
    ignore_progress,
)

_DEFAULT_CONCURRENCY = 5
_DEFAULT_BATCH_SIZE = 32


class Summarizer(Protocol):
    def summarize(self, chunk: SchemaChunk) -> str: ...


class Embedder(Protocol):
    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


def embedding_text(chunk: SchemaChunk) -> str:
    """Text sent to the embedding model: heading plus summary (or content)."""
    body = chunk.summary.strip() or chunk.content
    return f"{chunk.heading}\n{body}"


class EnrichmentPipeline:
    """Summarize, embed and store the chunks of one source.

    Args:
        summarizer:  Object with ``summarize(chunk) -> str``.
        embedder:    Object with ``embed_batch(texts) -> list[vector]``.
        concurrency: Maximum summaries in flight at once.
        batch_size:  Texts per embedding call.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        embedder: Embedder,
        concurrency: int = _DEFAULT_CONCURRENCY,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._summarizer = summarizer
        self._embedder = embedder
        self._concurrency = concurrency
        self._batch_size = batch_size
        self._logger = logger or structlog.get_logger(__name__)

    def run(
        self,
        source_id: str,
        chunks: list[SchemaChunk],
        store: VectorStore,
        cancel: CancelToken | None = None,
        emit: ProgressCallback = ignore_progress,
    ) -> list[SchemaChunk]:
        """Enrich *chunks* in place and replace the source's collection.

        Returns the stored chunks.

        Raises:
            IndexCancelled: *cancel* fired; nothing was written.
            UpstreamUnavailable / MalformedResponse: a model call failed.
        """
        cancel = cancel or CancelToken()

        if not chunks:
            emit(ProgressEvent(source_id, CrawlPhase.STORING, 0, 1))
            cancel.raise_if_cancelled()
            store.replace_all(source_id, [])
            self._logger.info("enrichment_empty", source_id=source_id)
            return []

        self._summarize_all(source_id, chunks, cancel, emit)
        self._embed_all(source_id, chunks, cancel, emit)

        cancel.raise_if_cancelled()
        store.replace_all(source_id, chunks)
        emit(ProgressEvent(source_id, CrawlPhase.STORING, 1, 1))
        self._logger.info("enrichment_completed", source_id=source_id, chunks=len(chunks))
        return chunks

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def _summarize_all(
        self,
        source_id: str,
        chunks: list[SchemaChunk],
        cancel: CancelToken,
        emit: ProgressCallback,
    ) -> None:
        total = len(chunks)
        pending: queue.Queue[SchemaChunk] = queue.Queue()
        for chunk in chunks:
            pending.put(chunk)

        abort = threading.Event()
        progress_lock = threading.Lock()
        completed = 0

        def worker() -> None:
            nonlocal completed
            while not abort.is_set():
                cancel.raise_if_cancelled()
                try:
                    chunk = pending.get_nowait()
                except queue.Empty:
                    return
                summary = self._summarizer.summarize(chunk)
                cancel.raise_if_cancelled()
                chunk.summary = summary.strip()
                with progress_lock:
                    completed += 1
                    emit(
                        ProgressEvent(
                            source_id,
                            CrawlPhase.SUMMARIZING,
                            completed,
                            total,
                            chunk.qualified_name,
                        )
                    )

        width = min(self._concurrency, total)
        with ThreadPoolExecutor(max_workers=width, thread_name_prefix="summarize") as pool:
            futures = [pool.submit(worker) for _ in range(width)]
            for future in as_completed(futures):
                try:
                    future.result()
                except Exception as exc:
                    # Remaining workers finish their current call and stop.
                    abort.set()
                    if not isinstance(exc, IndexCancelled):
                        self._logger.warning(
                            "summarize_failed", source_id=source_id, error=str(exc)
                        )
                    raise

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def _embed_all(
        self,
        source_id: str,
        chunks: list[SchemaChunk],
        cancel: CancelToken,
        emit: ProgressCallback,
    ) -> None:
        total = len(chunks)
        for offset in range(0, total, self._batch_size):
            cancel.raise_if_cancelled()
            batch = chunks[offset : offset + self._batch_size]
            vectors = self._embedder.embed_batch([embedding_text(c) for c in batch])
            if len(vectors) != len(batch):
                raise MalformedResponse(
                    f"Embedding service returned {len(vectors)} vectors for {len(batch)} texts."
                )
            for chunk, vector in zip(batch, vectors):
                chunk.embedding = list(vector)
            done = min(offset + self._batch_size, total)
            emit(ProgressEvent(source_id, CrawlPhase.EMBEDDING, done, total))
        self._logger.debug("embedding_completed", source_id=source_id, chunks=total)
