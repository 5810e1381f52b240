"""Schema indexer: crawl -> chunks -> enrich -> store, one source at a time.

``SchemaIndexer.index_source`` runs synchronously and reports progress through
a callback. ``SchemaIndexer.start`` runs the same work on a background thread
and returns an ``IndexJob`` whose event stream the caller drains.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import structlog

from schemalens.db.connection import Database
from schemalens.db.models import IndexStats
from schemalens.db.vector_store import VectorStore
from schemalens.errors import IndexInProgress
from schemalens.ingest.chunk_builder import build_chunks
from schemalens.ingest.crawler import ConnectionConfig, SchemaCrawler
from schemalens.ingest.enrichment import EnrichmentPipeline
from schemalens.ingest.progress import (
    CancelToken,
    ProgressCallback,
    ProgressEvent,
    ignore_progress,
)


class SchemaIndexer:
    """Owns the active-crawl map and drives full index runs.

    Args:
        database:      Database holding every source's collection.
        crawler:       Metadata crawler for the configured connections.
        pipeline:      Enrichment pipeline (summaries + embeddings).
        store_options: Keyword arguments for each ``VectorStore`` it opens.
    """

    def __init__(
        self,
        database: Database,
        crawler: SchemaCrawler,
        pipeline: EnrichmentPipeline,
        store_options: dict[str, Any] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._database = database
        self._crawler = crawler
        self._pipeline = pipeline
        self._store_options = store_options or {}
        self._logger = logger or structlog.get_logger(__name__)
        self._active: dict[str, CancelToken] = {}
        self._active_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Active crawls
    # ------------------------------------------------------------------

    def is_active(self, source_id: str) -> bool:
        with self._active_lock:
            return source_id in self._active

    def cancel(self, source_id: str) -> bool:
        """Request cancellation of the in-flight crawl. False if none is running."""
        with self._active_lock:
            token = self._active.get(source_id)
        if token is None:
            return False
        token.cancel()
        self._logger.info("index_cancel_requested", source_id=source_id)
        return True

    def _register(self, source_id: str, cancel: CancelToken | None) -> CancelToken:
        with self._active_lock:
            if source_id in self._active:
                raise IndexInProgress(source_id)
            token = cancel or CancelToken()
            self._active[source_id] = token
            return token

    def _unregister(self, source_id: str) -> None:
        with self._active_lock:
            self._active.pop(source_id, None)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def index_source(
        self,
        connection: ConnectionConfig,
        credential: str | None = None,
        on_progress: ProgressCallback = ignore_progress,
        cancel: CancelToken | None = None,
    ) -> IndexStats:
        """Crawl and index one source, blocking until done.

        Raises:
            IndexInProgress: A crawl for this source is already running.
            IndexCancelled: The run was cancelled; the old index is untouched.
        """
        token = self._register(connection.source_id, cancel)
        try:
            return self._run(connection, credential, on_progress, token)
        finally:
            self._unregister(connection.source_id)

    def start(
        self,
        connection: ConnectionConfig,
        credential: str | None = None,
    ) -> IndexJob:
        """Start indexing on a background thread and return its job handle."""
        token = self._register(connection.source_id, None)
        job = IndexJob(connection.source_id, token)

        def target() -> None:
            try:
                stats = self._run(connection, credential, job._events.put, token)
            except BaseException as exc:  # handed to the consumer via events()
                job._events.put(_Finished(error=exc))
            else:
                job._events.put(_Finished(stats=stats))
            finally:
                self._unregister(connection.source_id)

        job._thread = threading.Thread(
            target=target, name=f"index-{connection.source_id}", daemon=True
        )
        job._thread.start()
        return job

    def _run(
        self,
        connection: ConnectionConfig,
        credential: str | None,
        on_progress: ProgressCallback,
        cancel: CancelToken,
    ) -> IndexStats:
        sid = connection.source_id
        log = self._logger.bind(source_id=sid)
        log.info("index_started", driver=connection.driver)
        try:
            schema = self._crawler.crawl(connection, credential, on_progress, cancel)
            chunks = build_chunks(schema)
            cancel.raise_if_cancelled()
            # SQLite connections stay on the thread that opened them.
            with self._database.session() as conn:
                store = VectorStore(conn, **self._store_options)
                self._pipeline.run(sid, chunks, store, cancel, on_progress)
                stats = store.stats(sid)
        except Exception as exc:
            log.warning("index_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        log.info("index_completed", chunks=stats.total_chunks)
        return stats


@dataclass
class _Finished:
    stats: IndexStats | None = None
    error: BaseException | None = None


class IndexJob:
    """Handle for a background index run.

    Iterate ``events()`` to receive progress; it returns when the run
    completes and re-raises the run's error if it failed.
    """

    def __init__(self, source_id: str, token: CancelToken) -> None:
        self.source_id = source_id
        self._token = token
        self._events: queue.Queue[ProgressEvent | _Finished] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._finished: _Finished | None = None

    def cancel(self) -> None:
        self._token.cancel()

    @property
    def done(self) -> bool:
        return self._finished is not None

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def events(self) -> Iterator[ProgressEvent]:
        while self._finished is None:
            item = self._events.get()
            if isinstance(item, _Finished):
                self._finished = item
                break
            yield item
        if self._finished.error is not None:
            raise self._finished.error

    def result(self) -> IndexStats:
        """Block until the run ends; return its stats or raise its error."""
        for _ in self.events():
            pass
        assert self._finished is not None and self._finished.stats is not None
        return self._finished.stats
