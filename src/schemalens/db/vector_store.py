"""Per-source vector store: FTS5 (lexical) + sqlite-vec (dense), fused via RRF.

Each source's chunks live in their own collection (see ``collections``). A
crawl is a full snapshot, so writes only ever replace a whole collection.

Reciprocal Rank Fusion, 0-based ranks:
  score(d) = sum over lists containing d of 1 / (k + rank + 1)   k = 60
"""

from __future__ import annotations

import re
import sqlite3
import struct
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import sqlite_vec
import structlog

from schemalens.db.collections import (
    chunks_table,
    create_collection,
    create_vec_index,
    drop_collection,
    fts_table,
    source_to_slug,
    vec_table,
)
from schemalens.db.models import IndexStats, ObjectType, SchemaChunk

_RRF_K = 60
_CANDIDATE_FLOOR = 60
_ANN_MIN_ROWS = 256

_TERM_RE = re.compile(r"[A-Za-z0-9]+")

_CHUNK_COLUMNS = (
    "rowid, id, source_id, object_type, object_name, schema_name, "
    "content, summary, embedding, indexed_at"
)

# One lock per source id: replace_all/clear for the same source never interleave.
_write_locks: dict[str, threading.Lock] = {}
_write_locks_guard = threading.Lock()


def _source_lock(source_id: str) -> threading.Lock:
    with _write_locks_guard:
        return _write_locks.setdefault(source_id, threading.Lock())


@dataclass
class ScoredChunk:
    """A retrieved chunk with its score and per-channel ranks.

    Attributes:
        chunk: The stored chunk.
        score: Cosine similarity (vector-only) or RRF score (hybrid).
        vector_rank: 0-based rank in the vector channel (None if absent).
        lexical_rank: 0-based rank in the lexical channel (None if absent).
    """

    chunk: SchemaChunk
    score: float
    vector_rank: int | None = None
    lexical_rank: int | None = None


@dataclass
class _Collection:
    slug: str
    ann_indexed: bool


class VectorStore:
    """Durable, queryable chunk storage with one independent collection per source.

    Wraps an open sqlite3.Connection (autocommit, sqlite-vec loaded, migrations
    applied; see ``Database.session``). The connection is owned by the caller.
    Reads of a missing source return empty results rather than raising.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        ann_min_rows: int = _ANN_MIN_ROWS,
        rrf_k: int = _RRF_K,
        candidate_floor: int = _CANDIDATE_FLOOR,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._conn = conn
        self._ann_min_rows = ann_min_rows
        self._rrf_k = rrf_k
        self._candidate_floor = candidate_floor
        self._logger = logger or structlog.get_logger(__name__)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_all(self, source_id: str, chunks: list[SchemaChunk]) -> None:
        """Atomically replace the source's collection with *chunks*.

        Drop, recreate, insert and index all happen inside one transaction, so
        concurrent readers see either the previous snapshot or the new one.
        The ANN index is only built for at least ``ann_min_rows`` embedded
        chunks; smaller collections are searched by exact scan.

        Raises:
            ValueError: If chunks carry embeddings of different lengths.
        """
        dimensions = _embedding_dimensions(chunks)
        embedded = [c for c in chunks if c.embedding]
        build_ann = dimensions is not None and len(embedded) >= self._ann_min_rows
        slug = source_to_slug(source_id)
        latest = max((c.indexed_at for c in chunks if c.indexed_at), default=None)

        with _source_lock(source_id):
            with self._transaction():
                drop_collection(self._conn, slug)
                create_collection(self._conn, slug)
                for chunk in chunks:
                    chunk.rowid = self._insert_chunk(slug, source_id, chunk)
                if build_ann:
                    table = create_vec_index(self._conn, slug, dimensions)
                    self._conn.executemany(
                        f"INSERT INTO {table}(rowid, object_type, embedding) VALUES (?, ?, ?)",
                        [
                            (c.rowid, c.object_type.value, sqlite_vec.serialize_float32(c.embedding))
                            for c in embedded
                        ],
                    )
                self._conn.execute(
                    """
                    INSERT INTO collections
                        (source_id, slug, chunk_count, dimensions, ann_indexed, indexed_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(source_id) DO UPDATE SET
                        slug = excluded.slug,
                        chunk_count = excluded.chunk_count,
                        dimensions = excluded.dimensions,
                        ann_indexed = excluded.ann_indexed,
                        indexed_at = excluded.indexed_at,
                        replaced_at = datetime('now')
                    """,
                    (source_id, slug, len(chunks), dimensions, int(build_ann), latest),
                )

        self._logger.info(
            "collection_replaced",
            source_id=source_id,
            chunk_count=len(chunks),
            ann_indexed=build_ann,
        )

    def clear(self, source_id: str) -> bool:
        """Drop the source's collection. Returns False if there was nothing to drop."""
        slug = source_to_slug(source_id)
        with _source_lock(source_id):
            with self._transaction():
                existed = drop_collection(self._conn, slug)
                cur = self._conn.execute(
                    "DELETE FROM collections WHERE source_id = ?", (source_id,)
                )
                existed = existed or cur.rowcount > 0
        self._logger.info("collection_cleared", source_id=source_id, existed=existed)
        return existed

    def _insert_chunk(self, slug: str, source_id: str, chunk: SchemaChunk) -> int:
        cur = self._conn.execute(
            f"""
            INSERT INTO {chunks_table(slug)}
                (id, source_id, object_type, object_name, schema_name,
                 content, summary, embedding, indexed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                source_id,
                chunk.object_type.value,
                chunk.object_name,
                chunk.schema_name,
                chunk.content,
                chunk.summary,
                sqlite_vec.serialize_float32(chunk.embedding) if chunk.embedding else None,
                chunk.indexed_at,
            ),
        )
        rowid = cur.lastrowid
        self._conn.execute(
            f"INSERT INTO {fts_table(slug)}(rowid, content) VALUES (?, ?)",
            (rowid, chunk.content),
        )
        return rowid

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_sources(self) -> list[str]:
        """Return the ids of all sources that currently have a collection."""
        rows = self._conn.execute(
            "SELECT source_id FROM collections ORDER BY source_id"
        ).fetchall()
        return [r["source_id"] for r in rows]

    def has_index(self, source_id: str) -> bool:
        return self._collection(source_id) is not None

    def get_all(self, source_id: str, limit: int = 1000) -> list[SchemaChunk]:
        """Return up to *limit* chunks in insertion order, without ranking."""
        with self._snapshot():
            coll = self._collection(source_id)
            if coll is None:
                return []
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM {chunks_table(coll.slug)} ORDER BY rowid LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def search(
        self,
        source_id: str,
        query_vector: list[float],
        top_k: int = 10,
        query_text: str | None = None,
        type_filter: ObjectType | str | None = None,
    ) -> list[ScoredChunk]:
        """Similarity search, hybrid when *query_text* is given.

        Vector-only mode returns the top_k nearest chunks by cosine similarity.
        Hybrid mode retrieves ``max(2 * top_k, candidate_floor)`` candidates
        from each channel and fuses them with RRF; if the lexical channel
        fails or finds nothing, the vector results are returned alone.
        """
        type_value = ObjectType(type_filter).value if type_filter else None

        with self._snapshot():
            coll = self._collection(source_id)
            if coll is None:
                return []

            if not query_text or not query_text.strip():
                hits = self._search_vector(coll, query_vector, top_k, type_value)
                return _rank_vector_only(hits)

            n_candidates = max(2 * top_k, self._candidate_floor)
            vector_hits = self._search_vector(coll, query_vector, n_candidates, type_value)
            try:
                lexical_hits = self._search_lexical(coll, query_text, n_candidates, type_value)
            except sqlite3.OperationalError as exc:
                self._logger.warning("lexical_search_failed", source_id=source_id, error=str(exc))
                lexical_hits = []

        if not lexical_hits:
            return _rank_vector_only(vector_hits[:top_k])
        return _rrf_fuse(
            [c for c, _ in vector_hits],
            [c for c, _ in lexical_hits],
            top_k=top_k,
            k=self._rrf_k,
        )

    def stats(self, source_id: str) -> IndexStats:
        """Aggregate counts computed by scanning every stored chunk."""
        stats = IndexStats()
        with self._snapshot():
            coll = self._collection(source_id)
            if coll is None:
                return stats
            rows = self._conn.execute(
                f"""
                SELECT object_type, summary, embedding IS NOT NULL AS has_embedding, indexed_at
                FROM {chunks_table(coll.slug)}
                """
            ).fetchall()

        per_type = {
            ObjectType.TABLE.value: "table_chunks",
            ObjectType.VIEW.value: "view_chunks",
            ObjectType.STORED_PROCEDURE.value: "sp_chunks",
            ObjectType.FUNCTION.value: "function_chunks",
        }
        for row in rows:
            stats.total_chunks += 1
            attr = per_type.get(row["object_type"])
            if attr:
                setattr(stats, attr, getattr(stats, attr) + 1)
            if row["summary"].strip():
                stats.chunks_with_summary += 1
            if row["has_embedding"]:
                stats.chunks_with_embedding += 1
            indexed_at = row["indexed_at"] or None
            if indexed_at and (stats.last_indexed_at is None or indexed_at > stats.last_indexed_at):
                stats.last_indexed_at = indexed_at
        return stats

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _search_vector(
        self,
        coll: _Collection,
        query_vector: list[float],
        limit: int,
        type_value: str | None,
    ) -> list[tuple[SchemaChunk, float]]:
        """Nearest neighbours as (chunk, cosine distance), closest first."""
        blob = sqlite_vec.serialize_float32(query_vector)

        if coll.ann_indexed:
            sql = f"SELECT rowid, distance FROM {vec_table(coll.slug)} WHERE embedding MATCH ? AND k = ?"
            params: list = [blob, limit]
            if type_value:
                sql += " AND object_type = ?"
                params.append(type_value)
            vec_rows = self._conn.execute(sql + " ORDER BY distance", params).fetchall()
            by_rowid = self._chunks_by_rowid(coll, [r["rowid"] for r in vec_rows])
            return [
                (by_rowid[r["rowid"]], r["distance"]) for r in vec_rows if r["rowid"] in by_rowid
            ]

        sql = (
            f"SELECT {_CHUNK_COLUMNS}, vec_distance_cosine(embedding, ?) AS distance "
            f"FROM {chunks_table(coll.slug)} WHERE embedding IS NOT NULL"
        )
        params = [blob]
        if type_value:
            sql += " AND object_type = ?"
            params.append(type_value)
        sql += " ORDER BY distance LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]

    def _search_lexical(
        self,
        coll: _Collection,
        query_text: str,
        limit: int,
        type_value: str | None,
    ) -> list[tuple[SchemaChunk, float]]:
        """BM25 term search as (chunk, bm25 score), best first.

        Terms are OR-ed so a natural-language question matches any chunk that
        shares at least one term; bm25() ranks chunks sharing more terms higher.
        """
        terms = _TERM_RE.findall(query_text)
        if not terms:
            return []
        fts_query = " OR ".join(f'"{t}"' for t in dict.fromkeys(terms))
        fts = fts_table(coll.slug)
        sql = f"SELECT rowid, bm25({fts}) AS score FROM {fts} WHERE {fts} MATCH ?"
        params: list = [fts_query]
        if type_value:
            sql += f" AND rowid IN (SELECT rowid FROM {chunks_table(coll.slug)} WHERE object_type = ?)"
            params.append(type_value)
        sql += " ORDER BY score LIMIT ?"
        params.append(limit)
        fts_rows = self._conn.execute(sql, params).fetchall()
        by_rowid = self._chunks_by_rowid(coll, [r["rowid"] for r in fts_rows])
        return [(by_rowid[r["rowid"]], r["score"]) for r in fts_rows if r["rowid"] in by_rowid]

    def _chunks_by_rowid(self, coll: _Collection, rowids: list[int]) -> dict[int, SchemaChunk]:
        if not rowids:
            return {}
        placeholders = ",".join("?" * len(rowids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM {chunks_table(coll.slug)} WHERE rowid IN ({placeholders})",
            rowids,
        ).fetchall()
        return {r["rowid"]: _row_to_chunk(r) for r in rows}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _collection(self, source_id: str) -> _Collection | None:
        row = self._conn.execute(
            "SELECT slug, ann_indexed FROM collections WHERE source_id = ?", (source_id,)
        ).fetchone()
        if row is None:
            return None
        return _Collection(slug=row["slug"], ann_indexed=bool(row["ann_indexed"]))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Write transaction; takes the database write lock up front."""
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    @contextmanager
    def _snapshot(self) -> Iterator[None]:
        """Read transaction, so a multi-statement read sees one snapshot."""
        if self._conn.in_transaction:
            yield
            return
        self._conn.execute("BEGIN")
        try:
            yield
        finally:
            self._conn.execute("COMMIT")


# ------------------------------------------------------------------
# Ranking
# ------------------------------------------------------------------


def _rrf_fuse(
    vector_ranked: list[SchemaChunk],
    lexical_ranked: list[SchemaChunk],
    top_k: int,
    k: int = _RRF_K,
) -> list[ScoredChunk]:
    """Combine two ranked lists via Reciprocal Rank Fusion.

    A chunk absent from one list contributes only through the other. Equal
    scores keep first-seen order (vector list first).
    """
    fused: dict[str, ScoredChunk] = {}

    for rank, chunk in enumerate(vector_ranked):
        entry = fused.setdefault(chunk.id, ScoredChunk(chunk=chunk, score=0.0))
        entry.score += 1.0 / (k + rank + 1)
        entry.vector_rank = rank

    for rank, chunk in enumerate(lexical_ranked):
        entry = fused.setdefault(chunk.id, ScoredChunk(chunk=chunk, score=0.0))
        entry.score += 1.0 / (k + rank + 1)
        entry.lexical_rank = rank

    ranked = sorted(fused.values(), key=lambda s: s.score, reverse=True)
    return ranked[:top_k]


def _rank_vector_only(hits: list[tuple[SchemaChunk, float]]) -> list[ScoredChunk]:
    return [
        ScoredChunk(chunk=chunk, score=1.0 - distance, vector_rank=i)
        for i, (chunk, distance) in enumerate(hits)
    ]


# ------------------------------------------------------------------
# Row helpers
# ------------------------------------------------------------------


def _embedding_dimensions(chunks: list[SchemaChunk]) -> int | None:
    dims = {len(c.embedding) for c in chunks if c.embedding}
    if len(dims) > 1:
        raise ValueError(f"Chunks carry embeddings of mixed dimensions: {sorted(dims)}")
    return dims.pop() if dims else None


def _decode_embedding(blob: bytes | None) -> list[float]:
    if not blob:
        return []
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


def _row_to_chunk(row: sqlite3.Row) -> SchemaChunk:
    return SchemaChunk(
        rowid=row["rowid"],
        id=row["id"],
        source_id=row["source_id"],
        object_type=ObjectType(row["object_type"]),
        object_name=row["object_name"],
        schema_name=row["schema_name"],
        content=row["content"],
        summary=row["summary"],
        embedding=_decode_embedding(row["embedding"]),
        indexed_at=row["indexed_at"],
    )
