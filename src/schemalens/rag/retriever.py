"""Chat orchestration: classify, rewrite, retrieve, assemble, stream.

One ``ChatService.ask`` call is one chat turn. It yields thinking events as it
moves through retrieval, then the streamed answer tokens, then a single
``DoneEvent`` carrying the state the caller keeps for the next turn. Any
failure ends the turn with one ``ErrorEvent`` instead of an exception.
"""

from __future__ import annotations

import re
import time
from collections.abc import Iterator

import structlog

from schemalens.db.models import SchemaChunk
from schemalens.db.vector_store import VectorStore
from schemalens.errors import ErrorKind, SchemaLensError
from schemalens.rag.context_window import ContextWindowManager, estimate_tokens
from schemalens.rag.events import (
    ChatEvent,
    DoneEvent,
    ErrorEvent,
    ThinkingEvent,
    TokenEvent,
)
from schemalens.rag.llm_client import EmbeddingService, GenerationService
from schemalens.rag.models import ChatMessage, RetrievalContext
from schemalens.rag.prompts import (
    QUERY_REWRITE_SYSTEM,
    build_query_rewrite_prompt,
    build_rag_system_prompt,
)

logger = structlog.get_logger(__name__)

_TOP_K = 30
_BROAD_LIMIT = 1000
_EXCERPT_CHARS = 300

# "list/count/how many/all" directly before a plural object-type noun, optionally
# through "all", "the" or "of": "list all the tables", "count the sprocs".
_BROAD_QUERY = re.compile(
    r"\b(?:list|count|how\s+many|number\s+of|all)\s+(?:(?:all|the|of)\s+){0,2}"
    r"(?:tables|views|(?:stored\s+)?procedures|procs|sprocs|sps|functions|udfs)\b",
    re.IGNORECASE,
)


def is_broad_query(text: str) -> bool:
    """True for questions about every object of a type rather than a specific one."""
    return _BROAD_QUERY.search(text) is not None


def _ms_since(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


class ChatService:
    """Answer questions about one indexed source.

    Args:
        store:           Vector store holding the source's collection.
        generator:       Generation service for rewrite and the answer stream.
        embedder:        Embedding service for the search query.
        context_manager: Keeps the conversation inside the model's window.
        top_k:           Chunks retrieved for specific questions.
        broad_limit:     Chunks loaded for broad questions.
        excerpt_chars:   Content excerpt length for chunks without a summary.
    """

    def __init__(
        self,
        store: VectorStore,
        generator: GenerationService,
        embedder: EmbeddingService,
        context_manager: ContextWindowManager,
        top_k: int = _TOP_K,
        broad_limit: int = _BROAD_LIMIT,
        excerpt_chars: int = _EXCERPT_CHARS,
    ) -> None:
        self._store = store
        self._generator = generator
        self._embedder = embedder
        self._context = context_manager
        self._top_k = top_k
        self._broad_limit = broad_limit
        self._excerpt_chars = excerpt_chars

    def ask(
        self,
        source_id: str,
        message: str,
        history: list[ChatMessage] | None = None,
        carried_summary: str | None = None,
        database_name: str | None = None,
    ) -> Iterator[ChatEvent]:
        """Run one chat turn, yielding events as it progresses."""
        log = logger.bind(source_id=source_id)
        try:
            yield from self._turn(
                source_id, message, list(history or []), carried_summary, database_name
            )
        except SchemaLensError as exc:
            log.warning("chat_failed", kind=exc.kind.value, error=exc.message)
            yield ErrorEvent(exc.kind, exc.message)
        except Exception as exc:
            log.exception("chat_failed", kind=ErrorKind.FAILED.value)
            yield ErrorEvent(ErrorKind.FAILED, str(exc) or type(exc).__name__)

    def _turn(
        self,
        source_id: str,
        message: str,
        history: list[ChatMessage],
        carried_summary: str | None,
        database_name: str | None,
    ) -> Iterator[ChatEvent]:
        started = time.perf_counter()
        broad = is_broad_query(message)

        if broad:
            query = message
            yield ThinkingEvent("searching")
            search_start = time.perf_counter()
            chunks = self._store.get_all(source_id, limit=self._broad_limit)
        else:
            query = self.rewrite_query(history, message) if history else message
            yield ThinkingEvent("embedding")
            vector = self._embedder.embed(query)
            yield ThinkingEvent("searching")
            search_start = time.perf_counter()
            chunks = self._retrieve(source_id, vector, query)
        search_ms = _ms_since(search_start)

        system_prompt = build_rag_system_prompt(
            chunks, database_name or source_id, self._excerpt_chars
        )
        context = RetrievalContext.from_chunks(
            chunks,
            query=query,
            broad=broad,
            search_ms=search_ms,
            context_tokens=estimate_tokens(system_prompt),
        )
        yield ThinkingEvent("context", context=context)

        decision = self._context.prepare(
            system_prompt,
            history,
            message,
            self._generator.context_length(),
            carried_summary,
        )

        yield ThinkingEvent("generating", context=context, model=self._generator.model)
        parts: list[str] = []
        for token in self._generator.stream_chat(system_prompt, decision.api_history, message):
            parts.append(token)
            yield TokenEvent(token)

        context.total_elapsed_ms = _ms_since(started)
        new_history = [
            *decision.history,
            ChatMessage(role="user", content=message),
            ChatMessage(role="assistant", content="".join(parts)),
        ]
        logger.info(
            "chat_completed",
            source_id=source_id,
            broad=broad,
            chunks=context.chunks_used,
            summarized=decision.summarized,
            elapsed_ms=context.total_elapsed_ms,
        )
        yield DoneEvent(summary=decision.summary, history=new_history, context=context)

    def rewrite_query(self, history: list[ChatMessage], message: str) -> str:
        """Rewrite a follow-up into a standalone search query.

        Falls back to *message* on any failure or empty answer; the turn never
        blocks on the rewrite.
        """
        try:
            raw = self._generator.generate(
                build_query_rewrite_prompt(history, message), system=QUERY_REWRITE_SYSTEM
            )
        except Exception as exc:
            logger.warning("query_rewrite_failed", error=str(exc))
            return message
        lines = [line.strip() for line in raw.splitlines() if line.strip()]
        if not lines:
            return message
        logger.debug("query_rewritten", original=message, rewritten=lines[0])
        return lines[0]

    def _retrieve(self, source_id: str, vector: list[float], query: str) -> list[SchemaChunk]:
        results = self._store.search(source_id, vector, top_k=self._top_k, query_text=query)
        return [r.chunk for r in results]
