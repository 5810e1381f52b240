"""Prompt text for summarization, query rewriting and RAG chat."""

from __future__ import annotations

from schemalens.db.models import SchemaChunk
from schemalens.rag.models import ChatMessage

SUMMARIZE_SYSTEM = (
    "Summarize the following database schema or stored procedure text in 1-3 "
    "concise sentences suitable for semantic search. Output only the summary, "
    "no preamble."
)

QUERY_REWRITE_SYSTEM = (
    "You are a query rewriter for a database schema search. Given a conversation "
    "and the latest user message, output a single standalone search query that "
    "captures what the user is asking. Resolve references like \"it\", \"that\", "
    "\"the procedure\" using the conversation. Output only the search query, one "
    "line, no preamble or explanation."
)

CONVERSATION_SUMMARY_SYSTEM = (
    "Summarize this conversation in 1-2 short paragraphs. Preserve database object "
    "names (tables, procedures, functions, views), key facts the user asked about, "
    "and any references the assistant made. The summary will be used as context so "
    "later messages can still refer to earlier topics. Output only the summary, no "
    "preamble."
)

_RAG_INTRO = (
    'You are a helpful assistant for the database "{database}". Answer questions '
    "about the schema and business logic using only the retrieved context below. "
    "The index contains tables, views, stored procedures, and functions. If the "
    "answer is not in the context, say so. Be concise."
)

_EMPTY_CONTEXT = (
    "No schema context was retrieved for this query. Ask the user to rephrase or "
    "mention that the index may be empty."
)

_BLOCK_SEPARATOR = "\n\n---\n\n"


def build_summarization_prompt(object_type: str, qualified_name: str, content: str) -> str:
    return f"[{object_type}] {qualified_name}\n\n{content}"


def build_query_rewrite_prompt(history: list[ChatMessage], message: str) -> str:
    lines = [
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in history
    ]
    lines.append(f"User: {message}")
    lines.append("")
    lines.append(
        "Output a single standalone search query that captures what the user is "
        'asking, including what "it" or "that" refers to from the conversation. '
        "Output only the query, one line, no explanation."
    )
    return "\n".join(lines)


def build_conversation_summary_prompt(messages: list[ChatMessage]) -> str:
    return "\n\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
    )


def excerpt(text: str, limit: int = 300) -> str:
    """First *limit* characters of *text*, with an ellipsis when cut."""
    if len(text) <= limit:
        return text.strip()
    return text[:limit].strip() + "…"


def build_rag_system_prompt(
    chunks: list[SchemaChunk],
    database_name: str,
    excerpt_chars: int = 300,
) -> str:
    """System prompt listing each retrieved chunk by heading and summary.

    Chunks without a summary fall back to a capped excerpt of their content.
    With no chunks the model is told the index may be empty.
    """
    intro = _RAG_INTRO.format(database=database_name)
    if not chunks:
        return f"{intro}\n\n{_EMPTY_CONTEXT}"
    blocks = []
    for chunk in chunks:
        body = chunk.summary.strip() or excerpt(chunk.content, excerpt_chars)
        blocks.append(f"{chunk.heading}\n{body}")
    return f"{intro}\n\n## Retrieved context\n\n{_BLOCK_SEPARATOR.join(blocks)}"
