"""Tests for prompt builders."""

from __future__ import annotations

from schemalens.db.models import ObjectType, SchemaChunk
from schemalens.rag.models import ChatMessage
from schemalens.rag.prompts import (
    build_conversation_summary_prompt,
    build_query_rewrite_prompt,
    build_rag_system_prompt,
    build_summarization_prompt,
    excerpt,
)


def _chunk(name: str, summary: str = "", content: str = "", object_type=ObjectType.TABLE):
    return SchemaChunk(
        id=f"sales-{name}",
        source_id="sales",
        object_type=object_type,
        object_name=name,
        schema_name="dbo",
        content=content or f"Table dbo.{name}",
        summary=summary,
    )


def test_summarization_prompt_has_heading_then_content():
    prompt = build_summarization_prompt("table", "dbo.Orders", "Table dbo.Orders\nColumns: Id")
    assert prompt == "[table] dbo.Orders\n\nTable dbo.Orders\nColumns: Id"


def test_query_rewrite_prompt_lists_turns_and_new_message():
    history = [
        ChatMessage("user", "What does GetOrderTotal do?"),
        ChatMessage("assistant", "It sums order totals."),
    ]
    prompt = build_query_rewrite_prompt(history, "Which tables does it read?")
    lines = prompt.splitlines()
    assert lines[0] == "User: What does GetOrderTotal do?"
    assert lines[1] == "Assistant: It sums order totals."
    assert lines[2] == "User: Which tables does it read?"
    assert "standalone search query" in prompt


def test_conversation_summary_prompt():
    prompt = build_conversation_summary_prompt(
        [ChatMessage("user", "Hi"), ChatMessage("assistant", "Hello")]
    )
    assert prompt == "User: Hi\n\nAssistant: Hello"


def test_excerpt_short_text_unchanged():
    assert excerpt("short", 300) == "short"


def test_excerpt_truncates_with_ellipsis():
    assert excerpt("abcdefghij", 4) == "abcd…"


def test_rag_prompt_empty_context():
    prompt = build_rag_system_prompt([], "Sales")
    assert '"Sales"' in prompt
    assert "No schema context was retrieved" in prompt
    assert "## Retrieved context" not in prompt


def test_rag_prompt_uses_summary_and_falls_back_to_excerpt():
    chunks = [
        _chunk("Orders", summary="Customer orders with totals."),
        _chunk("Invoices", content="Table dbo.Invoices\n" + "x" * 500),
    ]
    prompt = build_rag_system_prompt(chunks, "Sales", excerpt_chars=50)

    assert "## Retrieved context" in prompt
    assert "[table] dbo.Orders\nCustomer orders with totals." in prompt
    context = prompt.split("## Retrieved context\n\n", 1)[1]
    blocks = context.split("\n\n---\n\n")
    assert len(blocks) == 2
    assert blocks[1].startswith("[table] dbo.Invoices\nTable dbo.Invoices")
    assert blocks[1].endswith("…")
    assert len(blocks[1]) < 120
