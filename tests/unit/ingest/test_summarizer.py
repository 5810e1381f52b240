"""Tests for the chunk summarizer."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import litellm
import pytest

from schemalens.db.models import ObjectType, SchemaChunk
from schemalens.errors import MalformedResponse, UpstreamUnavailable
from schemalens.ingest.summarizer import ChunkSummarizer
from schemalens.rag.llm_client import GenerationService
from schemalens.rag.prompts import SUMMARIZE_SYSTEM


def _chunk() -> SchemaChunk:
    return SchemaChunk(
        id="c1",
        source_id="sales",
        object_type=ObjectType.TABLE,
        object_name="Customers",
        schema_name="dbo",
        content="Table dbo.Customers\nColumns: CustomerId (int) PK",
    )


def _mock_completion(text):
    mock = MagicMock()
    mock.choices = [MagicMock()]
    mock.choices[0].message.content = text
    return patch("schemalens.rag.llm_client.litellm.completion", return_value=mock)


def test_summarize_returns_trimmed_text():
    with _mock_completion("  Customer master data.\n"):
        result = ChunkSummarizer(GenerationService("ollama/llama3.1:8b")).summarize(_chunk())
    assert result == "Customer master data."


def test_summarize_prompt_names_object():
    with _mock_completion("ok") as mock_call:
        ChunkSummarizer(GenerationService("ollama/llama3.1:8b")).summarize(_chunk())
    messages = mock_call.call_args.kwargs["messages"]
    assert messages[0] == {"role": "system", "content": SUMMARIZE_SYSTEM}
    assert messages[1]["content"].startswith("[table] dbo.Customers\n\nTable dbo.Customers")


def test_summarize_missing_content_is_malformed():
    with _mock_completion(None):
        with pytest.raises(MalformedResponse):
            ChunkSummarizer(GenerationService("ollama/llama3.1:8b")).summarize(_chunk())


def test_summarize_unreachable():
    error = litellm.exceptions.APIConnectionError(
        message="connection refused", llm_provider="ollama", model="llama3.1:8b"
    )
    with patch("schemalens.rag.llm_client.litellm.completion", side_effect=error):
        with pytest.raises(UpstreamUnavailable):
            ChunkSummarizer(GenerationService("ollama/llama3.1:8b")).summarize(_chunk())
