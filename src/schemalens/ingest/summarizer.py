"""Chunk summarizer: one short semantic-search summary per schema object."""

from __future__ import annotations

from schemalens.db.models import SchemaChunk
from schemalens.rag.llm_client import GenerationService
from schemalens.rag.prompts import SUMMARIZE_SYSTEM, build_summarization_prompt


class ChunkSummarizer:
    """Summarize chunk content through the generation service.

    Args:
        generator: Generation service (``generate(prompt, system) -> str``).
        max_tokens: Cap on the summary length, passed through to the model.
    """

    def __init__(self, generator: GenerationService, max_tokens: int | None = 200) -> None:
        self._generator = generator
        self._max_tokens = max_tokens

    def summarize(self, chunk: SchemaChunk) -> str:
        """Return the trimmed summary for *chunk*.

        Errors from the generation service propagate; a failed summary fails
        the index run.
        """
        prompt = build_summarization_prompt(
            chunk.object_type.value, chunk.qualified_name, chunk.content
        )
        return self._generator.generate(
            prompt, system=SUMMARIZE_SYSTEM, max_tokens=self._max_tokens
        ).strip()
