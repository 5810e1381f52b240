"""Tests for the conversation context window manager."""

from __future__ import annotations

import pytest

from schemalens.errors import BudgetExceeded
from schemalens.rag.context_window import (
    SUMMARY_SEPARATOR,
    ContextWindowManager,
    LLMConversationSummarizer,
    estimate_tokens,
)
from schemalens.rag.models import ChatMessage


class RecordingSummarizer:
    def __init__(self, text: str = "dbo.Orders.") -> None:
        self.text = text
        self.calls: list[list[ChatMessage]] = []

    def summarize_conversation(self, messages):
        self.calls.append(list(messages))
        return self.text


def _turns(n: int, size: int = 40) -> list[ChatMessage]:
    """n messages of *size* characters each (size / 4 tokens)."""
    return [
        ChatMessage("user" if i % 2 == 0 else "assistant", f"{i:02d}" + "x" * (size - 2))
        for i in range(n)
    ]


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_below_threshold_passes_through():
    summarizer = RecordingSummarizer()
    manager = ContextWindowManager(summarizer)
    history = _turns(4)  # 40 tokens
    # system 4 + history 40 + message 1 = 45 of 56 (80%)
    decision = manager.prepare("s" * 16, history, "next", token_budget=56)

    assert decision.summarized is False
    assert decision.api_history == history
    assert decision.history == history
    assert decision.summary is None
    assert decision.estimated_tokens == 45
    assert summarizer.calls == []


def test_above_threshold_folds_older_turns():
    summarizer = RecordingSummarizer()
    manager = ContextWindowManager(summarizer)
    history = _turns(12)  # 120 tokens
    # 120 + 1 + 1 = 122 of 128 (95%)
    decision = manager.prepare("sys", history, "next", token_budget=128)

    assert decision.summarized is True
    assert summarizer.calls == [history[:2]]
    assert decision.history == history[2:]
    assert decision.summary == summarizer.text
    assert decision.api_history[0].role == "user"
    assert decision.api_history[0].content.endswith(summarizer.text)
    assert decision.api_history[1:] == history[2:]
    assert decision.estimated_tokens < 122


def test_subsequent_fold_keeps_five_and_merges_summaries():
    summarizer = RecordingSummarizer("Later: invoices were discussed.")
    manager = ContextWindowManager(summarizer)
    history = _turns(10)  # 100 tokens
    carried = "Earlier summary."
    # 100 + 14 (prefixed summary) + 1 + 1 = 116 of 128 (91%)
    decision = manager.prepare("sys", history, "next", token_budget=128, carried_summary=carried)

    assert decision.summarized is True
    assert summarizer.calls == [history[:5]]
    assert decision.history == history[5:]
    assert decision.summary == f"Earlier summary.{SUMMARY_SEPARATOR}Later: invoices were discussed."


def test_carried_summary_is_sent_without_refolding():
    manager = ContextWindowManager(RecordingSummarizer())
    decision = manager.prepare(
        "sys", _turns(2), "next", token_budget=10_000, carried_summary="Old summary."
    )
    assert decision.summarized is False
    assert decision.summary == "Old summary."
    assert decision.api_history[0].content.endswith("Old summary.")
    assert len(decision.api_history) == 3


def test_over_threshold_with_few_turns_passes_through():
    summarizer = RecordingSummarizer()
    manager = ContextWindowManager(summarizer)
    history = _turns(4)  # 40 tokens
    decision = manager.prepare("sys", history, "next", token_budget=43)

    assert decision.summarized is False
    assert decision.history == history
    assert summarizer.calls == []


def test_at_or_over_budget_raises():
    manager = ContextWindowManager(RecordingSummarizer())
    history = _turns(12)  # 120 tokens, 122 in total
    with pytest.raises(BudgetExceeded) as exc_info:
        manager.prepare("sys", history, "next", token_budget=121)
    assert exc_info.value.estimated_tokens == 122
    assert exc_info.value.budget == 121
    assert exc_info.value.kind == "budget_exceeded"

    with pytest.raises(BudgetExceeded):
        manager.prepare("sys", history, "next", token_budget=122)


def test_invalid_ratio_rejected():
    with pytest.raises(ValueError):
        ContextWindowManager(RecordingSummarizer(), summarize_ratio=0)


def test_llm_summarizer_calls_generate():
    class FakeGenerator:
        def __init__(self):
            self.prompts = []

        def generate(self, prompt, system=None, max_tokens=None):
            self.prompts.append((prompt, system))
            return "  summary text  "

    generator = FakeGenerator()
    summary = LLMConversationSummarizer(generator).summarize_conversation(
        [ChatMessage("user", "Tell me about dbo.Orders")]
    )
    assert summary == "summary text"
    prompt, system = generator.prompts[0]
    assert "User: Tell me about dbo.Orders" in prompt
    assert "object names" in system
