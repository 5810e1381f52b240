"""Context window manager: keep a conversation inside the model's budget.

Token counts are estimated at four characters per token. Below 90% of the
budget the history passes through unchanged. Above it, older turns are folded
into a running summary that preserves object names, and only the most recent
turns are sent verbatim. At or over the full budget the turn is refused.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from schemalens.errors import BudgetExceeded
from schemalens.rag.llm_client import GenerationService
from schemalens.rag.models import ChatMessage
from schemalens.rag.prompts import (
    CONVERSATION_SUMMARY_SYSTEM,
    build_conversation_summary_prompt,
)

SUMMARY_SEPARATOR = "\n\n---\n\n"
_SUMMARY_PREFIX = "Summary of the earlier conversation:\n\n"

logger = structlog.get_logger(__name__)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


class ConversationSummarizer(Protocol):
    def summarize_conversation(self, messages: list[ChatMessage]) -> str: ...


class LLMConversationSummarizer:
    """Summarize chat turns with the generation service."""

    def __init__(self, generator: GenerationService) -> None:
        self._generator = generator

    def summarize_conversation(self, messages: list[ChatMessage]) -> str:
        prompt = build_conversation_summary_prompt(messages)
        return self._generator.generate(prompt, system=CONVERSATION_SUMMARY_SYSTEM).strip()


@dataclass
class ContextDecision:
    """Outcome of ``ContextWindowManager.prepare``.

    ``api_history`` is what to send to the model (summary message first, when
    there is one). ``history`` and ``summary`` are what the caller keeps for
    the next turn.
    """

    api_history: list[ChatMessage] = field(default_factory=list)
    summary: str | None = None
    history: list[ChatMessage] = field(default_factory=list)
    summarized: bool = False
    estimated_tokens: int = 0


def summary_message(summary: str) -> ChatMessage:
    return ChatMessage(role="user", content=_SUMMARY_PREFIX + summary)


class ContextWindowManager:
    """Decide what conversation history to send for the next turn.

    Args:
        summarizer:      Object with ``summarize_conversation(messages) -> str``.
        summarize_ratio: Fraction of the budget that triggers summarization.
        first_keep:      Turns kept verbatim the first time history is folded.
        subsequent_keep: Turns kept verbatim on later folds.
    """

    def __init__(
        self,
        summarizer: ConversationSummarizer,
        summarize_ratio: float = 0.9,
        first_keep: int = 10,
        subsequent_keep: int = 5,
    ) -> None:
        if not 0 < summarize_ratio <= 1:
            raise ValueError("summarize_ratio must be in (0, 1]")
        self._summarizer = summarizer
        self._ratio = summarize_ratio
        self._first_keep = first_keep
        self._subsequent_keep = subsequent_keep

    def prepare(
        self,
        system_prompt: str,
        history: list[ChatMessage],
        new_message: str,
        token_budget: int,
        carried_summary: str | None = None,
    ) -> ContextDecision:
        """Return the history to send with *new_message*.

        Raises:
            BudgetExceeded: The estimate is at or over *token_budget*.
        """
        candidate = _with_summary(history, carried_summary)
        total = _estimate(system_prompt, candidate, new_message)

        if total >= token_budget:
            raise BudgetExceeded(total, token_budget)

        if total < self._ratio * token_budget:
            return ContextDecision(
                api_history=candidate,
                summary=carried_summary,
                history=list(history),
                estimated_tokens=total,
            )

        keep = self._subsequent_keep if carried_summary else self._first_keep
        if len(history) <= keep:
            return ContextDecision(
                api_history=candidate,
                summary=carried_summary,
                history=list(history),
                estimated_tokens=total,
            )

        split = len(history) - keep
        older, recent = history[:split], history[split:]
        new_summary = self._summarizer.summarize_conversation(older)
        merged = (
            f"{carried_summary}{SUMMARY_SEPARATOR}{new_summary}" if carried_summary else new_summary
        )
        api_history = _with_summary(recent, merged)
        estimated = _estimate(system_prompt, api_history, new_message)
        logger.info(
            "conversation_summarized",
            folded_turns=len(older),
            kept_turns=len(recent),
            tokens_before=total,
            tokens_after=estimated,
            budget=token_budget,
        )
        return ContextDecision(
            api_history=api_history,
            summary=merged,
            history=list(recent),
            summarized=True,
            estimated_tokens=estimated,
        )


def _with_summary(history: list[ChatMessage], summary: str | None) -> list[ChatMessage]:
    if not summary:
        return list(history)
    return [summary_message(summary), *history]


def _estimate(system_prompt: str, history: list[ChatMessage], new_message: str) -> int:
    return (
        estimate_tokens(system_prompt)
        + sum(estimate_tokens(m.content) for m in history)
        + estimate_tokens(new_message)
    )
