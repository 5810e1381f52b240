"""Events yielded by ``ChatService.ask`` for one chat turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from schemalens.errors import ErrorKind
from schemalens.rag.models import ChatMessage, RetrievalContext

ThinkingStep = Literal["embedding", "searching", "context", "generating"]


@dataclass(frozen=True)
class ThinkingEvent:
    """A pipeline step started; ``context`` is set once retrieval is done."""

    step: ThinkingStep
    context: RetrievalContext | None = None
    model: str | None = None


@dataclass(frozen=True)
class TokenEvent:
    token: str


@dataclass(frozen=True)
class DoneEvent:
    """Turn finished. ``history`` and ``summary`` replace the caller's state."""

    summary: str | None
    history: list[ChatMessage] = field(default_factory=list)
    context: RetrievalContext | None = None


@dataclass(frozen=True)
class ErrorEvent:
    kind: ErrorKind
    message: str


ChatEvent = ThinkingEvent | TokenEvent | DoneEvent | ErrorEvent
