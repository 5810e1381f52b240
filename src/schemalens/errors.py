"""Structured error taxonomy shared by the indexing and chat pipelines.

Every error carries an ``ErrorKind`` set where it is raised, so callers can
branch on ``exc.kind`` instead of inspecting message text.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    CANCELLED = "cancelled"
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed_response"
    BUDGET_EXCEEDED = "budget_exceeded"
    NOT_FOUND = "not_found"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


class SchemaLensError(Exception):
    """Base class for all SchemaLens errors."""

    kind: ErrorKind = ErrorKind.FAILED

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class IndexCancelled(SchemaLensError):
    """An index run was stopped by request. Nothing was persisted."""

    kind = ErrorKind.CANCELLED


class UpstreamUnavailable(SchemaLensError):
    """The generation or embedding service could not be reached."""

    kind = ErrorKind.UNREACHABLE

    def __init__(self, message: str = "", api_base: str | None = None) -> None:
        super().__init__(message)
        self.api_base = api_base


class MalformedResponse(SchemaLensError):
    """The generation or embedding service answered without the expected fields."""

    kind = ErrorKind.MALFORMED_RESPONSE


class BudgetExceeded(SchemaLensError):
    """The conversation no longer fits in the model's context window."""

    kind = ErrorKind.BUDGET_EXCEEDED

    def __init__(self, estimated_tokens: int, budget: int) -> None:
        super().__init__(
            f"Conversation too long: ~{estimated_tokens} tokens for a {budget}-token context."
        )
        self.estimated_tokens = estimated_tokens
        self.budget = budget


class SourceNotFound(SchemaLensError):
    """A caller required an index for a source that has none."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, source_id: str) -> None:
        super().__init__(f"No index found for source '{source_id}'.")
        self.source_id = source_id


class IndexInProgress(SchemaLensError):
    """An index run is already active for this source."""

    kind = ErrorKind.IN_PROGRESS

    def __init__(self, source_id: str) -> None:
        super().__init__(f"An index run is already in progress for '{source_id}'.")
        self.source_id = source_id


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the kind of *exc*, ``FAILED`` for anything outside the taxonomy."""
    if isinstance(exc, SchemaLensError):
        return exc.kind
    return ErrorKind.FAILED
