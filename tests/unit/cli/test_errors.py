"""Tests for SchemaLens rich error messages."""

from __future__ import annotations

import pytest

from schemalens.cli.errors import (
    err_budget_exceeded,
    err_conversation_file,
    err_for_exception,
    err_for_kind,
    err_index_in_progress,
    err_model_not_pulled,
    err_no_db,
    err_schema_file,
    err_source_not_found,
    err_unreachable,
)
from schemalens.errors import (
    BudgetExceeded,
    ErrorKind,
    IndexCancelled,
    IndexInProgress,
    MalformedResponse,
    SourceNotFound,
    UpstreamUnavailable,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _has_action(msg: str) -> bool:
    """Every error must contain a cause AND an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "start", "export ", "schemalens ", "provide", "wait"])


# ---------------------------------------------------------------------------
# Individual messages
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "msg",
    [
        err_unreachable("http://localhost:11434"),
        err_model_not_pulled("ollama/nomic-embed-text"),
        err_no_db(".schemalens.db"),
        err_source_not_found("sales"),
        err_budget_exceeded(9000, 8192),
        err_index_in_progress("sales"),
        err_schema_file("sales.json", "file not found"),
    ],
)
def test_messages_are_actionable(msg: str) -> None:
    assert _has_action(msg)


def test_unreachable_names_server() -> None:
    assert "http://gpu:11434" in err_unreachable("http://gpu:11434")
    assert "configured provider" in err_unreachable(None)


def test_model_not_pulled_strips_provider() -> None:
    msg = err_model_not_pulled("ollama/llama3.1:8b")
    assert "ollama pull llama3.1:8b" in msg


def test_budget_exceeded_formats_numbers() -> None:
    msg = err_budget_exceeded(9000, 8192)
    assert "9,000" in msg
    assert "8,192" in msg


# ---------------------------------------------------------------------------
# Mapping structured errors
# ---------------------------------------------------------------------------


def test_for_exception_unreachable() -> None:
    exc = UpstreamUnavailable("down", api_base="http://localhost:11434")
    assert "http://localhost:11434" in err_for_exception(exc)


def test_for_exception_budget() -> None:
    assert "8,192" in err_for_exception(BudgetExceeded(9000, 8192))


def test_for_exception_not_found_and_in_progress() -> None:
    assert "'sales' has not been indexed" in err_for_exception(SourceNotFound("sales"))
    assert "already being indexed" in err_for_exception(IndexInProgress("sales"))


def test_for_exception_cancelled() -> None:
    assert "left unchanged" in err_for_exception(IndexCancelled())


def test_for_exception_malformed() -> None:
    msg = err_for_exception(MalformedResponse("no vectors"))
    assert "no vectors" in msg
    assert "schemalens check" in msg


def test_for_kind() -> None:
    assert "http://localhost:11434" in err_for_kind(
        ErrorKind.UNREACHABLE, "down", "http://localhost:11434"
    )
    assert "new conversation" in err_for_kind(ErrorKind.BUDGET_EXCEEDED, "too long")
    assert err_for_kind(ErrorKind.FAILED, "boom") == "[red]Error:[/] boom"


def test_conversation_file_message() -> None:
    msg = err_conversation_file("chat.json", "Expecting value")
    assert "chat.json" in msg
    assert "Expecting value" in msg
    assert "rm chat.json" in msg
