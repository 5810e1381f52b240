"""schemalens ask: answer a question about an indexed source.

Usage:
  schemalens ask --source sales "What does GetOrderTotal do?"
  schemalens ask --source sales --conversation chat.json "Which tables does it read?"

With --conversation the turn history and running summary are loaded from and
written back to the given JSON file, so follow-up questions keep their context.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from schemalens.cli.common import console, db_path, load_cfg_or_exit
from schemalens.cli.errors import (
    err_conversation_file,
    err_for_kind,
    err_no_db,
    err_source_not_found,
)
from schemalens.factory import (
    create_chat_service,
    create_database,
    create_generation_service,
    create_vector_store,
)
from schemalens.rag.events import DoneEvent, ErrorEvent, ThinkingEvent, TokenEvent
from schemalens.rag.models import ChatMessage

_STEP_LABELS = {
    "embedding": "Embedding question",
    "searching": "Searching schema",
    "context": "Building context",
    "generating": "Generating answer",
}


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the schema.")],
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Indexed source id."),
    ],
    conversation: Annotated[
        Path | None,
        typer.Option("--conversation", help="JSON file holding the conversation so far."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (default: .schemalens.db)."),
    ] = None,
    database_name: Annotated[
        str | None,
        typer.Option("--database", help="Database name shown to the model."),
    ] = None,
    show_sources: Annotated[
        bool,
        typer.Option("--sources/--no-sources", help="List the objects used as context."),
    ] = True,
) -> None:
    """Ask a question about an indexed source."""
    cfg = load_cfg_or_exit()
    path = db_path(cfg, db)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    try:
        history, summary = load_conversation(conversation)
    except ValueError as exc:
        console.print(err_conversation_file(str(conversation), str(exc)))
        raise typer.Exit(1) from exc

    database = create_database(cfg, path)
    with database.session() as conn:
        if not create_vector_store(cfg, conn).has_index(source):
            console.print(err_source_not_found(source))
            raise typer.Exit(1)

        service = create_chat_service(cfg, conn)
        for event in service.ask(source, question, history, summary, database_name):
            if isinstance(event, ThinkingEvent):
                model = f" ({event.model})" if event.model else ""
                console.print(f"[dim]… {_STEP_LABELS[event.step]}{model}[/]")
            elif isinstance(event, TokenEvent):
                console.print(event.token, end="", markup=False, highlight=False)
            elif isinstance(event, DoneEvent):
                console.print()
                if show_sources and event.context is not None and event.context.object_names:
                    names = ", ".join(event.context.object_names[:10])
                    more = len(event.context.object_names) - 10
                    suffix = f" (+{more} more)" if more > 0 else ""
                    console.print(f"\n[dim]Context: {names}{suffix}[/]")
                if conversation is not None:
                    save_conversation(conversation, event.history, event.summary)
            elif isinstance(event, ErrorEvent):
                console.print()
                api_base = create_generation_service(cfg).api_base
                console.print(err_for_kind(event.kind, event.message, api_base))
                raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Conversation file
# ---------------------------------------------------------------------------


def load_conversation(path: Path | None) -> tuple[list[ChatMessage], str | None]:
    """Return (history, summary); a missing file is an empty conversation.

    Raises:
        ValueError: The file is not a conversation written by ``save_conversation``.
    """
    if path is None or not path.exists():
        return [], None
    data: Any = json.loads(path.read_text(encoding="utf-8") or "{}")
    if not isinstance(data, dict):
        raise ValueError('expected a JSON object with "summary" and "messages"')
    raw_messages = data.get("messages", [])
    if not isinstance(raw_messages, list) or not all(isinstance(m, dict) for m in raw_messages):
        raise ValueError('"messages" must be a list of objects')
    messages = [ChatMessage.from_dict(m) for m in raw_messages]
    summary = data.get("summary") or None
    if summary is not None and not isinstance(summary, str):
        raise ValueError('"summary" must be a string')
    return messages, summary


def save_conversation(path: Path, history: list[ChatMessage], summary: str | None) -> None:
    payload = {"summary": summary, "messages": [m.to_dict() for m in history]}
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
