"""SchemaLens rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from schemalens.cli.errors import err_no_db
    console.print(err_no_db(".schemalens.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from schemalens.errors import (
    BudgetExceeded,
    ErrorKind,
    IndexInProgress,
    SchemaLensError,
    SourceNotFound,
    UpstreamUnavailable,
)


def err_unreachable(api_base: str | None) -> str:
    """Model server could not be reached."""
    where = api_base or "the configured provider"
    return (
        f"[red]Error:[/] Cannot reach the model server at {where}.\n"
        "  Start Ollama:  ollama serve\n"
        "  Or point SchemaLens elsewhere:  export SCHEMALENS_API_BASE=http://host:11434"
    )


def err_model_not_pulled(model: str) -> str:
    """Ollama is running but the model is missing."""
    bare = model.split("/", 1)[1] if "/" in model else model
    return (
        f"[red]Error:[/] Model '{bare}' is not available in Ollama.\n"
        f"  Run:  ollama pull {bare}"
    )


def err_no_db(db_path: str = ".schemalens.db") -> str:
    """No index database at the given path."""
    return (
        f"[red]Error:[/] No index database found at '{db_path}'.\n"
        "  Run:  schemalens index --source <id> --schema <dump.json>"
    )


def err_source_not_found(source: str) -> str:
    """Source has no collection in the database."""
    return (
        f"[yellow]Source not found:[/] '{source}' has not been indexed.\n"
        f"  Run:  schemalens index --source {source} --schema <dump.json>\n"
        "  Or:   schemalens status  to see all indexed sources."
    )


def err_budget_exceeded(estimated: int, budget: int) -> str:
    """Conversation no longer fits in the model's context window."""
    return (
        f"[red]Error:[/] Conversation is too long for the model "
        f"(~{estimated:,} of {budget:,} tokens).\n"
        "  Start a new conversation:  delete the --conversation file or pass a new one."
    )


def err_index_in_progress(source: str) -> str:
    return (
        f"[yellow]Busy:[/] Source '{source}' is already being indexed.\n"
        "  Wait for it to finish, or cancel it first."
    )


def err_schema_file(path: str, reason: str) -> str:
    """Metadata dump missing or unreadable."""
    return (
        f"[red]Error:[/] Cannot read schema dump '{path}': {reason}\n"
        "  Provide a .json or .yaml file with tables, views, procedures and functions."
    )


def err_conversation_file(path: str, reason: str) -> str:
    """--conversation file exists but cannot be loaded."""
    return (
        f"[red]Error:[/] Cannot load conversation file '{path}': {reason}\n"
        f"  Fix the file, or delete it to start a new conversation:  rm {path}"
    )


def err_config(message: str) -> str:
    return f"[red]Config error:[/] {message}"


def err_for_exception(exc: SchemaLensError) -> str:
    """Map a structured error to its actionable message."""
    if isinstance(exc, UpstreamUnavailable):
        return err_unreachable(exc.api_base)
    if isinstance(exc, BudgetExceeded):
        return err_budget_exceeded(exc.estimated_tokens, exc.budget)
    if isinstance(exc, SourceNotFound):
        return err_source_not_found(exc.source_id)
    if isinstance(exc, IndexInProgress):
        return err_index_in_progress(exc.source_id)
    if exc.kind is ErrorKind.CANCELLED:
        return "[yellow]Cancelled.[/] The previous index was left unchanged."
    if exc.kind is ErrorKind.MALFORMED_RESPONSE:
        return (
            f"[red]Error:[/] The model returned an unexpected response: {exc.message}\n"
            "  Check the configured model with:  schemalens check"
        )
    return f"[red]Error:[/] {exc.message}"


def err_for_kind(kind: ErrorKind, message: str, api_base: str | None = None) -> str:
    """Same as err_for_exception, for errors reported as chat events."""
    if kind is ErrorKind.UNREACHABLE:
        return err_unreachable(api_base)
    if kind is ErrorKind.BUDGET_EXCEEDED:
        return (
            f"[red]Error:[/] {message}\n"
            "  Start a new conversation:  delete the --conversation file or pass a new one."
        )
    return f"[red]Error:[/] {message}"
