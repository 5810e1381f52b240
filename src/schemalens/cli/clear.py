"""schemalens clear: delete the index of one source.

Usage:
  schemalens clear --source sales
  schemalens clear --source sales --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from schemalens.cli.common import console, db_path, load_cfg_or_exit
from schemalens.cli.errors import err_no_db, err_source_not_found
from schemalens.factory import create_database, create_vector_store


def clear_cmd(
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Source id whose index is deleted."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (default: .schemalens.db)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete every chunk, embedding and search index of a source."""
    cfg = load_cfg_or_exit()
    path = db_path(cfg, db)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    with create_database(cfg, path).session() as conn:
        store = create_vector_store(cfg, conn)
        if not store.has_index(source):
            console.print(err_source_not_found(source))
            raise typer.Exit(0)

        stats = store.stats(source)
        console.print(f"\nClear index: [bold]{source}[/]")
        console.print(
            "  "
            + "  |  ".join(f"{t}: {n}" for t, n in stats.by_type().items())
            + f"  |  Total: {stats.total_chunks}"
        )

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        store.clear(source)
        console.print(f"\n[green]✓[/] Cleared: {source} ({stats.total_chunks} chunks deleted)")
