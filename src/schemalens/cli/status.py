"""schemalens status: indexed sources and their chunk counts."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from schemalens.cli.common import console, db_path, load_cfg_or_exit
from schemalens.cli.errors import err_no_db, err_source_not_found
from schemalens.config import SchemaLensConfig
from schemalens.factory import create_database, create_vector_store


def status_cmd(
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Show a single source."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (default: .schemalens.db)."),
    ] = None,
) -> None:
    """Show indexed sources and what each index contains."""
    cfg = load_cfg_or_exit()
    path = db_path(cfg, db)

    _show_config_panel(path, cfg)

    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    with create_database(cfg, path).session() as conn:
        store = create_vector_store(cfg, conn)
        sources = store.list_sources()
        if source is not None:
            if source not in sources:
                console.print(err_source_not_found(source))
                raise typer.Exit(1)
            sources = [source]

        if not sources:
            console.print(
                Panel(
                    "[dim]No sources indexed yet.[/]\n"
                    "  Run:  schemalens index --source <id> --schema <dump.json>",
                    title="[bold]Index[/]",
                    expand=False,
                )
            )
            return

        table = Table(title="Index", title_justify="left")
        table.add_column("Source", style="bold", no_wrap=True)
        table.add_column("Chunks", justify="right")
        table.add_column("Tables", justify="right")
        table.add_column("Views", justify="right")
        table.add_column("Procs", justify="right")
        table.add_column("Functions", justify="right")
        table.add_column("Summarized", justify="right")
        table.add_column("Embedded", justify="right")
        table.add_column("Last indexed", style="dim")
        for sid in sources:
            s = store.stats(sid)
            table.add_row(
                sid,
                f"{s.total_chunks:,}",
                str(s.table_chunks),
                str(s.view_chunks),
                str(s.sp_chunks),
                str(s.function_chunks),
                str(s.chunks_with_summary),
                str(s.chunks_with_embedding),
                (s.last_indexed_at or "")[:16],
            )
        console.print(table)


def _show_config_panel(path: Path, cfg: SchemaLensConfig) -> None:
    db_info = f"{path}"
    if path.exists():
        size_mb = path.stat().st_size / (1024 * 1024)
        db_info = f"{path} ({size_mb:.1f} MB)"
    lines = [
        f"Database:    {db_info}",
        f"Generation:  {cfg.generation.model}",
        f"Embedding:   {cfg.embedding.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]SchemaLens[/]", expand=False))
