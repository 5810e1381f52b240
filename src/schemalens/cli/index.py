"""schemalens index: crawl a source, enrich its chunks, replace its index.

Usage:
  schemalens index --source sales --schema sales.json
  schemalens index --source sales --schema sales.yaml --concurrency 2

Ctrl-C cancels the run; the previous index for the source stays in place.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TaskProgressColumn, TextColumn
from rich.table import Table

from schemalens.cli.common import console, db_path, load_cfg_or_exit
from schemalens.cli.errors import err_for_exception, err_schema_file
from schemalens.db.models import IndexStats
from schemalens.errors import IndexCancelled, SchemaLensError
from schemalens.factory import create_database, create_indexer
from schemalens.ingest.crawler import ConnectionConfig
from schemalens.ingest.indexer import IndexJob
from schemalens.ingest.progress import CrawlPhase

_PHASE_LABELS: dict[CrawlPhase, str] = {
    CrawlPhase.CONNECTING: "Reading schema",
    CrawlPhase.CRAWLING_TABLES: "Tables",
    CrawlPhase.CRAWLING_VIEWS: "Views",
    CrawlPhase.CRAWLING_PROCEDURES: "Stored procedures",
    CrawlPhase.CRAWLING_FUNCTIONS: "Functions",
    CrawlPhase.SUMMARIZING: "Summarizing",
    CrawlPhase.EMBEDDING: "Embedding",
    CrawlPhase.STORING: "Storing",
}


def index_cmd(
    source: Annotated[
        str,
        typer.Option("--source", "-s", help="Source id (one index per source)."),
    ],
    schema: Annotated[
        Path,
        typer.Option("--schema", help="Schema metadata dump (.json / .yaml)."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (default: .schemalens.db)."),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-c", min=1, help="Summaries in flight at once."),
    ] = None,
    database_name: Annotated[
        str | None,
        typer.Option("--database", help="Database name shown to the model."),
    ] = None,
) -> None:
    """Index one source from a schema metadata dump."""
    cfg = load_cfg_or_exit()

    if not schema.is_file():
        console.print(err_schema_file(str(schema), "file not found"))
        raise typer.Exit(1)

    database = create_database(cfg, db_path(cfg, db))
    indexer = create_indexer(cfg, database, concurrency=concurrency)
    connection = ConnectionConfig(
        source_id=source,
        label=source,
        location=str(schema),
        database=database_name or "",
    )

    console.print(f"\n[bold]→ {source}[/] [dim]({schema})[/]")
    job = indexer.start(connection)
    try:
        try:
            stats = _drive(job)
        except KeyboardInterrupt:
            job.cancel()
            console.print("[yellow]Cancelling…[/]")
            # The run may still end with its own error if it never saw the cancel.
            stats = job.result()
    except IndexCancelled as exc:
        console.print(err_for_exception(exc))
        raise typer.Exit(130) from exc
    except (ValueError, yaml.YAMLError) as exc:
        console.print(err_schema_file(str(schema), str(exc)))
        raise typer.Exit(1) from exc
    except SchemaLensError as exc:
        console.print(err_for_exception(exc))
        raise typer.Exit(1) from exc

    _print_stats(source, stats)


def _drive(job: IndexJob) -> IndexStats:
    """Render progress events until the job ends; return its stats."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("[dim]{task.fields[current]}[/dim]"),
        transient=True,
        console=console,
    ) as prog:
        tasks: dict[CrawlPhase, TaskID] = {}
        for event in job.events():
            task = tasks.get(event.phase)
            if task is None:
                task = prog.add_task(_PHASE_LABELS[event.phase], total=event.total, current="")
                tasks[event.phase] = task
            prog.update(
                task,
                completed=event.current,
                total=event.total,
                current=event.current_object or "",
            )
    return job.result()


def _print_stats(source: str, stats: IndexStats) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Type", style="bold")
    table.add_column("Chunks", justify="right")
    for object_type, count in stats.by_type().items():
        table.add_row(object_type, str(count))
    console.print(table)
    console.print(
        f"[green]✓[/] Indexed [bold]{source}[/]: {stats.total_chunks} chunks, "
        f"{stats.chunks_with_summary} summarized, {stats.chunks_with_embedding} embedded"
    )
