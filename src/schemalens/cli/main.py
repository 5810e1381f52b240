"""SchemaLens CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from schemalens.cli.ask import ask_cmd
from schemalens.cli.check import check_cmd
from schemalens.cli.clear import clear_cmd
from schemalens.cli.index import index_cmd
from schemalens.cli.status import status_cmd
from schemalens.logging import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("schemalens")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"schemalens {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="schemalens",
    help=(
        "SchemaLens: ask questions about a database schema.\n\n"
        "  schemalens index  Crawl a schema dump, summarize and embed every object.\n"
        "  schemalens ask    Answer a question from the indexed schema."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging on stderr."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """SchemaLens: ask questions about a database schema."""
    configure_logging(verbose)


app.command("index")(index_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("clear")(clear_cmd)
app.command("check")(check_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed SchemaLens version."""
    typer.echo(f"schemalens {_installed_version()}")


if __name__ == "__main__":
    app()
