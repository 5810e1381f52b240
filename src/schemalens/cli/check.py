"""schemalens check: verify the model server and configured models."""

from __future__ import annotations

import typer
from rich.table import Table

from schemalens.cli.common import console, load_cfg_or_exit
from schemalens.cli.errors import err_model_not_pulled, err_unreachable
from schemalens.factory import create_embedding_service, create_generation_service


def check_cmd() -> None:
    """Check that the model server is up and both models are available."""
    cfg = load_cfg_or_exit()
    generator = create_generation_service(cfg)
    embedder = create_embedding_service(cfg)

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Status", width=3)
    table.add_column("Check")
    table.add_column("Detail", style="dim")

    problems: list[str] = []

    if generator.is_available():
        table.add_row("[green]✓[/]", "Model server", generator.api_base or "provider default")
    else:
        table.add_row("[red]✗[/]", "Model server", generator.api_base or "provider default")
        problems.append(err_unreachable(generator.api_base))

    if not problems:
        for label, service in (("Generation model", generator), ("Embedding model", embedder)):
            if service.is_model_pulled():
                table.add_row("[green]✓[/]", label, service.model)
            else:
                table.add_row("[red]✗[/]", label, service.model)
                problems.append(err_model_not_pulled(service.model))

        if generator.is_model_pulled():
            table.add_row("[green]✓[/]", "Context window", f"{generator.context_length():,} tokens")

    console.print(table)
    for message in problems:
        console.print(message)
    if problems:
        raise typer.Exit(1)
