"""Helpers shared by the CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from schemalens.cli.errors import err_config
from schemalens.config import ConfigError, SchemaLensConfig, load_config

console = Console()


def load_cfg_or_exit() -> SchemaLensConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def db_path(cfg: SchemaLensConfig, override: Path | None) -> Path:
    """``--db`` wins over ``storage.db`` from config / SCHEMALENS_DB."""
    return override if override is not None else Path(cfg.storage.db)
