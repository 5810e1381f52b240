"""Schema crawler contract and the metadata-dump crawler.

Live crawlers (catalog queries per SQL dialect) are external collaborators;
they only need to satisfy ``SchemaCrawler``. ``JsonSchemaCrawler`` replays a
metadata dump from disk and reports the same phases a live crawl would.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml

from schemalens.ingest.progress import (
    CancelToken,
    CrawlPhase,
    ProgressCallback,
    ProgressEvent,
    ignore_progress,
)
from schemalens.schema.models import DatabaseSchema

_DUMP_SUFFIXES = {".json", ".yaml", ".yml"}


@dataclass
class ConnectionConfig:
    """Connection settings handed to a crawler. Secrets travel separately."""

    source_id: str
    label: str = ""
    driver: str = "dump"
    location: str = ""  # host, DSN, or dump file path depending on the driver
    database: str = ""
    options: dict[str, Any] = field(default_factory=dict)


class SchemaCrawler(Protocol):
    def crawl(
        self,
        connection: ConnectionConfig,
        credential: str | None,
        on_progress: ProgressCallback,
        cancel: CancelToken,
    ) -> DatabaseSchema:
        """Return the full schema; raise IndexCancelled if *cancel* fires."""
        ...


class JsonSchemaCrawler:
    """Load ``DatabaseSchema`` from a JSON/YAML metadata dump.

    ``connection.location`` is the dump path. Keys may be snake_case or the
    camelCase used by editor-side exporters.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    def crawl(
        self,
        connection: ConnectionConfig,
        credential: str | None = None,
        on_progress: ProgressCallback = ignore_progress,
        cancel: CancelToken | None = None,
    ) -> DatabaseSchema:
        cancel = cancel or CancelToken()
        sid = connection.source_id

        cancel.raise_if_cancelled()
        on_progress(ProgressEvent(sid, CrawlPhase.CONNECTING, 0, 1, connection.location))
        raw = self._load(Path(connection.location))
        schema = DatabaseSchema.from_dict(raw, source_id=sid)
        if not schema.database_name:
            schema.database_name = connection.database or Path(connection.location).stem
        on_progress(ProgressEvent(sid, CrawlPhase.CONNECTING, 1, 1, connection.location))

        for phase, objects in (
            (CrawlPhase.CRAWLING_TABLES, schema.tables),
            (CrawlPhase.CRAWLING_VIEWS, schema.views),
            (CrawlPhase.CRAWLING_PROCEDURES, schema.procedures),
            (CrawlPhase.CRAWLING_FUNCTIONS, schema.functions),
        ):
            total = len(objects)
            for i, obj in enumerate(objects):
                cancel.raise_if_cancelled()
                on_progress(ProgressEvent(sid, phase, i + 1, total, f"{obj.schema}.{obj.name}"))

        self._logger.info(
            "schema_crawled",
            source_id=sid,
            tables=len(schema.tables),
            views=len(schema.views),
            procedures=len(schema.procedures),
            functions=len(schema.functions),
        )
        return schema

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        """Read the dump; yaml.safe_load also parses JSON."""
        if path.suffix.lower() not in _DUMP_SUFFIXES:
            raise ValueError(
                f"Unsupported schema dump '{path}': expected one of {sorted(_DUMP_SUFFIXES)}"
            )
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Schema dump '{path}' must contain a mapping at the top level.")
        return data
