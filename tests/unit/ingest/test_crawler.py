"""Tests for the metadata-dump crawler."""

from __future__ import annotations

import pytest
import yaml

from schemalens.errors import IndexCancelled
from schemalens.ingest.crawler import ConnectionConfig, JsonSchemaCrawler
from schemalens.ingest.progress import CancelToken, CrawlPhase


def _connection(path, source_id="sales", database=""):
    return ConnectionConfig(source_id=source_id, location=str(path), database=database)


def test_crawl_json_dump(sales_dump):
    schema = JsonSchemaCrawler().crawl(_connection(sales_dump))
    assert schema.source_id == "sales"
    assert schema.database_name == "Sales"
    assert len(schema.tables) == 3
    assert len(schema.procedures) == 1


def test_crawl_yaml_dump(tmp_path, sales_schema):
    path = tmp_path / "sales.yaml"
    path.write_text(yaml.safe_dump(sales_schema), encoding="utf-8")
    schema = JsonSchemaCrawler().crawl(_connection(path))
    assert [t.name for t in schema.tables] == ["Customers", "Orders", "Invoices"]


def test_database_name_falls_back_to_connection_then_file(tmp_path):
    path = tmp_path / "warehouse.json"
    path.write_text('{"tables": []}', encoding="utf-8")
    assert JsonSchemaCrawler().crawl(_connection(path, database="DW")).database_name == "DW"
    assert JsonSchemaCrawler().crawl(_connection(path)).database_name == "warehouse"


def test_progress_phases_in_order(sales_dump):
    events = []
    JsonSchemaCrawler().crawl(_connection(sales_dump), on_progress=events.append)

    assert [(e.phase, e.current, e.total) for e in events] == [
        (CrawlPhase.CONNECTING, 0, 1),
        (CrawlPhase.CONNECTING, 1, 1),
        (CrawlPhase.CRAWLING_TABLES, 1, 3),
        (CrawlPhase.CRAWLING_TABLES, 2, 3),
        (CrawlPhase.CRAWLING_TABLES, 3, 3),
        (CrawlPhase.CRAWLING_PROCEDURES, 1, 1),
    ]
    assert events[2].current_object == "dbo.Customers"
    assert all(e.source_id == "sales" for e in events)


def test_unsupported_suffix(tmp_path):
    path = tmp_path / "schema.txt"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported schema dump"):
        JsonSchemaCrawler().crawl(_connection(path))


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "schema.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        JsonSchemaCrawler().crawl(_connection(path))


@pytest.mark.parametrize("text", ["[]", '""', "0", "false"])
def test_empty_non_mapping_top_level_rejected(tmp_path, text):
    path = tmp_path / "schema.json"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        JsonSchemaCrawler().crawl(_connection(path))


def test_empty_file_is_empty_schema(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text("", encoding="utf-8")
    schema = JsonSchemaCrawler().crawl(_connection(path))
    assert schema.object_count == 0


def test_cancelled_before_start(sales_dump):
    token = CancelToken()
    token.cancel()
    events = []
    with pytest.raises(IndexCancelled):
        JsonSchemaCrawler().crawl(_connection(sales_dump), on_progress=events.append, cancel=token)
    assert events == []


def test_cancelled_mid_crawl(sales_dump):
    token = CancelToken()
    events = []

    def on_progress(event):
        events.append(event)
        if event.phase is CrawlPhase.CRAWLING_TABLES:
            token.cancel()

    with pytest.raises(IndexCancelled):
        JsonSchemaCrawler().crawl(_connection(sales_dump), on_progress=on_progress, cancel=token)
    assert [e.phase for e in events].count(CrawlPhase.CRAWLING_TABLES) == 1
