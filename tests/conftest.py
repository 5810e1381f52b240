"""Shared pytest fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from schemalens.db.connection import Database
from schemalens.db.migrations import run_migrations


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with migrations applied, closed after test."""
    db = Database(tmp_path / ".schemalens.db")
    conn = db.connect()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def sales_schema() -> dict[str, Any]:
    """Metadata dump with three tables and one stored procedure (camelCase keys)."""
    return {
        "databaseName": "Sales",
        "crawledAt": "2024-05-01T12:00:00+00:00",
        "tables": [
            {
                "schema": "dbo",
                "name": "Customers",
                "columns": [
                    {"name": "CustomerId", "dataType": "int", "isPrimaryKey": True},
                    {"name": "Name", "dataType": "nvarchar(100)"},
                    {"name": "Email", "dataType": "nvarchar(255)", "nullable": True},
                ],
            },
            {
                "schema": "dbo",
                "name": "Orders",
                "columns": [
                    {"name": "OrderId", "dataType": "int", "isPrimaryKey": True},
                    {
                        "name": "CustomerId",
                        "dataType": "int",
                        "isForeignKey": True,
                        "referencedTable": "Customers",
                        "referencedColumn": "CustomerId",
                    },
                    {"name": "Total", "dataType": "decimal(10,2)"},
                ],
            },
            {
                "schema": "dbo",
                "name": "Invoices",
                "columns": [
                    {"name": "InvoiceId", "dataType": "int", "isPrimaryKey": True},
                    {"name": "OrderId", "dataType": "int"},
                ],
            },
        ],
        "views": [],
        "storedProcedures": [
            {
                "schema": "dbo",
                "name": "GetOrderTotal",
                "definition": "SELECT SUM(Total) FROM dbo.Orders WHERE OrderId = @OrderId",
                "parameters": [{"name": "@OrderId", "dataType": "int", "direction": "in"}],
            }
        ],
        "functions": [],
    }


@pytest.fixture
def sales_dump(tmp_path: Path, sales_schema: dict[str, Any]) -> Path:
    path = tmp_path / "sales.json"
    path.write_text(json.dumps(sales_schema), encoding="utf-8")
    return path
