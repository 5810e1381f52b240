"""Fixtures for CLI tests: an isolated working directory and a fake model server."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from schemalens.cli.main import app

ANSWER_TOKENS = ["GetOrderTotal ", "sums ", "order totals."]


def _completion(text: str) -> MagicMock:
    mock = MagicMock()
    mock.choices = [MagicMock()]
    mock.choices[0].message.content = text
    return mock


def _stream_part(token: str) -> MagicMock:
    part = MagicMock()
    part.choices = [MagicMock()]
    part.choices[0].delta.content = token
    return part


def fake_completion(**kwargs):
    if kwargs.get("stream"):
        return iter([_stream_part(t) for t in ANSWER_TOKENS])
    return _completion("Summary of the object.")


def fake_embedding(**kwargs):
    response = MagicMock()
    response.data = [{"embedding": [1.0, 0.5, 0.0]} for _ in kwargs["input"]]
    return response


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """CWD with a schemalens.yaml and no global config or env overrides."""
    for name in (
        "SCHEMALENS_GENERATION_MODEL",
        "SCHEMALENS_EMBEDDING_MODEL",
        "SCHEMALENS_API_BASE",
        "SCHEMALENS_DB",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("schemalens.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    (tmp_path / "schemalens.yaml").write_text(
        yaml.dump({"generation": {"context_length": 8192}, "indexing": {"concurrency": 2}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_llm():
    """Patch LiteLLM so summaries, embeddings and chat answers come back canned."""
    with patch(
        "schemalens.rag.llm_client.litellm.completion", side_effect=fake_completion
    ) as completion, patch(
        "schemalens.rag.llm_client.litellm.embedding", side_effect=fake_embedding
    ) as embedding:
        yield completion, embedding


@pytest.fixture
def indexed(workspace: Path, sales_dump: Path, runner: CliRunner, fake_llm) -> Path:
    """Workspace with the sales dump indexed as source 'sales'."""
    result = runner.invoke(app, ["index", "--source", "sales", "--schema", str(sales_dump)])
    assert result.exit_code == 0, result.output
    return workspace
