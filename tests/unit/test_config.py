"""Tests for the SchemaLens config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from schemalens.config import ConfigError, SchemaLensConfig, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "SCHEMALENS_GENERATION_MODEL",
        "SCHEMALENS_EMBEDDING_MODEL",
        "SCHEMALENS_API_BASE",
        "SCHEMALENS_DB",
    ):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")

    assert isinstance(cfg, SchemaLensConfig)
    assert cfg.generation.model == "ollama/llama3.1:8b"
    assert cfg.generation.api_base is None
    assert cfg.generation.context_length is None
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.embedding.batch_size == 32
    assert cfg.indexing.concurrency == 5
    assert cfg.indexing.ann_min_rows == 256
    assert cfg.retrieval.top_k == 30
    assert cfg.retrieval.rrf_k == 60
    assert cfg.retrieval.broad_limit == 1_000
    assert cfg.conversation.summarize_ratio == 0.9
    assert cfg.conversation.first_keep == 10
    assert cfg.conversation.subsequent_keep == 5
    assert cfg.storage.db == ".schemalens.db"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_config_sets_models(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"generation": {"model": "ollama/qwen2.5:7b"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)

    assert cfg.generation.model == "ollama/qwen2.5:7b"
    assert cfg.embedding.model == "ollama/nomic-embed-text"


def test_project_config_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(
        global_path,
        {"generation": {"model": "ollama/qwen2.5:7b", "context_length": 4096}},
    )
    _write_yaml(
        tmp_path / "schemalens.yaml",
        {
            "generation": {"model": "ollama/llama3.1:70b"},
            "retrieval": {"top_k": 12},
            "storage": {"db": "index/sales.db"},
        },
    )

    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)

    assert cfg.generation.model == "ollama/llama3.1:70b"
    # deep merge keeps keys the project file does not set
    assert cfg.generation.context_length == 4096
    assert cfg.retrieval.top_k == 12
    assert cfg.retrieval.rrf_k == 60
    assert cfg.storage.db == "index/sales.db"


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "schemalens.yaml", {"embedding": {"model": "ollama/mxbai-embed-large"}})
    monkeypatch.setenv("SCHEMALENS_EMBEDDING_MODEL", "openai/text-embedding-3-small")
    monkeypatch.setenv("SCHEMALENS_GENERATION_MODEL", "openai/gpt-4o-mini")
    monkeypatch.setenv("SCHEMALENS_API_BASE", "http://gpu-box:11434")
    monkeypatch.setenv("SCHEMALENS_DB", "/data/schemalens.db")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.generation.model == "openai/gpt-4o-mini"
    assert cfg.generation.api_base == "http://gpu-box:11434"
    assert cfg.embedding.api_base == "http://gpu-box:11434"
    assert cfg.storage.db == "/data/schemalens.db"


def test_empty_section_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "schemalens.yaml").write_text("conversation:\n", encoding="utf-8")
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.conversation.first_keep == 10


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "key",
    ["api_key", "openai_api_key", "password", "auth_token", "credentials"],
)
def test_global_config_rejects_credentials(tmp_path: Path, key: str) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"generation": {"model": "ollama/x", key: "secret-value"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_path)


def test_global_config_allows_token_like_settings(tmp_path: Path) -> None:
    global_path = tmp_path / "global" / "config.yaml"
    _write_yaml(global_path, {"conversation": {"max_tokens": 100, "token_budget": 4096}})
    cfg = load_config(project_dir=tmp_path, global_config_path=global_path)
    assert cfg.conversation.summarize_ratio == 0.9


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "schemalens.yaml", {"chunkers": {"size": 10}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert any("Unknown config key 'chunkers'" in str(w.message) for w in caught)


def test_non_mapping_file_rejected(tmp_path: Path) -> None:
    (tmp_path / "schemalens.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "data",
    [
        {"indexing": {"concurrency": 0}},
        {"embedding": {"batch_size": 0}},
        {"conversation": {"summarize_ratio": 1.5}},
        {"retrieval": {"top_k": 0}},
    ],
)
def test_out_of_range_values_rejected(tmp_path: Path, data: dict) -> None:
    _write_yaml(tmp_path / "schemalens.yaml", data)
    with pytest.raises(ConfigError):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
