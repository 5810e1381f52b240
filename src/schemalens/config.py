"""SchemaLens configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (SCHEMALENS_GENERATION_MODEL, SCHEMALENS_EMBEDDING_MODEL,
     SCHEMALENS_API_BASE, SCHEMALENS_DB)
  3. Per-project schemalens.yaml  (current directory)
  4. Global ~/.schemalens/config.yaml  (model defaults only, no credentials)
  5. Hardcoded defaults

Global config must never contain API keys or database passwords; use
environment variables instead. All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".schemalens"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "schemalens.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Not token_budget or max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["generation", "embedding", "indexing", "retrieval", "conversation", "storage"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class GenerationCfg:
    """Chat/summary model (schemalens.yaml: generation:)."""

    model: str = "ollama/llama3.1:8b"
    api_base: str | None = None  # None → local Ollama for ollama/* models
    context_length: int | None = None  # None → ask the model server


@dataclass
class EmbeddingCfg:
    """Embedding model (schemalens.yaml: embedding:)."""

    model: str = "ollama/nomic-embed-text"
    api_base: str | None = None  # None → local Ollama for ollama/* models
    batch_size: int = 32


@dataclass
class IndexingCfg:
    """Index run settings (schemalens.yaml: indexing:)."""

    concurrency: int = 5
    ann_min_rows: int = 256


@dataclass
class RetrievalCfg:
    """Retrieval settings (schemalens.yaml: retrieval:)."""

    top_k: int = 30
    rrf_k: int = 60
    candidate_floor: int = 60
    broad_limit: int = 1_000
    excerpt_chars: int = 300


@dataclass
class ConversationCfg:
    """Context window settings (schemalens.yaml: conversation:)."""

    summarize_ratio: float = 0.9
    first_keep: int = 10
    subsequent_keep: int = 5


@dataclass
class StorageCfg:
    """Index database location (schemalens.yaml: storage:)."""

    db: str = ".schemalens.db"


@dataclass
class SchemaLensConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    generation: GenerationCfg = field(default_factory=GenerationCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    conversation: ConversationCfg = field(default_factory=ConversationCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return data


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _opt_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _cfg_from_dict(data: dict[str, Any]) -> SchemaLensConfig:
    """Build a *SchemaLensConfig* from a merged raw YAML dict."""
    cfg = SchemaLensConfig()

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            api_base=g.get("api_base", cfg.generation.api_base),
            context_length=_opt_int(g.get("context_length", cfg.generation.context_length)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            api_base=e.get("api_base", cfg.embedding.api_base),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "indexing" in data:
        i = data["indexing"] or {}
        cfg.indexing = IndexingCfg(
            concurrency=int(i.get("concurrency", cfg.indexing.concurrency)),
            ann_min_rows=int(i.get("ann_min_rows", cfg.indexing.ann_min_rows)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            rrf_k=int(r.get("rrf_k", cfg.retrieval.rrf_k)),
            candidate_floor=int(r.get("candidate_floor", cfg.retrieval.candidate_floor)),
            broad_limit=int(r.get("broad_limit", cfg.retrieval.broad_limit)),
            excerpt_chars=int(r.get("excerpt_chars", cfg.retrieval.excerpt_chars)),
        )

    if "conversation" in data:
        c = data["conversation"] or {}
        cfg.conversation = ConversationCfg(
            summarize_ratio=float(c.get("summarize_ratio", cfg.conversation.summarize_ratio)),
            first_keep=int(c.get("first_keep", cfg.conversation.first_keep)),
            subsequent_keep=int(c.get("subsequent_keep", cfg.conversation.subsequent_keep)),
        )

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(db=str(s.get("db", cfg.storage.db)))

    _validate(cfg)
    return cfg


def _validate(cfg: SchemaLensConfig) -> None:
    if cfg.indexing.concurrency < 1:
        raise ConfigError("indexing.concurrency must be at least 1.")
    if cfg.embedding.batch_size < 1:
        raise ConfigError("embedding.batch_size must be at least 1.")
    if not 0 < cfg.conversation.summarize_ratio <= 1:
        raise ConfigError("conversation.summarize_ratio must be between 0 and 1.")
    if cfg.retrieval.top_k < 1:
        raise ConfigError("retrieval.top_k must be at least 1.")


def _apply_env_overrides(cfg: SchemaLensConfig) -> SchemaLensConfig:
    """Apply SCHEMALENS_* environment variable overrides."""
    if model := os.environ.get("SCHEMALENS_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("SCHEMALENS_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if api_base := os.environ.get("SCHEMALENS_API_BASE"):
        cfg.generation.api_base = api_base
        cfg.embedding.api_base = api_base
    if db := os.environ.get("SCHEMALENS_DB"):
        cfg.storage.db = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> SchemaLensConfig:
    """Load and return a merged *SchemaLensConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *schemalens.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If the global config contains credential-like fields or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)
