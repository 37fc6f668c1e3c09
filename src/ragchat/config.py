"""ragchat configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (RAGCHAT_CHAT_MODEL, RAGCHAT_EMBEDDING_MODEL, RAGCHAT_DB)
  3. Per-project ragchat.yaml  (working directory)
  4. Global ~/.ragchat/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragchat"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragchat.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chat", "retrieval", "rerank", "web_search", "chunkers", "storage"]
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
class EmbeddingCfg:
    """Embedding model configuration (ragchat.yaml: embedding:)."""

    model: str = "gemini/text-embedding-004"


@dataclass
class ChatCfg:
    """Answer generation configuration (ragchat.yaml: chat:).

    Attributes:
        model: LiteLLM chat model string (provider/model format).
        temperature: Sampling temperature for answers.
        max_tokens: Maximum output tokens per answer.
        history_turns: Number of most recent messages sent as history.
        timeout: Per provider call timeout in seconds.
        title_length: Characters of the first message used as a session title.
    """

    model: str = "groq/llama-3.3-70b-versatile"
    temperature: float = 0.6
    max_tokens: int = 4096
    history_turns: int = 12
    timeout: float = 60.0
    title_length: int = 30


@dataclass
class RetrievalCfg:
    """Hybrid retrieval weights and thresholds (ragchat.yaml: retrieval:)."""

    vector_weight: float = 0.7
    lexical_weight: float = 0.3
    lexical_increment: float = 0.15
    min_score: float = 0.3
    top_k: int = 15            # candidates handed to the reranker
    top_k_no_rerank: int = 5   # final context size when reranking is off
    min_word_length: int = 3


@dataclass
class RerankCfg:
    """LLM reranking stage (ragchat.yaml: rerank:)."""

    enabled: bool = True
    model: str = "gemini/gemini-2.0-flash"
    top_n: int = 5


@dataclass
class WebSearchCfg:
    """Live web grounding (ragchat.yaml: web_search:)."""

    enabled: bool = False
    model: str = "openai/gpt-4o-search-preview"
    context_size: str = "medium"  # low | medium | high


@dataclass
class FixedWindowCfg:
    window: int = 1000
    overlap: int = 200


@dataclass
class StructuredCfg:
    max_size: int = 1500


@dataclass
class ChunkersCfg:
    """Chunker sizes in characters (ragchat.yaml: chunkers:)."""

    fixed: FixedWindowCfg = field(default_factory=FixedWindowCfg)
    structured: StructuredCfg = field(default_factory=StructuredCfg)


@dataclass
class StorageCfg:
    db: str = ".ragchat.db"


@dataclass
class RagChatConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    rerank: RerankCfg = field(default_factory=RerankCfg)
    web_search: WebSearchCfg = field(default_factory=WebSearchCfg)
    chunkers: ChunkersCfg = field(default_factory=ChunkersCfg)
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
                        f"  API keys must be set via environment variables, not config files.\n"
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
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RagChatConfig) -> None:
    """Reject numeric settings the pipeline cannot work with."""
    fixed = cfg.chunkers.fixed
    if fixed.window < 1:
        raise ConfigError(f"chunkers.fixed.window must be >= 1, got {fixed.window}")
    if not 0 <= fixed.overlap < fixed.window:
        raise ConfigError(
            f"chunkers.fixed.overlap must be in [0, window), got {fixed.overlap}"
        )
    if cfg.chunkers.structured.max_size < 1:
        raise ConfigError("chunkers.structured.max_size must be >= 1")

    r = cfg.retrieval
    if r.vector_weight < 0 or r.lexical_weight < 0 or r.lexical_increment < 0:
        raise ConfigError("retrieval weights and increments must be non-negative")
    if r.top_k < 1 or r.top_k_no_rerank < 1:
        raise ConfigError("retrieval.top_k values must be >= 1")
    if cfg.rerank.top_n < 1:
        raise ConfigError("rerank.top_n must be >= 1")
    if cfg.chat.history_turns < 0:
        raise ConfigError("chat.history_turns must be >= 0")
    if cfg.web_search.context_size not in ("low", "medium", "high"):
        raise ConfigError(
            f"web_search.context_size must be low, medium or high, "
            f"got '{cfg.web_search.context_size}'"
        )


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


def _cfg_from_dict(data: dict[str, Any]) -> RagChatConfig:
    """Build a *RagChatConfig* from a merged raw YAML dict."""
    cfg = RagChatConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(model=str(e.get("model", cfg.embedding.model)))

    if "chat" in data:
        c = data["chat"] or {}
        cfg.chat = ChatCfg(
            model=str(c.get("model", cfg.chat.model)),
            temperature=float(c.get("temperature", cfg.chat.temperature)),
            max_tokens=int(c.get("max_tokens", cfg.chat.max_tokens)),
            history_turns=int(c.get("history_turns", cfg.chat.history_turns)),
            timeout=float(c.get("timeout", cfg.chat.timeout)),
            title_length=int(c.get("title_length", cfg.chat.title_length)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            vector_weight=float(r.get("vector_weight", d.vector_weight)),
            lexical_weight=float(r.get("lexical_weight", d.lexical_weight)),
            lexical_increment=float(r.get("lexical_increment", d.lexical_increment)),
            min_score=float(r.get("min_score", d.min_score)),
            top_k=int(r.get("top_k", d.top_k)),
            top_k_no_rerank=int(r.get("top_k_no_rerank", d.top_k_no_rerank)),
            min_word_length=int(r.get("min_word_length", d.min_word_length)),
        )

    if "rerank" in data:
        rr = data["rerank"] or {}
        cfg.rerank = RerankCfg(
            enabled=bool(rr.get("enabled", cfg.rerank.enabled)),
            model=str(rr.get("model", cfg.rerank.model)),
            top_n=int(rr.get("top_n", cfg.rerank.top_n)),
        )

    if "web_search" in data:
        w = data["web_search"] or {}
        cfg.web_search = WebSearchCfg(
            enabled=bool(w.get("enabled", cfg.web_search.enabled)),
            model=str(w.get("model", cfg.web_search.model)),
            context_size=str(w.get("context_size", cfg.web_search.context_size)),
        )

    if "chunkers" in data:
        ch = data["chunkers"] or {}
        fixed = ch.get("fixed", {}) or {}
        structured = ch.get("structured", {}) or {}
        cfg.chunkers = ChunkersCfg(
            fixed=FixedWindowCfg(
                window=int(fixed.get("window", cfg.chunkers.fixed.window)),
                overlap=int(fixed.get("overlap", cfg.chunkers.fixed.overlap)),
            ),
            structured=StructuredCfg(
                max_size=int(structured.get("max_size", cfg.chunkers.structured.max_size)),
            ),
        )

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(db=str(s.get("db", cfg.storage.db)))

    return cfg


def _apply_env_overrides(cfg: RagChatConfig) -> RagChatConfig:
    """Apply RAGCHAT_* environment variable overrides."""
    if model := os.environ.get("RAGCHAT_CHAT_MODEL"):
        cfg.chat.model = model
    if model := os.environ.get("RAGCHAT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("RAGCHAT_DB"):
        cfg.storage.db = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagChatConfig:
    """Load and return a merged *RagChatConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *ragchat.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RagChatConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            numeric setting is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
