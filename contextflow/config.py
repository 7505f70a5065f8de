"""Shared contextflow configuration utilities.

Reads ``~/.contextflow/configuration.json`` (or the file named by the
``CONTEXTFLOW_CONFIG`` environment variable) so the CLI, the engine and tests
share one implementation.

Example configuration::

    {
      "llm": {"provider": "anthropic", "model": "claude-sonnet-4-20250514",
              "temperature": 0.2, "max_tokens": 800,
              "api_key_env_var": "ANTHROPIC_API_KEY"},
      "pricing": {"openai": {"gpt-5": {"input": 0.01, "output": 0.04}}},
      "search": {"provider": "weaviate", "endpoint": "http://localhost:8080",
                 "class_name": "Document"},
      "mock_mode": false,
      "max_comparison_graphs": 10,
      "storage_path": "~/.contextflow/storage",
      "broadcast": {"url": "https://realtime.example/broadcast",
                    "headers": {"Authorization": "Bearer ..."}}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
MAX_COMPARISON_GRAPHS = 10

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CONTEXTFLOW_CONFIG_FILE = Path.home() / ".contextflow" / "configuration.json"


def get_config_path() -> Path:
    override = os.environ.get("CONTEXTFLOW_CONFIG")
    return Path(override).expanduser() if override else CONTEXTFLOW_CONFIG_FILE


def get_contextflow_config() -> dict[str, Any]:
    """Load configuration; a missing or unreadable file yields ``{}``."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _llm_section() -> dict[str, Any]:
    return get_contextflow_config().get("llm", {}) or {}


def get_preferred_provider() -> str:
    return _llm_section().get("provider", DEFAULT_PROVIDER)


def get_preferred_model() -> str:
    return _llm_section().get("model", DEFAULT_MODEL)


def get_temperature() -> float:
    return float(_llm_section().get("temperature", DEFAULT_TEMPERATURE))


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return int(_llm_section().get("max_tokens", DEFAULT_MAX_TOKENS))


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    api_key_env_var = _llm_section().get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_api_base() -> str | None:
    return _llm_section().get("api_base")


def is_mock_mode() -> bool:
    """Mock mode from CONTEXTFLOW_MOCK_MODE, else from the config file."""
    env = os.environ.get("CONTEXTFLOW_MOCK_MODE")
    if env is not None:
        return env.strip().lower() in ("1", "true", "yes", "on")
    return bool(get_contextflow_config().get("mock_mode", False))


def get_max_comparison_graphs() -> int:
    return int(get_contextflow_config().get("max_comparison_graphs", MAX_COMPARISON_GRAPHS))


def get_pricing_overrides() -> dict[str, Any]:
    return get_contextflow_config().get("pricing", {}) or {}


def get_search_config() -> dict[str, Any]:
    return get_contextflow_config().get("search", {}) or {}


def get_storage_path() -> Path | None:
    value = get_contextflow_config().get("storage_path")
    return Path(value).expanduser() if value else None


def get_broadcast_config() -> dict[str, Any]:
    """The ``broadcast`` section: ``{"url": ..., "headers": {...}}`` for HTTP event delivery."""
    return get_contextflow_config().get("broadcast", {}) or {}


# ---------------------------------------------------------------------------
# RuntimeConfig – shared by the engine and the CLI
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Engine configuration loaded from the contextflow configuration file."""

    provider: str = field(default_factory=get_preferred_provider)
    model: str = field(default_factory=get_preferred_model)
    temperature: float = field(default_factory=get_temperature)
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=get_api_base)
    mock_mode: bool = field(default_factory=is_mock_mode)
    max_comparison_graphs: int = field(default_factory=get_max_comparison_graphs)
    pricing: dict[str, Any] = field(default_factory=get_pricing_overrides)
    search: dict[str, Any] = field(default_factory=get_search_config)
    storage_path: Path | None = field(default_factory=get_storage_path)
    broadcast: dict[str, Any] = field(default_factory=get_broadcast_config)
