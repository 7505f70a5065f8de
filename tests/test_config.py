"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from contextflow import config
from contextflow.config import RuntimeConfig, get_contextflow_config


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("CONTEXTFLOW_CONFIG", str(path))

    def _write(data):
        path.write_text(json.dumps(data))
        return path

    return _write


class TestConfigFile:
    def test_missing_file_is_empty(self):
        assert get_contextflow_config() == {}

    def test_invalid_json_is_empty(self, config_file):
        path = config_file({})
        path.write_text("{broken")

        assert get_contextflow_config() == {}

    def test_defaults(self):
        cfg = RuntimeConfig()

        assert cfg.provider == config.DEFAULT_PROVIDER
        assert cfg.model == config.DEFAULT_MODEL
        assert cfg.max_tokens == config.DEFAULT_MAX_TOKENS
        assert cfg.max_comparison_graphs == 10
        assert cfg.mock_mode is False
        assert cfg.storage_path is None

    def test_values_from_file(self, config_file, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-test")
        config_file(
            {
                "llm": {
                    "provider": "anthropic",
                    "model": "claude-sonnet-4-20250514",
                    "temperature": 0.2,
                    "max_tokens": 800,
                    "api_key_env_var": "MY_KEY",
                },
                "pricing": {"openai": {"gpt-5": {"input": 0.01, "output": 0.04}}},
                "mock_mode": True,
                "max_comparison_graphs": 4,
                "storage_path": "~/cf-storage",
            }
        )

        cfg = RuntimeConfig()

        assert cfg.provider == "anthropic"
        assert cfg.model == "claude-sonnet-4-20250514"
        assert cfg.temperature == 0.2
        assert cfg.max_tokens == 800
        assert cfg.api_key == "sk-test"
        assert cfg.mock_mode is True
        assert cfg.max_comparison_graphs == 4
        assert cfg.pricing["openai"]["gpt-5"]["output"] == 0.04
        assert cfg.storage_path == Path("~/cf-storage").expanduser()


class TestMockModeFlag:
    @pytest.mark.parametrize("value,expected", [("1", True), ("true", True), ("0", False), ("no", False)])
    def test_env_overrides_file(self, config_file, monkeypatch, value, expected):
        config_file({"mock_mode": not expected})
        monkeypatch.setenv("CONTEXTFLOW_MOCK_MODE", value)

        assert config.is_mock_mode() is expected
