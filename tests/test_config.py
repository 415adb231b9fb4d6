"""Tests for parley/config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from parley.config.config_loader import AppConfig, load_config


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "provider": "openai",
            "model_id": "gpt-4o-mini",
            "max_response_length": 80,
            "initial_quota": 12,
            "backup_dir": "./saves",
        },
        "providers": {
            "openai": {
                "sdk": "openai",
                "api_key_env": "TEST_PARLEY_OPENAI_KEY",
                "timeout_sec": 60,
                "max_tokens": 1000,
            },
            "ollama": {
                "sdk": "ollama",
                "api_key_env": "TEST_PARLEY_OLLAMA_KEY",
                "api_key_optional": True,
                "base_url": "http://127.0.0.1:11434/v1",
                "timeout_sec": 120,
                "max_tokens": 1000,
            },
        },
        "facilitator": {"name": "Referee", "temperature": 0.2},
        "bots": [
            {"uid": "a-1", "name": "A", "system_prompt": "Be A.", "temperature": 0.4},
            {"uid": "b-1", "name": "B", "system_prompt": "Be B."},
        ],
        "prompts": {
            "facilitator": "CONTINUE or END",
            "facilitator_question": "Answer. {roster}",
            "bot_turn": "You are {bot_name}",
            "quota_open": "open",
            "quota_closing": "closing",
            "summary_request": "summarize",
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)
    assert config.defaults.initial_quota == 12
    assert config.defaults.history_limit == 10
    assert config.defaults.backup_dir == Path("./saves")
    assert config.facilitator.name == "Referee"


def test_templates_loaded_with_default_temperature(minimal_settings):
    config = load_config(minimal_settings)
    assert [t.uid for t in config.templates] == ["a-1", "b-1"]
    assert config.templates[1].temperature == 0.7


def test_shared_settings_from_defaults(minimal_settings):
    settings = load_config(minimal_settings).defaults.shared_settings()
    assert settings.provider == "openai"
    assert settings.max_response_length == 80


def test_openai_needs_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_PARLEY_OPENAI_KEY", raising=False)
    config = load_config(minimal_settings)
    assert "openai" not in config.available_providers
    assert "ollama" in config.available_providers


def test_openai_available_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_PARLEY_OPENAI_KEY", "sk-test")
    config = load_config(minimal_settings)
    assert config.available_providers == {"openai", "ollama"}
    assert config.providers["ollama"].base_url == "http://127.0.0.1:11434/v1"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_bundled_settings_load():
    config = load_config()
    assert [t.name for t in config.templates] == ["Axiom", "Eris"]
    assert "{roster}" in config.prompts.facilitator_question
    assert "{responding_to}" in config.prompts.bot_turn
    assert "ollama" in config.available_providers
