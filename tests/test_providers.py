"""Tests for parley/providers/ (SDK client mocked)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from parley.config.config_loader import ProviderConfig
from parley.models import Message
from parley.providers.base import ProviderError, as_chat_messages
from parley.providers.ollama import OllamaProvider
from parley.providers.openai_provider import OpenAIProvider


def _completion(content: str | None, tokens: int | None = 7):
    usage = SimpleNamespace(total_tokens=tokens) if tokens is not None else None
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))], usage=usage)


@pytest.fixture
def openai_provider(sample_provider_config, monkeypatch) -> OpenAIProvider:
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
    provider = OpenAIProvider(sample_provider_config)
    provider._client = MagicMock()
    return provider


@pytest.fixture
def ollama_config() -> ProviderConfig:
    return ProviderConfig(
        name="ollama",
        sdk="ollama",
        timeout_sec=30,
        max_tokens=256,
        base_url="http://127.0.0.1:11434/v1",
        base_url_env="TEST_OLLAMA_BASE_URL",
    )


def test_as_chat_messages_keeps_name_hint():
    messages = [
        Message(id="1", role="system", content="rules", timestamp=0),
        Message(id="2", role="user", content="point", timestamp=0, name="bot2", bot_id="bot2"),
    ]
    assert as_chat_messages(messages) == [
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "point", "name": "bot2"},
    ]


def test_missing_key_raises(sample_provider_config, monkeypatch):
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    with pytest.raises(ProviderError, match="Missing API key"):
        OpenAIProvider(sample_provider_config)


async def test_generate_returns_content_and_tokens(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(return_value=_completion("Tea."))
    messages = [Message(id="1", role="user", content="Tea or coffee?", timestamp=0)]

    result = await openai_provider.generate("gpt-4o-mini", messages, 0.3)

    assert result.content == "Tea."
    assert result.tokens == 7
    kwargs = openai_provider._client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 256
    assert kwargs["messages"] == [{"role": "user", "content": "Tea or coffee?"}]


async def test_generate_empty_content_raises(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(return_value=_completion(None))
    with pytest.raises(ProviderError, match="Empty response"):
        await openai_provider.generate("gpt-4o-mini", [], 0.3)


async def test_generate_wraps_sdk_errors(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(side_effect=RuntimeError("503"))
    with pytest.raises(ProviderError, match="API call failed"):
        await openai_provider.generate("gpt-4o-mini", [], 0.3)


async def test_list_models_keeps_gpt_only(openai_provider):
    page = SimpleNamespace(data=[SimpleNamespace(id="gpt-4o"), SimpleNamespace(id="whisper-1")])
    openai_provider._client.models.list = AsyncMock(return_value=page)

    models = await openai_provider.list_models()

    assert [m.id for m in models] == ["gpt-4o"]
    assert models[0].provider == "openai"


async def test_list_models_failure_raises(openai_provider):
    openai_provider._client.models.list = AsyncMock(side_effect=ConnectionError("refused"))
    with pytest.raises(ProviderError, match="Model listing failed"):
        await openai_provider.list_models()


def test_ollama_needs_no_key(ollama_config, monkeypatch):
    monkeypatch.delenv("TEST_OLLAMA_BASE_URL", raising=False)
    provider = OllamaProvider(ollama_config)
    assert provider.name() == "ollama"
    assert str(provider._client.base_url).startswith("http://127.0.0.1:11434/v1")


def test_ollama_base_url_env_override(ollama_config, monkeypatch):
    monkeypatch.setenv("TEST_OLLAMA_BASE_URL", "http://gpu-box:11434/v1")
    provider = OllamaProvider(ollama_config)
    assert "gpu-box" in str(provider._client.base_url)


async def test_ollama_lists_every_model(ollama_config):
    provider = OllamaProvider(ollama_config)
    provider._client = MagicMock()
    page = SimpleNamespace(data=[SimpleNamespace(id="llama3.1"), SimpleNamespace(id="mistral")])
    provider._client.models.list = AsyncMock(return_value=page)

    models = await provider.list_models()

    assert [m.id for m in models] == ["llama3.1", "mistral"]
    assert models[0].description == "Local Ollama model: llama3.1"
