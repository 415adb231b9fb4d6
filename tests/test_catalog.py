"""Tests for parley/catalog.py."""

from unittest.mock import AsyncMock

from parley.catalog import list_available_models
from parley.models import ModelInfo
from parley.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_lists_all_providers():
    providers = {
        "openai": MockProvider("openai", models=[ModelInfo("gpt-4o", "gpt-4o", "openai")]),
        "ollama": MockProvider("ollama", models=[ModelInfo("llama3.1", "llama3.1", "ollama")]),
    }
    models = await list_available_models(providers)
    assert [m.id for m in models] == ["gpt-4o", "llama3.1"]


async def test_one_unreachable_provider_does_not_sink_the_rest(caplog):
    broken = MockProvider("ollama")
    broken.list_models = AsyncMock(side_effect=ProviderError("ollama", "connection refused"))
    providers = {
        "openai": MockProvider("openai", models=[ModelInfo("gpt-4o", "gpt-4o", "openai")]),
        "ollama": broken,
    }
    models = await list_available_models(providers)
    assert [m.id for m in models] == ["gpt-4o"]
    assert "Could not list models for ollama" in caplog.text


async def test_single_provider_filter():
    providers = {
        "openai": MockProvider("openai", models=[ModelInfo("gpt-4o", "gpt-4o", "openai")]),
        "ollama": MockProvider("ollama", models=[ModelInfo("llama3.1", "llama3.1", "ollama")]),
    }
    models = await list_available_models(providers, "ollama")
    assert [m.provider for m in models] == ["ollama"]


async def test_unknown_provider_returns_empty():
    assert await list_available_models({"openai": MockProvider("openai")}, "nope") == []
