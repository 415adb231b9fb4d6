"""Shared pytest fixtures."""

import random
from pathlib import Path

import pytest

from parley.config.config_loader import DefaultsConfig, FacilitatorConfig, PromptsConfig, ProviderConfig
from parley.conversation import Conversation
from parley.gateway import GenerationGateway
from parley.models import (
    BotBank,
    BotTemplate,
    ConversationState,
    GenerationResult,
    Message,
    ModelInfo,
    SharedSettings,
)
from parley.providers.base import AIProvider
from parley.scheduler import TurnScheduler
from parley.store import ConversationStore, initial_state


class FirstChoice(random.Random):
    """Deterministic rng: always picks the first candidate."""

    def choice(self, seq):
        return seq[0]


class MockProvider(AIProvider):
    """Test double AIProvider with scripted replies.

    Each reply may be a string, a GenerationResult, an exception instance
    (raised), or an async callable (awaited, then treated as a reply).
    Once the script runs out every call returns "Mock response".
    """

    def __init__(
        self,
        provider_name: str = "mock",
        replies: list | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        self._name = provider_name
        self._replies = list(replies or [])
        self._models = models if models is not None else [
            ModelInfo(id="mock-model", name="mock-model", provider=provider_name)
        ]
        self.calls: list[dict] = []

    def name(self) -> str:
        return self._name

    def script(self, *replies) -> None:
        self._replies.extend(replies)

    async def generate(
        self,
        model_id: str,
        messages: list[Message],
        temperature: float,
    ) -> GenerationResult:
        self.calls.append({"model_id": model_id, "messages": list(messages), "temperature": temperature})
        reply = self._replies.pop(0) if self._replies else "Mock response"
        if callable(reply):
            reply = await reply()
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, GenerationResult):
            return reply
        return GenerationResult(content=reply, tokens=10)

    async def list_models(self) -> list[ModelInfo]:
        return list(self._models)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        facilitator="Decide: CONTINUE or END.",
        facilitator_question="Answer the user. Bots:\n{roster}",
        bot_turn=(
            "Limit: {max_words} words. You are {bot_name} ({bot_id}). Focus: {focus}\n"
            "{roster}\n{persona}\n{quota_prompt}\n"
            "Other: {other_name}. Responding to {responding_to}."
        ),
        quota_open="Explore freely.",
        quota_closing="Wrap up now.",
        summary_request="Summarize in 2-3 sentences.",
    )


@pytest.fixture
def sample_facilitator_config() -> FacilitatorConfig:
    return FacilitatorConfig(name="Facilitator", temperature=0.1)


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        provider="mock",
        model_id="mock-model",
        max_response_length=50,
        initial_quota=10,
        history_limit=10,
        backup_dir=tmp_path / "backups",
    )


@pytest.fixture
def sample_provider_config() -> ProviderConfig:
    return ProviderConfig(
        name="openai",
        sdk="openai",
        timeout_sec=30,
        max_tokens=256,
        api_key_env="TEST_OPENAI_KEY",
    )


@pytest.fixture
def sample_templates() -> list[BotTemplate]:
    return [
        BotTemplate(uid="axiom-1", name="Axiom", system_prompt="Be logical.", temperature=0.3),
        BotTemplate(uid="eris-1", name="Eris", system_prompt="Be provocative.", temperature=0.7),
    ]


@pytest.fixture
def sample_settings() -> SharedSettings:
    return SharedSettings(provider="mock", model_id="mock-model", max_response_length=50)


@pytest.fixture
def sample_state(sample_templates, sample_settings) -> ConversationState:
    return initial_state(sample_templates, sample_settings, quota=10)


@pytest.fixture
def store(sample_state, sample_templates) -> ConversationStore:
    return ConversationStore(sample_state, BotBank(templates=list(sample_templates)), initial_quota=10)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def gateway(mock_provider) -> GenerationGateway:
    return GenerationGateway({"mock": mock_provider})


@pytest.fixture
def conversation(store, gateway, sample_prompts_config, sample_facilitator_config) -> Conversation:
    return Conversation(
        store,
        gateway,
        sample_prompts_config,
        sample_facilitator_config,
        scheduler=TurnScheduler(FirstChoice()),
    )
