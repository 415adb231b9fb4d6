"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from parley.config.config_loader import ProviderConfig
from parley.models import GenerationResult, Message, ModelInfo
from parley.providers.base import AIProvider, ProviderError, as_chat_messages

logger = logging.getLogger(__name__)


def _resolve_base_url(config: ProviderConfig) -> str | None:
    if config.base_url_env:
        override = os.environ.get(config.base_url_env, "").strip()
        if override:
            return override
    return config.base_url


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client = AsyncOpenAI(api_key=self._api_key(), base_url=_resolve_base_url(config))

    def _api_key(self) -> str:
        env_name = self._config.api_key_env or ""
        api_key = os.environ.get(env_name, "").strip() if env_name else ""
        if not api_key:
            raise ProviderError(self._config.name, f"Missing API key: {env_name}")
        return api_key

    def name(self) -> str:
        return self._config.name

    async def generate(
        self,
        model_id: str,
        messages: list[Message],
        temperature: float,
    ) -> GenerationResult:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model_id,
                    messages=as_chat_messages(messages),
                    temperature=temperature,
                    max_tokens=self._config.max_tokens,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info(
            "%s %s: %.2fs, %s tokens",
            self._config.name,
            model_id,
            latency,
            token_count,
        )

        return GenerationResult(content=choice.message.content, tokens=token_count)

    def _describe(self, model_id: str) -> ModelInfo | None:
        # Only chat models are useful as debaters.
        if not model_id.startswith("gpt"):
            return None
        return ModelInfo(
            id=model_id,
            name=model_id,
            provider=self._config.name,
            description=f"OpenAI model: {model_id}",
        )

    async def list_models(self) -> list[ModelInfo]:
        try:
            page = await asyncio.wait_for(self._client.models.list(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise ProviderError(self._config.name, "Model listing timed out") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"Model listing failed: {exc}") from exc

        models: list[ModelInfo] = []
        for entry in page.data:
            info = self._describe(entry.id)
            if info is not None:
                models.append(info)
        return models
