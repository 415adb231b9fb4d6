"""Local Ollama server via its OpenAI-compatible API."""

import os

from parley.models import ModelInfo
from parley.providers.openai_provider import OpenAIProvider

# Ollama ignores the key, but the SDK refuses to build a client without one.
_PLACEHOLDER_KEY = "ollama"


class OllamaProvider(OpenAIProvider):
    """Ollama provider; no API key required."""

    def _api_key(self) -> str:
        env_name = self._config.api_key_env
        if env_name:
            key = os.environ.get(env_name, "").strip()
            if key:
                return key
        return _PLACEHOLDER_KEY

    def _describe(self, model_id: str) -> ModelInfo | None:
        return ModelInfo(
            id=model_id,
            name=model_id,
            provider=self._config.name,
            description=f"Local Ollama model: {model_id}",
        )
