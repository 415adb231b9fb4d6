"""Abstract base for all text-generation backends."""

from abc import ABC, abstractmethod

from parley.models import GenerationResult, Message, ModelInfo


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class GenerationCancelled(Exception):
    """Raised when an in-flight generation was superseded by a newer request."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] Request was cancelled")


def as_chat_messages(messages: list[Message]) -> list[dict[str, str]]:
    """Convert prepared messages to the chat-completions wire shape."""
    wire: list[dict[str, str]] = []
    for msg in messages:
        entry = {"role": msg.role, "content": msg.content}
        if msg.name:
            entry["name"] = msg.name
        wire.append(entry)
    return wire


class AIProvider(ABC):
    """Abstract base for all text-generation backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'ollama')."""
        ...

    @abstractmethod
    async def generate(
        self,
        model_id: str,
        messages: list[Message],
        temperature: float,
    ) -> GenerationResult:
        """Generate one complete reply for an already-prepared message view.

        Args:
            model_id: Model identifier understood by this backend.
            messages: Role-relative view of the conversation.
            temperature: Sampling temperature for the speaking role.

        Returns:
            GenerationResult with content and, when reported, token usage.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the models this backend offers.

        Raises:
            ProviderError: When the backend cannot be reached.
        """
        ...
