"""Generation gateway: routes a role's request to its backend, one call at a time."""

import asyncio
import logging

from parley.models import GenerationResult, Message, RoleConfig
from parley.providers.base import AIProvider, GenerationCancelled, ProviderError

logger = logging.getLogger(__name__)


def truncate_words(content: str, max_words: int) -> str:
    """Cut content to max_words words, marking the cut with an ellipsis."""
    words = content.split()
    if max_words <= 0 or len(words) <= max_words:
        return content
    return " ".join(words[:max_words]) + "..."


class GenerationGateway:
    """Serializes generation calls for one conversation.

    Holds a single in-flight task slot. Issuing a request cancels whatever
    occupies the slot, so at most one call is ever outstanding and a
    superseded caller sees GenerationCancelled instead of a stale result.
    """

    def __init__(self, providers: dict[str, AIProvider]) -> None:
        self._providers = providers
        self._inflight: asyncio.Task[GenerationResult] | None = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def cancel(self) -> None:
        """Cancel the outstanding request, if any."""
        if self._inflight is not None:
            if not self._inflight.done():
                logger.debug("Cancelling in-flight generation")
                self._inflight.cancel()
            self._inflight = None

    async def generate(self, role: RoleConfig, messages: list[Message]) -> GenerationResult:
        """Run one generation for a role, superseding any earlier request.

        Raises:
            GenerationCancelled: If a newer request (or cancel()) replaced this one.
            ProviderError: If the backend fails or is not configured.
        """
        provider = self._providers.get(role.provider)
        if provider is None:
            raise ProviderError(role.provider, "Provider not configured")

        self.cancel()
        task = asyncio.create_task(provider.generate(role.model_id, messages, role.temperature))
        self._inflight = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # Our caller was cancelled; don't leave the backend call running.
            task.cancel()
            if self._inflight is task:
                self._inflight = None
            raise

        # A finished call still loses if a newer request (or cancel()) took
        # the slot before this caller resumed.
        superseded = self._inflight is not task
        if not superseded:
            self._inflight = None
        if task.cancelled():
            raise GenerationCancelled(provider.name())
        if superseded:
            if task.exception() is not None:
                logger.debug("Discarding error from superseded generation: %s", task.exception())
            raise GenerationCancelled(provider.name())
        return task.result()
