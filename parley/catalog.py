"""Model listing across providers. One unreachable backend never sinks the rest."""

import asyncio
import logging

from parley.models import ModelInfo
from parley.providers.base import AIProvider

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def _list_one(name: str, provider: AIProvider) -> list[ModelInfo]:
    """List a single provider's models. Returns [] when it cannot be reached."""
    try:
        return await asyncio.wait_for(provider.list_models(), timeout=_TIMEOUT_SEC)
    except Exception as exc:
        logger.warning("Could not list models for %s: %s", name, exc)
        return []


async def list_available_models(
    providers: dict[str, AIProvider],
    provider: str | None = None,
) -> list[ModelInfo]:
    """List models from one provider, or from all of them in parallel.

    Returns:
        Flat list of ModelInfo in provider order. Unknown or unreachable
        providers contribute nothing.
    """
    if provider is not None:
        if provider not in providers:
            logger.warning("Provider '%s' not configured", provider)
            return []
        return await _list_one(provider, providers[provider])

    results = await asyncio.gather(*(_list_one(n, p) for n, p in providers.items()))
    return [info for models in results for info in models]
