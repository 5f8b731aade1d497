"""Provider Registry - name-keyed lookup of content providers.

The fallback orchestrator walks its priority list and asks the registry for
each name. A name with no registered adapter is skipped and reported as
UNAVAILABLE, so adding a backend needs only a new adapter and a
``register`` call.
"""

import logging
from typing import TYPE_CHECKING, Optional

from adcopy_orchestrator.providers.base import ContentProvider

if TYPE_CHECKING:
    from adcopy_orchestrator.core.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of content providers keyed by stable provider name.

    Example:
        >>> registry = ProviderRegistry()
        >>> registry.register(FakeContentProvider("openai"))
        >>> registry.get("openai").name
        'openai'
    """

    def __init__(self, providers: Optional[list[ContentProvider]] = None) -> None:
        self._providers: dict[str, ContentProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ContentProvider, name: Optional[str] = None) -> None:
        """Register ``provider`` under ``name`` (defaults to ``provider.name``)."""
        key = (name or provider.name).lower()
        if key in self._providers:
            logger.warning(f"Replacing registered provider: {key}")
        self._providers[key] = provider

    def unregister(self, name: str) -> None:
        """Remove a provider; unknown names are ignored."""
        self._providers.pop(name.lower(), None)

    def get(self, name: str) -> Optional[ContentProvider]:
        return self._providers.get(name.lower())

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._providers

    def names(self) -> list[str]:
        return list(self._providers)

    async def close(self) -> None:
        """Close every provider's HTTP client."""
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.name}: {e}")


def create_provider_registry(settings: "Settings") -> ProviderRegistry:
    """Create a provider registry from settings.

    Registers each vendor adapter whose API key is configured. With no keys
    at all, a FakeContentProvider is registered under the first priority
    name so local development still produces copy.

    Args:
        settings: Application settings containing API keys and models.

    Returns:
        Configured ProviderRegistry instance.
    """
    registry = ProviderRegistry()

    openai_key = settings.openai_api_key.get_secret_value()
    if openai_key:
        from adcopy_orchestrator.providers.openai import OpenAIContentProvider

        registry.register(
            OpenAIContentProvider(
                api_key=openai_key,
                model=settings.openai_model,
                timeout_seconds=settings.breaker_profile("openai").timeout_seconds,
            )
        )
        logger.info("OpenAI provider registered")

    anthropic_key = settings.anthropic_api_key.get_secret_value()
    if anthropic_key:
        from adcopy_orchestrator.providers.anthropic import AnthropicContentProvider

        registry.register(
            AnthropicContentProvider(
                api_key=anthropic_key,
                model=settings.anthropic_model,
                timeout_seconds=settings.breaker_profile("anthropic").timeout_seconds,
            )
        )
        logger.info("Anthropic provider registered")

    gemini_key = settings.gemini_api_key.get_secret_value()
    if gemini_key:
        from adcopy_orchestrator.providers.gemini import GeminiContentProvider

        registry.register(
            GeminiContentProvider(
                api_key=gemini_key,
                model=settings.gemini_model,
                timeout_seconds=settings.breaker_profile("gemini").timeout_seconds,
            )
        )
        logger.info("Gemini provider registered")

    if not registry.names() and settings.environment == "development" and settings.provider_priority:
        from adcopy_orchestrator.providers.fake import FakeContentProvider

        fallback_name = settings.provider_priority[0]
        registry.register(FakeContentProvider(name=fallback_name))
        logger.warning(f"No provider API keys configured, using fake provider as '{fallback_name}'")

    logger.info(f"Provider registry initialized with: {registry.names()}")
    return registry
