"""
Anthropic Provider - Claude ad copy adapter

Thin adapter over the official ``anthropic`` SDK using the Messages API.

Design Patterns:
- Ports and Adapters: AnthropicContentProvider implements ContentProvider
- Adapter Pattern: Transforms Anthropic SDK responses to AdContent
"""

import logging
from typing import Optional

import anthropic
from anthropic import AsyncAnthropic

from adcopy_orchestrator.core.exceptions import ProviderError
from adcopy_orchestrator.models.domain import AdContent, CallToAction
from adcopy_orchestrator.providers.base import ContentProvider, build_instructions, parse_variations

logger = logging.getLogger(__name__)

PROVIDER_NAME = "anthropic"
DEFAULT_MODEL = "claude-3-5-haiku-latest"
MAX_TOKENS = 2048


class AnthropicContentProvider(ContentProvider):
    """Anthropic Messages API adapter."""

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 30.0,
        client: Optional[AsyncAnthropic] = None,
    ) -> None:
        self._model = model
        self._timeout = timeout_seconds
        self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    async def generate(
        self,
        prompt: str,
        count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> list[AdContent]:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=MAX_TOKENS,
                system=build_instructions(count, language, call_to_action),
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.AnthropicError as e:
            raise self._to_provider_error(e) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return parse_variations(PROVIDER_NAME, text, call_to_action)

    def _to_provider_error(self, e: anthropic.AnthropicError) -> ProviderError:
        """Map an SDK exception to a tagged ProviderError."""
        message = str(e)
        if isinstance(e, anthropic.APITimeoutError):
            return ProviderError.timeout(PROVIDER_NAME, self._timeout)
        if isinstance(e, anthropic.APIConnectionError):
            return ProviderError.network_error(PROVIDER_NAME, message)
        if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return ProviderError.invalid_credentials(PROVIDER_NAME, message)
        if isinstance(e, anthropic.RateLimitError):
            return ProviderError.rate_limited(PROVIDER_NAME, message)
        if isinstance(e, anthropic.APIStatusError) and e.status_code >= 500:
            # 529 overloaded lands here too
            return ProviderError(message, PROVIDER_NAME, retryable=True, status_code=e.status_code)

        logger.warning(f"Unclassified Anthropic error: {message}")
        return ProviderError.from_exception(PROVIDER_NAME, e)

    async def close(self) -> None:
        await self._client.close()
