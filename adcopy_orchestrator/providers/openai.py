"""
OpenAI Provider - GPT ad copy adapter

Thin adapter over the official ``openai`` SDK. It asks a chat model for a
JSON array of variations and maps SDK failures to tagged ProviderErrors.

Reference Documents:
- GUIDELINES pp. 2229: Model API patterns
- ANTI_PATTERN_ANALYSIS §3.4: Import exceptions from core, don't duplicate

Design Patterns:
- Ports and Adapters: OpenAIContentProvider implements ContentProvider
- Adapter Pattern: Transforms OpenAI SDK responses to AdContent
"""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from adcopy_orchestrator.core.exceptions import ProviderError
from adcopy_orchestrator.models.domain import AdContent, CallToAction
from adcopy_orchestrator.providers.base import ContentProvider, build_instructions, parse_variations

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"
DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIContentProvider(ContentProvider):
    """
    OpenAI chat-completions adapter.

    Retries are left to the orchestrator (breaker + fallback), so the SDK's
    own retry loop is disabled.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key.
            model: Chat model used for generation.
            timeout_seconds: SDK request timeout.
            client: Pre-built client (tests).
        """
        self._model = model
        self._timeout = timeout_seconds
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    async def generate(
        self,
        prompt: str,
        count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> list[AdContent]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": build_instructions(count, language, call_to_action)},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.8,
            )
        except openai.OpenAIError as e:
            raise self._to_provider_error(e) from e

        if not response.choices:
            raise ProviderError.invalid_response(PROVIDER_NAME, "No choices in response")

        text = response.choices[0].message.content or ""
        return parse_variations(PROVIDER_NAME, text, call_to_action)

    def _to_provider_error(self, e: openai.OpenAIError) -> ProviderError:
        """Map an SDK exception to a tagged ProviderError."""
        message = str(e)
        if isinstance(e, openai.APITimeoutError):
            return ProviderError.timeout(PROVIDER_NAME, self._timeout)
        if isinstance(e, openai.APIConnectionError):
            return ProviderError.network_error(PROVIDER_NAME, message)
        if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ProviderError.invalid_credentials(PROVIDER_NAME, message)
        if isinstance(e, openai.RateLimitError):
            if "quota" in message.lower():
                return ProviderError.quota_exceeded(PROVIDER_NAME, message)
            return ProviderError.rate_limited(PROVIDER_NAME, message)
        if isinstance(e, openai.APIStatusError) and e.status_code >= 500:
            return ProviderError(message, PROVIDER_NAME, retryable=True, status_code=e.status_code)

        logger.warning(f"Unclassified OpenAI error: {message}")
        return ProviderError.from_exception(PROVIDER_NAME, e)

    async def close(self) -> None:
        await self._client.close()
