"""
Gemini Provider - Google Gemini ad copy adapter

Calls the Gemini ``generateContent`` REST endpoint with httpx and maps HTTP
failures to tagged ProviderErrors.

Design Patterns:
- Ports and Adapters: GeminiContentProvider implements ContentProvider
- Adapter Pattern: Transforms Gemini JSON responses to AdContent
"""

import logging
from typing import Any, Optional

import httpx

from adcopy_orchestrator.core.exceptions import ProviderError
from adcopy_orchestrator.models.domain import AdContent, CallToAction
from adcopy_orchestrator.providers.base import ContentProvider, build_instructions, parse_variations

logger = logging.getLogger(__name__)

PROVIDER_NAME = "gemini"
DEFAULT_MODEL = "gemini-1.5-flash"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiContentProvider(ContentProvider):
    """Gemini REST adapter."""

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 45.0,
        api_base: str = GEMINI_API_BASE,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def generate(
        self,
        prompt: str,
        count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> list[AdContent]:
        url = f"{self._api_base}/models/{self._model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": build_instructions(count, language, call_to_action)}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.8, "responseMimeType": "application/json"},
        }

        try:
            response = await self._client.post(url, params={"key": self._api_key}, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderError.timeout(PROVIDER_NAME, self._timeout) from e
        except httpx.TransportError as e:
            raise ProviderError.network_error(PROVIDER_NAME, str(e)) from e

        if response.status_code != 200:
            raise self._status_error(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError.invalid_response(PROVIDER_NAME, "Response body was not JSON") from e

        return parse_variations(PROVIDER_NAME, self._extract_text(body), call_to_action)

    def _status_error(self, status_code: int, error_text: str) -> ProviderError:
        """Map a non-200 response to a tagged ProviderError."""
        if status_code in (401, 403):
            return ProviderError.invalid_credentials(PROVIDER_NAME, f"Gemini rejected credentials: {error_text}")
        if status_code == 429:
            if "quota" in error_text.lower():
                return ProviderError.quota_exceeded(PROVIDER_NAME, error_text)
            return ProviderError.rate_limited(PROVIDER_NAME, error_text)
        return ProviderError(
            f"Gemini API error ({status_code}): {error_text}",
            PROVIDER_NAME,
            retryable=status_code >= 500,
            status_code=status_code,
        )

    @staticmethod
    def _extract_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            raise ProviderError.invalid_response(PROVIDER_NAME, "No candidates in response")
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)

    async def close(self) -> None:
        await self._client.aclose()
