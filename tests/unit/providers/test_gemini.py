"""
Tests for GeminiContentProvider over an httpx MockTransport.
"""

import json

import httpx
import pytest

from adcopy_orchestrator.core.exceptions import ProviderError, ProviderErrorKind
from adcopy_orchestrator.models.domain import CallToAction
from adcopy_orchestrator.providers.gemini import GeminiContentProvider

VARIATIONS = [
    {"headline": "Run further", "primary_text": "Eco sneakers built for miles.", "description": "Free shipping"},
    {"headline": "Step lighter", "primary_text": "Recycled soles, real comfort.", "description": "New season"},
]


def _provider(handler) -> GeminiContentProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiContentProvider(api_key="gm-test", model="gemini-test", client=client)


def _ok_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestGeminiGenerate:
    """Successful calls."""

    @pytest.mark.asyncio
    async def test_generate_parses_candidates(self):
        """The first candidate's text is parsed into variations."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=_ok_body(json.dumps(VARIATIONS)))

        provider = _provider(handler)
        result = await provider.generate("Eco sneakers", 2, "en", CallToAction.SHOP_NOW)

        assert [item.headline for item in result] == ["Run further", "Step lighter"]
        assert all(item.provider == "gemini" for item in result)
        assert "models/gemini-test:generateContent" in seen["url"]
        assert "key=gm-test" in seen["url"]
        assert seen["payload"]["contents"][0]["parts"][0]["text"] == "Eco sneakers"


class TestGeminiErrors:
    """HTTP and transport failures are tagged."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, text, kind, retryable",
        [
            (401, "API key not valid", ProviderErrorKind.INVALID_CREDENTIALS, False),
            (403, "forbidden", ProviderErrorKind.INVALID_CREDENTIALS, False),
            (429, "Resource has been exhausted (e.g. check quota).", ProviderErrorKind.QUOTA_EXCEEDED, False),
            (429, "Too many requests", ProviderErrorKind.RATE_LIMITED, True),
            (503, "backend unavailable", ProviderErrorKind.GENERIC, True),
            (400, "bad request", ProviderErrorKind.GENERIC, False),
        ],
    )
    async def test_status_codes(self, status, text, kind, retryable):
        """Non-200 responses map to kind and retryable flag."""
        provider = _provider(lambda request: httpx.Response(status, text=text))

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("p", 1, "en", CallToAction.LEARN_MORE)

        assert exc_info.value.kind == kind
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_connect_error_is_network(self):
        """Transport errors are retryable network failures."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await _provider(handler).generate("p", 1, "en", CallToAction.LEARN_MORE)

        assert exc_info.value.kind == ProviderErrorKind.NETWORK
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_read_timeout_is_timeout(self):
        """httpx timeouts become TIMEOUT errors."""

        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await _provider(handler).generate("p", 1, "en", CallToAction.LEARN_MORE)

        assert exc_info.value.kind == ProviderErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_no_candidates_is_invalid_response(self):
        """A 200 without candidates is unusable."""
        provider = _provider(lambda request: httpx.Response(200, json={"candidates": []}))

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("p", 1, "en", CallToAction.LEARN_MORE)

        assert exc_info.value.kind == ProviderErrorKind.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_non_json_body_is_invalid_response(self):
        """A 200 with a non-JSON body is unusable."""
        provider = _provider(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ProviderError) as exc_info:
            await provider.generate("p", 1, "en", CallToAction.LEARN_MORE)

        assert exc_info.value.kind == ProviderErrorKind.INVALID_RESPONSE
