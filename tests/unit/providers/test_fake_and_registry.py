"""
Tests for FakeContentProvider and ProviderRegistry.

Pattern: Test Doubles using duck typing (GUIDELINES pp. 157)
"""

import pytest

from adcopy_orchestrator.core.config import Settings
from adcopy_orchestrator.core.exceptions import ProviderError
from adcopy_orchestrator.models.domain import AdContent, CallToAction
from adcopy_orchestrator.providers.fake import FakeContentProvider
from adcopy_orchestrator.providers.registry import ProviderRegistry, create_provider_registry


# =============================================================================
# FakeContentProvider
# =============================================================================


class TestFakeContentProvider:
    """Scripted behaviour of the fake provider."""

    @pytest.mark.asyncio
    async def test_generates_requested_count(self):
        """Without a script the fake produces ``count`` variations."""
        provider = FakeContentProvider("alpha")

        result = await provider.generate("eco shoes", 3, "en", CallToAction.SHOP_NOW)

        assert len(result) == 3
        assert all(item.provider == "alpha" for item in result)
        assert result[0].primary_text == "alpha copy for: eco shoes"
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_permanent_error(self):
        """``error`` is raised on every call."""
        provider = FakeContentProvider("alpha", error=ProviderError.quota_exceeded("alpha"))

        for _ in range(2):
            with pytest.raises(ProviderError):
                await provider.generate("p", 1, "en", CallToAction.SHOP_NOW)
        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_script_consumed_in_order(self):
        """Script entries apply one call each, then normal generation resumes."""
        canned = [AdContent(headline="canned", primary_text="body")]
        provider = FakeContentProvider("alpha", script=[ProviderError.network_error("alpha"), canned, None])

        with pytest.raises(ProviderError):
            await provider.generate("p", 1, "en", CallToAction.SHOP_NOW)
        assert await provider.generate("p", 1, "en", CallToAction.SHOP_NOW) == canned
        assert (await provider.generate("p", 1, "en", CallToAction.SHOP_NOW))[0].headline == "alpha headline 1"
        assert (await provider.generate("p", 1, "en", CallToAction.SHOP_NOW))[0].headline == "alpha headline 1"

    @pytest.mark.asyncio
    async def test_records_call_arguments(self):
        """Calls are recorded for assertions."""
        provider = FakeContentProvider("alpha")

        await provider.generate("p", 2, "vi", CallToAction.BOOK_NOW)

        assert provider.calls == [("p", 2, "vi", CallToAction.BOOK_NOW)]


# =============================================================================
# ProviderRegistry
# =============================================================================


class TestProviderRegistry:
    """Name-keyed lookup."""

    def test_register_and_get(self):
        """Providers are found by name, case-insensitively."""
        registry = ProviderRegistry()
        provider = FakeContentProvider("OpenAI")
        registry.register(provider)

        assert registry.get("openai") is provider
        assert registry.is_registered("OPENAI")
        assert registry.names() == ["openai"]

    def test_register_under_alias(self):
        """A provider can be registered under another name."""
        registry = ProviderRegistry()
        registry.register(FakeContentProvider("fake"), name="huggingface")

        assert registry.is_registered("huggingface")
        assert not registry.is_registered("fake")

    def test_unregister(self):
        """Unregistering unknown names is harmless."""
        registry = ProviderRegistry([FakeContentProvider("alpha")])

        registry.unregister("alpha")
        registry.unregister("nope")

        assert registry.get("alpha") is None

    @pytest.mark.asyncio
    async def test_close_survives_failing_provider(self):
        """One provider failing to close does not stop the others."""

        class BrokenClose(FakeContentProvider):
            async def close(self):
                raise RuntimeError("socket already closed")

        closed = []

        class TrackingClose(FakeContentProvider):
            async def close(self):
                closed.append(self.name)

        registry = ProviderRegistry([BrokenClose("alpha"), TrackingClose("beta")])

        await registry.close()

        assert closed == ["beta"]


class TestCreateProviderRegistry:
    """Registry construction from settings."""

    def test_no_keys_in_development_registers_fake(self):
        """Local development without keys still produces copy."""
        settings = Settings(environment="development", provider_priority=["openai", "anthropic"])

        registry = create_provider_registry(settings)

        assert registry.names() == ["openai"]
        assert isinstance(registry.get("openai"), FakeContentProvider)

    def test_no_keys_in_production_registers_nothing(self):
        """Production never falls back to the fake provider."""
        settings = Settings(environment="production")

        assert create_provider_registry(settings).names() == []

    def test_configured_keys_register_adapters(self):
        """Each configured key registers its vendor adapter."""
        from adcopy_orchestrator.providers.anthropic import AnthropicContentProvider
        from adcopy_orchestrator.providers.gemini import GeminiContentProvider
        from adcopy_orchestrator.providers.openai import OpenAIContentProvider

        settings = Settings(
            environment="production",
            openai_api_key="sk-test",
            anthropic_api_key="sk-ant-test",
            gemini_api_key="gm-test",
        )

        registry = create_provider_registry(settings)

        assert isinstance(registry.get("openai"), OpenAIContentProvider)
        assert isinstance(registry.get("anthropic"), AnthropicContentProvider)
        assert isinstance(registry.get("gemini"), GeminiContentProvider)
