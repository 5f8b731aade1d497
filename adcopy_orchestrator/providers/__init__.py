"""
Providers Package - AI Content Provider Adapters

This package contains the abstract provider interface, the name-keyed
registry and concrete adapters for OpenAI, Anthropic and Gemini.
"""

from adcopy_orchestrator.providers.base import ContentProvider
from adcopy_orchestrator.providers.fake import FakeContentProvider
from adcopy_orchestrator.providers.registry import ProviderRegistry, create_provider_registry

__all__ = [
    "ContentProvider",
    "FakeContentProvider",
    "ProviderRegistry",
    "create_provider_registry",
]
