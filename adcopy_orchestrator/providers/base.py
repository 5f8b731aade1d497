"""
Provider Base Interface - Abstract Content Provider

This module defines the abstract base class for all AI content provider
adapters. The fallback orchestrator depends only on this shape: generate
``count`` ad copy variations from a prompt, or raise a tagged ProviderError.

Reference Documents:
- GUIDELINES pp. 793-795: Repository pattern and ABC patterns
- GUIDELINES p. 953: @abstractmethod decorator usage
- ANTI_PATTERN_ANALYSIS §3.4: Import exceptions from core, don't duplicate

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- ContentProvider serves as the "port" (interface)
- Concrete providers (openai.py, anthropic.py, gemini.py, fake.py) serve as "adapters"
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from adcopy_orchestrator.core.exceptions import ProviderError
from adcopy_orchestrator.models.domain import AdContent, CallToAction

_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


class ContentProvider(ABC):
    """
    Abstract base class for AI content provider adapters.

    Each adapter owns its vendor protocol and maps vendor failures to
    ProviderError with an explicit ``retryable`` flag. Adding a backend
    means writing one subclass and registering it by name.

    Example:
        >>> class EchoProvider(ContentProvider):
        ...     name = "echo"
        ...     async def generate(self, prompt, count, language, call_to_action):
        ...         return [AdContent(headline=prompt, primary_text=prompt, provider="echo")] * count
    """

    name: str = "base"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> list[AdContent]:
        """
        Generate ad copy variations.

        Args:
            prompt: Fully built generation prompt.
            count: Number of variations requested.
            language: Target language code (e.g. "en", "vi").
            call_to_action: CTA the copy should lead to.

        Returns:
            Generated variations, ideally ``count`` of them.

        Raises:
            ProviderError: Tagged with kind and retryable flag.
        """
        pass

    async def close(self) -> None:
        """Release HTTP clients held by the adapter."""
        return None


# =============================================================================
# Helpers shared by the LLM-backed adapters
# =============================================================================


def build_instructions(count: int, language: str, call_to_action: CallToAction) -> str:
    """System instructions asking the model for a JSON array of variations."""
    return (
        f"You write Facebook ad copy. Reply with a JSON array of exactly {count} objects, "
        'each with the keys "headline", "primary_text" and "description". '
        f"Write in language '{language}'. Every variation should lead the reader to the "
        f"'{call_to_action.label(language)}' button. Reply with JSON only."
    )


def parse_variations(
    provider: str,
    text: str,
    call_to_action: CallToAction,
) -> list[AdContent]:
    """
    Parse a model reply into AdContent items.

    Tolerates prose or code fences around the JSON array.

    Raises:
        ProviderError: ``invalid_response`` when no usable array is found.
    """
    match = _JSON_ARRAY.search(text or "")
    if match is None:
        raise ProviderError.invalid_response(provider, "Reply did not contain a JSON array")

    try:
        items: Any = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ProviderError.invalid_response(provider, f"Reply was not valid JSON: {e}") from e

    variations: list[AdContent] = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        headline = str(item.get("headline", "")).strip()
        primary_text = str(item.get("primary_text") or item.get("primaryText") or "").strip()
        if not headline or not primary_text:
            continue
        variations.append(
            AdContent(
                headline=headline,
                primary_text=primary_text,
                description=str(item.get("description", "")).strip(),
                call_to_action=call_to_action,
                provider=provider,
            )
        )

    if not variations:
        raise ProviderError.invalid_response(provider, "Reply contained no complete variations")
    return variations
