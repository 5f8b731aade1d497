"""
Fake Content Provider - Test Double Implementation

This module provides a FakeContentProvider that implements the real
ContentProvider interface without making network calls.

Pattern: Test Doubles using duck typing (GUIDELINES pp. 157)
"Python's duck typing enables test doubles without complex mocking frameworks"

This is NOT mocking - it's a proper implementation of the interface. It is
also registered for local development when no API keys are configured.
"""

import asyncio
from collections.abc import Sequence
from typing import Optional, Union

from adcopy_orchestrator.models.domain import AdContent, CallToAction
from adcopy_orchestrator.providers.base import ContentProvider

Outcome = Union[Exception, list[AdContent], None]


class FakeContentProvider(ContentProvider):
    """
    Deterministic content provider.

    Behaviour is scripted per call: each entry of ``script`` is consumed by
    one ``generate`` call. An Exception entry is raised, a list is returned
    as-is, None means "generate normally". Once the script runs out,
    ``error`` (if set) is raised on every call, otherwise copy is generated.

    Attributes:
        calls: Arguments of every generate() call, for assertions.

    Example:
        >>> provider = FakeContentProvider("openai", error=ProviderError.rate_limited("openai"))
        >>> await provider.generate("shoes", 2, "en", CallToAction.SHOP_NOW)  # raises
    """

    def __init__(
        self,
        name: str = "fake",
        error: Optional[Exception] = None,
        script: Optional[Sequence[Outcome]] = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.name = name
        self.error = error
        self.delay_seconds = delay_seconds
        self._script: list[Outcome] = list(script or [])
        self.calls: list[tuple[str, int, str, CallToAction]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(
        self,
        prompt: str,
        count: int,
        language: str,
        call_to_action: CallToAction,
    ) -> list[AdContent]:
        self.calls.append((prompt, count, language, call_to_action))

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        outcome: Outcome = self._script.pop(0) if self._script else self.error
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, list):
            return outcome

        return [
            AdContent(
                headline=f"{self.name} headline {i + 1}",
                primary_text=f"{self.name} copy for: {prompt}",
                description=f"{self.name} description {i + 1}",
                call_to_action=call_to_action,
                provider=self.name,
            )
            for i in range(count)
        ]
