"""
Pytest configuration and shared fixtures.

Key fixtures:
- openai_api_key: for the live smoke test (skipped when unset)
- make_provider: factory for scripted fake analysis providers
- make_source: factory for scripted fake evidence sources
- sample_images: one data-URI image

Apart from the live smoke test nothing touches the network. Provider and source behaviour is scripted
per test: a fixed analysis, an error to raise, a delay, or a hang.
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from price_consensus.models.evidence import SourceKind, SourceResult
from price_consensus.models.vote import Decision, ParsedAnalysis
from price_consensus.providers.base import ProviderResponse, ProviderStatus


class FakeProvider:
    """Scripted AnalysisProvider."""

    def __init__(
        self,
        name: str,
        analysis: ParsedAnalysis | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        hang: bool = False,
        confidence: float = 0.8,
        base_weight: float = 1.0,
        available: bool = True,
        supports_vision: bool = True,
    ):
        self.name = name
        self.analysis = analysis
        self.error = error
        self.delay = delay
        self.hang = hang
        self.confidence = confidence
        self.base_weight = base_weight
        self.available = available
        self.supports_vision = supports_vision
        self.calls: list[tuple[list[str], str]] = []
        self.cancelled = False

    @property
    def is_available(self) -> bool:
        return self.available

    async def analyze(self, images: list[str], prompt: str) -> ProviderResponse:
        self.calls.append((list(images), prompt))
        try:
            if self.hang:
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            response=self.analysis,
            confidence=self.confidence,
            response_time_ms=int(self.delay * 1000),
        )

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(has_credential=self.available)


class FakeSource:
    """Scripted EvidenceSource."""

    def __init__(
        self,
        name: str,
        kind: SourceKind = SourceKind.MARKETPLACE,
        result: SourceResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        hang: bool = False,
        available: bool = True,
        categories: tuple[str, ...] | None = None,
    ):
        self.name = name
        self.kind = kind
        self.result = result
        self.error = error
        self.delay = delay
        self.hang = hang
        self.available = available
        self.categories = categories
        self.calls: list[tuple[str, str]] = []

    @property
    def is_available(self) -> bool:
        return self.available

    def handles(self, category: str) -> bool:
        return self.categories is None or category in self.categories

    async def fetch(self, item_name, category, *, identifiers=None) -> SourceResult:
        self.calls.append((item_name, category))
        if self.hang:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result or SourceResult.unavailable(self.name, self.kind, 'no data')


def analysis(
    item_name: str = 'Pyrex Butterprint Mixing Bowl',
    value: float = 40.0,
    decision: Decision = Decision.BUY,
    confidence: float | None = 0.8,
    **kwargs,
) -> ParsedAnalysis:
    return ParsedAnalysis(
        item_name=item_name,
        estimated_value=value,
        decision=decision,
        confidence=confidence,
        **kwargs,
    )


@pytest.fixture
def openai_api_key() -> str:
    """Get OpenAI API key from environment."""
    key = os.getenv('OPENAI_API_KEY')
    if not key:
        pytest.skip('OPENAI_API_KEY not set')
    return key


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def make_source():
    """Factory for FakeSource instances."""
    return FakeSource


@pytest.fixture
def sample_images() -> list[str]:
    return ['data:image/jpeg;base64,/9j/4AAQSkZJRgABAQ==']
