"""
Capability contracts for analysis providers.

Two layers:
- CompletionClient: a raw transport that turns (images, prompt) into text
  and raises typed ProviderErrors.
- AnalysisProvider: what stages consume. ``analyze`` returns a normalized
  ProviderResponse or raises; it never returns a fabricated success.

Shared timeout / retry / parsing behaviour lives in ResilientProvider
(see resilience.py), which composes a CompletionClient.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models.vote import ParsedAnalysis


@dataclass(frozen=True)
class ProviderResponse:
    """Normalized result of one successful provider call."""

    response: ParsedAnalysis | None
    confidence: float
    response_time_ms: int


@dataclass(frozen=True)
class ProviderStatus:
    has_credential: bool
    last_success: datetime | None = None
    last_error: str | None = None
    last_response_time_ms: int | None = None


@runtime_checkable
class CompletionClient(Protocol):
    """Raw provider transport."""

    name: str
    supports_vision: bool

    @property
    def has_credential(self) -> bool: ...

    async def complete(self, images: list[str], prompt: str) -> str: ...

    async def close(self) -> None: ...


@runtime_checkable
class AnalysisProvider(Protocol):
    """What pipeline stages consume."""

    name: str
    base_weight: float

    @property
    def is_available(self) -> bool: ...

    async def analyze(self, images: list[str], prompt: str) -> ProviderResponse: ...

    def get_status(self) -> ProviderStatus: ...
