"""
Provider catalogue and per-stage provider selection.

PROVIDER_SPECS describes every known provider (transport, model, base URL,
vision support, base vote weight). STAGE_PROVIDERS says which of them each
stage fans out to. ProviderRegistry builds ResilientProviders from Settings;
providers without a key are still built but report is_available=False, so
stages skip them without a network call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..logging import get_logger
from .base import AnalysisProvider, CompletionClient
from .anthropic_client import AnthropicClient
from .http_clients import GeminiClient
from .openai_compatible import OpenAICompatibleClient
from .resilience import DEFAULT_BASE_WEIGHT, ResilientProvider

if TYPE_CHECKING:
    from ..config import Settings

logger = get_logger(__name__)


class Transport(str, Enum):
    OPENAI = 'openai'
    ANTHROPIC = 'anthropic'
    GEMINI = 'gemini'


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    transport: Transport
    model: str
    base_weight: float
    supports_vision: bool = False
    base_url: str | None = None


PROVIDER_SPECS: dict[str, ProviderSpec] = {
    'openai': ProviderSpec('openai', Transport.OPENAI, 'gpt-4o', 1.0, supports_vision=True),
    'anthropic': ProviderSpec(
        'anthropic', Transport.ANTHROPIC, 'claude-sonnet-4-20250514', 1.0, supports_vision=True,
    ),
    'google': ProviderSpec('google', Transport.GEMINI, 'gemini-2.0-flash', 1.0, supports_vision=True),
    'mistral': ProviderSpec(
        'mistral', Transport.OPENAI, 'mistral-large-latest', 0.75,
        base_url='https://api.mistral.ai/v1',
    ),
    'groq': ProviderSpec(
        'groq', Transport.OPENAI, 'llama-3.3-70b-versatile', 0.75,
        base_url='https://api.groq.com/openai/v1',
    ),
    'xai': ProviderSpec('xai', Transport.OPENAI, 'grok-3', 0.80, base_url='https://api.x.ai/v1'),
    'perplexity': ProviderSpec(
        'perplexity', Transport.OPENAI, 'sonar', 0.85, base_url='https://api.perplexity.ai',
    ),
    'deepseek': ProviderSpec(
        'deepseek', Transport.OPENAI, 'deepseek-chat', 0.6, base_url='https://api.deepseek.com',
    ),
}


class Stage(str, Enum):
    IDENTIFY = 'identify'
    WEB_SEARCH = 'web_search'
    REASON = 'reason'
    VALIDATE = 'validate'


STAGE_PROVIDERS: dict[Stage, tuple[str, ...]] = {
    Stage.IDENTIFY: ('google', 'openai', 'anthropic'),
    Stage.WEB_SEARCH: ('perplexity', 'xai'),
    Stage.REASON: ('anthropic', 'deepseek', 'mistral'),
    Stage.VALIDATE: ('groq',),
}


def base_weight_for(provider_name: str, overrides: dict[str, float] | None = None) -> float:
    """Configured base weight, falling back to the catalogue then the default."""
    if overrides and provider_name in overrides:
        return min(max(overrides[provider_name], 0.0), 1.0)
    spec = PROVIDER_SPECS.get(provider_name)
    return spec.base_weight if spec else DEFAULT_BASE_WEIGHT


def build_client(spec: ProviderSpec, api_key: str | None) -> CompletionClient:
    """Instantiate the raw transport for a spec."""
    if spec.transport is Transport.ANTHROPIC:
        return AnthropicClient(api_key, model=spec.model, supports_vision=spec.supports_vision)
    if spec.transport is Transport.GEMINI:
        return GeminiClient(api_key, model=spec.model, supports_vision=spec.supports_vision)
    return OpenAICompatibleClient(
        name=spec.name,
        api_key=api_key,
        model=spec.model,
        base_url=spec.base_url,
        supports_vision=spec.supports_vision,
    )


class ProviderRegistry:
    """
    Named providers plus the stage -> provider mapping.

    Stages ask for ``for_stage(stage)`` and receive providers in catalogue
    order; a stage mapping may be overridden for tests or deployments.
    """

    def __init__(
        self,
        providers: dict[str, AnalysisProvider],
        stage_providers: dict[Stage, tuple[str, ...]] | None = None,
    ):
        self.providers = providers
        self.stage_providers = stage_providers or dict(STAGE_PROVIDERS)

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderRegistry:
        """
        Build every catalogued provider from settings.

        Missing keys are logged once here and otherwise ignored.
        """
        providers: dict[str, AnalysisProvider] = {}
        for name, spec in PROVIDER_SPECS.items():
            client = build_client(spec, settings.provider_key(name))
            providers[name] = ResilientProvider(
                client,
                base_weight=spec.base_weight,
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
                max_attempts=settings.PROVIDER_MAX_ATTEMPTS,
                backoff_seconds=settings.PROVIDER_BACKOFF_SECONDS,
            )

        missing = settings.missing_provider_keys()
        if missing:
            logger.info('providers.credentials_missing', providers=missing)
        return cls(providers)

    def get(self, name: str) -> AnalysisProvider | None:
        return self.providers.get(name)

    def for_stage(self, stage: Stage) -> list[AnalysisProvider]:
        """Providers configured for a stage, available or not."""
        names = self.stage_providers.get(stage, ())
        return [self.providers[n] for n in names if n in self.providers]

    def available_for_stage(self, stage: Stage) -> list[AnalysisProvider]:
        return [p for p in self.for_stage(stage) if p.is_available]

    async def close(self) -> None:
        for provider in self.providers.values():
            close = getattr(provider, 'close', None)
            if close is not None:
                await close()
