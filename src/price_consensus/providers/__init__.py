"""
Analysis providers: contracts, shared resilience, transports and registry.
"""

from .base import AnalysisProvider, CompletionClient, ProviderResponse, ProviderStatus
from .resilience import ResilientProvider
from .parsers import parse_analysis, response_confidence
from .openai_compatible import OpenAICompatibleClient
from .anthropic_client import AnthropicClient
from .http_clients import GeminiClient
from .registry import (
    PROVIDER_SPECS,
    STAGE_PROVIDERS,
    ProviderRegistry,
    ProviderSpec,
    Stage,
    base_weight_for,
)

__all__ = [
    'AnalysisProvider',
    'CompletionClient',
    'ProviderResponse',
    'ProviderStatus',
    'ResilientProvider',
    'parse_analysis',
    'response_confidence',
    'OpenAICompatibleClient',
    'AnthropicClient',
    'GeminiClient',
    'PROVIDER_SPECS',
    'STAGE_PROVIDERS',
    'ProviderRegistry',
    'ProviderSpec',
    'Stage',
    'base_weight_for',
]
