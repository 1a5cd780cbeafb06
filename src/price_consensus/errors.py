"""
Custom exceptions and error handling for the price consensus pipeline.

Provides:
- Typed exception hierarchy for provider, evidence and pipeline failures
- Error context preservation for debugging
- Classification of raw SDK / HTTP exceptions into the hierarchy
"""

from typing import Any

import anthropic
import httpx
import openai


class PriceConsensusError(Exception):
    """Base exception for all price consensus errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(PriceConsensusError):
    """Base class for analysis provider failures."""

    pass


class MissingCredentialError(ProviderError):
    """Provider has no credential configured. Absence, not failure."""

    pass


class RateLimitedError(ProviderError):
    """Provider rejected the call for rate limiting. The only retryable class."""

    pass


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its deadline."""

    pass


class ParseFailureError(ProviderError):
    """Provider response could not be normalized into a ParsedAnalysis."""

    pass


# =============================================================================
# Evidence Source Errors
# =============================================================================


class EvidenceSourceError(PriceConsensusError):
    """Base class for evidence source failures."""

    pass


class EvidenceUnavailableError(EvidenceSourceError):
    """Evidence source is not configured or returned nothing usable."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(PriceConsensusError):
    """Base class for pipeline-related errors."""

    pass


class StageError(PipelineError):
    """A pipeline stage failed unexpectedly and was degraded."""

    pass


class BenchmarkWriteError(PriceConsensusError):
    """Benchmark sink could not persist records."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================

_RATE_LIMIT_MARKERS = ('rate limit', 'rate_limit', 'too many requests', '429')


def _base_context(exc: Exception, context: dict[str, Any] | None) -> dict[str, Any]:
    ctx = dict(context or {})
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__
    return ctx


def wrap_provider_error(
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> ProviderError:
    """
    Wrap a provider SDK exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed ProviderError subclass
    """
    if isinstance(exc, ProviderError):
        return exc

    ctx = _base_context(exc, context)
    error_str = str(exc).lower()

    if isinstance(exc, (openai.RateLimitError, anthropic.RateLimitError)) or any(
        m in error_str for m in _RATE_LIMIT_MARKERS
    ):
        return RateLimitedError(f"Provider rate limit exceeded: {exc}", context=ctx)
    if isinstance(
        exc, (openai.APITimeoutError, anthropic.APITimeoutError, httpx.TimeoutException, TimeoutError)
    ):
        return ProviderTimeoutError(f"Provider call timed out: {exc}", context=ctx)
    return ProviderError(f"Provider API error: {exc}", context=ctx)


def wrap_http_error(
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> ProviderError:
    """
    Wrap an httpx exception raised by a provider call.

    HTTP 429 maps to RateLimitedError; transport timeouts map to
    ProviderTimeoutError; everything else is a plain ProviderError.
    """
    ctx = _base_context(exc, context)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        ctx['status_code'] = status
        if status == 429:
            return RateLimitedError("Provider rate limit exceeded (HTTP 429)", context=ctx)
        return ProviderError(f"Provider HTTP error {status}", context=ctx)
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(f"Provider call timed out: {exc}", context=ctx)
    return wrap_provider_error(exc, context)
