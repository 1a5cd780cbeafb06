"""
Tests for the errors module.
"""

import httpx
import pytest

from price_consensus.errors import (
    PriceConsensusError,
    ProviderError,
    MissingCredentialError,
    RateLimitedError,
    ProviderTimeoutError,
    ParseFailureError,
    EvidenceSourceError,
    EvidenceUnavailableError,
    PipelineError,
    StageError,
    BenchmarkWriteError,
    wrap_http_error,
    wrap_provider_error,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request('POST', 'https://api.example.com/v1/messages')
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f'HTTP {status}', request=request, response=response)


class TestErrorHierarchy:
    """Test error class hierarchy."""

    def test_base_error_with_context(self):
        """Test that base error captures context."""
        error = PriceConsensusError(
            "Something went wrong",
            context={"provider": "groq", "attempt": 2},
        )

        assert error.message == "Something went wrong"
        assert error.context == {"provider": "groq", "attempt": 2}
        assert "provider" in str(error)

    def test_base_error_without_context(self):
        """Test error without context."""
        error = PriceConsensusError("Simple error")

        assert error.context == {}
        assert str(error) == "Simple error"

    def test_provider_error_inheritance(self):
        """Every provider failure class is a ProviderError."""
        for cls in (MissingCredentialError, RateLimitedError, ProviderTimeoutError, ParseFailureError):
            assert issubclass(cls, ProviderError)
            assert issubclass(cls, PriceConsensusError)

    def test_other_branches(self):
        assert issubclass(EvidenceUnavailableError, EvidenceSourceError)
        assert issubclass(StageError, PipelineError)
        assert issubclass(BenchmarkWriteError, PriceConsensusError)
        assert not issubclass(BenchmarkWriteError, ProviderError)


class TestWrapProviderError:
    """Test classification of raw provider exceptions."""

    def test_rate_limit_message(self):
        wrapped = wrap_provider_error(Exception("Rate limit exceeded, slow down"))

        assert isinstance(wrapped, RateLimitedError)
        assert wrapped.context['error_type'] == 'Exception'

    def test_too_many_requests_message(self):
        wrapped = wrap_provider_error(RuntimeError("429 Too Many Requests"))

        assert isinstance(wrapped, RateLimitedError)

    def test_timeout(self):
        wrapped = wrap_provider_error(TimeoutError("read timed out"))

        assert isinstance(wrapped, ProviderTimeoutError)

    def test_httpx_timeout(self):
        wrapped = wrap_provider_error(httpx.ReadTimeout("slow"))

        assert isinstance(wrapped, ProviderTimeoutError)

    def test_generic_error(self):
        wrapped = wrap_provider_error(ValueError("bad payload"), {'provider': 'mistral'})

        assert type(wrapped) is ProviderError
        assert wrapped.context['provider'] == 'mistral'
        assert wrapped.context['original_error'] == 'bad payload'

    def test_already_typed_passes_through(self):
        original = ParseFailureError("no json")

        assert wrap_provider_error(original) is original


class TestWrapHttpError:
    """Test classification of httpx failures."""

    def test_429_is_rate_limited(self):
        wrapped = wrap_http_error(_status_error(429))

        assert isinstance(wrapped, RateLimitedError)
        assert wrapped.context['status_code'] == 429

    @pytest.mark.parametrize('status', [400, 401, 500, 503])
    def test_other_status_is_not_retryable(self, status):
        wrapped = wrap_http_error(_status_error(status))

        assert type(wrapped) is ProviderError
        assert wrapped.context['status_code'] == status

    def test_transport_timeout(self):
        wrapped = wrap_http_error(httpx.ConnectTimeout("connect timeout"))

        assert isinstance(wrapped, ProviderTimeoutError)
