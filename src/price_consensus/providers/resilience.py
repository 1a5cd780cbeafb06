"""
Shared provider behaviour, composed around a CompletionClient.

ResilientProvider adds, in order:
1. Credential check (no key -> MissingCredentialError, no network call)
2. Rate-limit retry with exponential backoff (tenacity); nothing else retries
3. Per-call deadline (asyncio.wait_for -> ProviderTimeoutError)
4. Response normalization (ParseFailureError on unusable output)
5. Status tracking for get_status()
"""

import asyncio
import time
from datetime import datetime, timezone

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import (
    MissingCredentialError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitedError,
    wrap_provider_error,
)
from ..logging import get_logger
from .base import CompletionClient, ProviderResponse, ProviderStatus
from .parsers import parse_analysis, response_confidence

logger = get_logger(__name__)

DEFAULT_BASE_WEIGHT = 0.75


class ResilientProvider:
    """
    AnalysisProvider built by composing a raw CompletionClient.

    Usage:
        provider = ResilientProvider(OpenAICompatibleClient(...), base_weight=1.0)
        response = await provider.analyze(images, prompt)
    """

    def __init__(
        self,
        client: CompletionClient,
        base_weight: float = DEFAULT_BASE_WEIGHT,
        timeout: float = 15.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 10.0,
    ):
        """
        Args:
            client: Raw transport for one provider
            base_weight: Vote weight before scaling by confidence (0..1)
            timeout: Deadline in seconds for each network attempt
            max_attempts: Total attempts when rate limited
            backoff_seconds: Multiplier for the exponential backoff
            max_backoff_seconds: Upper bound on a single backoff sleep
        """
        self.client = client
        self.name = client.name
        self.base_weight = min(max(base_weight, 0.0), 1.0)
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self._last_success: datetime | None = None
        self._last_error: str | None = None
        self._last_response_time_ms: int | None = None

    @property
    def is_available(self) -> bool:
        return self.client.has_credential

    @property
    def supports_vision(self) -> bool:
        return self.client.supports_vision

    async def analyze(self, images: list[str], prompt: str) -> ProviderResponse:
        """
        Run one analysis call.

        Raises:
            MissingCredentialError: No credential; nothing was sent
            RateLimitedError: Still rate limited after max_attempts
            ProviderTimeoutError: An attempt exceeded the call deadline
            ParseFailureError: Output could not be normalized
            ProviderError: Any other provider failure
        """
        if not self.client.has_credential:
            raise MissingCredentialError(
                f'{self.name} has no credential configured',
                context={'provider': self.name},
            )

        started = time.perf_counter()
        try:
            raw = await self._complete_with_retry(images, prompt)
            analysis = parse_analysis(raw, self.name)
        except ProviderError as e:
            self._last_error = e.message
            self._last_response_time_ms = _elapsed_ms(started)
            logger.warning(
                'provider.call_failed',
                provider=self.name,
                error_type=type(e).__name__,
                error=e.message,
            )
            raise

        elapsed = _elapsed_ms(started)
        self._last_success = datetime.now(timezone.utc)
        self._last_error = None
        self._last_response_time_ms = elapsed
        return ProviderResponse(
            response=analysis,
            confidence=response_confidence(analysis),
            response_time_ms=elapsed,
        )

    async def _complete_with_retry(self, images: list[str], prompt: str) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_backoff_seconds),
            before_sleep=self._log_retry,
            reraise=True,
        )
        raw = ''
        async for attempt in retrying:
            with attempt:
                raw = await self._complete_once(images, prompt)
        return raw

    async def _complete_once(self, images: list[str], prompt: str) -> str:
        try:
            return await asyncio.wait_for(
                self.client.complete(images, prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f'{self.name} timed out after {self.timeout}s',
                context={'provider': self.name, 'timeout_s': self.timeout},
            ) from e
        except ProviderError:
            raise
        except Exception as e:
            raise wrap_provider_error(e, {'provider': self.name}) from e

    def _log_retry(self, retry_state: RetryCallState) -> None:
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.info(
            'provider.rate_limited_retry',
            provider=self.name,
            attempt=retry_state.attempt_number,
            sleep_s=round(sleep, 2),
        )

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            has_credential=self.client.has_credential,
            last_success=self._last_success,
            last_error=self._last_error,
            last_response_time_ms=self._last_response_time_ms,
        )

    async def close(self) -> None:
        await self.client.close()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
