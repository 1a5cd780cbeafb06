"""
Anthropic Messages API transport over the official SDK.
"""

from typing import Any

import anthropic
import httpx
from anthropic import AsyncAnthropic

from ..errors import ParseFailureError, wrap_provider_error
from .images import is_url, split_data_uri
from .openai_compatible import SYSTEM_PROMPT


class AnthropicClient:
    """
    Async Messages API client.

    As with the OpenAI-compatible client, SDK retries are off and
    ResilientProvider owns the retry policy.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = 'claude-sonnet-4-20250514',
        supports_vision: bool = True,
        max_tokens: int = 1500,
        http_client: httpx.AsyncClient | None = None,
        name: str = 'anthropic',
    ):
        self.name = name
        self.api_key = api_key or ''
        self.model = model
        self.supports_vision = supports_vision
        self.max_tokens = max_tokens
        self._http_client = http_client
        self._client: AsyncAnthropic | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    def build_content(self, images: list[str], prompt: str) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        if self.supports_vision:
            for image in images:
                if is_url(image):
                    content.append({'type': 'image', 'source': {'type': 'url', 'url': image}})
                else:
                    media_type, data = split_data_uri(image)
                    content.append({
                        'type': 'image',
                        'source': {'type': 'base64', 'media_type': media_type, 'data': data},
                    })
        content.append({'type': 'text', 'text': prompt})
        return content

    async def complete(self, images: list[str], prompt: str) -> str:
        """
        Get the response text, joined across text blocks.

        Raises:
            ProviderError subclass: Classified SDK failure
            ParseFailureError: No text in the response
        """
        try:
            response = await self._get_client().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{'role': 'user', 'content': self.build_content(images, prompt)}],  # type: ignore
            )
        except anthropic.APIError as e:
            raise wrap_provider_error(e, {'provider': self.name, 'model': self.model}) from e

        text = ''.join(
            block.text for block in response.content if getattr(block, 'type', None) == 'text'
        )
        if not text.strip():
            raise ParseFailureError(
                f'{self.name} returned no text content',
                context={'provider': self.name, 'model': self.model},
            )
        return text

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
