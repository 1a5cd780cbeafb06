"""
OpenAI-compatible chat completion transport.

One client class serves every provider that speaks the OpenAI chat
completions API (OpenAI itself, Groq, xAI, DeepSeek, Mistral, Perplexity);
only the base URL, model and key differ.
"""

from typing import Any

import openai
from openai import AsyncOpenAI

from ..errors import ParseFailureError, wrap_provider_error
from .images import to_data_uri

SYSTEM_PROMPT = (
    'You are an expert resale appraiser. Respond with a single JSON object only, '
    'no prose before or after it.'
)


class OpenAICompatibleClient:
    """
    Async chat completion client for OpenAI-compatible APIs.

    The SDK's own retries are disabled; retry policy belongs to
    ResilientProvider so that only rate-limit errors are retried.
    """

    def __init__(
        self,
        name: str,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        supports_vision: bool = False,
        temperature: float = 0.2,
        max_tokens: int = 1500,
    ):
        self.name = name
        self.api_key = api_key or ''
        self.model = model
        self.base_url = base_url
        self.supports_vision = supports_vision
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: AsyncOpenAI | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                max_retries=0,
            )
        return self._client

    def build_messages(self, images: list[str], prompt: str) -> list[dict[str, Any]]:
        """Chat messages; images are attached only for vision-capable models."""
        if self.supports_vision and images:
            content: list[dict[str, Any]] = [
                {'type': 'image_url', 'image_url': {'url': to_data_uri(image)}}
                for image in images
            ]
            content.append({'type': 'text', 'text': prompt})
            user_message: dict[str, Any] = {'role': 'user', 'content': content}
        else:
            user_message = {'role': 'user', 'content': prompt}
        return [{'role': 'system', 'content': SYSTEM_PROMPT}, user_message]

    async def complete(self, images: list[str], prompt: str) -> str:
        """
        Get the assistant's response text.

        Raises:
            ProviderError subclass: Classified SDK failure
            ParseFailureError: Empty completion
        """
        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=self.build_messages(images, prompt),  # type: ignore
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APIError as e:
            raise wrap_provider_error(e, {'provider': self.name, 'model': self.model}) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ParseFailureError(
                f'{self.name} returned an empty completion',
                context={'provider': self.name, 'model': self.model},
            )
        return content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
