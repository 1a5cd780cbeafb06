"""
httpx transport for Google Gemini (Generative Language generateContent).

Gemini only accepts image bytes inline, so remote image URLs are downloaded
through the same httpx client before the request is sent. An image that
cannot be downloaded fails the call; the model is never asked to identify
an item it could not see.
"""

import base64
from typing import Any

import httpx

from ..errors import ParseFailureError, ProviderError, wrap_http_error
from ..logging import get_logger
from .images import DEFAULT_MEDIA_TYPE, is_url, split_data_uri

logger = get_logger(__name__)

GEMINI_API_BASE = 'https://generativelanguage.googleapis.com/v1beta/models'
MAX_IMAGE_BYTES = 20 * 1024 * 1024


class GeminiClient:
    """Google Gemini generateContent transport."""

    def __init__(
        self,
        api_key: str | None,
        model: str = 'gemini-2.0-flash',
        supports_vision: bool = True,
        http_client: httpx.AsyncClient | None = None,
        name: str = 'google',
        timeout: float = 30.0,
    ):
        self.name = name
        self.api_key = api_key or ''
        self.model = model
        self.supports_vision = supports_vision
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout = timeout

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def _download_image(self, url: str) -> dict[str, Any]:
        """Fetch a remote image as an ``inline_data`` part."""
        context = {'provider': self.name, 'image_url': url}
        try:
            response = await self._client().get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise wrap_http_error(e, context) from e

        if not response.content:
            raise ProviderError('Image download returned no bytes', context=context)
        if len(response.content) > MAX_IMAGE_BYTES:
            raise ProviderError(
                'Image too large for inline upload',
                context={**context, 'bytes': len(response.content)},
            )
        media_type = response.headers.get('content-type', '').split(';', 1)[0].strip()
        if not media_type.startswith('image/'):
            media_type = DEFAULT_MEDIA_TYPE
        logger.debug('gemini.image_downloaded', provider=self.name, bytes=len(response.content))
        return {
            'inline_data': {
                'mime_type': media_type,
                'data': base64.b64encode(response.content).decode('ascii'),
            }
        }

    async def build_parts(self, images: list[str], prompt: str) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []
        if self.supports_vision:
            for image in images:
                if is_url(image):
                    parts.append(await self._download_image(image))
                    continue
                media_type, data = split_data_uri(image)
                parts.append({'inline_data': {'mime_type': media_type, 'data': data}})
        parts.append({'text': prompt})
        return parts

    async def complete(self, images: list[str], prompt: str) -> str:
        """
        Get the response text.

        Raises:
            ProviderError subclass: HTTP failure, including an image download
            ParseFailureError: Non-JSON envelope or no candidate text
        """
        payload = {
            'contents': [{'role': 'user', 'parts': await self.build_parts(images, prompt)}],
            'generationConfig': {
                'temperature': 0.2,
                'responseMimeType': 'application/json',
            },
        }
        try:
            response = await self._client().post(
                f'{GEMINI_API_BASE}/{self.model}:generateContent',
                headers={'x-goog-api-key': self.api_key, 'content-type': 'application/json'},
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise wrap_http_error(e, {'provider': self.name, 'model': self.model}) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ParseFailureError(
                f'{self.name} returned a non-JSON envelope',
                context={'provider': self.name},
            ) from e

        candidates = data.get('candidates') or []
        parts = (candidates[0].get('content') or {}).get('parts', []) if candidates else []
        text = ''.join(part.get('text', '') for part in parts if isinstance(part, dict))
        if not text.strip():
            raise ParseFailureError(
                f'{self.name} returned no text content',
                context={'provider': self.name, 'model': self.model},
            )
        return text

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
