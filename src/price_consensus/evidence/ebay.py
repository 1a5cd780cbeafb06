"""
eBay marketplace price aggregation.

Authenticates with the OAuth client-credentials grant (token held in an
injected TokenCache) and summarizes Browse API listing prices for the item.
"""

from collections.abc import Mapping
from typing import Any

import httpx

from ..errors import EvidenceSourceError, EvidenceUnavailableError
from ..logging import get_logger
from ..models.evidence import PriceAnalysis, SourceKind, SourceResult
from .token_cache import TokenCache

logger = get_logger(__name__)

EBAY_OAUTH_URL = 'https://api.ebay.com/identity/v1/oauth2/token'
EBAY_BROWSE_URL = 'https://api.ebay.com/buy/browse/v1/item_summary/search'
EBAY_SCOPE = 'https://api.ebay.com/oauth/api_scope'


class EbayMarketSource:
    """Marketplace source backed by the eBay Browse API."""

    name = 'ebay'
    kind = SourceKind.MARKETPLACE

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        http_client: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
        limit: int = 50,
        marketplace_id: str = 'EBAY_US',
    ):
        self.client_id = client_id or ''
        self.client_secret = client_secret or ''
        self.limit = limit
        self.marketplace_id = marketplace_id
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http_client is None
        self.token_cache = token_cache or TokenCache(self.request_token)

    @property
    def is_available(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def handles(self, category: str) -> bool:
        return True

    async def request_token(self) -> tuple[str, float]:
        """Client-credentials grant; returns (token, expires_in_seconds)."""
        try:
            response = await self._http.post(
                EBAY_OAUTH_URL,
                auth=(self.client_id, self.client_secret),
                data={'grant_type': 'client_credentials', 'scope': EBAY_SCOPE},
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
            )
            if response.status_code == 401:
                raise EvidenceUnavailableError(
                    'eBay rejected client credentials',
                    context={'source': self.name, 'status_code': 401},
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EvidenceSourceError(
                f'eBay token request failed: {e}',
                context={'source': self.name},
            ) from e
        return data['access_token'], float(data.get('expires_in', 7200))

    async def _search(self, query: str) -> httpx.Response:
        token = await self.token_cache.get()
        return await self._http.get(
            EBAY_BROWSE_URL,
            params={'q': query, 'limit': str(self.limit)},
            headers={
                'Authorization': f'Bearer {token}',
                'X-EBAY-C-MARKETPLACE-ID': self.marketplace_id,
            },
        )

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        if not self.is_available:
            return SourceResult.unavailable(self.name, self.kind, 'credentials not configured')

        try:
            response = await self._search(item_name)
            if response.status_code == 401:
                # Token revoked or expired early: refresh once
                self.token_cache.invalidate()
                response = await self._search(item_name)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EvidenceSourceError(
                f'eBay search failed: {e}',
                context={'source': self.name, 'query': item_name},
            ) from e

        prices = extract_listing_prices(data)
        analysis = PriceAnalysis.from_prices(prices)
        if analysis is None:
            return SourceResult.unavailable(self.name, self.kind, 'no priced listings')

        # ``total`` counts every match; the analysis covers only the priced
        # listings on the first page (at most ``limit``)
        total = data.get('total')
        total_listings = analysis.sample_size
        if isinstance(total, int) and total > total_listings:
            total_listings = total
        logger.debug(
            'ebay.listings_found',
            total=total_listings,
            sampled=analysis.sample_size,
            median=analysis.median,
        )
        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            total_listings=total_listings,
            price_analysis=analysis,
        )

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()


def extract_listing_prices(data: dict[str, Any]) -> list[float]:
    """Positive USD-ish prices from a Browse API search payload."""
    prices = []
    for item in data.get('itemSummaries') or []:
        price = (item or {}).get('price') or {}
        try:
            value = float(price.get('value', 0))
        except (TypeError, ValueError):
            continue
        if value > 0:
            prices.append(value)
    return prices
