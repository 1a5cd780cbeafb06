"""
Category authority sources.

- NhtsaVinSource: VIN decode via the public NHTSA vPIC API (vehicles)
- GoogleBooksSource: bibliographic and list-price lookup (books)

Collectible catalogs (cards, coins, records, LEGO) live in catalogs.py.
Authority sources supply verified facts about the item rather than a
crowd of listings; which categories each one serves is set by
AUTHORITY_SOURCES.
"""

import re
from collections.abc import Mapping
from typing import Any

import httpx

from ..errors import EvidenceSourceError, EvidenceUnavailableError
from ..logging import get_logger
from ..models.evidence import AuthorityData, PriceAnalysis, SourceKind, SourceResult
from .categories import authority_sources_for
from .identifiers import find_isbn, find_vin

logger = get_logger(__name__)

NHTSA_DECODE_URL = 'https://vpic.nhtsa.dot.gov/api/vehicles/DecodeVinValuesExtended/{vin}'
GOOGLE_BOOKS_URL = 'https://www.googleapis.com/books/v1/volumes'

_NHTSA_FIELDS = {
    'Make': 'make',
    'Model': 'model',
    'ModelYear': 'year',
    'Trim': 'trim',
    'BodyClass': 'body_class',
    'VehicleType': 'vehicle_type',
    'DriveType': 'drive_type',
    'FuelTypePrimary': 'fuel_type',
    'EngineCylinders': 'engine_cylinders',
    'DisplacementL': 'displacement_l',
    'PlantCountry': 'plant_country',
}

_REJECTED_STATUSES = (401, 403)


async def get_json(
    http: httpx.AsyncClient,
    source: str,
    url: str,
    params: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
) -> Any:
    """
    GET a JSON document for an evidence source.

    Raises:
        EvidenceUnavailableError: The source rejected our credentials
        EvidenceSourceError: Any other transport, status or decode failure
    """
    context = {'source': source, 'url': url}
    try:
        response = await http.get(url, params=params, headers=headers)
        logger.debug('authority.response', source=source, status_code=response.status_code)
        if response.status_code in _REJECTED_STATUSES:
            raise EvidenceUnavailableError(
                f'{source} rejected credentials ({response.status_code})',
                context={**context, 'status_code': response.status_code},
            )
        response.raise_for_status()
        return response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise EvidenceSourceError(f'{source} request failed: {e}', context=context) from e


class AuthoritySource:
    """Shared plumbing: category routing and an optionally owned httpx client."""

    name = ''
    kind = SourceKind.AUTHORITY

    def __init__(self, http_client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @property
    def is_available(self) -> bool:
        return True

    def handles(self, category: str) -> bool:
        return self.name in authority_sources_for(category)

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()


class NhtsaVinSource(AuthoritySource):
    """Free VIN decoder. No credential required."""

    name = 'nhtsa'

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        vin = (identifiers or {}).get('vin') or find_vin(item_name)
        if not vin:
            return SourceResult.unavailable(self.name, self.kind, 'no VIN to decode')

        data = await get_json(
            self._http, self.name, NHTSA_DECODE_URL.format(vin=vin), {'format': 'json'}
        )
        results = data.get('Results') or []
        if not results:
            return SourceResult.unavailable(self.name, self.kind, 'empty decode result')

        row = results[0]
        details: dict[str, Any] = {'vin': vin}
        for api_key, field_name in _NHTSA_FIELDS.items():
            value = row.get(api_key)
            if value not in (None, '', 'Not Applicable'):
                details[field_name] = value

        # ErrorCode "0" is a clean decode; anything else is partial
        verified = str(row.get('ErrorCode', '')).split(',')[0].strip() == '0'
        if not details.get('make'):
            return SourceResult.unavailable(self.name, self.kind, 'VIN did not decode')

        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            authority_data=AuthorityData(
                source=self.name,
                verified=verified,
                confidence=0.95 if verified else 0.6,
                item_details=details,
            ),
        )


class GoogleBooksSource(AuthoritySource):
    """Google Books volume search. The API key is optional."""

    name = 'google_books'

    def __init__(
        self,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client)
        self.api_key = api_key or ''

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        query = build_book_query(item_name, (identifiers or {}).get('isbn'))
        params = {'q': query, 'maxResults': '10', 'printType': 'books'}
        if self.api_key:
            params['key'] = self.api_key

        data = await get_json(self._http, self.name, GOOGLE_BOOKS_URL, params)
        items = data.get('items') or []
        if not items:
            return SourceResult.unavailable(self.name, self.kind, 'no matching books')

        best = items[0]
        info = best.get('volumeInfo') or {}
        sale = best.get('saleInfo') or {}
        isbns = {
            entry.get('type'): entry.get('identifier')
            for entry in info.get('industryIdentifiers') or []
        }
        retail = _sale_amount(sale, 'listPrice') or _sale_amount(sale, 'retailPrice')

        authority = AuthorityData(
            source=self.name,
            verified=True,
            confidence=title_match_confidence(item_name, info.get('title', '')),
            item_details={
                'google_books_id': best.get('id'),
                'title': info.get('title'),
                'authors': info.get('authors'),
                'publisher': info.get('publisher'),
                'published_date': info.get('publishedDate'),
                'isbn13': isbns.get('ISBN_13'),
                'isbn10': isbns.get('ISBN_10'),
                'page_count': info.get('pageCount'),
            },
            price_data={'retail': retail} if retail else None,
        )
        price_analysis = None
        if retail:
            price_analysis = PriceAnalysis(
                median=retail,
                low=round(retail * 0.3, 2),
                high=round(retail * 2, 2),
                average=retail,
                sample_size=1,
            )

        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            total_listings=int(data.get('totalItems') or len(items)),
            price_analysis=price_analysis,
            authority_data=authority,
        )


def build_book_query(item_name: str, isbn: str | None = None) -> str:
    """ISBN query when one is known, else a cleaned title/author query."""
    isbn = isbn or find_isbn(item_name)
    if isbn:
        return f'isbn:{isbn}'
    query = re.sub(
        r'\b(book|hardcover|paperback|first edition|signed|rare)\b',
        '',
        item_name,
        flags=re.IGNORECASE,
    )
    query = re.sub(r'\s+', ' ', query).strip()
    by_match = re.match(r'(.+?)\s+by\s+(.+)', query, flags=re.IGNORECASE)
    if by_match:
        return f'intitle:{by_match.group(1).strip()}+inauthor:{by_match.group(2).strip()}'
    return query


def title_match_confidence(item_name: str, title: str) -> float:
    """0.5 plus half the share of title words present in the item name."""
    title_words = set(re.findall(r'[a-z0-9]+', title.lower()))
    if not title_words:
        return 0.5
    name_words = set(re.findall(r'[a-z0-9]+', item_name.lower()))
    overlap = len(title_words & name_words) / len(title_words)
    return round(0.5 + 0.5 * overlap, 2)


def _sale_amount(sale: dict[str, Any], key: str) -> float:
    amount = (sale.get(key) or {}).get('amount')
    try:
        value = float(amount) if amount is not None else 0.0
    except (TypeError, ValueError):
        return 0.0
    return value if value > 0 else 0.0
