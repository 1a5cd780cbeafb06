"""
Collectible catalog authorities.

- PokemonTcgSource: card lookup with TCGplayer market prices (trading_cards)
- NumistaSource: coin and banknote catalogue with graded estimates (coins)
- DiscogsSource: release lookup with marketplace price suggestions (vinyl_records)
- BricksetSource: LEGO set database with LEGO.com retail prices (lego)

Each resolves the item to one catalog entry and reports that entry's facts
and, where the catalog has one, its price. A failed price lookup after a
successful match still yields the catalog facts.
"""

import json
import re
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

import httpx

from ..errors import EvidenceSourceError, EvidenceUnavailableError
from ..logging import get_logger
from ..models.evidence import AuthorityData, PriceAnalysis, SourceResult
from .authority import AuthoritySource, get_json, title_match_confidence
from .identifiers import CARD_NUMBER_RE, find_card_number
from .token_cache import TokenCache

logger = get_logger(__name__)

POKEMON_TCG_URL = 'https://api.pokemontcg.io/v2/cards'
NUMISTA_API_BASE = 'https://api.numista.com/v3'
DISCOGS_API_BASE = 'https://api.discogs.com'
BRICKSET_API_BASE = 'https://brickset.com/api/v3.asmx'
USER_AGENT = 'PriceConsensus/0.1'

# Most collectible printing first
TCG_PRICE_VARIANTS = (
    'holofoil', '1stEditionHolofoil', 'reverseHolofoil',
    'normal', '1stEditionNormal', 'unlimitedHolofoil',
)
NUMISTA_GRADES = ('g', 'vg', 'f', 'vf', 'xf', 'au', 'unc')
DISCOGS_CONDITIONS = (
    'Mint (M)', 'Near Mint (NM or M-)', 'Very Good Plus (VG+)',
    'Very Good (VG)', 'Good Plus (G+)', 'Good (G)',
)
# Discogs stats only report the cheapest copy for sale
DISCOGS_STATS_MEDIAN_FACTOR = 1.5
DISCOGS_STATS_HIGH_FACTOR = 3.0
BRICKSET_HASH_TTL_SECONDS = 3600.0
GBP_TO_USD = 1.25

_CARD_NOISE_RE = re.compile(
    r'\b(?:pok[eé]mon|tcg|cards?|holo(?:graphic)?|reverse|foil|graded|psa|bgs|cgc|'
    r'mint|near mint|nm|1st edition|first edition|shadowless|rare)\b',
    re.IGNORECASE,
)
_COIN_NOISE_RE = re.compile(
    r'\b(?:coin|penny|nickel|dime|quarter|graded|certified|pcgs|ngc|anacs)\b'
    r'|\b(?:ms|pr|pf)\s*-?\d+\b',
    re.IGNORECASE,
)
_MUSIC_NOISE_RE = re.compile(
    r'(?:\b(?:vinyl|record|lp|album|45 rpm|33 rpm)\b|\b(?:12|7)")',
    re.IGNORECASE,
)
_LEGO_NOISE_RE = re.compile(r'\b(?:lego|legos|set)\b|#', re.IGNORECASE)
_YEAR_RE = re.compile(r'\b(1[0-9]{3}|20[0-9]{2})\b')
_SET_NUMBER_RE = re.compile(r'(?:\bset\s*#?\s*|#)(\d{3,7})(?:-(\d+))?', re.IGNORECASE)
_BARE_SET_NUMBER_RE = re.compile(r'\b(\d{4,7})(?:-(\d+))?\b')


def _positive(value: Any) -> float:
    try:
        number = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0
    return number if number > 0 else 0.0


def _squash(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


# =============================================================================
# Pokemon TCG
# =============================================================================


class PokemonTcgSource(AuthoritySource):
    """pokemontcg.io card search. The API key only raises rate limits."""

    name = 'pokemon_tcg'

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
        card_number = (identifiers or {}).get('card_number') or find_card_number(item_name)
        queries = build_card_queries(item_name, card_number)
        if not queries:
            return SourceResult.unavailable(self.name, self.kind, 'no card name to search')

        headers = {'X-Api-Key': self.api_key} if self.api_key else None
        cards: list[dict[str, Any]] = []
        for query in queries:
            data = await get_json(
                self._http,
                self.name,
                POKEMON_TCG_URL,
                {'q': query, 'pageSize': '10', 'orderBy': '-set.releaseDate'},
                headers,
            )
            cards = data.get('data') or []
            if cards:
                break
            logger.debug('pokemon_tcg.no_match', query=query)
        if not cards:
            return SourceResult.unavailable(self.name, self.kind, 'no matching cards')

        best = next((card for card in cards if tcg_prices(card)), cards[0])
        priced = tcg_prices(best)
        set_info = best.get('set') or {}
        tcgplayer = best.get('tcgplayer') or {}
        number = best.get('number')
        printed_total = set_info.get('printedTotal')

        price_data = None
        price_analysis = None
        if priced is not None:
            variant, price_data = priced
            price_analysis = PriceAnalysis(
                median=price_data['market'],
                low=price_data['low'],
                high=price_data['high'],
                average=price_data['mid'],
                sample_size=1,
            )

        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            price_analysis=price_analysis,
            authority_data=AuthorityData(
                source=self.name,
                verified=True,
                confidence=card_match_confidence(
                    item_name, best.get('name', ''), card_number, number
                ),
                item_details={
                    'card_id': best.get('id'),
                    'name': best.get('name'),
                    'set': set_info.get('name'),
                    'set_id': set_info.get('id'),
                    'number': f'{number}/{printed_total}' if number and printed_total else number,
                    'rarity': best.get('rarity'),
                    'variant': priced[0] if priced else None,
                    'tcgplayer_url': tcgplayer.get('url'),
                    'prices_updated': tcgplayer.get('updatedAt'),
                },
                price_data=price_data,
            ),
        )


def clean_card_name(item_name: str) -> str:
    """Card name with set numbers, grades and listing noise removed."""
    name = CARD_NUMBER_RE.sub(' ', item_name)
    name = re.sub(r'\b(?:psa|bgs|cgc)\s*\d+(?:\.\d)?\b', ' ', name, flags=re.IGNORECASE)
    name = _CARD_NOISE_RE.sub(' ', name)
    name = _YEAR_RE.sub(' ', name)
    name = re.sub(r"[^\w\s.'-]", ' ', name)
    return _squash(name)


def build_card_queries(item_name: str, card_number: str | None = None) -> list[str]:
    """pokemontcg.io queries from most to least specific."""
    name = clean_card_name(item_name)
    if not name:
        return []
    # Listing names often carry the set name too ("Charizard Base Set")
    names = [f'name:"{name}"']
    first_word = name.split()[0]
    if first_word != name:
        names.append(f'name:{first_word}')
    queries = []
    if card_number:
        queries.extend(f'{n} number:{_card_index(card_number)}' for n in names)
    queries.extend(names)
    return queries


def tcg_prices(card: Mapping[str, Any]) -> tuple[str, dict[str, float]] | None:
    """(variant, {market, low, mid, high}) for the first printing with a market price."""
    prices = (card.get('tcgplayer') or {}).get('prices') or {}
    for variant in TCG_PRICE_VARIANTS:
        entry = prices.get(variant) or {}
        market = _positive(entry.get('market'))
        if market:
            return variant, {
                'market': market,
                'low': _positive(entry.get('low')) or market,
                'mid': _positive(entry.get('mid')) or market,
                'high': _positive(entry.get('high')) or market,
            }
    return None


def _card_index(number: str) -> str:
    index = str(number).split('/')[0].strip()
    return index.lstrip('0') or index


def card_match_confidence(
    item_name: str,
    card_name: str,
    card_number: str | None,
    number: str | None,
) -> float:
    confidence = min(title_match_confidence(item_name, card_name), 0.95)
    if card_number and number and _card_index(card_number) == _card_index(number):
        confidence = max(confidence, 0.98)
    return confidence


# =============================================================================
# Numista
# =============================================================================


class NumistaSource(AuthoritySource):
    """Numista catalogue search with per-grade price estimates."""

    name = 'numista'

    def __init__(
        self,
        api_key: str | None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client)
        self.api_key = api_key or ''

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def _headers(self) -> dict[str, str]:
        return {'Numista-API-Key': self.api_key}

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        if not self.is_available:
            return SourceResult.unavailable(self.name, self.kind, 'API key not configured')

        data = await get_json(
            self._http,
            self.name,
            f'{NUMISTA_API_BASE}/types',
            {
                'q': build_coin_query(item_name),
                'category': numista_category(item_name),
                'count': '10',
                'lang': 'en',
            },
            self._headers,
        )
        types = data.get('types') or []
        if not types:
            return SourceResult.unavailable(self.name, self.kind, 'no matching catalogue entries')

        best = max(types, key=lambda t: title_match_confidence(item_name, t.get('title', '')))
        year_match = _YEAR_RE.search(item_name)
        try:
            grades = await self._grade_prices(best['id'], year_match.group(1) if year_match else None)
        except EvidenceSourceError as e:
            logger.warning('numista.prices_failed', type_id=best.get('id'), error=e.message)
            grades = {}

        market = coin_market_value(grades)
        price_analysis = None
        if grades:
            values = list(grades.values())
            price_analysis = PriceAnalysis(
                median=market,
                low=min(values),
                high=max(values),
                average=round(sum(values) / len(values), 2),
                sample_size=len(values),
            )

        min_year, max_year = best.get('min_year'), best.get('max_year')
        years = f'{min_year}-{max_year}' if min_year and max_year and min_year != max_year else min_year
        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            price_analysis=price_analysis,
            authority_data=AuthorityData(
                source=self.name,
                verified=True,
                confidence=title_match_confidence(item_name, best.get('title', '')),
                item_details={
                    'numista_id': best.get('id'),
                    'title': best.get('title'),
                    'issuer': (best.get('issuer') or {}).get('name'),
                    'years': years,
                    'category': best.get('category'),
                },
                price_data={'market': market, **grades} if grades else None,
            ),
        )

    async def _grade_prices(self, type_id: int, year: str | None) -> dict[str, float]:
        """USD estimates by grade for the issue matching ``year`` (else the first)."""
        issues = await get_json(
            self._http, self.name, f'{NUMISTA_API_BASE}/types/{type_id}/issues',
            {'lang': 'en'}, self._headers,
        )
        if not isinstance(issues, list) or not issues:
            return {}
        issue = next(
            (i for i in issues if year and str(i.get('gregorian_year') or i.get('year')) == year),
            issues[0],
        )
        data = await get_json(
            self._http, self.name,
            f"{NUMISTA_API_BASE}/types/{type_id}/issues/{issue['id']}/prices",
            {'currency': 'USD', 'lang': 'en'}, self._headers,
        )
        grades: dict[str, float] = {}
        for entry in data.get('prices') or []:
            price = _positive(entry.get('price'))
            if price and entry.get('grade'):
                grades[str(entry['grade'])] = price
        return grades


def build_coin_query(item_name: str) -> str:
    """Item name without denomination words and grading marks; a year is kept."""
    query = _squash(_COIN_NOISE_RE.sub(' ', item_name))
    year = _YEAR_RE.search(item_name)
    if year and year.group(1) not in query:
        query = f'{query} {year.group(1)}'
    return query or item_name


def numista_category(item_name: str) -> str:
    if re.search(r'\b(?:banknote|bank note|bill)\b', item_name, re.IGNORECASE):
        return 'banknote'
    return 'coin'


def coin_market_value(grades: Mapping[str, float]) -> float:
    """Very Fine estimate, else the middle reported grade."""
    if not grades:
        return 0.0
    if grades.get('vf'):
        return grades['vf']
    ordered = sorted(grades, key=lambda g: NUMISTA_GRADES.index(g) if g in NUMISTA_GRADES else 99)
    return grades[ordered[len(ordered) // 2]]


# =============================================================================
# Discogs
# =============================================================================


class DiscogsSource(AuthoritySource):
    """Discogs release search with marketplace pricing."""

    name = 'discogs'

    def __init__(
        self,
        token: str | None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client)
        self.token = token or ''

    @property
    def is_available(self) -> bool:
        return bool(self.token)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            'Authorization': f'Discogs token={self.token}',
            'User-Agent': USER_AGENT,
            'Accept': 'application/json',
        }

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        if not self.is_available:
            return SourceResult.unavailable(self.name, self.kind, 'token not configured')

        data = await get_json(
            self._http,
            self.name,
            f'{DISCOGS_API_BASE}/database/search',
            {'q': clean_music_query(item_name), 'type': 'release', 'per_page': '10'},
            self._headers,
        )
        releases = data.get('results') or []
        if not releases:
            return SourceResult.unavailable(self.name, self.kind, 'no matching releases')

        best = max(releases, key=lambda r: title_match_confidence(item_name, r.get('title', '')))
        price_analysis = await self._release_prices(best['id'])

        labels = best.get('label') or []
        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            price_analysis=price_analysis,
            authority_data=AuthorityData(
                source=self.name,
                verified=True,
                confidence=title_match_confidence(item_name, best.get('title', '')),
                item_details={
                    'release_id': best.get('id'),
                    'title': best.get('title'),
                    'year': best.get('year'),
                    'country': best.get('country'),
                    'format': ', '.join(best.get('format') or []) or None,
                    'label': labels[0] if labels else None,
                    'catalog_number': best.get('catno'),
                },
                price_data={'market': price_analysis.median} if price_analysis else None,
            ),
        )

    async def _release_prices(self, release_id: int) -> PriceAnalysis | None:
        """Condition price suggestions, falling back to marketplace stats."""
        try:
            suggestions = await get_json(
                self._http, self.name,
                f'{DISCOGS_API_BASE}/marketplace/price_suggestions/{release_id}',
                headers=self._headers,
            )
        except EvidenceSourceError as e:
            logger.debug('discogs.no_price_suggestions', release_id=release_id, error=e.message)
        else:
            analysis = PriceAnalysis.from_prices([
                _positive((suggestions.get(condition) or {}).get('value'))
                for condition in DISCOGS_CONDITIONS
            ])
            if analysis is not None:
                return analysis

        try:
            stats = await get_json(
                self._http, self.name,
                f'{DISCOGS_API_BASE}/marketplace/stats/{release_id}',
                headers=self._headers,
            )
        except EvidenceSourceError as e:
            logger.warning('discogs.stats_failed', release_id=release_id, error=e.message)
            return None
        return discogs_stats_prices(stats)


def clean_music_query(item_name: str) -> str:
    return _squash(_MUSIC_NOISE_RE.sub(' ', item_name)) or item_name


def discogs_stats_prices(stats: Mapping[str, Any]) -> PriceAnalysis | None:
    lowest = _positive((stats.get('lowest_price') or {}).get('value'))
    if not lowest:
        return None
    median = (
        _positive((stats.get('median_price') or {}).get('value'))
        or round(lowest * DISCOGS_STATS_MEDIAN_FACTOR, 2)
    )
    high = (
        _positive((stats.get('highest_price') or {}).get('value'))
        or round(lowest * DISCOGS_STATS_HIGH_FACTOR, 2)
    )
    return PriceAnalysis(median=median, low=lowest, high=high, average=median, sample_size=1)


# =============================================================================
# Brickset
# =============================================================================


class BricksetSource(AuthoritySource):
    """
    Brickset v3 set search.

    Every call needs a userHash from ``login``; it is held in a TokenCache
    the same way the eBay source holds its OAuth token. Requests are POSTed
    as form data so credentials never appear in a URL.
    """

    name = 'brickset'

    def __init__(
        self,
        api_key: str | None,
        username: str | None,
        password: str | None,
        http_client: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(http_client)
        self.api_key = api_key or ''
        self.username = username or ''
        self.password = password or ''
        self.token_cache = token_cache or TokenCache(self.login)
        self._today = today

    @property
    def is_available(self) -> bool:
        return bool(self.api_key and self.username and self.password)

    async def _call(self, method: str, params: Mapping[str, str]) -> dict[str, Any]:
        try:
            response = await self._http.post(
                f'{BRICKSET_API_BASE}/{method}',
                data={'apiKey': self.api_key, **params},
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EvidenceSourceError(
                f'brickset {method} failed: {e}',
                context={'source': self.name, 'method': method},
            ) from e

    async def login(self) -> tuple[str, float]:
        """Exchange username/password for a userHash; returns (hash, ttl_seconds)."""
        data = await self._call('login', {'username': self.username, 'password': self.password})
        if data.get('status') != 'success' or not data.get('hash'):
            raise EvidenceUnavailableError(
                f"brickset login failed: {data.get('message') or 'no hash returned'}",
                context={'source': self.name},
            )
        return data['hash'], BRICKSET_HASH_TTL_SECONDS

    async def _get_sets(self, search: Mapping[str, Any]) -> list[dict[str, Any]]:
        user_hash = await self.token_cache.get()
        data = await self._call('getSets', {
            'userHash': user_hash,
            'params': json.dumps({'pageSize': 10, 'orderBy': 'YearFromDESC', **search}),
        })
        if data.get('status') != 'success':
            raise EvidenceSourceError(
                f"brickset getSets failed: {data.get('message') or 'unknown error'}",
                context={'source': self.name},
            )
        return data.get('sets') or []

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        if not self.is_available:
            return SourceResult.unavailable(self.name, self.kind, 'credentials not configured')

        set_number = (identifiers or {}).get('set_number') or extract_set_number(item_name)
        name_query = clean_lego_name(item_name)
        sets: list[dict[str, Any]] = []
        if set_number:
            sets = await self._get_sets({'setNumber': set_number})
        if not sets and name_query:
            sets = await self._get_sets({'query': name_query})
        if not sets:
            return SourceResult.unavailable(self.name, self.kind, 'no matching sets')

        best = sets[0]
        prices = estimate_lego_prices(best, self._today().year)
        price_analysis = None
        price_data = None
        if prices is not None:
            low, median, high = sorted(prices.values())
            price_analysis = PriceAnalysis(
                median=median,
                low=low,
                high=high,
                average=round((low + median + high) / 3, 2),
                sample_size=1,
            )
            price_data = {'market': median, **prices}

        number = f"{best.get('number')}-{best.get('numberVariant') or 1}"
        pieces = best.get('pieces')
        exact = bool(set_number) and number == set_number
        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            price_analysis=price_analysis,
            authority_data=AuthorityData(
                source=self.name,
                verified=True,
                confidence=0.98 if exact else min(
                    title_match_confidence(item_name, best.get('name', '')), 0.85
                ),
                item_details={
                    'set_number': number,
                    'name': best.get('name'),
                    'theme': best.get('theme'),
                    'subtheme': best.get('subtheme'),
                    'year': best.get('year'),
                    'pieces': pieces,
                    'minifigs': best.get('minifigs'),
                    'availability': best.get('availability'),
                    'price_per_piece': (
                        round(prices['retail'] / pieces, 3) if prices and pieces else None
                    ),
                },
                price_data=price_data,
            ),
        )


def extract_set_number(item_name: str) -> str | None:
    """
    LEGO set number with variant, e.g. "75192-1".

    An explicit "set #" or "#" marker wins; a bare four-digit number that
    looks like a year is skipped.
    """
    match = _SET_NUMBER_RE.search(item_name)
    if match is None:
        match = next(
            (
                m for m in _BARE_SET_NUMBER_RE.finditer(item_name)
                if m.group(2) or not _YEAR_RE.fullmatch(m.group(1))
            ),
            None,
        )
    if match is None:
        return None
    return f'{match.group(1)}-{match.group(2) or 1}'


def clean_lego_name(item_name: str) -> str:
    name = _BARE_SET_NUMBER_RE.sub(' ', item_name)
    return _squash(_LEGO_NOISE_RE.sub(' ', name))


def estimate_lego_prices(set_data: Mapping[str, Any], current_year: int) -> dict[str, float] | None:
    """
    Retail, new and used estimates from the LEGO.com retail price.

    Retired or older sets appreciate: new sealed gains 15% per year up to
    3x retail and used gains 10% per year from 0.6x up to 1.5x.
    """
    lego_com = set_data.get('LEGOCom') or {}
    us = lego_com.get('US') or {}
    uk = lego_com.get('UK') or {}
    retail = _positive(us.get('retailPrice')) or _positive(uk.get('retailPrice')) * GBP_TO_USD
    if not retail:
        return None

    try:
        year = int(set_data.get('year') or current_year)
    except (TypeError, ValueError):
        year = current_year
    years_old = max(current_year - year, 0)
    retired = set_data.get('availability') == 'Retired' or bool(us.get('dateLastAvailable'))

    new_factor, used_factor = 1.0, 0.6
    if retired or years_old > 2:
        new_factor = min(1.0 + years_old * 0.15, 3.0)
        used_factor = min(0.6 + years_old * 0.1, 1.5)
    return {
        'retail': round(retail, 2),
        'new': round(retail * new_factor, 2),
        'used': round(retail * used_factor, 2),
    }
