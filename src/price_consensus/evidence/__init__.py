"""
Evidence sources: marketplace aggregation, category authorities and web
price search, plus category routing and the shared token cache.
"""

from .base import EvidenceSource
from .token_cache import TokenCache
from .ebay import EbayMarketSource
from .authority import AuthoritySource, GoogleBooksSource, NhtsaVinSource
from .catalogs import BricksetSource, DiscogsSource, NumistaSource, PokemonTcgSource
from .web_search import WebPriceSource, extract_web_prices
from .categories import authority_sources_for, detect_category, normalize_category
from .identifiers import extract_identifiers, find_isbn, find_vin

__all__ = [
    'EvidenceSource',
    'TokenCache',
    'EbayMarketSource',
    'AuthoritySource',
    'GoogleBooksSource',
    'NhtsaVinSource',
    'PokemonTcgSource',
    'NumistaSource',
    'DiscogsSource',
    'BricksetSource',
    'WebPriceSource',
    'extract_web_prices',
    'authority_sources_for',
    'detect_category',
    'normalize_category',
    'extract_identifiers',
    'find_isbn',
    'find_vin',
]
